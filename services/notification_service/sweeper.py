"""Reminders for overdue loans, one page of loans per run."""

import logging
import threading
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from services.notification_service.clients import ServiceClientError, UserDirectoryClient
from services.notification_service.mailer import EmailDeliveryError, Mailer, format_date
from services.notification_service.models import Loan
from services.notification_service.stores import LoanStore


PAGE_SIZE = 15
# Highest cursor value before wrapping back to the first page. Fixed, not
# derived from how many pages of expired loans actually exist.
MAX_CURSOR = 17

REMINDER_SUBJECT = "Expiración préstamo libro"
REMINDER_BODY = (
    "Buen día. Su representado {name} tomó prestado un libro en la fecha {loan_date}\n"
    "y a la fecha aún no lo ha devuelto. Solicitamos por favor se haga la entrega\n"
    "lo más pronto posible.\n"
    "Gracias,\n"
    "Cordial saludo.\n"
    "Este es el gestor de notificaciones de BiblioSoft.\n"
    "No responder a esta cuenta de correo ya que es enviada por un motor de notificaciones automáticas."
)

logger = logging.getLogger(__name__)


def next_cursor(cursor: int) -> int:
    return 0 if cursor > MAX_CURSOR else cursor + 1


class ExpiredLoanSweeper:
    def __init__(
        self,
        loans: LoanStore,
        users: UserDirectoryClient,
        mailer: Mailer,
        today: Callable[[], date] = date.today,
    ):
        self.loans = loans
        self.users = users
        self.mailer = mailer
        self.today = today

    def sweep(self, cursor: int) -> int:
        """Remind guardians of every loan on page ``cursor`` and return the next cursor.

        A loan whose reminder fails keeps its sent-flag unset and is picked up
        again once the cursor comes back around to it.
        """
        page = self.loans.find_expired_loans(self.today(), cursor, PAGE_SIZE)
        for loan in page.content:
            try:
                self.remind(loan)
            except (ServiceClientError, EmailDeliveryError):
                logger.exception("Expiration reminder for loan %s failed", loan.id)
            except SQLAlchemyError:
                logger.exception("Reminder sent but loan %s could not be flagged", loan.id)
        logger.info("Swept page %s: %s expired loans", cursor, len(page.content))
        return next_cursor(cursor)

    def remind(self, loan: Loan) -> None:
        user = self.users.get_user_info_by_id(loan.user_id)
        body = REMINDER_BODY.format(name=user.name, loan_date=format_date(loan.loan_date))
        self.mailer.send_free_text(user.guardian_email, REMINDER_SUBJECT, body)
        loan.email_expired_sent = True
        self.loans.save(loan)


class SweepCursor:
    """Page cursor kept by the process that owns the sweep trigger.

    Runs are single-flight: a run that starts while another is still in
    progress is skipped and the cursor is left untouched.
    """

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def advance(self, sweep: Callable[[int], int]) -> Optional[int]:
        if not self._lock.acquire(blocking=False):
            logger.warning("Expired loan sweep already running, skipping this run")
            return None
        try:
            self._value = sweep(self._value)
            return self._value
        finally:
            self._lock.release()
