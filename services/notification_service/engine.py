"""Loan and fine notifications sent to library users' guardians.

Every operation writes through to the stores and sends at most one email.
Store writes and the email are not atomic: a failed send after a write
leaves the record in place, and nothing is compensated.
"""

import logging
from datetime import date
from typing import Callable

from sqlalchemy.exc import IntegrityError

from services.notification_service.clients import UserDirectoryClient
from services.notification_service.errors import PrivateError, PublicError
from services.notification_service.mailer import EmailTemplate, Mailer, format_date
from services.notification_service.models import (
    FINE_DESCRIPTIONS,
    Fine,
    FineRead,
    FineRequest,
    FinesPage,
    FineStatus,
    Loan,
    LoanRequest,
    Notification,
    NotificationRead,
    NotificationType,
)
from services.notification_service.stores import FineStore, LoanStore, NotificationStore, Page, iter_pages


USER_PAGE_SIZE = 15

BOOK_RETURN_SUBJECT = "Devolución de un libro"
BOOK_RETURN_BODY = (
    "Buen día.\n"
    "Le informamos que su representado {student} devolvió el libro que tomó prestado el {loan_date}.\n"
    "{delay}"
    "{condition}"
    "Gracias,\n"
    "Cordial saludo.\n"
    "Este es el gestor de notificaciones de BiblioSoft."
)
DELAY_CLAUSE = "Sin embargo, tuvo un retraso de {days} días.\n"
CONDITION_CLAUSE = "Además, el libro se devolvió en malas condiciones.\n"

logger = logging.getLogger(__name__)


class NotificationEngine:
    def __init__(
        self,
        loans: LoanStore,
        fines: FineStore,
        notifications: NotificationStore,
        users: UserDirectoryClient,
        mailer: Mailer,
        today: Callable[[], date] = date.today,
    ):
        self.loans = loans
        self.fines = fines
        self.notifications = notifications
        self.users = users
        self.mailer = mailer
        self.today = today

    def notify_loan(self, request: LoanRequest) -> Loan:
        """Register a new active loan and tell the guardian when the book is due."""
        loan = Loan(
            user_id=request.user_id,
            book_id=request.book_id,
            book_name=request.book_name,
            loan_date=self.today(),
            due_date=request.loan_return,
        )
        try:
            self.loans.save(loan)
        except IntegrityError as exc:
            raise PublicError(PublicError.LOAN_ALREADY_ACTIVE) from exc
        logger.info("Registered loan %s of book %s for user %s", loan.id, loan.book_id, loan.user_id)
        self.notifications.save(
            Notification(
                user_id=request.user_id,
                email_guardian=request.email_guardian,
                sent_date=self.today(),
                notification_type=NotificationType.BOOK_LOAN,
                loan_id=loan.id,
            )
        )
        self.mailer.send_templated(
            request.email_guardian,
            EmailTemplate.NOTIFICATION_ALERT,
            f"Préstamo realizado con fecha de devolución: {format_date(request.loan_return)}",
        )
        return loan

    def close_loan(self, book_id: str, user_id: str) -> None:
        """Remove an active loan once it has no pending fines.

        Raises:
            PrivateError: LOAN_NOT_FOUND when the user has no open loan for the book.
            PublicError: FINE_PENDING when any fine of the loan is still unpaid.
        """
        loan = self.loans.find_by_user_and_book_id(user_id, book_id)
        if loan is None:
            raise PrivateError(PrivateError.LOAN_NOT_FOUND)
        if any(fine.status == FineStatus.PENDING for fine in self.fines.find_by_loan_id(loan.id)):
            raise PublicError(PublicError.FINE_PENDING)
        book_name = loan.book_name
        self.loans.delete(loan)
        logger.info("Closed loan of book %s for user %s", book_id, user_id)

        email = self.users.get_user_info_by_id(user_id).guardian_email
        today = self.today()
        self.mailer.send_free_text(
            email,
            "Devolución de libro",
            f"Devolución de libro: {book_name}\nFecha: {format_date(today)}",
        )
        self.notifications.save(
            Notification(
                user_id=user_id,
                email_guardian=email,
                sent_date=today,
                notification_type=NotificationType.BOOK_LOAN_RETURNED,
            )
        )

    def return_book(self, book_id: str, bad_condition: bool) -> None:
        loan = self.loans.find_by_book_id_and_book_returned(book_id, False)
        if loan is None:
            raise PrivateError(PrivateError.LOAN_NOT_FOUND)
        user = self.users.get_user_info_by_id(loan.user_id)
        today = self.today()
        days = max(0, (today - loan.loan_date).days)
        body = BOOK_RETURN_BODY.format(
            student=user.name,
            loan_date=format_date(loan.loan_date),
            delay=DELAY_CLAUSE.format(days=days) if loan.is_late(today) else "",
            condition=CONDITION_CLAUSE if bad_condition else "",
        )
        self.mailer.send_free_text(user.guardian_email, BOOK_RETURN_SUBJECT, body)
        loan.book_returned = True
        self.loans.save(loan)

    def get_fines_by_user_id(self, user_id: str) -> list[FineRead]:
        """Every fine on every loan of the user; costs one page walk over all their loans."""
        fines = []
        pages = iter_pages(lambda number, size: self.loans.find_by_user_id(user_id, number, size), USER_PAGE_SIZE)
        for page in pages:
            for loan in page.content:
                fines.extend(self._fine_view(fine, loan) for fine in self.fines.find_by_loan_id(loan.id))
        return fines

    def open_fine(self, request: FineRequest) -> Fine:
        loan = self.loans.find_last_loan(request.book_id, request.user_id)
        if loan is None:
            raise PrivateError(PrivateError.LOAN_NOT_FOUND)
        today = self.today()
        email = self.users.get_user_info_by_id(request.user_id).guardian_email
        description = FINE_DESCRIPTIONS[request.fine_type]
        fine = self.fines.save(
            Fine(
                loan_id=loan.id,
                description=description,
                amount=request.amount,
                fine_type=request.fine_type,
                status=FineStatus.PENDING,
                expired_date=today,
            )
        )
        self.notifications.save(
            Notification(
                user_id=loan.user_id,
                email_guardian=email,
                sent_date=today,
                notification_type=NotificationType.FINE,
                loan_id=loan.id,
                fine_id=fine.id,
            )
        )
        self.mailer.send_templated(
            email, EmailTemplate.FINE_ALERT, "Se ha registrado una nueva multa.", request.amount, today, description
        )
        return fine

    def close_fine(self, fine_id: int) -> None:
        fine = self.fines.find_by_id(fine_id)
        if fine is None:
            raise PrivateError(PrivateError.FINE_NOT_FOUND)
        amount, expired_date, description = fine.amount, fine.expired_date, fine.description
        loan = self.loans.get(fine.loan_id)
        self.fines.update_status(fine_id, FineStatus.PAID)

        email = self.users.get_user_info_by_id(loan.user_id).guardian_email
        self.notifications.save(
            Notification(
                user_id=loan.user_id,
                email_guardian=email,
                sent_date=self.today(),
                notification_type=NotificationType.FINE_PAID,
                loan_id=loan.id,
                fine_id=fine_id,
            )
        )
        self.mailer.send_templated(
            email, EmailTemplate.FINE_ALERT, "Se ha cerrado una multa.", amount, expired_date, description
        )

    def get_notifications(self, user_id: str) -> list[NotificationRead]:
        notifications = []
        pages = iter_pages(
            lambda number, size: self.notifications.find_by_user_id(user_id, number, size), USER_PAGE_SIZE
        )
        for page in pages:
            notifications.extend(NotificationRead.model_validate(item) for item in page.content)
        return notifications

    def return_all_active_fines(self, page_size: int, page_number: int) -> FinesPage:
        return self._fines_page(self.fines.find_by_status(FineStatus.PENDING, page_number, page_size))

    def return_all_active_fines_between_date(self, expired_date: date, page_size: int, page_number: int) -> FinesPage:
        return self._fines_page(
            self.fines.find_by_status_and_date(FineStatus.PENDING, expired_date, page_number, page_size)
        )

    def _fines_page(self, page: Page[Fine]) -> FinesPage:
        return FinesPage(
            data=[self._fine_view(fine, self.loans.get(fine.loan_id)) for fine in page.content],
            current_page=page.number,
            total_pages=page.total_pages,
            total_items=page.total_items,
        )

    @staticmethod
    def _fine_view(fine: Fine, loan: Loan) -> FineRead:
        return FineRead(
            fine_id=fine.id,
            description=fine.description,
            amount=fine.amount,
            status=fine.status,
            fine_type=fine.fine_type,
            expired_date=fine.expired_date,
            book_name=loan.book_name,
        )
