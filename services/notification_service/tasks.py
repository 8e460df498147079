import logging

from celery import shared_task
from sqlmodel import Session

from services.notification_service.clients import UserDirectoryClient
from services.notification_service.database import get_engine
from services.notification_service.mailer import Mailer
from services.notification_service.stores import LoanStore
from services.notification_service.sweeper import ExpiredLoanSweeper, SweepCursor


logger = logging.getLogger(__name__)

# Lives as long as the worker process; celery.py runs a solo pool on one queue.
cursor = SweepCursor()


def build_sweeper(session: Session) -> ExpiredLoanSweeper:
    return ExpiredLoanSweeper(LoanStore(session), UserDirectoryClient(), Mailer())


@shared_task
def sweep_expired_loans():
    """
    Periodic Celery task: send expiration reminders for one page of overdue
    loans and move the page cursor forward.
    """
    with Session(get_engine()) as session:
        sweeper = build_sweeper(session)
        position = cursor.advance(sweeper.sweep)
    if position is not None:
        logger.info("Expired loan sweep finished, next page %s", position)
    return position
