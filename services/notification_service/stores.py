import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Generic, Iterator, Optional, TypeVar

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from services.notification_service.models import Fine, FineStatus, Loan, Notification


T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    content: list[T]
    number: int
    size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.size) if self.size else 0

    @property
    def has_next(self) -> bool:
        return self.number + 1 < self.total_pages


def iter_pages(fetch: Callable[[int, int], Page[T]], page_size: int) -> Iterator[Page[T]]:
    """Yield consecutive pages from ``fetch(page_number, page_size)``.

    Stops after the first page that reports no further pages. Each step costs
    one content query and one count query, so walking a result set of ``n``
    rows issues ``2 * ceil(n / page_size)`` queries (two for an empty set).
    """
    number = 0
    while True:
        page = fetch(number, page_size)
        yield page
        if not page.has_next:
            return
        number += 1


def _paginate(session: Session, query, number: int, size: int) -> Page:
    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    content = session.exec(query.offset(number * size).limit(size)).all()
    return Page(content=list(content), number=number, size=size, total_items=total)


class LoanStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, loan_id: int) -> Optional[Loan]:
        return self.session.get(Loan, loan_id)

    def find_expired_loans(self, as_of: date, page: int, size: int) -> Page[Loan]:
        """Overdue, unreturned loans whose expiration reminder is still unsent, oldest due date first."""
        query = (
            select(Loan)
            .where(Loan.due_date < as_of)
            .where(Loan.email_expired_sent == False)  # noqa: E712
            .where(Loan.book_returned == False)  # noqa: E712
            .order_by(Loan.due_date.asc(), Loan.id.asc())
        )
        return _paginate(self.session, query, page, size)

    def find_by_user_and_book_id(self, user_id: str, book_id: str) -> Optional[Loan]:
        return self.session.exec(
            select(Loan).where(
                (Loan.user_id == user_id) & (Loan.book_id == book_id) & (Loan.book_returned == False)  # noqa: E712
            )
        ).first()

    def find_by_book_id_and_book_returned(self, book_id: str, returned: bool) -> Optional[Loan]:
        return self.session.exec(
            select(Loan)
            .where((Loan.book_id == book_id) & (Loan.book_returned == returned))
            .order_by(Loan.loan_date.desc(), Loan.id.desc())
        ).first()

    def find_by_user_id(self, user_id: str, page: int, size: int) -> Page[Loan]:
        query = select(Loan).where(Loan.user_id == user_id).order_by(Loan.id.asc())
        return _paginate(self.session, query, page, size)

    def find_last_loan(self, book_id: str, user_id: str) -> Optional[Loan]:
        return self.session.exec(
            select(Loan)
            .where((Loan.book_id == book_id) & (Loan.user_id == user_id))
            .order_by(Loan.loan_date.desc(), Loan.id.desc())
        ).first()

    def save(self, loan: Loan) -> Loan:
        self.session.add(loan)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(loan)
        return loan

    def delete(self, loan: Loan) -> None:
        for fine in self.session.exec(select(Fine).where(Fine.loan_id == loan.id)).all():
            self.session.delete(fine)
        self.session.delete(loan)
        self.session.commit()


class FineStore:
    def __init__(self, session: Session):
        self.session = session

    def find_by_loan_id(self, loan_id: int) -> list[Fine]:
        return list(
            self.session.exec(select(Fine).where(Fine.loan_id == loan_id).order_by(Fine.id.asc())).all()
        )

    def find_by_id(self, fine_id: int) -> Optional[Fine]:
        return self.session.get(Fine, fine_id)

    def find_by_status(self, status: FineStatus, page: int, size: int) -> Page[Fine]:
        query = select(Fine).where(Fine.status == status).order_by(Fine.id.asc())
        return _paginate(self.session, query, page, size)

    def find_by_status_and_date(self, status: FineStatus, expired_date: date, page: int, size: int) -> Page[Fine]:
        query = (
            select(Fine)
            .where((Fine.status == status) & (Fine.expired_date == expired_date))
            .order_by(Fine.id.asc())
        )
        return _paginate(self.session, query, page, size)

    def save(self, fine: Fine) -> Fine:
        self.session.add(fine)
        self.session.commit()
        self.session.refresh(fine)
        return fine

    def update_status(self, fine_id: int, status: FineStatus) -> None:
        self.session.execute(update(Fine).where(Fine.id == fine_id).values(status=status))
        self.session.commit()


class NotificationStore:
    def __init__(self, session: Session):
        self.session = session

    def find_by_user_id(self, user_id: str, page: int, size: int) -> Page[Notification]:
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.sent_date.asc(), Notification.id.asc())
        )
        return _paginate(self.session, query, page, size)

    def save(self, notification: Notification) -> Notification:
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification
