import os
from datetime import date, timedelta
from pathlib import Path

from sqlmodel import Session

from services.notification_service.clients import ServiceClientError
from services.notification_service.models import Loan, UserInfo


TODAY = date(2024, 11, 22)


def configure_sqlite_env(env_var: str, path: Path) -> str:
    """Ensure a unique sqlite db path for a service and store it in env."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()
    url = f"sqlite:///{path}"
    os.environ[env_var] = url
    return url


class FakeUserDirectory:
    def __init__(self, users: dict[str, UserInfo] | None = None):
        self.users = users or {}
        self.lookups: list[str] = []

    def get_user_info_by_id(self, user_id: str) -> UserInfo:
        self.lookups.append(user_id)
        if user_id not in self.users:
            raise ServiceClientError(f"User {user_id} not found", status_code=404)
        return self.users[user_id]


def add_loan(session: Session, user_id: str = "u1", book_id: str = "b1", **fields) -> Loan:
    values = {
        "book_name": f"Book {book_id}",
        "loan_date": TODAY - timedelta(days=20),
        "due_date": TODAY + timedelta(days=5),
    }
    values.update(fields)
    loan = Loan(user_id=user_id, book_id=book_id, **values)
    session.add(loan)
    session.commit()
    session.refresh(loan)
    return loan
