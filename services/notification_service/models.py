from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel


class FineType(str, Enum):
    DAMAGE = "DAMAGE"
    RETARDMENT = "RETARDMENT"


class FineStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class NotificationType(str, Enum):
    BOOK_LOAN = "BOOK_LOAN"
    BOOK_LOAN_RETURNED = "BOOK_LOAN_RETURNED"
    FINE = "FINE"
    FINE_PAID = "FINE_PAID"


FINE_DESCRIPTIONS = {
    FineType.DAMAGE: "Material dañado",
    FineType.RETARDMENT: "Retraso en la devolución del material",
}


class Loan(SQLModel, table=True):
    # One open loan per user and book; returned loans are kept for history.
    __table_args__ = (
        Index(
            "unique_open_loan",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("book_returned = 0"),
            postgresql_where=text("NOT book_returned"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    book_id: str = Field(index=True)
    book_name: str
    loan_date: date = Field(default_factory=date.today)
    due_date: date = Field(index=True)
    book_returned: bool = Field(default=False)
    email_expired_sent: bool = Field(default=False)

    def is_late(self, today: date) -> bool:
        return today > self.due_date


class Fine(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    loan_id: int = Field(foreign_key="loan.id", index=True)
    description: str
    amount: float
    fine_type: FineType
    status: FineStatus = Field(default=FineStatus.PENDING, index=True)
    expired_date: date = Field(default_factory=date.today)


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    email_guardian: str
    sent_date: date = Field(default_factory=date.today)
    notification_type: NotificationType
    # Audit references only, the loan may be deleted later.
    loan_id: Optional[int] = None
    fine_id: Optional[int] = None


@dataclass(frozen=True)
class UserInfo:
    name: str
    guardian_email: str


class LoanRequest(BaseModel):
    user_id: str
    email_guardian: str
    book_id: str
    book_name: str
    loan_return: date


class ReturnRequest(BaseModel):
    bad_condition: bool = False


class FineRequest(BaseModel):
    user_id: str
    book_id: str
    amount: float = PydanticField(gt=0)
    fine_type: FineType


class FineRead(BaseModel):
    fine_id: int
    description: str
    amount: float
    status: FineStatus
    fine_type: FineType
    expired_date: date
    book_name: str


class NotificationRead(BaseModel):
    email_guardian: str
    sent_date: date
    notification_type: NotificationType

    model_config = ConfigDict(from_attributes=True)


class FinesPage(BaseModel):
    data: list[FineRead]
    current_page: int
    total_pages: int
    total_items: int
