import datetime as dt
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Category(str, Enum):
    food = "Food"
    transport = "Transport"
    bills = "Bills"
    shopping = "Shopping"
    entertainment = "Entertainment"
    health = "Health"
    travel = "Travel"
    education = "Education"
    other = "Other"


# Registry order drives every per-category listing and tie-break.
CATEGORIES: tuple[Category, ...] = tuple(Category)


class RecurrenceType(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


CATEGORY_ENUM = SAEnum(Category, name="category", values_callable=_enum_values)


class TimestampMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Category] = mapped_column(
        CATEGORY_ENUM, nullable=False, default=Category.other
    )
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False, default=TransactionType.expense
    )
    recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_type: Mapped[Optional[RecurrenceType]] = mapped_column(
        SAEnum(RecurrenceType)
    )
    recurring_end_date: Mapped[Optional[dt.date]] = mapped_column(Date)

    @property
    def is_recurring_template(self) -> bool:
        return bool(self.recurring) and self.recurring_type is not None

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_category_date", "category", "date"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category: Mapped[Category] = mapped_column(CATEGORY_ENUM, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    @property
    def month_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
        UniqueConstraint("category", "year", "month", name="uq_budget_category_month"),
        Index("ix_budget_month", "year", "month"),
    )
