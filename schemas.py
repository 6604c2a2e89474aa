import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from metrics import BudgetComparison, CategoryTotal, MonthlySavings, MonthlyTotal
from models import Budget, RecurrenceType, TransactionType
from recurrence import Occurrence


# Largest amount whose cent value still fits a signed 64-bit column.
MAX_AMOUNT = Decimal("1000000000000000")


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> float:
    return cents / 100


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransactionIn(WireModel):
    amount: Decimal = Field(..., ge=Decimal("0.01"), le=MAX_AMOUNT)
    date: dt.date
    description: str = Field(..., min_length=1, max_length=500)
    category: str = Field(..., min_length=1, max_length=100)
    type: TransactionType = TransactionType.expense
    recurring: bool = False
    recurring_type: Optional[RecurrenceType] = None
    recurring_end_date: Optional[dt.date] = None

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class TransactionUpdateIn(TransactionIn):
    id: int


class TransactionDeleteIn(WireModel):
    id: int


class BudgetIn(WireModel):
    category: str = Field(..., min_length=1, max_length=100)
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT)

    @property
    def amount_cents(self) -> int:
        return to_cents(self.amount)


class TransactionOut(WireModel):
    id: Optional[int]
    amount: float
    date: dt.date
    description: str
    category: str
    type: TransactionType
    recurring: bool
    recurring_type: Optional[RecurrenceType] = None
    recurring_end_date: Optional[dt.date] = None

    @classmethod
    def from_occurrence(cls, occ: Occurrence) -> "TransactionOut":
        return cls(
            id=occ.template_id,
            amount=cents_to_amount(occ.amount_cents),
            date=occ.date,
            description=occ.description,
            category=occ.category.value,
            type=occ.type,
            recurring=occ.recurring,
            recurring_type=occ.recurring_type,
            recurring_end_date=occ.recurring_end_date,
        )


class BudgetOut(WireModel):
    id: int
    category: str
    month: str
    amount: float

    @classmethod
    def from_model(cls, budget: Budget) -> "BudgetOut":
        return cls(
            id=budget.id,
            category=budget.category.value,
            month=budget.month_key,
            amount=cents_to_amount(budget.amount_cents),
        )


class SuccessOut(WireModel):
    success: bool = True


class TotalsOut(WireModel):
    income: float
    expense: float
    net_savings: float


class CategoryTotalOut(WireModel):
    category: str
    total: float

    @classmethod
    def from_total(cls, row: CategoryTotal) -> "CategoryTotalOut":
        return cls(category=row.category.value, total=cents_to_amount(row.total_cents))


class MonthlyTotalOut(WireModel):
    month: str
    total: float

    @classmethod
    def from_total(cls, row: MonthlyTotal) -> "MonthlyTotalOut":
        return cls(month=row.month, total=cents_to_amount(row.total_cents))


class MonthlySavingsOut(WireModel):
    month: str
    income: float
    expense: float
    savings: float

    @classmethod
    def from_savings(cls, row: MonthlySavings) -> "MonthlySavingsOut":
        return cls(
            month=row.month,
            income=cents_to_amount(row.income_cents),
            expense=cents_to_amount(row.expense_cents),
            savings=cents_to_amount(row.savings_cents),
        )


class SummaryOut(WireModel):
    month: str
    totals: TotalsOut
    category_totals: list[CategoryTotalOut]
    monthly_series: list[MonthlyTotalOut]
    savings_series: list[MonthlySavingsOut]
    recent: list[TransactionOut]


class BudgetComparisonOut(WireModel):
    category: str
    budget_amount: float
    actual_amount: float
    over_budget: bool
    progress_ratio: float

    @classmethod
    def from_comparison(cls, row: BudgetComparison) -> "BudgetComparisonOut":
        return cls(
            category=row.category.value,
            budget_amount=cents_to_amount(row.budget_cents),
            actual_amount=cents_to_amount(row.actual_cents),
            over_budget=row.over_budget,
            progress_ratio=row.progress_ratio,
        )


class InsightsOut(WireModel):
    month: str
    insights: list[str]
