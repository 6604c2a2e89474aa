from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import storage_guard
from insights import generate
from metrics import Aggregate, BudgetComparison, compare, materialize, summarize
from models import CATEGORIES, Budget, Category, Transaction, TransactionType
from periods import MonthWindow, parse_month
from recurrence import Occurrence
from schemas import BudgetIn, TransactionIn

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5
_MAX_CATEGORY_EDITS = 2


class ValidationFailed(ValueError):
    pass


class RecordNotFound(ValueError):
    pass


def _suggest_category(label: str) -> Optional[Category]:
    needle = label.strip().lower()
    best: Optional[Category] = None
    best_distance = _MAX_CATEGORY_EDITS + 1
    for category in CATEGORIES:
        distance = Levenshtein.distance(needle, category.value.lower())
        if distance < best_distance:
            best, best_distance = category, distance
    return best


def resolve_category(label: str) -> Category:
    try:
        return Category(label)
    except ValueError:
        pass
    message = f"Invalid category '{label}'."
    hint = _suggest_category(label)
    if hint is not None:
        message += f" Did you mean '{hint.value}'?"
    raise ValidationFailed(message)


def _amount_text(cents: int) -> str:
    return f"{cents / 100:.2f}".rstrip("0").rstrip(".")


@dataclass
class TransactionFilters:
    start: Optional[date] = None
    end: Optional[date] = None
    categories: list[Category] = field(default_factory=list)
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None
    description: Optional[str] = None
    query: Optional[str] = None
    type: Optional[TransactionType] = None

    def matches(self, occ: Occurrence) -> bool:
        if self.start and occ.date < self.start:
            return False
        if self.end and occ.date > self.end:
            return False
        if self.categories and occ.category not in self.categories:
            return False
        if self.min_amount_cents is not None and occ.amount_cents < self.min_amount_cents:
            return False
        if self.max_amount_cents is not None and occ.amount_cents > self.max_amount_cents:
            return False
        if self.description and self.description.lower() not in occ.description.lower():
            return False
        if self.query:
            q = self.query.lower()
            haystack = (
                occ.description.lower(),
                occ.category.value.lower(),
                _amount_text(occ.amount_cents),
                occ.date.isoformat(),
            )
            if not any(q in value for value in haystack):
                return False
        if self.type and occ.type != self.type:
            return False
        return True

    def apply(self, occurrences: Iterable[Occurrence]) -> list[Occurrence]:
        return [occ for occ in occurrences if self.matches(occ)]


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self) -> list[Transaction]:
        stmt = select(Transaction).order_by(Transaction.id)
        with storage_guard(self.session, "find_transactions"):
            return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        with storage_guard(self.session, "get_transaction"):
            txn = self.session.get(Transaction, transaction_id)
        if not txn:
            raise RecordNotFound("Transaction not found.")
        return txn

    def occurrences(
        self,
        window: MonthWindow,
        *,
        all_time: bool = False,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Occurrence]:
        filters = filters or TransactionFilters()
        return filters.apply(materialize(self.find(), window, all_time=all_time))

    def _fields(self, data: TransactionIn) -> dict[str, object]:
        category = resolve_category(data.category)
        description = data.description.strip()
        if not description:
            raise ValidationFailed("Description is required.")
        if data.recurring and data.recurring_type is None:
            raise ValidationFailed("Recurring transactions require a recurring type.")
        return {
            "amount_cents": data.amount_cents,
            "date": data.date,
            "description": description,
            "category": category,
            "type": data.type,
            "recurring": data.recurring,
            "recurring_type": data.recurring_type if data.recurring else None,
            "recurring_end_date": data.recurring_end_date if data.recurring else None,
        }

    def create(self, data: TransactionIn) -> Transaction:
        txn = Transaction(**self._fields(data))
        with storage_guard(self.session, "insert_transaction"):
            self.session.add(txn)
            self.session.commit()
            self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} category={txn.category.value} "
            f"recurring={txn.recurring_type.value if txn.recurring_type else 'none'}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        fields = self._fields(data)
        txn = self.get(transaction_id)
        for name, value in fields.items():
            setattr(txn, name, value)
        with storage_guard(self.session, "update_transaction"):
            self.session.commit()
            self.session.refresh(txn)
        logger.info(f"transaction_updated: id={txn.id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        with storage_guard(self.session, "delete_transaction"):
            self.session.delete(txn)
            self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id}")


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, window: MonthWindow) -> list[Budget]:
        stmt = select(Budget).where(
            Budget.year == window.start.year,
            Budget.month == window.start.month,
        )
        with storage_guard(self.session, "find_budgets"):
            budgets = self.session.scalars(stmt).all()
        order = {category: idx for idx, category in enumerate(CATEGORIES)}
        return sorted(budgets, key=lambda b: order[Category(b.category)])

    def upsert(self, data: BudgetIn) -> Budget:
        category = resolve_category(data.category)
        try:
            window = parse_month(data.month)
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc
        year, month = window.start.year, window.start.month

        stmt = select(Budget).where(
            Budget.category == category,
            Budget.year == year,
            Budget.month == month,
        )
        with storage_guard(self.session, "upsert_budget"):
            budget = self.session.scalar(stmt)
            if budget:
                budget.amount_cents = data.amount_cents
            else:
                budget = Budget(
                    category=category,
                    year=year,
                    month=month,
                    amount_cents=data.amount_cents,
                )
                self.session.add(budget)
            self.session.commit()
            self.session.refresh(budget)
        logger.info(
            f"budget_upserted: category={category.value} month={window.key} "
            f"amount_cents={data.amount_cents}"
        )
        return budget

    def delete(self, budget_id: int) -> None:
        with storage_guard(self.session, "get_budget"):
            budget = self.session.get(Budget, budget_id)
        if not budget:
            raise RecordNotFound("Budget not found.")
        with storage_guard(self.session, "delete_budget"):
            self.session.delete(budget)
            self.session.commit()
        logger.info(f"budget_deleted: id={budget_id}")


@dataclass
class Report:
    window: MonthWindow
    overview: Aggregate
    current: Aggregate
    previous: Aggregate
    comparisons: list[BudgetComparison]
    insights: list[str]

    @property
    def recent(self) -> list[Occurrence]:
        return self.overview.occurrences[:RECENT_LIMIT]


class ReportService:
    """Runs the read pipeline: two storage reads, everything else derived."""

    def __init__(self, session: Session) -> None:
        self.transactions = TransactionService(session)
        self.budgets = BudgetService(session)

    def build(
        self, window: MonthWindow, filters: Optional[TransactionFilters] = None
    ) -> Report:
        filters = filters or TransactionFilters()
        templates = self.transactions.find()
        budgets = self.budgets.find(window)

        overview = summarize(
            filters.apply(materialize(templates, window, all_time=True))
        )
        current = summarize(filters.apply(materialize(templates, window)))
        previous_window = window.previous()
        previous = summarize(filters.apply(materialize(templates, previous_window)))

        current_totals = current.expense_by_category()
        comparisons = compare(budgets, current_totals)
        insights = generate(
            current_totals,
            previous.expense_by_category(),
            current.net_savings_cents,
            previous.net_savings_cents,
            comparisons,
        )
        logger.debug(
            f"report_built: month={window.key} templates={len(templates)} "
            f"budgets={len(budgets)} insights={len(insights)}"
        )
        return Report(
            window=window,
            overview=overview,
            current=current,
            previous=previous,
            comparisons=comparisons,
            insights=insights,
        )
