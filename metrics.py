from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from models import CATEGORIES, Budget, Category, Transaction, TransactionType
from periods import MonthWindow, month_key
from recurrence import Occurrence, expand


@dataclass(frozen=True)
class CategoryTotal:
    category: Category
    total_cents: int


@dataclass(frozen=True)
class MonthlyTotal:
    month: str
    total_cents: int


@dataclass(frozen=True)
class MonthlySavings:
    month: str
    income_cents: int
    expense_cents: int

    @property
    def savings_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass
class Aggregate:
    occurrences: list[Occurrence] = field(default_factory=list)
    income_cents: int = 0
    expense_cents: int = 0
    category_totals: list[CategoryTotal] = field(default_factory=list)
    monthly_series: list[MonthlyTotal] = field(default_factory=list)
    savings_series: list[MonthlySavings] = field(default_factory=list)

    @property
    def net_savings_cents(self) -> int:
        return self.income_cents - self.expense_cents

    def expense_by_category(self) -> dict[Category, int]:
        """Expense totals keyed by category, zero for categories with no spend."""
        totals = {category: 0 for category in CATEGORIES}
        for row in self.category_totals:
            totals[row.category] = row.total_cents
        return totals


def materialize(
    templates: Iterable[Transaction], window: MonthWindow, *, all_time: bool = False
) -> list[Occurrence]:
    """Expand recurring templates for ``window`` and merge in one-off entries.

    One-off entries pass through when their date lies in the window, or always
    when ``all_time`` is set. The result is newest first; entries on the same
    date keep the insertion order of their source templates.
    """
    occurrences: list[Occurrence] = []
    for txn in templates:
        if txn.is_recurring_template:
            occurrences.extend(expand(txn, window.start, window.end))
        elif all_time or window.contains(txn.date):
            occurrences.append(Occurrence.from_template(txn))
    return sorted(occurrences, key=lambda occ: occ.date, reverse=True)


def summarize(occurrences: Sequence[Occurrence]) -> Aggregate:
    income = 0
    expense = 0
    by_category: dict[Category, int] = {}
    spend_by_month: dict[str, int] = {}
    savings_by_month: dict[str, list[int]] = {}

    for occ in occurrences:
        key = month_key(occ.date)
        bucket = savings_by_month.setdefault(key, [0, 0])
        if occ.type == TransactionType.income:
            income += occ.amount_cents
            bucket[0] += occ.amount_cents
            continue
        expense += occ.amount_cents
        bucket[1] += occ.amount_cents
        by_category[occ.category] = by_category.get(occ.category, 0) + occ.amount_cents
        spend_by_month[key] = spend_by_month.get(key, 0) + occ.amount_cents

    category_totals = [
        CategoryTotal(category, by_category[category])
        for category in CATEGORIES
        if by_category.get(category, 0) > 0
    ]
    monthly_series = [
        MonthlyTotal(key, spend_by_month.get(key, 0)) for key in sorted(savings_by_month)
    ]
    savings_series = [
        MonthlySavings(key, income_cents, expense_cents)
        for key, (income_cents, expense_cents) in sorted(savings_by_month.items())
    ]
    return Aggregate(
        occurrences=list(occurrences),
        income_cents=income,
        expense_cents=expense,
        category_totals=category_totals,
        monthly_series=monthly_series,
        savings_series=savings_series,
    )


def aggregate(
    templates: Iterable[Transaction], window: MonthWindow, *, all_time: bool = False
) -> Aggregate:
    return summarize(materialize(templates, window, all_time=all_time))


@dataclass(frozen=True)
class BudgetComparison:
    category: Category
    budget_cents: int
    actual_cents: int

    @property
    def over_budget(self) -> bool:
        return self.budget_cents > 0 and self.actual_cents > self.budget_cents

    @property
    def progress_ratio(self) -> float:
        if self.budget_cents <= 0:
            return 0.0
        return min(self.actual_cents / self.budget_cents, 1.0)


def compare(
    budgets: Iterable[Budget],
    actuals: Mapping[Category, int],
    categories: Optional[Sequence[Category]] = None,
) -> list[BudgetComparison]:
    """Budget against actual expense for every registry category.

    ``budgets`` must already be restricted to a single month.
    """
    categories = CATEGORIES if categories is None else categories
    budget_by_category = {Category(b.category): b.amount_cents for b in budgets}
    return [
        BudgetComparison(
            category=category,
            budget_cents=budget_by_category.get(category, 0),
            actual_cents=actuals.get(category, 0),
        )
        for category in categories
    ]
