from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Callable, Optional

from models import Category, RecurrenceType, Transaction, TransactionType


@dataclass(frozen=True)
class Occurrence:
    """A dated instance of a stored transaction.

    One-off entries map to exactly one occurrence; recurring templates map to
    as many as fall inside the requested window. Occurrences only live for the
    duration of a read and are never written back to storage.
    """

    template_id: Optional[int]
    amount_cents: int
    date: date
    description: str
    category: Category
    type: TransactionType
    recurring: bool = False
    recurring_type: Optional[RecurrenceType] = None
    recurring_end_date: Optional[date] = None

    @classmethod
    def from_template(cls, txn: Transaction) -> Occurrence:
        return cls(
            template_id=txn.id,
            amount_cents=txn.amount_cents,
            date=txn.date,
            description=txn.description,
            category=Category(txn.category or Category.other),
            type=TransactionType(txn.type or TransactionType.expense),
            recurring=bool(txn.recurring),
            recurring_type=(
                RecurrenceType(txn.recurring_type) if txn.recurring_type else None
            ),
            recurring_end_date=txn.recurring_end_date,
        )

    def on(self, when: date) -> Occurrence:
        return replace(self, date=when)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


# Each stepper maps (anchor, index) to the index-th occurrence. Months and
# years are counted from the anchor so a month-end anchor does not drift.
def _step_weekly(anchor: date, index: int) -> date:
    return anchor + timedelta(weeks=index)


def _step_monthly(anchor: date, index: int) -> date:
    return _add_months(anchor, index)


def _step_yearly(anchor: date, index: int) -> date:
    return _add_months(anchor, 12 * index)


STEPPERS: dict[RecurrenceType, Callable[[date, int], date]] = {
    RecurrenceType.weekly: _step_weekly,
    RecurrenceType.monthly: _step_monthly,
    RecurrenceType.yearly: _step_yearly,
}


def occurrence_date(anchor: date, recurring_type: RecurrenceType, index: int) -> date:
    return STEPPERS[recurring_type](anchor, index)


def _first_candidate_index(
    anchor: date, recurring_type: RecurrenceType, window_start: date
) -> int:
    """Lower bound on the first occurrence index that can land in the window."""
    if window_start <= anchor:
        return 0
    if recurring_type == RecurrenceType.weekly:
        return (window_start - anchor).days // 7
    months = (window_start.year - anchor.year) * 12 + window_start.month - anchor.month
    if recurring_type == RecurrenceType.monthly:
        return max(months - 1, 0)
    return max(months // 12 - 1, 0)


def expand(
    template: Transaction, window_start: date, window_end: date
) -> list[Occurrence]:
    """Materialise the occurrences of ``template`` inside ``[window_start, window_end)``.

    The template's ``recurring_end_date`` is inclusive. Non-recurring entries and
    templates without a recurrence type produce no occurrences; callers treat
    those as one-off entries.
    """
    if not template.recurring or not template.recurring_type:
        return []
    recurring_type = RecurrenceType(template.recurring_type)
    end_bound = template.recurring_end_date or window_end
    if end_bound < window_start:
        return []

    base = Occurrence.from_template(template)
    anchor = template.date
    index = _first_candidate_index(anchor, recurring_type, window_start)
    current = occurrence_date(anchor, recurring_type, index)
    occurrences: list[Occurrence] = []
    while current < window_end and current <= end_bound:
        if current >= window_start:
            occurrences.append(base.on(current))
        index += 1
        current = occurrence_date(anchor, recurring_type, index)
    return occurrences
