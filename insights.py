from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence

from metrics import BudgetComparison
from models import CATEGORIES, Category

CHANGE_THRESHOLD_PCT = Decimal("20")


def percent_change(current: int, previous: int) -> Decimal:
    return Decimal(current - previous) * 100 / abs(Decimal(previous))


def whole_percent(value: Decimal) -> int:
    return int(abs(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def biggest_category(totals: Mapping[Category, int]) -> Optional[Category]:
    biggest: Optional[Category] = None
    for category in CATEGORIES:
        total = totals.get(category, 0)
        if total > 0 and (biggest is None or total > totals[biggest]):
            biggest = category
    return biggest


def generate(
    current_totals: Mapping[Category, int],
    previous_totals: Mapping[Category, int],
    current_savings: int,
    previous_savings: int,
    comparisons: Sequence[BudgetComparison],
) -> list[str]:
    """Human-readable observations about the current month.

    Category totals are expense cents per category; savings are net cents
    (income minus expense). Percent changes must exceed 20% either way to be
    reported.
    """
    insights: list[str] = []

    for category in CATEGORIES:
        current = current_totals.get(category, 0)
        previous = previous_totals.get(category, 0)
        if not current or not previous:
            continue
        change = percent_change(current, previous)
        if change > CHANGE_THRESHOLD_PCT:
            insights.append(
                f"You spent {whole_percent(change)}% more on {category.value} "
                "this month than last month."
            )
        elif change < -CHANGE_THRESHOLD_PCT:
            insights.append(
                f"You spent {whole_percent(change)}% less on {category.value} "
                "this month than last month."
            )

    if current_savings > 0 and previous_savings > 0:
        change = percent_change(current_savings, previous_savings)
        if change > CHANGE_THRESHOLD_PCT:
            insights.append(
                f"You saved {whole_percent(change)}% more this month than last month."
            )
        elif change < -CHANGE_THRESHOLD_PCT:
            insights.append(
                f"You saved {whole_percent(change)}% less this month than last month."
            )

    for row in comparisons:
        if row.over_budget:
            insights.append(
                f"Consider increasing your {row.category.value} budget. "
                "You are consistently over budget."
            )

    # Computed last, shown first.
    biggest = biggest_category(current_totals)
    if biggest is not None:
        insights.insert(
            0, f"Your biggest expense category this month is {biggest.value}."
        )
    return insights
