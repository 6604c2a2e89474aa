import csv
import re
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from models import Budget
from recurrence import Occurrence


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: str) -> int:
    clean = value.strip().replace("₹", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
        if not amount.is_finite():
            raise ValueError(f"Invalid amount '{value}'")
        cents = int((amount * 100).quantize(Decimal("1")))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount '{value}'") from exc
    if cents < 0:
        raise ValueError("Amount must be positive")
    return cents


def export_occurrences(occurrences: Sequence[Occurrence]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["date", "amount", "description", "category", "type"])
    for occ in occurrences:
        writer.writerow(
            [
                occ.date.isoformat(),
                f"{occ.amount_cents / 100:.2f}",
                sanitize_csv_value(occ.description),
                occ.category.value,
                occ.type.value,
            ]
        )
    return output.getvalue()


def export_budgets(budgets: Sequence[Budget]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["category", "month", "amount"])
    for budget in budgets:
        writer.writerow(
            [
                budget.category.value,
                budget.month_key,
                f"{budget.amount_cents / 100:.2f}",
            ]
        )
    return output.getvalue()
