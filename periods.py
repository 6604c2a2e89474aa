import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
MIN_YEAR = 1970
MAX_YEAR = 3000


@dataclass(frozen=True)
class MonthWindow:
    """One calendar month as a half-open window ``[start, end)``."""

    start: date
    end: date

    @classmethod
    def for_date(cls, value: date) -> "MonthWindow":
        first = value.replace(day=1)
        if first.month == 12:
            next_month = first.replace(year=first.year + 1, month=1)
        else:
            next_month = first.replace(month=first.month + 1)
        return cls(first, next_month)

    @property
    def key(self) -> str:
        return month_key(self.start)

    def contains(self, value: date) -> bool:
        return self.start <= value < self.end

    def previous(self) -> "MonthWindow":
        return MonthWindow.for_date(self.start - date.resolution)


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def parse_month(value: Optional[str]) -> MonthWindow:
    if not value:
        raise ValueError("Month is required (yyyy-MM).")
    match = _MONTH_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid month '{value}', expected yyyy-MM.")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month '{value}', expected yyyy-MM.")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValueError(
            f"Invalid month '{value}', year must be between {MIN_YEAR} and {MAX_YEAR}."
        )
    return MonthWindow.for_date(date(year, month, 1))


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def current_month(today: Optional[date] = None) -> MonthWindow:
    return MonthWindow.for_date(today or local_today())
