from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from recurrence import add_months


class ViewMode(str, Enum):
    day = "day"
    week = "week"
    month = "month"
    year = "year"


MONTH_NAMES = (
    "Enero",
    "Febrero",
    "Marzo",
    "Abril",
    "Mayo",
    "Junio",
    "Julio",
    "Agosto",
    "Septiembre",
    "Octubre",
    "Noviembre",
    "Diciembre",
)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def period_range(reference: date, mode: ViewMode) -> tuple[date, date]:
    mode = ViewMode(mode)
    if mode == ViewMode.day:
        return reference, reference
    if mode == ViewMode.week:
        monday = reference - timedelta(days=reference.weekday())
        return monday, monday + timedelta(days=6)
    if mode == ViewMode.month:
        first = reference.replace(day=1)
        return first, add_months(first, 1) - date.resolution
    return date(reference.year, 1, 1), date(reference.year, 12, 31)


def step_period(reference: date, mode: ViewMode, direction: int) -> date:
    """Move ``reference`` one period forward (``1``) or backward (``-1``).

    Month and year steps clamp to the last day of the target month, so
    Jan 31 + 1 month is Feb 28/29 and never rolls into March.
    """
    if direction not in (1, -1):
        raise ValueError("direction must be 1 or -1")
    mode = ViewMode(mode)
    if mode == ViewMode.day:
        return reference + timedelta(days=direction)
    if mode == ViewMode.week:
        return reference + timedelta(days=7 * direction)
    if mode == ViewMode.month:
        return add_months(reference, direction)
    return add_months(reference, 12 * direction)


def navigation_label(reference: date, mode: ViewMode) -> str:
    mode = ViewMode(mode)
    if mode == ViewMode.day:
        return f"{reference.day} {MONTH_NAMES[reference.month - 1]} {reference.year}"
    if mode == ViewMode.week:
        start, end = period_range(reference, mode)
        start_month = MONTH_NAMES[start.month - 1][:3]
        end_month = MONTH_NAMES[end.month - 1][:3]
        if start.month == end.month:
            return f"{start.day} – {end.day} {start_month} {start.year}"
        return f"{start.day} {start_month} – {end.day} {end_month} {end.year}"
    if mode == ViewMode.month:
        return f"{MONTH_NAMES[reference.month - 1]} {reference.year}"
    return str(reference.year)


def resolve_period(
    view: Optional[str],
    ref: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if view == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    try:
        mode = ViewMode(view or ViewMode.month.value)
    except ValueError as exc:
        raise ValueError(f"Unknown view mode: {view}") from exc
    reference = date.fromisoformat(ref) if ref else today
    range_start, range_end = period_range(reference, mode)
    return Period(mode.value, range_start, range_end)
