from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import PaymentFrequency

# Materialized periods for an open-ended plan (5 years of monthly periods).
INDEFINITE_WINDOW_PERIODS = 60

WEEKDAY_FREQUENCIES = (PaymentFrequency.weekly, PaymentFrequency.biweekly)

FrequencyLike = Union[PaymentFrequency, str, None]


class InvalidRecurrence(ValueError):
    pass


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int, *, desired_day: Optional[int] = None) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = desired_day if desired_day is not None else base.day
    return date(year, month, min(day, days_in_month(year, month)))


def normalize_frequency(frequency: FrequencyLike) -> Optional[PaymentFrequency]:
    """Coerce a frequency value; ``None`` and ``ONCE`` both mean a one-off payment."""
    if frequency is None or frequency == "":
        return None
    try:
        value = PaymentFrequency(frequency)
    except ValueError as exc:
        raise InvalidRecurrence(f"Unknown frequency: {frequency}") from exc
    if value == PaymentFrequency.once:
        return None
    return value


def validate_recurrence(
    frequency: FrequencyLike,
    payment_day: Optional[int],
    installments: Optional[int],
) -> Optional[PaymentFrequency]:
    freq = normalize_frequency(frequency)
    if installments is not None and installments <= 0:
        raise InvalidRecurrence("Installments must be a positive number")
    if freq == PaymentFrequency.monthly:
        if payment_day is None:
            raise InvalidRecurrence("Monthly plans require a payment day")
        if not 1 <= payment_day <= 31:
            raise InvalidRecurrence("Monthly payment day must be between 1 and 31")
    elif freq in WEEKDAY_FREQUENCIES:
        if payment_day is None:
            raise InvalidRecurrence("Weekly plans require a payment weekday")
        if not 1 <= payment_day <= 7:
            raise InvalidRecurrence("Payment weekday must be between 1 (Mon) and 7 (Sun)")
    elif payment_day is not None:
        raise InvalidRecurrence("Payment day only applies to monthly and weekly plans")
    return freq


def first_instance_date(
    frequency: FrequencyLike, start_date: date, payment_day: Optional[int]
) -> date:
    freq = normalize_frequency(frequency)
    if freq == PaymentFrequency.monthly and payment_day:
        return start_date.replace(
            day=min(payment_day, days_in_month(start_date.year, start_date.month))
        )
    if freq in WEEKDAY_FREQUENCIES and payment_day:
        diff = (payment_day - start_date.isoweekday() + 7) % 7
        return start_date + timedelta(days=diff)
    return start_date


def advance_date(
    current: date, frequency: FrequencyLike, payment_day: Optional[int]
) -> date:
    freq = normalize_frequency(frequency)
    if freq == PaymentFrequency.daily:
        return current + timedelta(days=1)
    if freq == PaymentFrequency.weekly:
        return current + timedelta(weeks=1)
    if freq == PaymentFrequency.biweekly:
        return current + timedelta(weeks=2)
    if freq == PaymentFrequency.monthly:
        # Re-clamp from the payment day every step so short months never
        # drag later dates down.
        return add_months(current, 1, desired_day=payment_day or current.day)
    if freq == PaymentFrequency.yearly:
        return add_months(current, 12)
    return add_months(current, 1)


def generate_finite_instance_dates(
    frequency: FrequencyLike,
    start_date: date,
    payment_day: Optional[int],
    installments: int,
) -> list[date]:
    dates: list[date] = []
    current = first_instance_date(frequency, start_date, payment_day)
    for _ in range(installments):
        dates.append(current)
        current = advance_date(current, frequency, payment_day)
    return dates


def generate_indefinite_instance_dates(
    frequency: FrequencyLike,
    start_date: date,
    payment_day: Optional[int],
    up_to: date,
) -> list[date]:
    dates: list[date] = []
    current = first_instance_date(frequency, start_date, payment_day)
    while current <= up_to:
        dates.append(current)
        current = advance_date(current, frequency, payment_day)
    return dates or [start_date]


def generate_indefinite_window(
    frequency: FrequencyLike,
    start_date: date,
    payment_day: Optional[int],
    periods: int = INDEFINITE_WINDOW_PERIODS,
) -> list[date]:
    return generate_finite_instance_dates(frequency, start_date, payment_day, periods)


def generate_instance_dates(
    frequency: FrequencyLike,
    start_date: date,
    payment_day: Optional[int],
    installments: Optional[int],
    horizon: Optional[date] = None,
    *,
    window: int = INDEFINITE_WINDOW_PERIODS,
) -> list[date]:
    """Expand a plan's recurrence rule into its ordered instance dates.

    One-off plans yield ``[start_date]``. Finite plans yield exactly
    ``installments`` dates. Open-ended plans yield every date up to
    ``horizon`` (falling back to ``[start_date]``) or, without a horizon,
    a fixed window of ``window`` periods from the anchor date.

    The rule is validated first; an invalid one raises
    :class:`InvalidRecurrence` and nothing is generated.
    """
    freq = validate_recurrence(frequency, payment_day, installments)
    if freq is None:
        return [start_date]
    if installments is not None:
        return generate_finite_instance_dates(freq, start_date, payment_day, installments)
    if horizon is not None:
        return generate_indefinite_instance_dates(freq, start_date, payment_day, horizon)
    if window <= 0:
        raise InvalidRecurrence("Indefinite window must be positive")
    return generate_indefinite_window(freq, start_date, payment_day, window)


def split_evenly(total_cents: int, count: int) -> int:
    """Even per-instance share of ``total_cents``, rounded half-up to the cent."""
    if count <= 0:
        raise ValueError("Cannot split an amount into zero parts")
    share = (Decimal(total_cents) / Decimal(count)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(share)


def calculate_installment_amount(
    total_cents: int, installments: Optional[int]
) -> Optional[int]:
    if not installments or installments <= 1:
        return None
    return split_evenly(total_cents, installments)
