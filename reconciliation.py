"""Rules keeping a plan and its instances consistent.

Everything here is pure: functions take plain objects exposing the
instance/plan attributes (ORM rows in the app, simple namespaces in tests)
and either return new values or the list of changes to apply. Persisting
those changes is the caller's job.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from categories import parent_category_id, parent_category_name
from models import InstanceState, PaymentState, PaymentType
from periods import ViewMode, period_range
from recurrence import (
    INDEFINITE_WINDOW_PERIODS,
    generate_instance_dates,
    normalize_frequency,
    split_evenly,
)


class InstanceLike(Protocol):
    payment_id: int
    amount_cents: int
    payment_date: date
    installment_number: int
    state: InstanceState


@dataclass
class InstanceDraft:
    payment_date: date
    amount_cents: int
    installment_number: int
    state: InstanceState
    comments: str = ""


@dataclass(frozen=True)
class Totals:
    income_cents: int = 0
    expense_cents: int = 0

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass(frozen=True)
class CategoryTotal:
    category_id: Optional[int]
    name: str
    payment_type: PaymentType
    amount_cents: int


def initial_state(payment_date: date, today: date) -> InstanceState:
    # Anything due on or before today is presumed settled.
    return InstanceState.paid if payment_date <= today else InstanceState.pending


def _instance_order(instance) -> tuple:
    number = instance.installment_number
    return (instance.payment_date, number if number is not None else float("inf"))


def build_instance_drafts(
    payment, today: date, *, window: int = INDEFINITE_WINDOW_PERIODS
) -> list[InstanceDraft]:
    freq = normalize_frequency(payment.frequency)
    installments = payment.installments if freq is not None else None
    # Open-ended incomes are only materialized up to today; expenses get
    # the forward window.
    horizon = None
    if freq is not None and installments is None:
        if payment.payment_type == PaymentType.income:
            horizon = today
    dates = generate_instance_dates(
        freq,
        payment.start_date,
        payment.payment_day,
        installments,
        horizon,
        window=window,
    )
    if freq is not None and installments is not None:
        amount = split_evenly(payment.total_amount_cents, installments)
    else:
        amount = payment.total_amount_cents
    return [
        InstanceDraft(
            payment_date=value,
            amount_cents=amount,
            installment_number=index,
            state=initial_state(value, today),
            comments=payment.comments or "",
        )
        for index, value in enumerate(dates, start=1)
    ]


def catch_up_drafts(
    payment, existing: Sequence[InstanceLike], today: date
) -> list[InstanceDraft]:
    """Drafts for the dates of an open-ended plan missing up to ``today``.

    Only dates after the latest materialized instance are produced, so
    running it again once caught up yields nothing. A plan with an
    ``end_date`` never gets dates on or after it.
    """
    if not payment.frequency or payment.installments is not None:
        return []
    last_date = max((inst.payment_date for inst in existing), default=None)
    last_number = max((inst.installment_number for inst in existing), default=0)
    dates = generate_instance_dates(
        payment.frequency,
        payment.start_date,
        payment.payment_day,
        None,
        horizon=today,
    )
    missing = [
        value
        for value in dates
        if value <= today
        and (last_date is None or value > last_date)
        and (payment.end_date is None or value < payment.end_date)
    ]
    return [
        InstanceDraft(
            payment_date=value,
            amount_cents=payment.total_amount_cents,
            installment_number=last_number + offset,
            state=initial_state(value, today),
            comments=payment.comments or "",
        )
        for offset, value in enumerate(missing, start=1)
    ]


def recompute_unpaid_amounts(
    instances: Sequence[InstanceLike], total_cents: int
) -> list[InstanceLike]:
    """Spread what is left of ``total_cents`` over the unpaid instances.

    Paid instances keep their amounts. Every unpaid instance but the last
    gets the even share; the last one absorbs the rounding remainder so the
    plan sums to its total exactly. Returns the instances whose amount
    changed.
    """
    ordered = sorted(instances, key=_instance_order)
    paid = [inst for inst in ordered if inst.state == InstanceState.paid]
    unpaid = [inst for inst in ordered if inst.state != InstanceState.paid]
    if not unpaid:
        return []

    remaining = max(total_cents - sum(inst.amount_cents for inst in paid), 0)
    count = len(unpaid)
    share = split_evenly(remaining, count)
    if share * (count - 1) > remaining:
        share = remaining // count

    changed: list[InstanceLike] = []
    for index, inst in enumerate(unpaid):
        amount = remaining - share * (count - 1) if index == count - 1 else share
        if inst.amount_cents != amount:
            inst.amount_cents = amount
            changed.append(inst)
    return changed


def renumber(instances: Sequence[InstanceLike]) -> list[InstanceLike]:
    changed: list[InstanceLike] = []
    for number, inst in enumerate(sorted(instances, key=_instance_order), start=1):
        if inst.installment_number != number:
            inst.installment_number = number
            changed.append(inst)
    return changed


def forward_slice(
    instances: Iterable[InstanceLike], pivot: InstanceLike
) -> list[InstanceLike]:
    """The pivot plus every later instance of the same plan.

    Instances dated before the pivot are never part of the result.
    """
    selected = [
        inst
        for inst in instances
        if inst.payment_id == pivot.payment_id
        and inst.payment_date >= pivot.payment_date
    ]
    if not any(inst is pivot for inst in selected):
        selected.append(pivot)
    return sorted(selected, key=_instance_order)


def derive_plan_state(
    current: PaymentState, instance_states: Iterable[InstanceState]
) -> Optional[PaymentState]:
    """Auto-completion: the state the plan should move to, or ``None``."""
    states = list(instance_states)
    if not states:
        return None
    all_paid = all(state == InstanceState.paid for state in states)
    if all_paid and current != PaymentState.completed:
        return PaymentState.completed
    if not all_paid and current == PaymentState.completed:
        return PaymentState.active
    return None


def cascade_plan_state(
    target: PaymentState, instances: Iterable[InstanceLike], today: date
) -> list[tuple[InstanceLike, InstanceState]]:
    """State fan-out for an explicit plan transition.

    ACTIVE re-derives every instance from the calendar, CANCELLED cancels
    all of them and COMPLETED marks all of them paid. PAUSED leaves the
    instances alone.
    """
    target = PaymentState(target)
    changes: list[tuple[InstanceLike, InstanceState]] = []
    for inst in instances:
        if target == PaymentState.active:
            new_state = initial_state(inst.payment_date, today)
        elif target == PaymentState.cancelled:
            new_state = InstanceState.cancelled
        elif target == PaymentState.completed:
            new_state = InstanceState.paid
        else:
            continue
        if inst.state != new_state:
            changes.append((inst, new_state))
    return changes


def _payments_by_id(payments) -> Mapping[int, object]:
    if isinstance(payments, Mapping):
        return payments
    return {payment.id: payment for payment in payments}


def compute_totals(instances: Iterable[InstanceLike], payments) -> Totals:
    by_id = _payments_by_id(payments)
    income = 0
    expense = 0
    for inst in instances:
        payment = by_id.get(inst.payment_id)
        if payment is None:
            continue
        if payment.payment_type == PaymentType.income:
            income += inst.amount_cents
        elif payment.payment_type == PaymentType.expense:
            expense += inst.amount_cents
    return Totals(income_cents=income, expense_cents=expense)


def totals_by_category(
    instances: Iterable[InstanceLike], payments, categories: Sequence
) -> list[CategoryTotal]:
    """Instance amounts grouped by root category and payment type."""
    by_id = _payments_by_id(payments)
    sums: dict[tuple[Optional[int], int], int] = {}
    for inst in instances:
        payment = by_id.get(inst.payment_id)
        if payment is None:
            continue
        root_id = parent_category_id(payment.category_id, categories)
        key = (root_id, int(payment.payment_type))
        sums[key] = sums.get(key, 0) + inst.amount_cents

    rows = [
        CategoryTotal(
            category_id=root_id,
            name=parent_category_name(root_id, categories),
            payment_type=PaymentType(type_id),
            amount_cents=amount,
        )
        for (root_id, type_id), amount in sums.items()
    ]
    rows.sort(key=lambda row: (row.payment_type, -row.amount_cents, row.name))
    return rows


def totals_by_period(
    instances: Iterable[InstanceLike], payments, mode: ViewMode
) -> "OrderedDict[date, Totals]":
    """Totals bucketed by the start date of each ``mode`` period."""
    by_id = _payments_by_id(payments)
    buckets: dict[date, list[InstanceLike]] = {}
    for inst in instances:
        start, _end = period_range(inst.payment_date, mode)
        buckets.setdefault(start, []).append(inst)
    return OrderedDict(
        (start, compute_totals(buckets[start], by_id)) for start in sorted(buckets)
    )


def installment_label(installment_number: int, payment) -> str:
    if payment is None or not payment.frequency:
        return "—"
    if payment.installments is None:
        return f"{installment_number}/∞"
    if payment.installments > 1:
        return f"{installment_number}/{payment.installments}"
    return "—"
