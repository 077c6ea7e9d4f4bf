from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from categories import category_options, display_name, parent_category_id
from config import get_settings
from database import transaction
from models import (
    Category,
    InstanceState,
    Payment,
    PaymentInstance,
    PaymentState,
    PaymentType,
    SavingsGoal,
    SavingsGoalType,
    SavingsTransaction,
    SavingsTransactionType,
)
from periods import Period, ViewMode
from reconciliation import (
    CategoryTotal,
    Totals,
    build_instance_drafts,
    cascade_plan_state,
    catch_up_drafts,
    compute_totals,
    derive_plan_state,
    forward_slice,
    installment_label,
    recompute_unpaid_amounts,
    renumber,
    totals_by_category,
    totals_by_period,
)
from recurrence import (
    advance_date,
    first_instance_date,
    local_today,
    normalize_frequency,
    validate_recurrence,
)
from repository import Repository
from schemas import (
    CategoryIn,
    InstanceEditIn,
    InstanceFilters,
    PaymentIn,
    PaymentPatch,
    SavingsGoalIn,
    SavingsGoalPatch,
    SavingsTransactionIn,
    WorkingInstanceIn,
)

logger = logging.getLogger(__name__)


class NotFound(ValueError):
    pass


def get_current_user_id() -> int:
    return get_settings().default_user_id


def _new_instance(payment_id: int, draft) -> PaymentInstance:
    return PaymentInstance(
        payment_id=payment_id,
        amount_cents=draft.amount_cents,
        payment_date=draft.payment_date,
        installment_number=draft.installment_number,
        state=draft.state,
        comments=draft.comments,
    )


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.categories = Repository(session, Category)

    def list_all(self) -> list[Category]:
        return self.categories.get_by_index("user_id", self.user_id, order_by="name")

    def get(self, category_id: int) -> Category:
        category = self.categories.get_by_id(category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def _ensure_unique(
        self, name: str, parent_id: Optional[int], exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
        )
        if parent_id is None:
            stmt = stmt.where(Category.parent_id.is_(None))
        else:
            stmt = stmt.where(Category.parent_id == parent_id)
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt.limit(1)) is not None:
            raise ValueError("A category with this name already exists at this level")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if data.parent_id is not None:
            parent = self.get(data.parent_id)
            if parent.parent_id is not None:
                raise ValueError("Subcategories cannot have subcategories")
        self._ensure_unique(name, data.parent_id)
        with transaction(self.session):
            category = self.categories.add(
                Category(user_id=self.user_id, name=name, parent_id=data.parent_id)
            )
        return category

    def rename(self, category_id: int, name: str) -> Category:
        category = self.get(category_id)
        clean = name.strip()
        self._ensure_unique(clean, category.parent_id, exclude_id=category.id)
        with transaction(self.session):
            self.categories.update(category.id, {"name": clean})
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if self.categories.get_by_index("parent_id", category.id):
            raise ValueError("Category has subcategories")
        in_use = self.session.scalar(
            select(func.count(Payment.id)).where(Payment.category_id == category.id)
        )
        if in_use:
            raise ValueError("Category is used by existing payments")
        with transaction(self.session):
            self.categories.delete(category.id)

    def display_name(self, category_id: Optional[int]) -> str:
        return display_name(category_id, self.list_all())

    def options(self, query: Optional[str] = None):
        return category_options(self.list_all(), query)


@dataclass
class PaymentDetail:
    payment: Payment
    instances: list[PaymentInstance]
    category_name: str
    paid_count: int
    paid_cents: int


class PaymentService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.payments = Repository(session, Payment)
        self.instances = Repository(session, PaymentInstance)

    def get(self, payment_id: int) -> Payment:
        payment = self.payments.get_by_id(payment_id)
        if not payment or payment.user_id != self.user_id:
            raise NotFound("Payment not found")
        return payment

    def instances_for(self, payment_id: int) -> list[PaymentInstance]:
        return self.instances.get_by_index(
            "payment_id", payment_id, order_by="installment_number"
        )

    def list(
        self,
        payment_type: Optional[PaymentType] = None,
        state: Optional[PaymentState] = None,
        *,
        finite_only: bool = False,
    ) -> list[Payment]:
        self.reconcile_all()
        stmt = (
            select(Payment)
            .options(joinedload(Payment.category))
            .where(Payment.user_id == self.user_id)
            .order_by(Payment.start_date.desc(), Payment.id)
        )
        if payment_type is not None:
            stmt = stmt.where(Payment.payment_type == int(payment_type))
        if state is not None:
            stmt = stmt.where(Payment.state == state)
        if finite_only:
            stmt = stmt.where(
                Payment.frequency.is_not(None), Payment.installments.is_not(None)
            )
        return list(self.session.scalars(stmt).all())

    def detail(self, payment_id: int) -> PaymentDetail:
        payment = self.get(payment_id)
        instances = self.instances_for(payment.id)
        categories = CategoryService(self.session, self.user_id).list_all()
        paid = [inst for inst in instances if inst.state == InstanceState.paid]
        return PaymentDetail(
            payment=payment,
            instances=instances,
            category_name=display_name(payment.category_id, categories),
            paid_count=len(paid),
            paid_cents=sum(inst.amount_cents for inst in paid),
        )

    def create(self, data: PaymentIn, *, today: Optional[date] = None) -> Payment:
        today = today or local_today()
        CategoryService(self.session, self.user_id).get(data.category_id)
        freq = normalize_frequency(data.frequency)
        installments = data.installments if freq is not None else None
        payment_day = data.payment_day if freq is not None else None
        validate_recurrence(freq, payment_day, installments)

        with transaction(self.session):
            payment = self.payments.add(
                Payment(
                    user_id=self.user_id,
                    total_amount_cents=data.total_amount_cents,
                    payment_type=int(data.payment_type),
                    category_id=data.category_id,
                    start_date=data.start_date,
                    frequency=freq,
                    payment_day=payment_day,
                    installments=installments,
                    state=PaymentState.active,
                    comments=data.comments.strip(),
                )
            )
            drafts = build_instance_drafts(
                payment, today, window=get_settings().indefinite_window
            )
            created = self.instances.add_many(
                [_new_instance(payment.id, draft) for draft in drafts]
            )
            self._apply_auto_completion(payment, created)
        logger.info(
            f"payment_created: id={payment.id} frequency={freq.value if freq else 'ONCE'} "
            f"instances={len(created)}"
        )
        return payment

    def patch(
        self, payment_id: int, data: PaymentPatch, *, today: Optional[date] = None
    ) -> Payment:
        today = today or local_today()
        payment = self.get(payment_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "category_id" in changes:
            CategoryService(self.session, self.user_id).get(changes["category_id"])
        if "comments" in changes:
            changes["comments"] = changes["comments"].strip()

        with transaction(self.session):
            self.payments.update(payment.id, changes)
            if "total_amount_cents" in changes:
                self._reprice(payment, today)
        return payment

    def _reprice(self, payment: Payment, today: date) -> None:
        instances = self.instances_for(payment.id)
        if payment.is_finite:
            recompute_unpaid_amounts(instances, payment.total_amount_cents)
        elif not payment.is_recurring:
            for inst in instances:
                inst.amount_cents = payment.total_amount_cents
        else:
            # Per-period amount: only unsettled, upcoming instances follow it.
            for inst in instances:
                if inst.state != InstanceState.paid and inst.payment_date > today:
                    inst.amount_cents = payment.total_amount_cents
        self.session.flush()

    def delete(self, payment_id: int) -> None:
        payment = self.get(payment_id)
        with transaction(self.session):
            for inst in self.instances_for(payment.id):
                self.instances.delete(inst.id)
            self.payments.delete(payment.id)
        logger.info(f"payment_deleted: id={payment_id}")

    def set_state(
        self, payment_id: int, target: PaymentState, *, today: Optional[date] = None
    ) -> Payment:
        """Explicit plan transition fanned out to every instance of the plan."""
        today = today or local_today()
        payment = self.get(payment_id)
        target = PaymentState(target)
        instances = self.instances_for(payment.id)
        changes = cascade_plan_state(target, instances, today)
        with transaction(self.session):
            for inst, new_state in changes:
                self.instances.update(inst.id, {"state": new_state})
            self.payments.update(payment.id, {"state": target})
        logger.info(
            f"payment_state_fanout: id={payment.id} state={target.value} "
            f"instances_changed={len(changes)}"
        )
        return payment

    def _apply_auto_completion(
        self, payment: Payment, instances: Optional[list[PaymentInstance]] = None
    ) -> Optional[PaymentState]:
        if instances is None:
            instances = self.instances_for(payment.id)
        new_state = derive_plan_state(payment.state, [i.state for i in instances])
        if new_state is not None:
            self.payments.update(payment.id, {"state": new_state})
            logger.info(
                f"payment_auto_state: id={payment.id} state={new_state.value}"
            )
        return new_state

    def _end_series(self, payment: Payment, end: date) -> None:
        if payment.end_date is None or end < payment.end_date:
            self.payments.update(payment.id, {"end_date": end})

    def reconcile_all(self) -> int:
        payments = self.payments.get_by_index("user_id", self.user_id)
        changed = 0
        with transaction(self.session):
            for payment in payments:
                if self._apply_auto_completion(payment) is not None:
                    changed += 1
        return changed

    def catch_up(self, *, today: Optional[date] = None) -> int:
        """Materialize missing dates of open-ended incomes up to today.

        Paused and cancelled series are left alone, and a series whose tail
        was deleted is never extended past its ``end_date``.
        """
        today = today or local_today()
        stmt = select(Payment).where(
            Payment.user_id == self.user_id,
            Payment.payment_type == int(PaymentType.income),
            Payment.state.in_([PaymentState.active, PaymentState.completed]),
            Payment.frequency.is_not(None),
            Payment.installments.is_(None),
        )
        created = 0
        with transaction(self.session):
            for payment in self.session.scalars(stmt).all():
                existing = self.instances_for(payment.id)
                drafts = catch_up_drafts(payment, existing, today)
                if not drafts:
                    continue
                self.instances.add_many(
                    [_new_instance(payment.id, draft) for draft in drafts]
                )
                created += len(drafts)
                self._apply_auto_completion(payment)
        logger.info(f"catch_up: today={today.isoformat()} instances_created={created}")
        return created


@dataclass
class InstanceRow:
    instance: PaymentInstance
    payment: Payment
    description: str
    category_name: str
    parent_category_id: Optional[int]
    installment_label: str


class InstanceService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.plans = PaymentService(session, self.user_id)
        self.instances = self.plans.instances

    def get(self, instance_id: int) -> PaymentInstance:
        inst = self.instances.get_by_id(instance_id)
        if not inst:
            raise NotFound("Instance not found")
        payment = self.plans.payments.get_by_id(inst.payment_id)
        if payment is not None and payment.user_id != self.user_id:
            raise NotFound("Instance not found")
        return inst

    def list(
        self, period: Period, filters: Optional[InstanceFilters] = None
    ) -> list[InstanceRow]:
        filters = filters or InstanceFilters()
        stmt = (
            select(PaymentInstance, Payment)
            .join(Payment, Payment.id == PaymentInstance.payment_id)
            .where(
                Payment.user_id == self.user_id,
                PaymentInstance.payment_date >= period.start,
                PaymentInstance.payment_date <= period.end,
            )
        )
        if filters.payment_type is not None:
            stmt = stmt.where(Payment.payment_type == int(filters.payment_type))
        if filters.state is not None:
            stmt = stmt.where(PaymentInstance.state == filters.state)

        categories = CategoryService(self.session, self.user_id).list_all()
        rows: list[InstanceRow] = []
        for inst, payment in self.session.execute(stmt).all():
            rows.append(
                InstanceRow(
                    instance=inst,
                    payment=payment,
                    description=payment.comments or "—",
                    category_name=display_name(payment.category_id, categories),
                    parent_category_id=parent_category_id(
                        payment.category_id, categories
                    ),
                    installment_label=installment_label(
                        inst.installment_number, payment
                    ),
                )
            )

        if filters.category_id is not None:
            rows = [r for r in rows if r.parent_category_id == filters.category_id]
        query = (filters.query or "").strip().lower()
        if query:
            rows = [
                r
                for r in rows
                if query in r.description.lower()
                or query in r.category_name.lower()
                or query in (r.instance.comments or "").lower()
            ]
        rows.sort(
            key=lambda r: (r.instance.payment_date, r.instance.id),
            reverse=filters.sort == "desc",
        )
        return rows

    def _owning_payment(self, inst: PaymentInstance) -> Optional[Payment]:
        return self.plans.payments.get_by_id(inst.payment_id)

    def set_state(self, instance_id: int, state: InstanceState) -> PaymentInstance:
        inst = self.get(instance_id)
        payment = self._owning_payment(inst)
        with transaction(self.session):
            self.instances.update(inst.id, {"state": InstanceState(state)})
            if payment is not None:
                self.plans._apply_auto_completion(payment)
        return inst

    def edit(self, instance_id: int, data: InstanceEditIn) -> list[PaymentInstance]:
        """Edit one instance; open-ended plans carry the edit forward.

        For an open-ended plan the new amount and comments apply to the
        instance and every later one of the series; earlier instances are
        never touched.
        """
        inst = self.get(instance_id)
        payment = self._owning_payment(inst)
        if payment is not None and payment.is_indefinite:
            targets = forward_slice(self.plans.instances_for(payment.id), inst)
        else:
            targets = [inst]
        if (
            payment is not None
            and data.category_id is not None
            and data.category_id != payment.category_id
        ):
            CategoryService(self.session, self.user_id).get(data.category_id)
            category_change = {"category_id": data.category_id}
        else:
            category_change = None

        with transaction(self.session):
            if category_change:
                self.plans.payments.update(payment.id, category_change)
            for target in targets:
                self.instances.update(
                    target.id,
                    {"amount_cents": data.amount_cents, "comments": data.comments},
                )
        logger.info(
            f"instance_edit: id={inst.id} payment_id={inst.payment_id} "
            f"instances_changed={len(targets)}"
        )
        return targets

    def delete(self, instance_id: int) -> int:
        """Delete an instance following the owning plan's rules.

        Open-ended plans lose the instance and every later one. Finite plans
        lose only that instance and are renumbered and repriced. Deleting the
        only instance of a one-off payment, or the last installment left in a
        finite plan, deletes the payment. Returns the
        number of instances removed.
        """
        inst = self.get(instance_id)
        payment = self._owning_payment(inst)
        if payment is None:
            with transaction(self.session):
                self.instances.delete(inst.id)
            return 1
        if not payment.is_recurring:
            removed = len(self.plans.instances_for(payment.id))
            self.plans.delete(payment.id)
            return removed

        siblings = self.plans.instances_for(payment.id)
        if payment.is_finite and len(siblings) == 1:
            # Last installment left: the plan goes with it.
            self.plans.delete(payment.id)
            return 1
        with transaction(self.session):
            if payment.is_indefinite:
                doomed = forward_slice(siblings, inst)
                for target in doomed:
                    self.instances.delete(target.id)
                self.plans._end_series(payment, inst.payment_date)
            else:
                doomed = [inst]
                self.instances.delete(inst.id)
                remaining = [s for s in siblings if s.id != inst.id]
                self._normalize_finite(payment, remaining)
            self.plans._apply_auto_completion(payment)
        logger.info(
            f"instance_delete: id={instance_id} payment_id={payment.id} "
            f"removed={len(doomed)}"
        )
        return len(doomed)

    def _normalize_finite(
        self, payment: Payment, instances: list[PaymentInstance]
    ) -> None:
        renumber(instances)
        recompute_unpaid_amounts(instances, payment.total_amount_cents)
        if instances and payment.installments != len(instances):
            self.plans.payments.update(payment.id, {"installments": len(instances)})
        self.session.flush()

    def add_to_plan(self, payment_id: int) -> PaymentInstance:
        payment = self.plans.get(payment_id)
        if not payment.is_recurring:
            raise ValueError("One-off payments have a single instance")
        existing = self.plans.instances_for(payment.id)
        if existing:
            last = max(existing, key=lambda i: (i.payment_date, i.installment_number))
            next_date = advance_date(
                last.payment_date, payment.frequency, payment.payment_day
            )
        else:
            next_date = first_instance_date(
                payment.frequency, payment.start_date, payment.payment_day
            )
        with transaction(self.session):
            new_inst = self.instances.add(
                PaymentInstance(
                    payment_id=payment.id,
                    amount_cents=payment.total_amount_cents,
                    payment_date=next_date,
                    installment_number=len(existing) + 1,
                    state=InstanceState.pending,
                    comments=payment.comments or "",
                )
            )
            if payment.is_finite:
                self._normalize_finite(payment, existing + [new_inst])
            self.plans._apply_auto_completion(payment)
        return new_inst

    def save_plan_batch(
        self, payment_id: int, working: list[WorkingInstanceIn]
    ) -> list[PaymentInstance]:
        """Persist an edited working set of a plan's instances in one go.

        Instances missing from ``working`` are deleted, entries without an id
        are created, the rest are updated. Finite plans are then renumbered,
        their unpaid amounts redistributed and their installment count synced.
        Open-ended plans may only drop a trailing run of instances.
        """
        payment = self.plans.get(payment_id)
        if not payment.is_recurring:
            raise ValueError("One-off payments cannot be batch edited")
        if not working:
            raise ValueError("A plan needs at least one instance")

        original = self.plans.instances_for(payment.id)
        by_id = {inst.id: inst for inst in original}
        kept_ids = {item.id for item in working if item.id is not None}
        unknown = kept_ids - set(by_id)
        if unknown:
            raise NotFound(f"Instances not in plan: {sorted(unknown)}")
        dropped = [inst for inst in original if inst.id not in kept_ids]

        if payment.is_indefinite and dropped:
            cutoff = min(inst.payment_date for inst in dropped)
            if any(by_id[i].payment_date >= cutoff for i in kept_ids):
                raise ValueError(
                    "Open-ended plans can only drop an instance together with "
                    "all later ones"
                )

        with transaction(self.session):
            for inst in dropped:
                self.instances.delete(inst.id)
            if payment.is_indefinite and dropped:
                self.plans._end_series(payment, cutoff)
            current: list[PaymentInstance] = []
            for item in working:
                if item.id is None:
                    amount = (
                        item.amount_cents
                        if item.amount_cents is not None
                        else payment.total_amount_cents
                    )
                    current.append(
                        self.instances.add(
                            PaymentInstance(
                                payment_id=payment.id,
                                amount_cents=amount,
                                payment_date=item.payment_date,
                                installment_number=len(original) + len(current) + 1,
                                state=item.state,
                                comments=item.comments or payment.comments or "",
                            )
                        )
                    )
                    continue
                inst = by_id[item.id]
                changes = {"payment_date": item.payment_date, "state": item.state}
                if item.comments is not None:
                    changes["comments"] = item.comments
                if (
                    item.amount_cents is not None
                    and not payment.is_finite
                    and inst.state != InstanceState.paid
                ):
                    changes["amount_cents"] = item.amount_cents
                current.append(self.instances.update(inst.id, changes))

            renumber(current)
            if payment.is_finite:
                self._normalize_finite(payment, current)
            self.session.flush()
            self.plans._apply_auto_completion(payment, current)
        logger.info(
            f"plan_batch_saved: payment_id={payment.id} deleted={len(dropped)} "
            f"instances={len(current)}"
        )
        return sorted(current, key=lambda i: i.installment_number)


class SummaryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _rows(self, period: Period) -> tuple[list[PaymentInstance], dict[int, Payment]]:
        stmt = (
            select(PaymentInstance, Payment)
            .join(Payment, Payment.id == PaymentInstance.payment_id)
            .where(
                Payment.user_id == self.user_id,
                PaymentInstance.payment_date >= period.start,
                PaymentInstance.payment_date <= period.end,
            )
            .order_by(PaymentInstance.payment_date)
        )
        instances: list[PaymentInstance] = []
        payments: dict[int, Payment] = {}
        for inst, payment in self.session.execute(stmt).all():
            instances.append(inst)
            payments[payment.id] = payment
        return instances, payments

    def totals(self, period: Period) -> Totals:
        instances, payments = self._rows(period)
        return compute_totals(instances, payments)

    def by_category(self, period: Period) -> list[CategoryTotal]:
        instances, payments = self._rows(period)
        categories = CategoryService(self.session, self.user_id).list_all()
        return totals_by_category(instances, payments, categories)

    def series(self, period: Period, mode: ViewMode) -> dict[date, Totals]:
        instances, payments = self._rows(period)
        return dict(totals_by_period(instances, payments, mode))

    def counts(self, period: Period) -> dict[str, int]:
        instances, payments = self._rows(period)
        income = sum(
            1
            for inst in instances
            if payments[inst.payment_id].payment_type == PaymentType.income
        )
        return {"income": income, "expense": len(instances) - income}


@dataclass
class CurrencyTotal:
    currency: str
    saved_cents: int
    target_cents: int
    progress: Optional[int]


def goal_progress(goal: SavingsGoal) -> Optional[int]:
    if goal.type == SavingsGoalType.fund or goal.target_amount_cents <= 0:
        return None
    return min(100, round(goal.current_amount_cents / goal.target_amount_cents * 100))


class SavingsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.goals = Repository(session, SavingsGoal)
        self.transactions = Repository(session, SavingsTransaction)

    def list_goals(self) -> list[SavingsGoal]:
        return self.goals.get_by_index("user_id", self.user_id, order_by="name")

    def get_goal(self, goal_id: int) -> SavingsGoal:
        goal = self.goals.get_by_id(goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFound("Savings goal not found")
        return goal

    @staticmethod
    def _target_for(goal_type: SavingsGoalType, target_cents: int) -> int:
        if goal_type == SavingsGoalType.fund:
            return 0
        if target_cents <= 0:
            raise ValueError("Goals need a positive target amount")
        return target_cents

    def create_goal(
        self, data: SavingsGoalIn, *, today: Optional[date] = None
    ) -> SavingsGoal:
        today = today or local_today()
        target = self._target_for(data.type, data.target_amount_cents)
        with transaction(self.session):
            goal = self.goals.add(
                SavingsGoal(
                    user_id=self.user_id,
                    type=data.type,
                    currency=data.currency.strip().upper(),
                    name=data.name.strip(),
                    description=data.description,
                    target_amount_cents=target,
                    current_amount_cents=0,
                    target_date=data.target_date,
                    color=data.color,
                )
            )
            if data.initial_amount_cents > 0:
                self._record(
                    goal,
                    amount_cents=data.initial_amount_cents,
                    txn_type=SavingsTransactionType.deposit,
                    on=today,
                    notes="Saldo inicial / Apertura",
                )
        return goal

    def update_goal(self, goal_id: int, data: SavingsGoalPatch) -> SavingsGoal:
        goal = self.get_goal(goal_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        goal_type = changes.get("type", goal.type)
        target = changes.get("target_amount_cents", goal.target_amount_cents)
        changes["target_amount_cents"] = self._target_for(goal_type, target)
        if "currency" in changes:
            changes["currency"] = changes["currency"].strip().upper()
        with transaction(self.session):
            self.goals.update(goal.id, changes)
        return goal

    def delete_goal(self, goal_id: int) -> None:
        goal = self.get_goal(goal_id)
        with transaction(self.session):
            for txn in self.transactions.get_by_index("goal_id", goal.id):
                self.transactions.delete(txn.id)
            self.goals.delete(goal.id)

    def transactions_for(self, goal_id: int) -> list[SavingsTransaction]:
        goal = self.get_goal(goal_id)
        return self.transactions.get_by_index("goal_id", goal.id, order_by="date")

    def _record(
        self,
        goal: SavingsGoal,
        *,
        amount_cents: int,
        txn_type: SavingsTransactionType,
        on: date,
        notes: str,
    ) -> SavingsTransaction:
        txn = self.transactions.add(
            SavingsTransaction(
                goal_id=goal.id,
                amount_cents=amount_cents,
                date=on,
                type=txn_type,
                notes=notes,
            )
        )
        if txn_type == SavingsTransactionType.deposit:
            delta = amount_cents
        else:
            delta = -amount_cents
        self.goals.update(
            goal.id, {"current_amount_cents": goal.current_amount_cents + delta}
        )
        return txn

    def add_transaction(
        self, goal_id: int, data: SavingsTransactionIn, *, today: Optional[date] = None
    ) -> SavingsTransaction:
        goal = self.get_goal(goal_id)
        with transaction(self.session):
            txn = self._record(
                goal,
                amount_cents=data.amount_cents,
                txn_type=data.type,
                on=data.date or today or local_today(),
                notes=data.notes,
            )
        return txn

    def totals_by_currency(self) -> list[CurrencyTotal]:
        grouped: dict[str, list[int]] = {}
        for goal in self.list_goals():
            saved_target = grouped.setdefault(goal.currency, [0, 0])
            saved_target[0] += goal.current_amount_cents
            if goal.type == SavingsGoalType.goal:
                saved_target[1] += goal.target_amount_cents
        totals = [
            CurrencyTotal(
                currency=currency,
                saved_cents=saved,
                target_cents=target,
                progress=min(100, round(saved / target * 100)) if target > 0 else None,
            )
            for currency, (saved, target) in grouped.items()
        ]
        totals.sort(key=lambda t: t.saved_cents, reverse=True)
        return totals
