from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import (
    InstanceState,
    Payment,
    PaymentFrequency,
    PaymentInstance,
    PaymentState,
    PaymentType,
)
from periods import Period
from schemas import (
    CategoryIn,
    InstanceEditIn,
    InstanceFilters,
    PaymentIn,
    WorkingInstanceIn,
)
from services import CategoryService, InstanceService, NotFound, PaymentService


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _category(session: Session, name: str = "Hogar", parent_id=None) -> int:
    return CategoryService(session, user_id=1).create(
        CategoryIn(name=name, parent_id=parent_id)
    ).id


def _finite_plan(session: Session, category_id: int) -> Payment:
    return PaymentService(session, user_id=1).create(
        PaymentIn(
            total_amount_cents=100000,
            payment_type=PaymentType.expense,
            category_id=category_id,
            start_date=date(2024, 1, 15),
            frequency=PaymentFrequency.monthly,
            payment_day=15,
            installments=3,
            comments="Heladera",
        ),
        today=date(2024, 2, 1),
    )


def _indefinite_plan(session: Session, category_id: int) -> Payment:
    """Open-ended monthly plan with instances 2024-01-01 .. 2024-06-01."""
    payment = Payment(
        user_id=1,
        total_amount_cents=4500,
        payment_type=int(PaymentType.expense),
        category_id=category_id,
        start_date=date(2024, 1, 1),
        frequency=PaymentFrequency.monthly,
        payment_day=1,
        installments=None,
        state=PaymentState.active,
        comments="Internet",
    )
    session.add(payment)
    session.flush()
    for month in range(1, 7):
        session.add(
            PaymentInstance(
                payment_id=payment.id,
                amount_cents=4500,
                payment_date=date(2024, month, 1),
                installment_number=month,
                state=InstanceState.paid if month <= 2 else InstanceState.pending,
                comments="Internet",
            )
        )
    session.commit()
    return payment


def _working(inst: PaymentInstance) -> WorkingInstanceIn:
    return WorkingInstanceIn(id=inst.id, payment_date=inst.payment_date, state=inst.state)


def _snapshot(inst: PaymentInstance) -> tuple:
    return (
        inst.id,
        inst.amount_cents,
        inst.payment_date,
        inst.installment_number,
        inst.state,
        inst.comments,
        inst.updated_at,
    )


def test_forward_only_delete_on_indefinite_plan() -> None:
    with _session() as session:
        payment = _indefinite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        instances = plans.instances_for(payment.id)
        before = [_snapshot(i) for i in instances[:2]]
        march = instances[2]

        removed = InstanceService(session, user_id=1).delete(march.id)

        assert removed == 4
        session.expire_all()
        remaining = plans.instances_for(payment.id)
        assert [i.payment_date for i in remaining] == [date(2024, 1, 1), date(2024, 2, 1)]
        assert [_snapshot(i) for i in remaining] == before


def test_forward_only_edit_on_indefinite_plan() -> None:
    with _session() as session:
        payment = _indefinite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        instances = plans.instances_for(payment.id)
        before = [_snapshot(i) for i in instances[:3]]

        changed = InstanceService(session, user_id=1).edit(
            instances[3].id, InstanceEditIn(amount_cents=5200, comments="Fibra")
        )

        assert [i.payment_date for i in changed] == [
            date(2024, 4, 1),
            date(2024, 5, 1),
            date(2024, 6, 1),
        ]
        session.expire_all()
        after = plans.instances_for(payment.id)
        assert [_snapshot(i) for i in after[:3]] == before
        assert [(i.amount_cents, i.comments) for i in after[3:]] == [(5200, "Fibra")] * 3


def test_edit_on_finite_plan_touches_one_instance_and_patches_category() -> None:
    with _session() as session:
        home = _category(session)
        kitchen = _category(session, "Cocina", parent_id=home)
        payment = _finite_plan(session, home)
        plans = PaymentService(session, user_id=1)
        instances = plans.instances_for(payment.id)

        changed = InstanceService(session, user_id=1).edit(
            instances[1].id,
            InstanceEditIn(amount_cents=30000, comments="descuento", category_id=kitchen),
        )

        assert changed == [instances[1]]
        assert [i.amount_cents for i in plans.instances_for(payment.id)] == [
            33333,
            30000,
            33333,
        ]
        assert plans.get(payment.id).category_id == kitchen


def test_finite_delete_renumbers_and_rebalances() -> None:
    with _session() as session:
        payment = _finite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        instances = plans.instances_for(payment.id)

        assert InstanceService(session, user_id=1).delete(instances[1].id) == 1

        remaining = plans.instances_for(payment.id)
        assert [i.payment_date for i in remaining] == [date(2024, 1, 15), date(2024, 3, 15)]
        assert [i.installment_number for i in remaining] == [1, 2]
        assert [i.amount_cents for i in remaining] == [33333, 66667]
        assert payment.installments == 2


def test_deleting_one_off_instance_deletes_payment() -> None:
    with _session() as session:
        category_id = _category(session)
        payment = PaymentService(session, user_id=1).create(
            PaymentIn(
                total_amount_cents=1999,
                payment_type=PaymentType.expense,
                category_id=category_id,
                start_date=date(2024, 3, 3),
            ),
            today=date(2024, 3, 1),
        )
        inst = PaymentService(session, user_id=1).instances_for(payment.id)[0]

        InstanceService(session, user_id=1).delete(inst.id)

        assert session.scalars(select(Payment)).all() == []
        assert session.scalars(select(PaymentInstance)).all() == []


def test_instance_state_drives_plan_completion() -> None:
    with _session() as session:
        payment = _finite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        service = InstanceService(session, user_id=1)
        instances = plans.instances_for(payment.id)

        service.set_state(instances[1].id, InstanceState.paid)
        assert plans.get(payment.id).state == PaymentState.active
        service.set_state(instances[2].id, InstanceState.paid)
        assert plans.get(payment.id).state == PaymentState.completed

        service.set_state(instances[2].id, InstanceState.overdue)
        assert plans.get(payment.id).state == PaymentState.active


def test_add_to_finite_plan_extends_series() -> None:
    with _session() as session:
        payment = _finite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)

        new_inst = InstanceService(session, user_id=1).add_to_plan(payment.id)

        assert new_inst.payment_date == date(2024, 4, 15)
        assert new_inst.installment_number == 4
        instances = plans.instances_for(payment.id)
        assert [i.amount_cents for i in instances] == [33333, 22222, 22222, 22223]
        assert sum(i.amount_cents for i in instances) == 100000
        assert payment.installments == 4


def test_add_to_one_off_is_rejected() -> None:
    with _session() as session:
        category_id = _category(session)
        payment = PaymentService(session, user_id=1).create(
            PaymentIn(
                total_amount_cents=1999,
                payment_type=PaymentType.expense,
                category_id=category_id,
                start_date=date(2024, 3, 3),
            ),
            today=date(2024, 3, 1),
        )
        with pytest.raises(ValueError):
            InstanceService(session, user_id=1).add_to_plan(payment.id)


def test_batch_save_on_finite_plan() -> None:
    with _session() as session:
        payment = _finite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        first, second, _third = plans.instances_for(payment.id)

        saved = InstanceService(session, user_id=1).save_plan_batch(
            payment.id,
            [
                WorkingInstanceIn(
                    id=first.id, payment_date=first.payment_date, state=InstanceState.paid
                ),
                WorkingInstanceIn(id=second.id, payment_date=second.payment_date),
                WorkingInstanceIn(payment_date=date(2024, 4, 20)),
            ],
        )

        assert [i.payment_date for i in saved] == [
            date(2024, 1, 15),
            date(2024, 2, 15),
            date(2024, 4, 20),
        ]
        assert [i.installment_number for i in saved] == [1, 2, 3]
        assert [i.amount_cents for i in saved] == [33333, 33334, 33333]
        assert payment.installments == 3

        saved = InstanceService(session, user_id=1).save_plan_batch(
            payment.id,
            [
                WorkingInstanceIn(
                    id=first.id, payment_date=first.payment_date, state=InstanceState.paid
                ),
                WorkingInstanceIn(
                    id=second.id, payment_date=second.payment_date, state=InstanceState.paid
                ),
            ],
        )
        # Everything is paid, so amounts stay as they are.
        assert [i.amount_cents for i in saved] == [33333, 33334]
        assert payment.installments == 2
        assert payment.state == PaymentState.completed


def test_batch_save_on_indefinite_plan_only_drops_tail() -> None:
    with _session() as session:
        payment = _indefinite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        instances = plans.instances_for(payment.id)
        service = InstanceService(session, user_id=1)

        gap = [i for i in instances if i.payment_date != date(2024, 3, 1)]
        with pytest.raises(ValueError):
            service.save_plan_batch(
                payment.id,
                [_working(i) for i in gap],
            )
        assert len(plans.instances_for(payment.id)) == 6

        head = instances[:4]
        saved = service.save_plan_batch(
            payment.id,
            [_working(i) for i in head],
        )
        assert [i.payment_date for i in saved] == [date(2024, m, 1) for m in range(1, 5)]
        assert payment.installments is None
        assert payment.end_date == date(2024, 5, 1)


def test_list_instances_with_filters() -> None:
    with _session() as session:
        home = _category(session)
        power = _category(session, "Luz", parent_id=home)
        salary = _category(session, "Sueldo")
        plans = PaymentService(session, user_id=1)
        plans.create(
            PaymentIn(
                total_amount_cents=100000,
                payment_type=PaymentType.expense,
                category_id=power,
                start_date=date(2024, 1, 15),
                frequency=PaymentFrequency.monthly,
                payment_day=15,
                installments=3,
                comments="Factura luz",
            ),
            today=date(2024, 2, 1),
        )
        plans.create(
            PaymentIn(
                total_amount_cents=900000,
                payment_type=PaymentType.income,
                category_id=salary,
                start_date=date(2024, 2, 5),
                comments="Sueldo febrero",
            ),
            today=date(2024, 2, 1),
        )
        service = InstanceService(session, user_id=1)
        february = Period("month", date(2024, 2, 1), date(2024, 2, 29))

        rows = service.list(february)
        assert [r.description for r in rows] == ["Sueldo febrero", "Factura luz"]
        assert rows[1].category_name == "Hogar > Luz"
        assert rows[1].installment_label == "2/3"
        assert rows[0].installment_label == "—"

        by_parent = service.list(february, InstanceFilters(category_id=home))
        assert [r.description for r in by_parent] == ["Factura luz"]

        incomes = service.list(february, InstanceFilters(payment_type=PaymentType.income))
        assert [r.description for r in incomes] == ["Sueldo febrero"]

        searched = service.list(february, InstanceFilters(query="LUZ", sort="desc"))
        assert [r.instance.payment_date for r in searched] == [date(2024, 2, 15)]

        newest_first = service.list(february, InstanceFilters(sort="desc"))
        assert [r.instance.payment_date for r in newest_first] == [
            date(2024, 2, 15),
            date(2024, 2, 5),
        ]


def test_catch_up_does_not_restore_deleted_tail() -> None:
    with _session() as session:
        plans = PaymentService(session, user_id=1)
        payment = plans.create(
            PaymentIn(
                total_amount_cents=500000,
                payment_type=PaymentType.income,
                category_id=_category(session, "Sueldo"),
                start_date=date(2024, 1, 1),
                frequency=PaymentFrequency.monthly,
                payment_day=1,
            ),
            today=date(2024, 6, 15),
        )
        instances = plans.instances_for(payment.id)
        assert len(instances) == 6

        removed = InstanceService(session, user_id=1).delete(instances[2].id)
        assert removed == 4
        assert payment.end_date == date(2024, 3, 1)

        assert plans.catch_up(today=date(2024, 6, 15)) == 0
        assert plans.catch_up(today=date(2024, 9, 15)) == 0
        session.expire_all()
        assert [i.payment_date for i in plans.instances_for(payment.id)] == [
            date(2024, 1, 1),
            date(2024, 2, 1),
        ]


def test_deleting_last_installment_deletes_finite_plan() -> None:
    with _session() as session:
        payment = _finite_plan(session, _category(session))
        plans = PaymentService(session, user_id=1)
        service = InstanceService(session, user_id=1)

        for expected_left in (2, 1):
            first = plans.instances_for(payment.id)[0]
            assert service.delete(first.id) == 1
            assert len(plans.instances_for(payment.id)) == expected_left
        assert payment.installments == 1

        last = plans.instances_for(payment.id)[0]
        assert service.delete(last.id) == 1
        with pytest.raises(NotFound):
            plans.get(payment.id)
        assert session.scalars(select(PaymentInstance)).all() == []
