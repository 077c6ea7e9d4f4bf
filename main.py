import logging
from datetime import date

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, session_scope
from models import InstanceState, PaymentState, PaymentType
from periods import (
    Period,
    ViewMode,
    navigation_label,
    period_range,
    resolve_period,
    step_period,
)
from recurrence import calculate_installment_amount, local_today
from schemas import (
    CategoryIn,
    CategoryRename,
    InstanceEditIn,
    InstanceFilters,
    InstanceStateIn,
    PaymentIn,
    PaymentPatch,
    PlanBatchIn,
    PlanStateIn,
    SavingsGoalIn,
    SavingsGoalPatch,
    SavingsTransactionIn,
)
from services import (
    CategoryService,
    InstanceService,
    NotFound,
    PaymentService,
    SavingsService,
    SummaryService,
    goal_progress,
)

settings = get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Planner")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    logger.info("catch_up_run: source=startup")
    with session_scope() as session:
        service = PaymentService(session)
        created = service.catch_up()
        changed = service.reconcile_all()
        logger.info(
            f"catch_up_run: source=startup instances_created={created} "
            f"plans_state_changed={changed}"
        )


def _status_for(exc: ValueError) -> int:
    return 404 if isinstance(exc, NotFound) else 400


def period_from_request(request: Request) -> Period:
    params = request.query_params
    try:
        return resolve_period(
            params.get("view"),
            params.get("ref"),
            params.get("start"),
            params.get("end"),
            today=local_today(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def filters_from_request(request: Request) -> InstanceFilters:
    params = request.query_params
    payment_type = None
    if params.get("type"):
        try:
            payment_type = PaymentType(int(params["type"]))
        except ValueError:
            payment_type = None
    state = None
    if params.get("state"):
        try:
            state = InstanceState(params["state"].upper())
        except ValueError:
            state = None
    category_id = None
    if params.get("category"):
        try:
            category_id = int(params["category"])
        except ValueError:
            category_id = None
    sort = "desc" if params.get("sort") == "desc" else "asc"
    return InstanceFilters(
        payment_type=payment_type,
        category_id=category_id,
        state=state,
        query=params.get("q"),
        sort=sort,
    )


def category_to_dict(category) -> dict:
    return {"id": category.id, "name": category.name, "parent_id": category.parent_id}


def payment_to_dict(payment) -> dict:
    return {
        "id": payment.id,
        "total_amount_cents": payment.total_amount_cents,
        "payment_type": int(payment.payment_type),
        "category_id": payment.category_id,
        "start_date": payment.start_date.isoformat(),
        "frequency": payment.frequency.value if payment.frequency else None,
        "payment_day": payment.payment_day,
        "installments": payment.installments,
        "installment_amount_cents": calculate_installment_amount(
            payment.total_amount_cents, payment.installments
        ),
        "state": payment.state.value,
        "comments": payment.comments,
        "end_date": payment.end_date.isoformat() if payment.end_date else None,
    }


def instance_to_dict(inst) -> dict:
    return {
        "id": inst.id,
        "payment_id": inst.payment_id,
        "amount_cents": inst.amount_cents,
        "payment_date": inst.payment_date.isoformat(),
        "installment_number": inst.installment_number,
        "state": inst.state.value,
        "comments": inst.comments,
    }


def goal_to_dict(goal) -> dict:
    return {
        "id": goal.id,
        "type": goal.type.value,
        "currency": goal.currency,
        "name": goal.name,
        "description": goal.description,
        "target_amount_cents": goal.target_amount_cents,
        "current_amount_cents": goal.current_amount_cents,
        "target_date": goal.target_date.isoformat() if goal.target_date else None,
        "color": goal.color,
        "progress": goal_progress(goal),
    }


def totals_to_dict(totals) -> dict:
    return {
        "income_cents": totals.income_cents,
        "expense_cents": totals.expense_cents,
        "balance_cents": totals.balance_cents,
    }


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/categories")
def api_categories(request: Request, db: Session = Depends(get_db)):
    service = CategoryService(db)
    return {
        "items": [category_to_dict(c) for c in service.list_all()],
        "options": [
            {
                "id": opt.id,
                "label": opt.label,
                "is_child": opt.is_child,
                "parent_name": opt.parent_name,
            }
            for opt in service.options(request.query_params.get("q"))
        ],
    }


@app.post("/api/categories", status_code=201)
def api_create_category(payload: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return category_to_dict(category)


@app.patch("/api/categories/{category_id}")
def api_rename_category(
    category_id: int, payload: CategoryRename, db: Session = Depends(get_db)
):
    try:
        category = CategoryService(db).rename(category_id, payload.name)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return category_to_dict(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/payments")
def api_payments(request: Request, db: Session = Depends(get_db)):
    params = request.query_params
    try:
        payment_type = PaymentType(int(params["type"])) if params.get("type") else None
        state = PaymentState(params["state"].upper()) if params.get("state") else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    payments = PaymentService(db).list(
        payment_type, state, finite_only=params.get("finite") == "1"
    )
    return {"items": [payment_to_dict(p) for p in payments]}


@app.post("/api/payments", status_code=201)
def api_create_payment(payload: PaymentIn, db: Session = Depends(get_db)):
    try:
        payment = PaymentService(db).create(payload)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return payment_to_dict(payment)


@app.post("/api/payments/catch-up")
def api_catch_up(db: Session = Depends(get_db)):
    service = PaymentService(db)
    created = service.catch_up()
    return {"instances_created": created, "plans_state_changed": service.reconcile_all()}


@app.get("/api/payments/{payment_id}")
def api_payment_detail(payment_id: int, db: Session = Depends(get_db)):
    try:
        detail = PaymentService(db).detail(payment_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    data = payment_to_dict(detail.payment)
    data.update(
        {
            "category_name": detail.category_name,
            "paid_count": detail.paid_count,
            "paid_cents": detail.paid_cents,
            "instances": [instance_to_dict(i) for i in detail.instances],
        }
    )
    return data


@app.patch("/api/payments/{payment_id}")
def api_patch_payment(
    payment_id: int, payload: PaymentPatch, db: Session = Depends(get_db)
):
    try:
        payment = PaymentService(db).patch(payment_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return payment_to_dict(payment)


@app.delete("/api/payments/{payment_id}", status_code=204)
def api_delete_payment(payment_id: int, db: Session = Depends(get_db)):
    try:
        PaymentService(db).delete(payment_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return Response(status_code=204)


@app.post("/api/payments/{payment_id}/state")
def api_payment_state(
    payment_id: int, payload: PlanStateIn, db: Session = Depends(get_db)
):
    try:
        payment = PaymentService(db).set_state(payment_id, payload.state)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return payment_to_dict(payment)


@app.post("/api/payments/{payment_id}/instances", status_code=201)
def api_add_instance(payment_id: int, db: Session = Depends(get_db)):
    try:
        inst = InstanceService(db).add_to_plan(payment_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return instance_to_dict(inst)


@app.put("/api/payments/{payment_id}/instances")
def api_save_plan_batch(
    payment_id: int, payload: PlanBatchIn, db: Session = Depends(get_db)
):
    try:
        instances = InstanceService(db).save_plan_batch(payment_id, payload.instances)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return {"items": [instance_to_dict(i) for i in instances]}


@app.get("/api/instances")
def api_instances(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    filters = filters_from_request(request)
    PaymentService(db).reconcile_all()
    rows = InstanceService(db).list(period, filters)
    items = []
    for row in rows:
        data = instance_to_dict(row.instance)
        data.update(
            {
                "payment_type": int(row.payment.payment_type),
                "description": row.description,
                "category_name": row.category_name,
                "parent_category_id": row.parent_category_id,
                "installment_label": row.installment_label,
            }
        )
        items.append(data)
    return {
        "period": {"start": period.start.isoformat(), "end": period.end.isoformat()},
        "items": items,
    }


@app.patch("/api/instances/{instance_id}")
def api_edit_instance(
    instance_id: int, payload: InstanceEditIn, db: Session = Depends(get_db)
):
    try:
        changed = InstanceService(db).edit(instance_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return {"items": [instance_to_dict(i) for i in changed]}


@app.post("/api/instances/{instance_id}/state")
def api_instance_state(
    instance_id: int, payload: InstanceStateIn, db: Session = Depends(get_db)
):
    try:
        inst = InstanceService(db).set_state(instance_id, payload.state)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return instance_to_dict(inst)


@app.delete("/api/instances/{instance_id}")
def api_delete_instance(instance_id: int, db: Session = Depends(get_db)):
    try:
        removed = InstanceService(db).delete(instance_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return {"removed": removed}


@app.get("/api/summary")
def api_summary(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    service = SummaryService(db)
    return {
        "period": {"start": period.start.isoformat(), "end": period.end.isoformat()},
        "totals": totals_to_dict(service.totals(period)),
        "counts": service.counts(period),
        "by_category": [
            {
                "category_id": row.category_id,
                "name": row.name,
                "payment_type": int(row.payment_type),
                "amount_cents": row.amount_cents,
            }
            for row in service.by_category(period)
        ],
    }


@app.get("/api/summary/series")
def api_summary_series(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    try:
        mode = ViewMode(request.query_params.get("bucket", "month"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    series = SummaryService(db).series(period, mode)
    return {
        "items": [
            {"start": start.isoformat(), **totals_to_dict(totals)}
            for start, totals in series.items()
        ]
    }


@app.get("/api/periods")
def api_periods(request: Request):
    params = request.query_params
    try:
        mode = ViewMode(params.get("view", "month"))
        reference = date.fromisoformat(params["ref"]) if params.get("ref") else local_today()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    start, end = period_range(reference, mode)
    return {
        "view": mode.value,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "label": navigation_label(reference, mode),
        "prev": step_period(reference, mode, -1).isoformat(),
        "next": step_period(reference, mode, 1).isoformat(),
    }


@app.get("/api/savings/goals")
def api_savings_goals(db: Session = Depends(get_db)):
    return {"items": [goal_to_dict(g) for g in SavingsService(db).list_goals()]}


@app.post("/api/savings/goals", status_code=201)
def api_create_goal(payload: SavingsGoalIn, db: Session = Depends(get_db)):
    try:
        goal = SavingsService(db).create_goal(payload)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return goal_to_dict(goal)


@app.patch("/api/savings/goals/{goal_id}")
def api_update_goal(
    goal_id: int, payload: SavingsGoalPatch, db: Session = Depends(get_db)
):
    try:
        goal = SavingsService(db).update_goal(goal_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return goal_to_dict(goal)


@app.delete("/api/savings/goals/{goal_id}", status_code=204)
def api_delete_goal(goal_id: int, db: Session = Depends(get_db)):
    try:
        SavingsService(db).delete_goal(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/savings/goals/{goal_id}/transactions")
def api_goal_transactions(goal_id: int, db: Session = Depends(get_db)):
    try:
        txns = SavingsService(db).transactions_for(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return {
        "items": [
            {
                "id": txn.id,
                "amount_cents": txn.amount_cents,
                "date": txn.date.isoformat(),
                "type": txn.type.value,
                "notes": txn.notes,
            }
            for txn in txns
        ]
    }


@app.post("/api/savings/goals/{goal_id}/transactions", status_code=201)
def api_add_goal_transaction(
    goal_id: int, payload: SavingsTransactionIn, db: Session = Depends(get_db)
):
    service = SavingsService(db)
    try:
        txn = service.add_transaction(goal_id, payload)
        goal = service.get_goal(goal_id)
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return {"id": txn.id, "goal": goal_to_dict(goal)}


@app.get("/api/savings/totals")
def api_savings_totals(db: Session = Depends(get_db)):
    return {
        "items": [
            {
                "currency": t.currency,
                "saved_cents": t.saved_cents,
                "target_cents": t.target_cents,
                "progress": t.progress,
            }
            for t in SavingsService(db).totals_by_currency()
        ]
    }
