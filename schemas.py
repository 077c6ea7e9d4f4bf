import datetime as dt
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import (
    InstanceState,
    PaymentFrequency,
    PaymentState,
    PaymentType,
    SavingsGoalType,
    SavingsTransactionType,
)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: Optional[int] = None


class CategoryRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class PaymentIn(BaseModel):
    total_amount_cents: int = Field(..., gt=0)
    payment_type: PaymentType
    category_id: int
    start_date: date
    frequency: Optional[PaymentFrequency] = None
    payment_day: Optional[int] = None
    installments: Optional[int] = None
    comments: str = Field(default="", max_length=500)


class PaymentPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    total_amount_cents: Optional[int] = Field(default=None, gt=0)
    category_id: Optional[int] = None
    comments: Optional[str] = Field(default=None, max_length=500)


class PlanStateIn(BaseModel):
    state: PaymentState


class InstanceEditIn(BaseModel):
    amount_cents: int = Field(..., ge=0)
    comments: str = Field(default="", max_length=500)
    category_id: Optional[int] = None


class InstanceStateIn(BaseModel):
    state: InstanceState


class WorkingInstanceIn(BaseModel):
    id: Optional[int] = None
    payment_date: date
    state: InstanceState = InstanceState.pending
    amount_cents: Optional[int] = Field(default=None, ge=0)
    comments: Optional[str] = Field(default=None, max_length=500)


class PlanBatchIn(BaseModel):
    instances: list[WorkingInstanceIn]


class InstanceFilters(BaseModel):
    payment_type: Optional[PaymentType] = None
    category_id: Optional[int] = None
    state: Optional[InstanceState] = None
    query: Optional[str] = None
    sort: Literal["asc", "desc"] = "asc"


class SavingsGoalIn(BaseModel):
    type: SavingsGoalType = SavingsGoalType.fund
    currency: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=500)
    target_amount_cents: int = Field(default=0, ge=0)
    initial_amount_cents: int = Field(default=0, ge=0)
    target_date: Optional[date] = None
    color: str = Field(default="#3b82f6", max_length=9)


class SavingsGoalPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[SavingsGoalType] = None
    currency: Optional[str] = Field(default=None, min_length=1, max_length=10)
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=500)
    target_amount_cents: Optional[int] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    color: Optional[str] = Field(default=None, max_length=9)


class SavingsTransactionIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    type: SavingsTransactionType
    date: Optional[dt.date] = None
    notes: str = Field(default="", max_length=500)
