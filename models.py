import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PaymentType(int, Enum):
    income = 1
    expense = 2


class PaymentFrequency(str, Enum):
    once = "ONCE"
    daily = "DAILY"
    weekly = "WEEKLY"
    biweekly = "BIWEEKLY"
    monthly = "MONTHLY"
    yearly = "YEARLY"


class PaymentState(str, Enum):
    active = "ACTIVE"
    paused = "PAUSED"
    cancelled = "CANCELLED"
    completed = "COMPLETED"


class InstanceState(str, Enum):
    pending = "PENDING"
    paid = "PAID"
    cancelled = "CANCELLED"
    overdue = "OVERDUE"


class SavingsGoalType(str, Enum):
    goal = "GOAL"
    fund = "FUND"


class SavingsTransactionType(str, Enum):
    deposit = "DEPOSIT"
    withdrawal = "WITHDRAWAL"


def _values_enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


FREQUENCY_ENUM = _values_enum(PaymentFrequency, "paymentfrequency")
PAYMENT_STATE_ENUM = _values_enum(PaymentState, "paymentstate")
INSTANCE_STATE_ENUM = _values_enum(InstanceState, "instancestate")
GOAL_TYPE_ENUM = _values_enum(SavingsGoalType, "savingsgoaltype")
SAVINGS_TXN_TYPE_ENUM = _values_enum(SavingsTransactionType, "savingstransactiontype")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    parent: Mapped[Optional["Category"]] = relationship(
        "Category", remote_side="Category.id"
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "parent_id", "name", name="uq_category_user_parent_name"
        ),
    )


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_type: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency: Mapped[Optional[PaymentFrequency]] = mapped_column(FREQUENCY_ENUM)
    payment_day: Mapped[Optional[int]] = mapped_column(Integer)
    installments: Mapped[Optional[int]] = mapped_column(Integer)
    state: Mapped[PaymentState] = mapped_column(
        PAYMENT_STATE_ENUM, nullable=False, default=PaymentState.active
    )
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Exclusive; set once the tail of an open-ended series is deleted.
    end_date: Mapped[Optional[date]] = mapped_column(Date)

    category: Mapped["Category"] = relationship("Category")

    @property
    def is_recurring(self) -> bool:
        return self.frequency is not None

    @property
    def is_indefinite(self) -> bool:
        return self.frequency is not None and self.installments is None

    @property
    def is_finite(self) -> bool:
        return self.frequency is not None and self.installments is not None

    __table_args__ = (
        CheckConstraint("total_amount_cents >= 0", name="ck_payment_amount_positive"),
        CheckConstraint(
            "installments IS NULL OR installments > 0",
            name="ck_payment_installments_positive",
        ),
        CheckConstraint("payment_type IN (1, 2)", name="ck_payment_type_known"),
        Index("ix_payments_user_type", "user_id", "payment_type"),
    )


class PaymentInstance(Base, TimestampMixin):
    __tablename__ = "payment_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[InstanceState] = mapped_column(
        INSTANCE_STATE_ENUM, nullable=False, default=InstanceState.pending
    )
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")

    payment: Mapped["Payment"] = relationship("Payment")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_instance_amount_positive"),
        CheckConstraint("installment_number > 0", name="ck_instance_number_positive"),
        Index("ix_instances_date", "payment_date"),
    )


class SavingsGoal(Base, TimestampMixin):
    __tablename__ = "savings_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1, index=True)
    type: Mapped[SavingsGoalType] = mapped_column(GOAL_TYPE_ENUM, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="#3b82f6")

    __table_args__ = (
        CheckConstraint("target_amount_cents >= 0", name="ck_goal_target_positive"),
    )


class SavingsTransaction(Base, TimestampMixin):
    __tablename__ = "savings_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    goal_id: Mapped[int] = mapped_column(
        ForeignKey("savings_goals.id"), nullable=False, index=True
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[SavingsTransactionType] = mapped_column(
        SAVINGS_TXN_TYPE_ENUM, nullable=False
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_savings_txn_amount_positive"),
    )
