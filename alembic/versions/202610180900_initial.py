"""initial schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id")),
        *_audit_columns(),
        sa.UniqueConstraint(
            "user_id", "parent_id", "name", name="uq_category_user_parent_name"
        ),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_type", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "ONCE",
                "DAILY",
                "WEEKLY",
                "BIWEEKLY",
                "MONTHLY",
                "YEARLY",
                name="paymentfrequency",
            ),
        ),
        sa.Column("payment_day", sa.Integer()),
        sa.Column("installments", sa.Integer()),
        sa.Column(
            "state",
            sa.Enum("ACTIVE", "PAUSED", "CANCELLED", "COMPLETED", name="paymentstate"),
            nullable=False,
            server_default="ACTIVE",
        ),
        sa.Column("comments", sa.Text(), nullable=False, server_default=""),
        *_audit_columns(),
        sa.CheckConstraint("total_amount_cents >= 0", name="ck_payment_amount_positive"),
        sa.CheckConstraint(
            "installments IS NULL OR installments > 0",
            name="ck_payment_installments_positive",
        ),
        sa.CheckConstraint("payment_type IN (1, 2)", name="ck_payment_type_known"),
    )
    op.create_index("ix_payments_user_type", "payments", ["user_id", "payment_type"])

    op.create_table(
        "payment_instances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "payment_id", sa.Integer(), sa.ForeignKey("payments.id"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column(
            "state",
            sa.Enum("PENDING", "PAID", "CANCELLED", "OVERDUE", name="instancestate"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("comments", sa.Text(), nullable=False, server_default=""),
        *_audit_columns(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_instance_amount_positive"),
        sa.CheckConstraint(
            "installment_number > 0", name="ck_instance_number_positive"
        ),
    )
    op.create_index(
        "ix_payment_instances_payment_id", "payment_instances", ["payment_id"]
    )
    op.create_index("ix_instances_date", "payment_instances", ["payment_date"])

    op.create_table(
        "savings_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "type", sa.Enum("GOAL", "FUND", name="savingsgoaltype"), nullable=False
        ),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "target_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("target_date", sa.Date()),
        sa.Column(
            "color", sa.String(length=9), nullable=False, server_default="#3b82f6"
        ),
        *_audit_columns(),
        sa.CheckConstraint("target_amount_cents >= 0", name="ck_goal_target_positive"),
    )
    op.create_index("ix_savings_goals_user_id", "savings_goals", ["user_id"])

    op.create_table(
        "savings_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "goal_id", sa.Integer(), sa.ForeignKey("savings_goals.id"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("DEPOSIT", "WITHDRAWAL", name="savingstransactiontype"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        *_audit_columns(),
        sa.CheckConstraint("amount_cents > 0", name="ck_savings_txn_amount_positive"),
    )
    op.create_index(
        "ix_savings_transactions_goal_id", "savings_transactions", ["goal_id"]
    )


def downgrade():
    op.drop_index("ix_savings_transactions_goal_id", table_name="savings_transactions")
    op.drop_table("savings_transactions")
    op.drop_index("ix_savings_goals_user_id", table_name="savings_goals")
    op.drop_table("savings_goals")
    op.drop_index("ix_instances_date", table_name="payment_instances")
    op.drop_index("ix_payment_instances_payment_id", table_name="payment_instances")
    op.drop_table("payment_instances")
    op.drop_index("ix_payments_user_type", table_name="payments")
    op.drop_table("payments")
    op.drop_table("categories")
