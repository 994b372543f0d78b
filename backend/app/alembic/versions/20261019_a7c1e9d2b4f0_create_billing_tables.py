"""create billing tables

Revision ID: a7c1e9d2b4f0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a7c1e9d2b4f0"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("(CURRENT_TIMESTAMP)"),
        nullable=True,
    )


def upgrade() -> None:
    op.create_table(
        "payment_methods",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("customer_uid", sa.String(length=128), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("details", sa.JSON(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_payment_methods_business_id"), "payment_methods", ["business_id"], unique=False
    )
    op.create_index(
        op.f("ix_payment_methods_customer_uid"), "payment_methods", ["customer_uid"], unique=True
    )

    op.create_table(
        "payment_schedules",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("merchant_uid", sa.String(length=128), nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("payment_type", sa.String(length=20), nullable=False),
        sa.Column("billing_plan", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("vat", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="SCHEDULED"),
        sa.Column("failures", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("time_scheduled", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_processed", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", "sequence", name="uq_schedule_sequence"),
    )
    op.create_index(
        op.f("ix_payment_schedules_merchant_uid"),
        "payment_schedules",
        ["merchant_uid"],
        unique=True,
    )
    op.create_index(
        op.f("ix_payment_schedules_business_id"),
        "payment_schedules",
        ["business_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_payment_schedules_scheduled_date"),
        "payment_schedules",
        ["scheduled_date"],
        unique=False,
    )
    op.create_index(
        op.f("ix_payment_schedules_status"), "payment_schedules", ["status"], unique=False
    )

    op.create_table(
        "active_cycles",
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("merchant_uid", sa.String(length=128), nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("business_id"),
    )

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("external_reference", sa.String(length=128), nullable=False),
        sa.Column("merchant_uid", sa.String(length=128), nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("payment_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="KRW"),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("provider_payload", sa.JSON(), nullable=True),
        sa.Column("time_settled", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "external_reference", "merchant_uid", "status", name="uq_transaction_outcome"
        ),
    )
    op.create_index(
        op.f("ix_payment_transactions_external_reference"),
        "payment_transactions",
        ["external_reference"],
        unique=False,
    )
    op.create_index(
        op.f("ix_payment_transactions_merchant_uid"),
        "payment_transactions",
        ["merchant_uid"],
        unique=False,
    )
    op.create_index(
        op.f("ix_payment_transactions_business_id"),
        "payment_transactions",
        ["business_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        op.f("ix_payment_transactions_business_id"), table_name="payment_transactions"
    )
    op.drop_index(
        op.f("ix_payment_transactions_merchant_uid"), table_name="payment_transactions"
    )
    op.drop_index(
        op.f("ix_payment_transactions_external_reference"), table_name="payment_transactions"
    )
    op.drop_table("payment_transactions")
    op.drop_table("active_cycles")
    op.drop_index(op.f("ix_payment_schedules_status"), table_name="payment_schedules")
    op.drop_index(op.f("ix_payment_schedules_scheduled_date"), table_name="payment_schedules")
    op.drop_index(op.f("ix_payment_schedules_business_id"), table_name="payment_schedules")
    op.drop_index(op.f("ix_payment_schedules_merchant_uid"), table_name="payment_schedules")
    op.drop_table("payment_schedules")
    op.drop_index(op.f("ix_payment_methods_customer_uid"), table_name="payment_methods")
    op.drop_index(op.f("ix_payment_methods_business_id"), table_name="payment_methods")
    op.drop_table("payment_methods")
