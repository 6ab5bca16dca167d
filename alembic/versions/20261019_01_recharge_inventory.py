"""Plans, recharge code inventory, purchases and reminder run audit.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


plan_category_enum = sa.Enum(
    "recharge", "master_qualification", "data_package", "app_plan", name="plan_category_enum"
)
recharge_code_status_enum = sa.Enum("available", "sold", "expired", name="recharge_code_status_enum")
purchase_status_enum = sa.Enum(
    "pending", "approved", "rejected", "expired", "pending_code_delivery", name="purchase_status_enum"
)
payment_method_enum = sa.Enum("credit_card", "pix", name="payment_method_enum")


def upgrade() -> None:
    op.create_table(
        "plans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("validity_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("category", plan_category_enum, nullable=False, server_default="recharge"),
        sa.Column("app_name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "recharge_codes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", recharge_code_status_enum, nullable=False, server_default="available"),
        sa.Column(
            "plan_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("plans.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("app_name", sa.String(), nullable=False),
        sa.Column("import_position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_recharge_codes_code", "recharge_codes", ["code"], unique=True)
    op.create_index(
        "ix_recharge_codes_allocation",
        "recharge_codes",
        ["plan_id", "status", "created_at", "import_position"],
    )

    op.create_table(
        "purchases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column(
            "plan_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("plans.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("reseller_id", sa.String(), nullable=False, server_default="system"),
        sa.Column("recharge_code", sa.String(), nullable=False, server_default=""),
        sa.Column(
            "assigned_code_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("recharge_codes.id", ondelete="RESTRICT"),
            nullable=True,
            unique=True,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", payment_method_enum, nullable=False, server_default="credit_card"),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("status", purchase_status_enum, nullable=False, server_default="pending"),
        sa.Column("code_delivery_failure_reason", sa.String(), nullable=True),
        sa.Column("customer_data", sa.JSON(), nullable=False),
        sa.Column("expiry_reminders", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_purchases_customer_id", "purchases", ["customer_id"])
    op.create_index("ix_purchases_plan_id", "purchases", ["plan_id"])
    op.create_index("ix_purchases_status", "purchases", ["status"])

    op.create_table(
        "expiry_reminder_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("triggered_by", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="running"),
        sa.Column("candidate_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sent_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("expiry_reminder_runs")
    op.drop_index("ix_purchases_status", table_name="purchases")
    op.drop_index("ix_purchases_plan_id", table_name="purchases")
    op.drop_index("ix_purchases_customer_id", table_name="purchases")
    op.drop_table("purchases")
    op.drop_index("ix_recharge_codes_allocation", table_name="recharge_codes")
    op.drop_index("ix_recharge_codes_code", table_name="recharge_codes")
    op.drop_table("recharge_codes")
    op.drop_table("plans")

    bind = op.get_bind()
    for enum_type in (payment_method_enum, purchase_status_enum, recharge_code_status_enum, plan_category_enum):
        enum_type.drop(bind, checkfirst=True)
