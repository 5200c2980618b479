from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20251018_000002_fee_payment_records"
down_revision = "20251018_000001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "fee_payment_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("manual_payments.id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("fee_category", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False, server_default="zelle"),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("scholarship_applications.id"), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("payment_id"),
    )
    op.create_index("ix_fee_payment_records_student_id", "fee_payment_records", ["student_id"])


def downgrade() -> None:
    op.drop_index("ix_fee_payment_records_student_id", table_name="fee_payment_records")
    op.drop_table("fee_payment_records")
