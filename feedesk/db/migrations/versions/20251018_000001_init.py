from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20251018_000001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "fee_packages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=191), nullable=False),
        sa.Column("selection_process_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("application_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("scholarship_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("i20_control_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
    )

    op.create_table(
        "fee_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=True),
        sa.Column("has_paid_selection_process_fee", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_paid_i20_control_fee", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_application_fee_paid", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("selection_process_fee_payment_method", sa.String(length=32), nullable=True),
        sa.Column("i20_control_fee_payment_method", sa.String(length=32), nullable=True),
        sa.Column("dependents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("package_id", sa.Integer(), sa.ForeignKey("fee_packages.id"), nullable=True),
        sa.Column("selection_process_fee_override", sa.Numeric(12, 2), nullable=True),
        sa.Column("application_fee_override", sa.Numeric(12, 2), nullable=True),
        sa.Column("scholarship_fee_override", sa.Numeric(12, 2), nullable=True),
        sa.Column("i20_control_fee_override", sa.Numeric(12, 2), nullable=True),
        sa.Column("referral_code_used", sa.String(length=64), nullable=True),
        sa.Column("seller_referral_code", sa.String(length=64), nullable=True),
        sa.Column("coin_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_fee_accounts_email", "fee_accounts", ["email"])
    op.create_index("ix_fee_accounts_seller_referral_code", "fee_accounts", ["seller_referral_code"])

    op.create_table(
        "scholarship_applications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("scholarship_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("is_application_fee_paid", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_scholarship_fee_paid", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("application_fee_payment_method", sa.String(length=32), nullable=True),
        sa.Column("scholarship_fee_payment_method", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_scholarship_applications_student_id", "scholarship_applications", ["student_id"])
    op.create_index("ix_scholarship_applications_scholarship_id", "scholarship_applications", ["scholarship_id"])

    op.create_table(
        "manual_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("fee_category", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("payment_method", sa.String(length=32), nullable=False, server_default="zelle"),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("scholarship_applications.id"), nullable=True),
        sa.Column("proof_ref", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending_verification"),
        sa.Column("reviewed_by", sa.BigInteger(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_manual_payments_student_id", "manual_payments", ["student_id"])
    op.create_index("ix_manual_payments_fee_category", "manual_payments", ["fee_category"])
    op.create_index("ix_manual_payments_status", "manual_payments", ["status"])

    op.create_table(
        "settlement_ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("manual_payments.id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("fee_category", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="manual"),
        sa.Column("session_ref", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("payment_id"),
    )
    op.create_index("ix_settlement_ledger_student_id", "settlement_ledger", ["student_id"])

    op.create_table(
        "referral_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
    )
    op.create_index("ix_referral_codes_code", "referral_codes", ["code"], unique=True)

    op.create_table(
        "reward_ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("referrer_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("referred_student_id", sa.Integer(), sa.ForeignKey("fee_accounts.id"), nullable=False),
        sa.Column("fee_category", sa.String(length=32), nullable=False),
        sa.Column("coins", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=64), nullable=False, server_default="referral"),
        sa.Column("payment_id", sa.Integer(), sa.ForeignKey("manual_payments.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("referrer_id", "referred_student_id", "fee_category", name="uq_reward_ledger_dedup"),
    )
    op.create_index("ix_reward_ledger_referrer_id", "reward_ledger", ["referrer_id"])

    op.create_table(
        "affiliate_admins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=32), nullable=True),
    )

    op.create_table(
        "sellers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=191), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("referral_code", sa.String(length=64), nullable=False),
        sa.Column("affiliate_admin_id", sa.Integer(), sa.ForeignKey("affiliate_admins.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
    )
    op.create_index("ix_sellers_referral_code", "sellers", ["referral_code"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=32), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("performed_by", sa.BigInteger(), nullable=True),
        sa.Column("meta", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_index("ix_sellers_referral_code", table_name="sellers")
    op.drop_table("sellers")
    op.drop_table("affiliate_admins")
    op.drop_index("ix_reward_ledger_referrer_id", table_name="reward_ledger")
    op.drop_table("reward_ledger")
    op.drop_index("ix_referral_codes_code", table_name="referral_codes")
    op.drop_table("referral_codes")
    op.drop_index("ix_settlement_ledger_student_id", table_name="settlement_ledger")
    op.drop_table("settlement_ledger")
    op.drop_index("ix_manual_payments_status", table_name="manual_payments")
    op.drop_index("ix_manual_payments_fee_category", table_name="manual_payments")
    op.drop_index("ix_manual_payments_student_id", table_name="manual_payments")
    op.drop_table("manual_payments")
    op.drop_index("ix_scholarship_applications_scholarship_id", table_name="scholarship_applications")
    op.drop_index("ix_scholarship_applications_student_id", table_name="scholarship_applications")
    op.drop_table("scholarship_applications")
    op.drop_index("ix_fee_accounts_seller_referral_code", table_name="fee_accounts")
    op.drop_index("ix_fee_accounts_email", table_name="fee_accounts")
    op.drop_table("fee_accounts")
    op.drop_table("fee_packages")
