from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from feedesk.utils.time import utc_naive_now


class FeePackage(Base):
    __tablename__ = "fee_packages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(191))
    selection_process_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    application_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    scholarship_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    i20_control_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class FeeAccount(Base):
    """Per-student fee flags plus the attributes pricing depends on."""

    __tablename__ = "fee_accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(191), default="")
    email: Mapped[str] = mapped_column(String(191), index=True, default="")
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    telegram_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    has_paid_selection_process_fee: Mapped[bool] = mapped_column(Boolean, default=False)
    has_paid_i20_control_fee: Mapped[bool] = mapped_column(Boolean, default=False)
    is_application_fee_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    selection_process_fee_payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    i20_control_fee_payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    dependents: Mapped[int] = mapped_column(Integer, default=0)
    package_id: Mapped[Optional[int]] = mapped_column(ForeignKey("fee_packages.id"), nullable=True)
    selection_process_fee_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    application_fee_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    scholarship_fee_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    i20_control_fee_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    referral_code_used: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    seller_referral_code: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    coin_balance: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now, onupdate=utc_naive_now)


class ScholarshipApplication(Base):
    __tablename__ = "scholarship_applications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"), index=True)
    scholarship_id: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[str] = mapped_column(String(32), default="pending")

    is_application_fee_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    is_scholarship_fee_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    application_fee_payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    scholarship_fee_payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now, onupdate=utc_naive_now)


class ManualPayment(Base):
    __tablename__ = "manual_payments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"), index=True)
    fee_category: Mapped[str] = mapped_column(String(32), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(8), default="USD")
    payment_method: Mapped[str] = mapped_column(String(32), default="zelle")
    # Explicit attribution recorded at submission time or attached later by an operator
    application_id: Mapped[Optional[int]] = mapped_column(ForeignKey("scholarship_applications.id"), nullable=True)
    proof_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(32), index=True, default="pending_verification")
    reviewed_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now, onupdate=utc_naive_now)


class SettlementLedgerEntry(Base):
    __tablename__ = "settlement_ledger"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    payment_id: Mapped[int] = mapped_column(ForeignKey("manual_payments.id"), unique=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"), index=True)
    fee_category: Mapped[str] = mapped_column(String(32))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    source: Mapped[str] = mapped_column(String(16), default="manual")
    session_ref: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)


class FeePaymentRecord(Base):
    """One dated row per approved fee, application fees included."""

    __tablename__ = "fee_payment_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    payment_id: Mapped[int] = mapped_column(ForeignKey("manual_payments.id"), unique=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"), index=True)
    fee_category: Mapped[str] = mapped_column(String(32))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    payment_method: Mapped[str] = mapped_column(String(32), default="zelle")
    application_id: Mapped[Optional[int]] = mapped_column(ForeignKey("scholarship_applications.id"), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)


class ReferralCode(Base):
    __tablename__ = "referral_codes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class RewardLedgerEntry(Base):
    __tablename__ = "reward_ledger"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_student_id", "fee_category", name="uq_reward_ledger_dedup"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    referrer_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"), index=True)
    referred_student_id: Mapped[int] = mapped_column(ForeignKey("fee_accounts.id"))
    fee_category: Mapped[str] = mapped_column(String(32))
    coins: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(64), default="referral")
    payment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("manual_payments.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)


class AffiliateAdmin(Base):
    __tablename__ = "affiliate_admins"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(191), default="")
    email: Mapped[str] = mapped_column(String(191), default="")
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)


class Seller(Base):
    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(191), default="")
    email: Mapped[str] = mapped_column(String(191), default="")
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    referral_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    affiliate_admin_id: Mapped[Optional[int]] = mapped_column(ForeignKey("affiliate_admins.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(String(32))  # admin|student|system
    action: Mapped[str] = mapped_column(String(64))
    target_type: Mapped[str] = mapped_column(String(64))
    target_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    performed_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    meta: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive_now)
