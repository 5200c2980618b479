"""
Manual transfer payment review.

A student uploads a transfer receipt outside the card path; an admin approves or rejects
it here. Approval is a saga over independently committed steps:

    status transition -> fee flags -> settlement ledger -> referral reward -> notifications

The transition is the concurrency guard (conditional UPDATE on the pending status) and is
committed first. Every later step is idempotent, so a payment left Approved without its
ledger entry is detectable (see services.reconciliation) instead of silently half-settled.
Attribution and pricing are resolved before the transition so that an ambiguous payment
stays pending for the operator to fix.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.config import settings
from feedesk.db.models import AffiliateAdmin, FeeAccount, ManualPayment, ScholarshipApplication, Seller
from feedesk.db.session import session_scope
from feedesk.payment.types import (
    AlreadyReviewed,
    AttributionNotApplicable,
    Decision,
    FeeCategory,
    InvalidDecision,
    NotFound,
    PaymentStatus,
    PersistenceFailure,
    ReviewOutcome,
    ReviewResult,
)
from feedesk.services import fee_payments, fee_state, settlement_ledger
from feedesk.services.attribution import resolve_application
from feedesk.services.audit import log_audit
from feedesk.services.notifications import (
    AdminSummary,
    AffiliateAdminSummary,
    NotificationDispatcher,
    NotificationEvent,
    OpsAlert,
    PayerDecisionNotice,
    ReferralRewardNotice,
    SellerSummary,
    UniversityFeePaid,
)
from feedesk.services.pricing import amount_owed, load_pricing_context
from feedesk.services.rewards import credit_referral_reward
from feedesk.utils.correlation import correlation_scope
from feedesk.utils.money import to_money
from feedesk.utils.time import utc_naive_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class _SettlementPlan:
    payment_id: int
    student_id: int
    category: FeeCategory
    submitted_amount: Decimal
    amount: Decimal
    payment_method: str
    application_id: Optional[int] = None
    scholarship_id: Optional[int] = None
    approved_at: Optional[datetime] = None

    def require_application(self) -> int:
        if self.application_id is None:
            raise NotFound("application for payment", self.payment_id)
        return self.application_id


@dataclass
class _Contacts:
    student: FeeAccount
    seller: Optional[Seller] = None
    affiliate_admin: Optional[AffiliateAdmin] = None
    referrer: Optional[FeeAccount] = None


def _coerce_decision(decision: Union[Decision, str]) -> Decision:
    if isinstance(decision, Decision):
        return decision
    try:
        return Decision(str(decision).strip().lower())
    except ValueError:
        raise InvalidDecision(f"unknown decision: {decision!r}") from None


class ManualPaymentReviewer:
    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        session_factory: SessionFactory = session_scope,
    ) -> None:
        self.dispatcher = dispatcher or NotificationDispatcher()
        self._session_factory = session_factory

    # ---------------- queue / operator helpers ---------------- #

    async def list_pending(self, limit: int = 10) -> Sequence[ManualPayment]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ManualPayment)
                .where(ManualPayment.status == PaymentStatus.PENDING_VERIFICATION.value)
                .order_by(ManualPayment.created_at, ManualPayment.id)
                .limit(limit)
            )
            return list(rows)

    async def attach_application(self, payment_id: int, application_id: int, *, reviewer_id: Optional[int] = None) -> None:
        """Operator correction for AmbiguousAttribution: pin the payment to one application."""
        async with self._session_factory() as session:
            payment = await session.get(ManualPayment, payment_id)
            if payment is None:
                raise NotFound("payment", payment_id)
            category = FeeCategory.parse(payment.fee_category)
            if not category.application_scoped:
                raise AttributionNotApplicable(payment_id, category.value)
            app = await session.get(ScholarshipApplication, application_id)
            if app is None or app.student_id != payment.student_id:
                raise NotFound("application", application_id)
            res = await session.execute(
                update(ManualPayment)
                .where(
                    ManualPayment.id == payment_id,
                    ManualPayment.status == PaymentStatus.PENDING_VERIFICATION.value,
                )
                .values(application_id=application_id, updated_at=utc_naive_now())
                .execution_options(synchronize_session=False)
            )
            if (res.rowcount or 0) == 0:
                raise AlreadyReviewed(payment_id, payment.status)
            await log_audit(
                session,
                actor="admin",
                action="manual_payment_attributed",
                target_type="manual_payment",
                target_id=payment_id,
                performed_by=reviewer_id,
                meta={"application_id": application_id},
            )
            await session.commit()
        logger.info(
            "review.attach_application",
            extra={"extra": {"payment_id": payment_id, "application_id": application_id, "admin_id": reviewer_id}},
        )

    async def add_admin_note(self, payment_id: int, note: str, *, reviewer_id: Optional[int] = None) -> None:
        """Append a timestamped operator note; earlier notes are kept."""
        text = (note or "").strip()
        if not text:
            raise InvalidDecision("an admin note cannot be blank")
        async with self._session_factory() as session:
            payment = await session.get(ManualPayment, payment_id)
            if payment is None:
                raise NotFound("payment", payment_id)
            now = utc_naive_now()
            line = f"[{now:%Y-%m-%d %H:%M} UTC] admin {reviewer_id if reviewer_id is not None else '-'}: {text}"
            previous = (payment.admin_notes or "").rstrip()
            await session.execute(
                update(ManualPayment)
                .where(ManualPayment.id == payment_id)
                .values(admin_notes=f"{previous}\n{line}" if previous else line, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await log_audit(
                session,
                actor="admin",
                action="manual_payment_note",
                target_type="manual_payment",
                target_id=payment_id,
                performed_by=reviewer_id,
                meta={"note": text},
            )
            await session.commit()

    # ---------------- review ---------------- #

    async def review(
        self,
        payment_id: int,
        decision: Union[Decision, str],
        reason: Optional[str] = None,
        *,
        reviewer_id: Optional[int] = None,
    ) -> ReviewResult:
        decision = _coerce_decision(decision)
        reason = (reason or "").strip() or None
        if decision is Decision.REJECT and not reason:
            raise InvalidDecision("a reason is required to reject a payment")

        with correlation_scope():
            logger.info(
                "review.start",
                extra={"extra": {"payment_id": payment_id, "decision": decision.value, "admin_id": reviewer_id}},
            )
            async with self._session_factory() as session:
                payment = await session.get(ManualPayment, payment_id)
                if payment is None:
                    raise NotFound("payment", payment_id)
                if payment.status != PaymentStatus.PENDING_VERIFICATION.value:
                    raise AlreadyReviewed(payment_id, payment.status)
                category = FeeCategory.parse(payment.fee_category)

                if decision is Decision.REJECT:
                    return await self._reject(session, payment, category, reason or "", reviewer_id)

                plan = await self._prepare(session, payment, category)
                plan.approved_at = await self._transition_to_approved(session, payment_id, reviewer_id)
                result = ReviewResult(
                    payment_id=payment_id,
                    outcome=ReviewOutcome.APPROVED,
                    status=PaymentStatus.APPROVED,
                    settled_amount=plan.amount,
                    application_id=plan.application_id,
                )
                await self._settle(session, plan, result, reviewer_id)
                contacts = await self._load_contacts(session, plan, result)

            await self._notify_approval(plan, result, contacts)
            logger.info(
                "review.done",
                extra={
                    "extra": {
                        "payment_id": payment_id,
                        "outcome": result.outcome.value,
                        "amount": str(result.settled_amount),
                        "application_id": result.application_id,
                        "warnings": len(result.warnings),
                    }
                },
            )
            return result

    async def _reject(
        self,
        session: AsyncSession,
        payment: ManualPayment,
        category: FeeCategory,
        reason: str,
        reviewer_id: Optional[int],
    ) -> ReviewResult:
        res = await session.execute(
            update(ManualPayment)
            .where(
                ManualPayment.id == payment.id,
                ManualPayment.status == PaymentStatus.PENDING_VERIFICATION.value,
            )
            .values(
                status=PaymentStatus.REJECTED.value,
                rejection_reason=reason,
                reviewed_by=reviewer_id,
                reviewed_at=utc_naive_now(),
                updated_at=utc_naive_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if (res.rowcount or 0) == 0:
            await session.rollback()
            raise AlreadyReviewed(payment.id)
        await log_audit(
            session,
            actor="admin",
            action="manual_payment_rejected",
            target_type="manual_payment",
            target_id=payment.id,
            performed_by=reviewer_id,
            meta={"fee_category": category.value, "reason": reason},
        )
        await session.commit()
        logger.info("review.rejected", extra={"extra": {"payment_id": payment.id, "admin_id": reviewer_id}})

        result = ReviewResult(payment_id=payment.id, outcome=ReviewOutcome.REJECTED, status=PaymentStatus.REJECTED)
        student = await session.get(FeeAccount, payment.student_id)
        await self._emit(
            result,
            [
                PayerDecisionNotice(
                    payment_id=payment.id,
                    fee_category=category,
                    amount=to_money(payment.amount),
                    approved=False,
                    payer_email=student.email if student else "",
                    payer_name=student.full_name if student else "",
                    payer_telegram_id=student.telegram_id if student else None,
                    reason=reason,
                    reviewer_id=reviewer_id,
                )
            ],
        )
        return result

    async def _prepare(self, session: AsyncSession, payment: ManualPayment, category: FeeCategory) -> _SettlementPlan:
        """Read-only pre-flight: everything that can refuse an approval happens before the transition."""
        account = await session.get(FeeAccount, payment.student_id)
        if account is None:
            raise NotFound("student", payment.student_id)

        application_id: Optional[int] = None
        scholarship_id: Optional[int] = None
        if category.application_scoped:
            application_id = await resolve_application(session, account.id, payment.application_id)
            app = await session.get(ScholarshipApplication, application_id)
            scholarship_id = app.scholarship_id if app else None

        submitted = to_money(payment.amount)
        if category.posts_to_ledger:
            ctx = await load_pricing_context(session, account)
            amount = amount_owed(ctx, category)
            if amount != submitted:
                logger.warning(
                    "review.amount_mismatch",
                    extra={
                        "extra": {
                            "payment_id": payment.id,
                            "submitted": str(submitted),
                            "priced": str(amount),
                            "fee_category": category.value,
                        }
                    },
                )
        else:
            amount = submitted

        return _SettlementPlan(
            payment_id=payment.id,
            student_id=account.id,
            category=category,
            submitted_amount=submitted,
            amount=amount,
            payment_method=payment.payment_method or "zelle",
            application_id=application_id,
            scholarship_id=scholarship_id,
        )

    async def _transition_to_approved(self, session: AsyncSession, payment_id: int, reviewer_id: Optional[int]) -> datetime:
        # Ensure pending -> approved transition is atomic; the loser of a race gets AlreadyReviewed
        now = utc_naive_now()
        res = await session.execute(
            update(ManualPayment)
            .where(
                ManualPayment.id == payment_id,
                ManualPayment.status == PaymentStatus.PENDING_VERIFICATION.value,
            )
            .values(
                status=PaymentStatus.APPROVED.value,
                reviewed_by=reviewer_id,
                reviewed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if (res.rowcount or 0) == 0:
            await session.rollback()
            raise AlreadyReviewed(payment_id)
        await session.commit()
        logger.info("review.approved", extra={"extra": {"payment_id": payment_id, "admin_id": reviewer_id}})
        return now

    async def _settle(
        self,
        session: AsyncSession,
        plan: _SettlementPlan,
        result: ReviewResult,
        reviewer_id: Optional[int],
    ) -> None:
        try:
            await self._apply_fee_flags(session, plan, reviewer_id)
            await session.commit()
        except (SQLAlchemyError, NotFound) as e:
            await self._fail_step(session, plan, result, "fee_flags", e)
            return

        if plan.category.posts_to_ledger:
            try:
                rec = await settlement_ledger.record(
                    session, plan.payment_id, plan.student_id, plan.category, plan.amount
                )
                await session.commit()
                result.ledger_created = rec.created
            except SQLAlchemyError as e:
                await self._fail_step(session, plan, result, "ledger", e)
                return

        if plan.category is FeeCategory.SELECTION_PROCESS:
            try:
                reward = await credit_referral_reward(
                    session, plan.student_id, fee_category=plan.category, payment_id=plan.payment_id
                )
                await session.commit()
                result.reward_credited = reward.credited
                result.referrer_id = reward.referrer_id if reward.credited else None
            except Exception as e:
                await session.rollback()
                logger.exception("review.reward_failed", extra={"extra": {"payment_id": plan.payment_id}})
                result.warnings.append(f"referral reward not credited: {e}")

    async def _apply_fee_flags(self, session: AsyncSession, plan: _SettlementPlan, reviewer_id: Optional[int]) -> None:
        category = plan.category
        if category is FeeCategory.SELECTION_PROCESS or category is FeeCategory.I20_CONTROL:
            await fee_state.mark_student_fee_paid(
                session, plan.student_id, category, payment_method=plan.payment_method
            )
        elif category is FeeCategory.APPLICATION:
            await fee_state.mark_application_fee_paid(
                session, plan.require_application(), category, payment_method=plan.payment_method
            )
            await fee_state.mark_student_fee_paid(session, plan.student_id, category)
        elif category is FeeCategory.SCHOLARSHIP:
            await fee_state.mark_application_fee_paid(
                session, plan.require_application(), category, payment_method=plan.payment_method
            )
        else:  # pragma: no cover - FeeCategory is closed
            raise ValueError(category)
        await fee_payments.record_fee_payment(
            session,
            payment_id=plan.payment_id,
            student_id=plan.student_id,
            fee_category=category,
            amount=plan.amount,
            paid_at=plan.approved_at or utc_naive_now(),
            payment_method=plan.payment_method,
            application_id=plan.application_id,
        )
        await log_audit(
            session,
            actor="admin",
            action="fee_payment",
            target_type="fee_account",
            target_id=plan.student_id,
            performed_by=reviewer_id,
            meta={
                "description": f"{category.label} paid via {plan.payment_method} (approved by admin)",
                "fee_category": category.value,
                "payment_method": plan.payment_method,
                "amount": str(plan.amount),
                "payment_id": plan.payment_id,
                "application_id": plan.application_id,
                "scholarship_id": plan.scholarship_id,
            },
        )

    async def _fail_step(
        self,
        session: AsyncSession,
        plan: _SettlementPlan,
        result: ReviewResult,
        step: str,
        cause: BaseException,
    ) -> None:
        await session.rollback()
        failure = PersistenceFailure(step, cause)
        logger.error(
            "review.partial",
            extra={"extra": {"payment_id": plan.payment_id, "step": step, "err": str(cause)}},
        )
        result.outcome = ReviewOutcome.PARTIAL
        result.failed_step = step
        result.warnings.append(str(failure))

    async def _load_contacts(self, session: AsyncSession, plan: _SettlementPlan, result: ReviewResult) -> Optional[_Contacts]:
        try:
            student = await session.get(FeeAccount, plan.student_id)
            if student is None:
                return None
            contacts = _Contacts(student=student)
            code = (student.seller_referral_code or "").strip()
            if code:
                contacts.seller = await session.scalar(select(Seller).where(Seller.referral_code == code))
            if contacts.seller is not None and contacts.seller.affiliate_admin_id is not None:
                contacts.affiliate_admin = await session.get(AffiliateAdmin, contacts.seller.affiliate_admin_id)
            if result.referrer_id is not None:
                contacts.referrer = await session.get(FeeAccount, result.referrer_id)
            return contacts
        except SQLAlchemyError as e:
            logger.warning(
                "review.contacts_failed",
                extra={"extra": {"payment_id": plan.payment_id, "err": str(e)}},
            )
            result.warnings.append(f"notification recipients unavailable: {e}")
            return None

    async def _notify_approval(self, plan: _SettlementPlan, result: ReviewResult, contacts: Optional[_Contacts]) -> None:
        if result.outcome is ReviewOutcome.PARTIAL:
            await self._emit(
                result,
                [
                    OpsAlert(
                        payment_id=plan.payment_id,
                        message=f"approved but {result.failed_step} step failed; settlement needs repair",
                        details={"fee_category": plan.category.value, "student_id": plan.student_id},
                    )
                ],
            )
            return

        events: List[NotificationEvent] = []
        student = contacts.student if contacts else None
        student_name = student.full_name if student else ""
        events.append(
            PayerDecisionNotice(
                payment_id=plan.payment_id,
                fee_category=plan.category,
                amount=plan.amount,
                approved=True,
                payer_email=student.email if student else "",
                payer_name=student_name,
                payer_telegram_id=student.telegram_id if student else None,
            )
        )
        seller = contacts.seller if contacts else None
        affiliate_admin = contacts.affiliate_admin if contacts else None
        events.append(
            AdminSummary(
                payment_id=plan.payment_id,
                fee_category=plan.category,
                amount=plan.amount,
                student_name=student_name,
                student_email=student.email if student else "",
                seller_name=seller.name if seller else None,
                seller_email=seller.email if seller else None,
                referral_code=seller.referral_code if seller else None,
                affiliate_admin_email=affiliate_admin.email if affiliate_admin else None,
            )
        )
        if seller is not None:
            if affiliate_admin is not None and affiliate_admin.email:
                events.append(
                    AffiliateAdminSummary(
                        payment_id=plan.payment_id,
                        fee_category=plan.category,
                        amount=plan.amount,
                        affiliate_admin_email=affiliate_admin.email,
                        affiliate_admin_name=affiliate_admin.name,
                        student_name=student_name,
                        seller_name=seller.name,
                        referral_code=seller.referral_code,
                    )
                )
            events.append(
                SellerSummary(
                    payment_id=plan.payment_id,
                    fee_category=plan.category,
                    amount=plan.amount,
                    seller_email=seller.email,
                    seller_name=seller.name,
                    student_name=student_name,
                    referral_code=seller.referral_code,
                )
            )
        if result.reward_credited and result.referrer_id is not None:
            referrer = contacts.referrer if contacts else None
            events.append(
                ReferralRewardNotice(
                    referrer_id=result.referrer_id,
                    referred_student_id=plan.student_id,
                    coins=settings.referral_reward_coins,
                    referrer_email=referrer.email if referrer else "",
                    referrer_name=referrer.full_name if referrer else "",
                    referred_student_name=student_name,
                )
            )
        if plan.category.application_scoped and plan.application_id is not None:
            events.append(
                UniversityFeePaid(
                    fee_category=plan.category,
                    application_id=plan.application_id,
                    student_id=plan.student_id,
                    scholarship_id=plan.scholarship_id,
                )
            )
        await self._emit(result, events)

    async def _emit(self, result: ReviewResult, events: Sequence[NotificationEvent]) -> None:
        for event in events:
            warning = await self.dispatcher.dispatch(event)
            if warning:
                result.warnings.append(warning)
