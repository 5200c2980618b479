from __future__ import annotations

import logging
from typing import Dict, List, Optional

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, InlineKeyboardButton, InlineKeyboardMarkup, Message

from feedesk.config import settings
from feedesk.db.models import ManualPayment
from feedesk.db.session import session_scope
from feedesk.payment.manual_transfer import ManualPaymentReviewer
from feedesk.payment.types import (
    AlreadyReviewed,
    AmbiguousAttribution,
    Decision,
    FeeCategory,
    ReviewOutcome,
    ReviewResult,
    SettlementError,
)
from feedesk.services.reconciliation import find_unsettled_payments
from feedesk.services.security import (
    CAP_LEDGER_AUDIT,
    CAP_PAYMENTS_ATTRIBUTE,
    CAP_PAYMENTS_REVIEW,
    get_admin_ids,
    has_capability,
)
from feedesk.utils.money import usd

router = Router()
logger = logging.getLogger(__name__)

NO_ACCESS = "⛔️ You are not allowed to review payments."

_reviewer: Optional[ManualPaymentReviewer] = None

# Admin intent for reject-with-reason: admin_id -> payment_id
_REJECT_REASON_INTENT: Dict[int, int] = {}


def configure_reviewer(reviewer: Optional[ManualPaymentReviewer]) -> None:
    global _reviewer
    _reviewer = reviewer


def get_reviewer() -> ManualPaymentReviewer:
    global _reviewer
    if _reviewer is None:
        _reviewer = ManualPaymentReviewer()
    return _reviewer


def _payment_line(p: ManualPayment) -> str:
    try:
        label = FeeCategory.parse(p.fee_category).label
    except ValueError:
        label = p.fee_category
    ts = p.created_at.strftime("%Y-%m-%d %H:%M") if getattr(p, "created_at", None) else "-"
    line = f"🕒 #{p.id} • {label} • {usd(p.amount)} • student {p.student_id} • {ts}"
    if p.application_id:
        line += f" • application {p.application_id}"
    if p.proof_ref:
        line += f"\nproof: {p.proof_ref}"
    return line


def _review_keyboard(payment_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="Approve ✅", callback_data=f"mpay:approve:{payment_id}"),
                InlineKeyboardButton(text="Reject with reason 📝", callback_data=f"mpay:rejectr:{payment_id}"),
            ]
        ]
    )


def render_review_result(result: ReviewResult) -> str:
    if result.outcome is ReviewOutcome.REJECTED:
        return f"❌ Payment #{result.payment_id} rejected; the student was notified."
    if result.outcome is ReviewOutcome.PARTIAL:
        lines = [
            f"⚠️ Payment #{result.payment_id} is approved but settlement stopped at '{result.failed_step}'.",
            "It is listed under /unsettled until repaired.",
        ]
    else:
        lines = [f"✅ Payment #{result.payment_id} approved • {usd(result.settled_amount or 0)}"]
        if result.application_id is not None:
            lines.append(f"application: {result.application_id}")
        if result.ledger_created:
            lines.append("ledger entry recorded")
        if result.reward_credited:
            lines.append(f"referral reward credited to student {result.referrer_id}")
    for w in result.warnings:
        lines.append(f"• {w}")
    return "\n".join(lines)


def render_settlement_error(payment_id: int, err: SettlementError) -> str:
    if isinstance(err, AlreadyReviewed):
        return f"Payment #{payment_id} was already reviewed."
    if isinstance(err, AmbiguousAttribution):
        options = ", ".join(str(c) for c in err.candidates)
        return (
            f"⚠️ Payment #{payment_id} cannot be attributed: the student has applications {options}.\n"
            f"Attach the right one with /attach_app {payment_id} <application_id> and approve again."
        )
    return f"⚠️ Payment #{payment_id}: {err}"


@router.message(Command("pending_payments"))
async def admin_pending_payments(message: Message) -> None:
    if not (message.from_user and has_capability(message.from_user.id, CAP_PAYMENTS_REVIEW)):
        await message.answer(NO_ACCESS)
        return
    payments = await get_reviewer().list_pending(limit=settings.pending_list_limit)
    if not payments:
        await message.answer("No payments are waiting for review.")
        return
    for p in payments:
        await message.answer(_payment_line(p), reply_markup=_review_keyboard(p.id))


@router.callback_query(F.data.startswith("mpay:approve:"))
async def cb_payment_approve(cb: CallbackQuery) -> None:
    if not (cb.from_user and has_capability(cb.from_user.id, CAP_PAYMENTS_REVIEW)):
        await cb.answer(NO_ACCESS, show_alert=True)
        return
    try:
        payment_id = int(cb.data.split(":")[2])
    except (IndexError, ValueError):
        await cb.answer("⛔️ Invalid payment id", show_alert=True)
        return
    try:
        result = await get_reviewer().review(payment_id, Decision.APPROVE, reviewer_id=cb.from_user.id)
    except SettlementError as e:
        logger.info("admin_payments.approve_refused", extra={"extra": {"payment_id": payment_id, "err": str(e)}})
        await cb.message.answer(render_settlement_error(payment_id, e))
        await cb.answer()
        return
    await cb.message.answer(render_review_result(result))
    await cb.answer("Approved" if result.ok else "Approved with errors")


@router.callback_query(F.data.startswith("mpay:rejectr:"))
async def cb_payment_reject_reason_prompt(cb: CallbackQuery) -> None:
    if not (cb.from_user and has_capability(cb.from_user.id, CAP_PAYMENTS_REVIEW)):
        await cb.answer(NO_ACCESS, show_alert=True)
        return
    try:
        payment_id = int(cb.data.split(":")[2])
    except (IndexError, ValueError):
        await cb.answer("⛔️ Invalid payment id", show_alert=True)
        return
    _REJECT_REASON_INTENT[cb.from_user.id] = payment_id
    await cb.message.answer(f"📝 Send the rejection reason for payment #{payment_id}.")
    await cb.answer()


@router.message(
    lambda m: getattr(m, "from_user", None) is not None
    and m.from_user.id in get_admin_ids()
    and m.from_user.id in _REJECT_REASON_INTENT
    and isinstance(getattr(m, "text", None), str)
    and not m.text.startswith("/")
)
async def admin_payment_reject_with_reason_text(message: Message) -> None:
    admin_id = message.from_user.id
    payment_id = _REJECT_REASON_INTENT.pop(admin_id, None)
    if payment_id is None:
        return
    if not has_capability(admin_id, CAP_PAYMENTS_REVIEW):
        await message.answer(NO_ACCESS)
        return
    reason = message.text.strip()
    try:
        result = await get_reviewer().review(payment_id, Decision.REJECT, reason, reviewer_id=admin_id)
    except SettlementError as e:
        await message.answer(render_settlement_error(payment_id, e))
        return
    await message.answer(render_review_result(result))


@router.message(Command("attach_app"))
async def admin_attach_application(message: Message, command: CommandObject) -> None:
    if not (message.from_user and has_capability(message.from_user.id, CAP_PAYMENTS_ATTRIBUTE)):
        await message.answer(NO_ACCESS)
        return
    parts = (command.args or "").split()
    try:
        payment_id, application_id = int(parts[0]), int(parts[1])
    except (IndexError, ValueError):
        await message.answer("Usage: /attach_app <payment_id> <application_id>")
        return
    try:
        await get_reviewer().attach_application(payment_id, application_id, reviewer_id=message.from_user.id)
    except SettlementError as e:
        await message.answer(render_settlement_error(payment_id, e))
        return
    await message.answer(
        f"Payment #{payment_id} now settles application {application_id}.",
        reply_markup=_review_keyboard(payment_id),
    )


@router.message(Command("payment_note"))
async def admin_payment_note(message: Message, command: CommandObject) -> None:
    if not (message.from_user and has_capability(message.from_user.id, CAP_PAYMENTS_REVIEW)):
        await message.answer(NO_ACCESS)
        return
    raw = (command.args or "").strip()
    head, _, note = raw.partition(" ")
    try:
        payment_id = int(head)
    except ValueError:
        await message.answer("Usage: /payment_note <payment_id> <note>")
        return
    try:
        await get_reviewer().add_admin_note(payment_id, note, reviewer_id=message.from_user.id)
    except SettlementError as e:
        await message.answer(render_settlement_error(payment_id, e))
        return
    await message.answer(f"Note saved on payment #{payment_id}.")


@router.message(Command("unsettled"))
async def admin_unsettled(message: Message) -> None:
    if not (message.from_user and has_capability(message.from_user.id, CAP_LEDGER_AUDIT)):
        await message.answer(NO_ACCESS)
        return
    async with session_scope() as session:
        rows = await find_unsettled_payments(session)
    if not rows:
        await message.answer("Every approved payment has its ledger entry.")
        return
    lines: List[str] = [f"⚠️ {len(rows)} approved payment(s) without a ledger entry:"]
    for r in rows:
        lines.append(f"#{r.payment_id} • {r.fee_category} • {usd(r.amount)} • student {r.student_id}")
    await message.answer("\n".join(lines))
