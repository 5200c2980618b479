from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.config import settings
from feedesk.db.models import FeeAccount, ReferralCode, RewardLedgerEntry
from feedesk.payment.types import FeeCategory

logger = logging.getLogger(__name__)


@dataclass
class RewardResult:
    credited: bool
    referrer_id: Optional[int] = None
    coins: int = 0
    skipped: Optional[str] = None


async def _already_credited(
    session: AsyncSession, referrer_id: int, referred_student_id: int, fee_category: FeeCategory
) -> bool:
    existing = await session.scalar(
        select(RewardLedgerEntry.id).where(
            RewardLedgerEntry.referrer_id == referrer_id,
            RewardLedgerEntry.referred_student_id == referred_student_id,
            RewardLedgerEntry.fee_category == fee_category.value,
        )
    )
    return existing is not None


async def credit_referral_reward(
    session: AsyncSession,
    referred_student_id: int,
    *,
    fee_category: FeeCategory = FeeCategory.SELECTION_PROCESS,
    payment_id: Optional[int] = None,
) -> RewardResult:
    """Credit the fixed referral reward to whoever owns the code the student signed up with.

    Every "no credit" path is a normal outcome, not an error. One credit per
    (referrer, referred student, fee category); a repeat returns credited=False.
    """
    if fee_category is not FeeCategory.SELECTION_PROCESS:
        return RewardResult(credited=False, skipped="category")

    code_used = await session.scalar(
        select(FeeAccount.referral_code_used).where(FeeAccount.id == referred_student_id)
    )
    code_used = (code_used or "").strip()
    if not code_used:
        return RewardResult(credited=False, skipped="no_code")

    code = await session.scalar(
        select(ReferralCode).where(ReferralCode.code == code_used, ReferralCode.is_active.is_(True))
    )
    if code is None:
        return RewardResult(credited=False, skipped="inactive_code")
    referrer_id = code.owner_id
    if referrer_id == referred_student_id:
        logger.info("reward.self_referral", extra={"extra": {"student_id": referred_student_id}})
        return RewardResult(credited=False, skipped="self_referral")

    if await _already_credited(session, referrer_id, referred_student_id, fee_category):
        return RewardResult(credited=False, referrer_id=referrer_id, skipped="duplicate")

    coins = settings.referral_reward_coins
    session.add(
        RewardLedgerEntry(
            referrer_id=referrer_id,
            referred_student_id=referred_student_id,
            fee_category=fee_category.value,
            coins=coins,
            reason="referral",
            payment_id=payment_id,
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.info("reward.race_lost", extra={"extra": {"referrer_id": referrer_id, "student_id": referred_student_id}})
        return RewardResult(credited=False, referrer_id=referrer_id, skipped="duplicate")
    await session.execute(
        update(FeeAccount)
        .where(FeeAccount.id == referrer_id)
        .values(coin_balance=FeeAccount.coin_balance + coins)
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "reward.credited",
        extra={"extra": {"referrer_id": referrer_id, "student_id": referred_student_id, "coins": coins}},
    )
    return RewardResult(credited=True, referrer_id=referrer_id, coins=coins)
