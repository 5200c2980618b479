from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.db.models import SettlementLedgerEntry
from feedesk.payment.types import FeeCategory
from feedesk.utils.money import to_money

logger = logging.getLogger(__name__)


@dataclass
class LedgerRecordResult:
    created: bool
    entry_id: Optional[int] = None


def session_ref_for(payment_id: int) -> str:
    return f"zelle_{payment_id}"


async def get_entry(session: AsyncSession, payment_id: int) -> Optional[SettlementLedgerEntry]:
    return await session.scalar(
        select(SettlementLedgerEntry).where(SettlementLedgerEntry.payment_id == payment_id)
    )


async def record(
    session: AsyncSession,
    payment_id: int,
    student_id: int,
    fee_category: FeeCategory,
    amount: Decimal,
) -> LedgerRecordResult:
    """Append one entry per payment id; repeated calls are no-ops returning created=False.

    The unique index on payment_id is the real guard: a concurrent insert that loses the race
    surfaces as IntegrityError and is reported the same way as an existing entry. Losing the race
    rolls the session back, so callers commit earlier work before recording.
    """
    existing = await get_entry(session, payment_id)
    if existing is not None:
        logger.info(
            "ledger.record.exists",
            extra={"extra": {"payment_id": payment_id, "entry_id": existing.id}},
        )
        return LedgerRecordResult(created=False, entry_id=existing.id)

    entry = SettlementLedgerEntry(
        payment_id=payment_id,
        student_id=student_id,
        fee_category=fee_category.value,
        amount=to_money(amount),
        source="manual",
        session_ref=session_ref_for(payment_id),
    )
    session.add(entry)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.info("ledger.record.race_lost", extra={"extra": {"payment_id": payment_id}})
        existing = await get_entry(session, payment_id)
        return LedgerRecordResult(created=False, entry_id=existing.id if existing else None)
    logger.info(
        "ledger.record.created",
        extra={"extra": {"payment_id": payment_id, "fee_category": fee_category.value, "amount": str(entry.amount)}},
    )
    return LedgerRecordResult(created=True, entry_id=entry.id)
