from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.db.models import ManualPayment, SettlementLedgerEntry
from feedesk.payment.types import FeeCategory, PaymentStatus

logger = logging.getLogger(__name__)

_LEDGER_CATEGORIES = [c.value for c in FeeCategory if c.posts_to_ledger]


@dataclass
class UnsettledPayment:
    payment_id: int
    student_id: int
    fee_category: str
    amount: Decimal
    reviewed_at: Optional[datetime]


async def find_unsettled_payments(session: AsyncSession, limit: int = 200) -> List[UnsettledPayment]:
    """Approved payments in a ledger-posting category that have no settlement ledger entry.

    These are the payments a failed step left half-settled; nothing here repairs them.
    """
    rows = await session.execute(
        select(ManualPayment)
        .outerjoin(SettlementLedgerEntry, SettlementLedgerEntry.payment_id == ManualPayment.id)
        .where(
            ManualPayment.status == PaymentStatus.APPROVED.value,
            ManualPayment.fee_category.in_(_LEDGER_CATEGORIES),
            SettlementLedgerEntry.id.is_(None),
        )
        .order_by(ManualPayment.reviewed_at, ManualPayment.id)
        .limit(limit)
    )
    found = [
        UnsettledPayment(
            payment_id=p.id,
            student_id=p.student_id,
            fee_category=p.fee_category,
            amount=p.amount,
            reviewed_at=p.reviewed_at,
        )
        for p in rows.scalars()
    ]
    if found:
        logger.warning("reconciliation.unsettled", extra={"extra": {"count": len(found)}})
    return found
