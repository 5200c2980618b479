from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.db.models import FeePaymentRecord
from feedesk.payment.types import FeeCategory
from feedesk.utils.money import to_money

logger = logging.getLogger(__name__)


async def record_fee_payment(
    session: AsyncSession,
    *,
    payment_id: int,
    student_id: int,
    fee_category: FeeCategory,
    amount: Decimal,
    paid_at: datetime,
    payment_method: str = "zelle",
    application_id: Optional[int] = None,
) -> bool:
    """Store the dated payment for one approved fee. Returns False when the payment already has one."""
    existing = await session.scalar(select(FeePaymentRecord.id).where(FeePaymentRecord.payment_id == payment_id))
    if existing is not None:
        return False
    session.add(
        FeePaymentRecord(
            payment_id=payment_id,
            student_id=student_id,
            fee_category=fee_category.value,
            amount=to_money(amount),
            payment_method=payment_method,
            application_id=application_id,
            paid_at=paid_at,
        )
    )
    await session.flush()
    logger.info(
        "fee_payment.recorded",
        extra={"extra": {"payment_id": payment_id, "fee_category": fee_category.value, "paid_at": paid_at.isoformat()}},
    )
    return True


async def list_fee_payments(session: AsyncSession, student_id: int) -> List[FeePaymentRecord]:
    rows = await session.scalars(
        select(FeePaymentRecord)
        .where(FeePaymentRecord.student_id == student_id)
        .order_by(FeePaymentRecord.paid_at, FeePaymentRecord.id)
    )
    return list(rows)
