from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.db.models import FeeAccount, ScholarshipApplication
from feedesk.payment.types import FeeCategory, NotFound
from feedesk.utils.time import utc_naive_now

# Flags only ever move false -> true here; nothing in this module writes False.


async def mark_student_fee_paid(
    session: AsyncSession,
    student_id: int,
    category: FeeCategory,
    *,
    payment_method: str = "zelle",
) -> None:
    if category is FeeCategory.SELECTION_PROCESS:
        values = {
            "has_paid_selection_process_fee": True,
            "selection_process_fee_payment_method": payment_method,
        }
    elif category is FeeCategory.I20_CONTROL:
        values = {
            "has_paid_i20_control_fee": True,
            "i20_control_fee_payment_method": payment_method,
        }
    elif category is FeeCategory.APPLICATION:
        # Student-level convenience flag mirrored from the per-application one
        values = {"is_application_fee_paid": True}
    else:
        raise ValueError(f"{category.value} has no student-level fee flag")
    res = await session.execute(
        update(FeeAccount)
        .where(FeeAccount.id == student_id)
        .values(updated_at=utc_naive_now(), **values)
        .execution_options(synchronize_session=False)
    )
    if (res.rowcount or 0) == 0:
        raise NotFound("student", student_id)


async def mark_application_fee_paid(
    session: AsyncSession,
    application_id: int,
    category: FeeCategory,
    *,
    payment_method: str = "zelle",
) -> None:
    """Set the fee flag on exactly one application, never on the student's other applications."""
    if category is FeeCategory.APPLICATION:
        values = {"is_application_fee_paid": True, "application_fee_payment_method": payment_method}
    elif category is FeeCategory.SCHOLARSHIP:
        values = {"is_scholarship_fee_paid": True, "scholarship_fee_payment_method": payment_method}
    else:
        raise ValueError(f"{category.value} is not application-scoped")
    res = await session.execute(
        update(ScholarshipApplication)
        .where(ScholarshipApplication.id == application_id)
        .values(updated_at=utc_naive_now(), **values)
        .execution_options(synchronize_session=False)
    )
    if (res.rowcount or 0) == 0:
        raise NotFound("application", application_id)
