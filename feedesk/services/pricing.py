from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.config import settings
from feedesk.db.models import FeeAccount, FeePackage
from feedesk.payment.types import FeeCategory
from feedesk.utils.money import to_money

logger = logging.getLogger(__name__)

_OVERRIDE_COLUMNS = {
    FeeCategory.SELECTION_PROCESS: "selection_process_fee_override",
    FeeCategory.APPLICATION: "application_fee_override",
    FeeCategory.SCHOLARSHIP: "scholarship_fee_override",
    FeeCategory.I20_CONTROL: "i20_control_fee_override",
}

_PACKAGE_COLUMNS = {
    FeeCategory.SELECTION_PROCESS: "selection_process_fee",
    FeeCategory.APPLICATION: "application_fee",
    FeeCategory.SCHOLARSHIP: "scholarship_fee",
    FeeCategory.I20_CONTROL: "i20_control_fee",
}


def default_fees() -> Dict[FeeCategory, Decimal]:
    return {
        FeeCategory.SELECTION_PROCESS: to_money(settings.default_selection_process_fee),
        FeeCategory.APPLICATION: to_money(settings.default_application_fee),
        FeeCategory.SCHOLARSHIP: to_money(settings.default_scholarship_fee),
        FeeCategory.I20_CONTROL: to_money(settings.default_i20_control_fee),
    }


@dataclass(frozen=True)
class PricingContext:
    """Everything needed to price one student's fees, captured once per review."""

    student_id: int
    dependents: int = 0
    overrides: Dict[FeeCategory, Decimal] = field(default_factory=dict)
    package_fees: Dict[FeeCategory, Decimal] = field(default_factory=dict)
    defaults: Dict[FeeCategory, Decimal] = field(default_factory=default_fees)
    dependent_surcharge: Decimal = field(default_factory=lambda: to_money(settings.dependent_surcharge))


def amount_owed(ctx: PricingContext, category: FeeCategory) -> Decimal:
    # An override already includes dependents
    override = ctx.overrides.get(category)
    if override is not None:
        return to_money(override)
    base = ctx.package_fees.get(category)
    if base is None:
        base = ctx.defaults[category]
    if category is FeeCategory.SELECTION_PROCESS and ctx.dependents > 0:
        base = base + ctx.dependent_surcharge * ctx.dependents
    return to_money(base)


async def load_pricing_context(session: AsyncSession, account: FeeAccount) -> PricingContext:
    overrides: Dict[FeeCategory, Decimal] = {}
    for category, column in _OVERRIDE_COLUMNS.items():
        value: Optional[Decimal] = getattr(account, column, None)
        if value is not None:
            overrides[category] = to_money(value)

    package_fees: Dict[FeeCategory, Decimal] = {}
    if account.package_id is not None:
        try:
            package = await session.get(FeePackage, account.package_id)
        except SQLAlchemyError as e:
            logger.warning(
                "pricing: package lookup failed; falling back to defaults",
                extra={"extra": {"student_id": account.id, "package_id": account.package_id, "err": str(e)}},
            )
            package = None
        if package is None:
            logger.warning(
                "pricing: package unavailable; falling back to defaults",
                extra={"extra": {"student_id": account.id, "package_id": account.package_id}},
            )
        elif package.is_active:
            for category, column in _PACKAGE_COLUMNS.items():
                value = getattr(package, column, None)
                if value is not None:
                    package_fees[category] = to_money(value)

    return PricingContext(
        student_id=account.id,
        dependents=max(0, int(account.dependents or 0)),
        overrides=overrides,
        package_fees=package_fees,
    )
