from __future__ import annotations

from decimal import Decimal

import pytest

from feedesk.db.models import FeeAccount, FeePackage
from feedesk.payment.types import FeeCategory
from feedesk.services.pricing import PricingContext, amount_owed, default_fees, load_pricing_context


def test_defaults() -> None:
    ctx = PricingContext(student_id=1)
    assert amount_owed(ctx, FeeCategory.SELECTION_PROCESS) == Decimal("400.00")
    assert amount_owed(ctx, FeeCategory.APPLICATION) == Decimal("350.00")
    assert amount_owed(ctx, FeeCategory.SCHOLARSHIP) == Decimal("900.00")
    assert amount_owed(ctx, FeeCategory.I20_CONTROL) == Decimal("900.00")


def test_dependents_surcharge_applies_to_selection_only() -> None:
    ctx = PricingContext(student_id=1, dependents=2)
    assert amount_owed(ctx, FeeCategory.SELECTION_PROCESS) == Decimal("700.00")
    assert amount_owed(ctx, FeeCategory.I20_CONTROL) == Decimal("900.00")
    assert amount_owed(ctx, FeeCategory.SCHOLARSHIP) == Decimal("900.00")


def test_override_beats_package_and_skips_surcharge() -> None:
    ctx = PricingContext(
        student_id=1,
        dependents=4,
        overrides={FeeCategory.SELECTION_PROCESS: Decimal("550")},
        package_fees={FeeCategory.SELECTION_PROCESS: Decimal("600")},
    )
    assert amount_owed(ctx, FeeCategory.SELECTION_PROCESS) == Decimal("550.00")


def test_package_fee_gets_surcharge() -> None:
    ctx = PricingContext(student_id=1, dependents=1, package_fees={FeeCategory.SELECTION_PROCESS: Decimal("600")})
    assert amount_owed(ctx, FeeCategory.SELECTION_PROCESS) == Decimal("750.00")
    # Categories the package leaves empty fall back to defaults
    assert amount_owed(ctx, FeeCategory.I20_CONTROL) == default_fees()[FeeCategory.I20_CONTROL]


@pytest.mark.asyncio
async def test_load_context_ignores_missing_and_inactive_packages(seed) -> None:
    inactive = await seed.add(FeePackage(name="Legacy", scholarship_fee=Decimal("100.00"), is_active=False))
    with_inactive = await seed.student(package_id=inactive.id, dependents=1)
    with_missing = await seed.student(package_id=987, email="b@example.com")

    async with seed.maker() as session:
        acct = await session.get(FeeAccount, with_inactive.id)
        ctx = await load_pricing_context(session, acct)
        assert ctx.package_fees == {}
        assert ctx.dependents == 1
        assert amount_owed(ctx, FeeCategory.SCHOLARSHIP) == Decimal("900.00")

        acct = await session.get(FeeAccount, with_missing.id)
        ctx = await load_pricing_context(session, acct)
        assert ctx.package_fees == {}
        assert amount_owed(ctx, FeeCategory.SELECTION_PROCESS) == Decimal("400.00")


@pytest.mark.asyncio
async def test_load_context_reads_overrides(seed) -> None:
    package = await seed.add(FeePackage(name="Gold", i20_control_fee=Decimal("750.00")))
    student = await seed.student(package_id=package.id, scholarship_fee_override=Decimal("1200.00"))

    async with seed.maker() as session:
        ctx = await load_pricing_context(session, await session.get(FeeAccount, student.id))

    assert amount_owed(ctx, FeeCategory.SCHOLARSHIP) == Decimal("1200.00")
    assert amount_owed(ctx, FeeCategory.I20_CONTROL) == Decimal("750.00")
