from __future__ import annotations

from decimal import Decimal

import pytest

from feedesk.db.models import SettlementLedgerEntry
from feedesk.scripts.find_unsettled import format_report
from feedesk.services.reconciliation import find_unsettled_payments


@pytest.mark.asyncio
async def test_only_ledger_categories_without_entry_are_reported(seed) -> None:
    student = await seed.student()
    missing = await seed.payment(student.id, "scholarship", "900.00", status="approved")
    settled = await seed.payment(student.id, "selection_process", "400.00", status="approved")
    await seed.add(
        SettlementLedgerEntry(
            payment_id=settled.id,
            student_id=student.id,
            fee_category="selection_process",
            amount=Decimal("400.00"),
            session_ref=f"zelle_{settled.id}",
        )
    )
    await seed.payment(student.id, "application", "350.00", status="approved")
    await seed.payment(student.id, "i20_control", "900.00")

    async with seed.maker() as session:
        rows = await find_unsettled_payments(session)

    assert [r.payment_id for r in rows] == [missing.id]
    report = format_report(rows)
    assert f"#{missing.id} scholarship $900" in report


def test_empty_report() -> None:
    assert "every approved manual payment" in format_report([])
