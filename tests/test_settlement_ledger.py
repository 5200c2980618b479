from __future__ import annotations

from decimal import Decimal

import pytest

from feedesk.db.models import SettlementLedgerEntry
from feedesk.payment.types import FeeCategory
from feedesk.services import settlement_ledger


@pytest.mark.asyncio
async def test_record_is_idempotent_per_payment(seed) -> None:
    student = await seed.student()
    payment = await seed.payment(student.id, "selection_process", "400.00")

    async with seed.maker() as session:
        first = await settlement_ledger.record(
            session, payment.id, student.id, FeeCategory.SELECTION_PROCESS, Decimal("400")
        )
        await session.commit()
    async with seed.maker() as session:
        again = await settlement_ledger.record(
            session, payment.id, student.id, FeeCategory.SELECTION_PROCESS, Decimal("999")
        )
        await session.commit()

    assert first.created is True
    assert again.created is False
    assert again.entry_id == first.entry_id

    entries = await seed.all(SettlementLedgerEntry)
    assert len(entries) == 1
    assert entries[0].amount == Decimal("400.00")
    assert entries[0].source == "manual"
    assert entries[0].session_ref == settlement_ledger.session_ref_for(payment.id) == f"zelle_{payment.id}"


@pytest.mark.asyncio
async def test_record_reports_existing_entry_after_losing_insert_race(seed, monkeypatch) -> None:
    student = await seed.student()
    payment = await seed.payment(student.id, "i20_control", "900.00")
    async with seed.maker() as session:
        first = await settlement_ledger.record(
            session, payment.id, student.id, FeeCategory.I20_CONTROL, Decimal("900")
        )
        await session.commit()

    real_get_entry = settlement_ledger.get_entry
    calls = []

    async def stale_then_real(session, payment_id):
        calls.append(payment_id)
        if len(calls) == 1:
            return None
        return await real_get_entry(session, payment_id)

    monkeypatch.setattr(settlement_ledger, "get_entry", stale_then_real)
    async with seed.maker() as session:
        again = await settlement_ledger.record(
            session, payment.id, student.id, FeeCategory.I20_CONTROL, Decimal("900")
        )
        await session.commit()

    assert again.created is False
    assert again.entry_id == first.entry_id
    assert len(calls) == 2
    assert len(await seed.all(SettlementLedgerEntry)) == 1
