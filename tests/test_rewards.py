from __future__ import annotations

import pytest

from feedesk.db.models import FeeAccount, ReferralCode, RewardLedgerEntry
from feedesk.payment.types import FeeCategory
from feedesk.services import rewards
from feedesk.services.rewards import credit_referral_reward


async def _credit(seed, student_id, **kw):
    async with seed.maker() as session:
        res = await credit_referral_reward(session, student_id, **kw)
        await session.commit()
    return res


@pytest.mark.asyncio
async def test_reward_credited_once(seed) -> None:
    referrer = await seed.student(email="ref@example.com")
    await seed.add(ReferralCode(code="ABC123", owner_id=referrer.id))
    student = await seed.student(referral_code_used=" ABC123 ")

    first = await _credit(seed, student.id, payment_id=None)
    second = await _credit(seed, student.id)

    assert first.credited is True
    assert first.referrer_id == referrer.id
    assert first.coins == 180
    assert second.credited is False
    assert second.skipped == "duplicate"
    assert (await seed.get(FeeAccount, referrer.id)).coin_balance == 180
    assert len(await seed.all(RewardLedgerEntry)) == 1


@pytest.mark.asyncio
async def test_no_credit_paths(seed) -> None:
    no_code = await seed.student()
    assert (await _credit(seed, no_code.id)).skipped == "no_code"

    owner = await seed.student(email="owner@example.com")
    await seed.add(ReferralCode(code="OLD", owner_id=owner.id, is_active=False))
    stale = await seed.student(referral_code_used="OLD", email="stale@example.com")
    assert (await _credit(seed, stale.id)).skipped == "inactive_code"

    selfish = await seed.student(referral_code_used="ME", email="me@example.com")
    await seed.add(ReferralCode(code="ME", owner_id=selfish.id))
    assert (await _credit(seed, selfish.id)).skipped == "self_referral"

    res = await _credit(seed, stale.id, fee_category=FeeCategory.I20_CONTROL)
    assert res.credited is False
    assert res.skipped == "category"
    assert await seed.all(RewardLedgerEntry) == []


@pytest.mark.asyncio
async def test_concurrent_duplicate_hits_unique_index(seed, monkeypatch) -> None:
    referrer = await seed.student(email="ref@example.com")
    await seed.add(ReferralCode(code="RACE", owner_id=referrer.id))
    student = await seed.student(referral_code_used="RACE")
    assert (await _credit(seed, student.id)).credited is True

    async def not_yet_credited(*args, **kwargs):
        return False

    # the second caller's pre-check ran before the first caller committed
    monkeypatch.setattr(rewards, "_already_credited", not_yet_credited)
    second = await _credit(seed, student.id)

    assert second.credited is False
    assert second.skipped == "duplicate"
    assert second.referrer_id == referrer.id
    assert (await seed.get(FeeAccount, referrer.id)).coin_balance == 180
    assert len(await seed.all(RewardLedgerEntry)) == 1
