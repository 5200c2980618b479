from __future__ import annotations

import pytest

from feedesk.payment.types import AmbiguousAttribution, NotFound
from feedesk.services.attribution import resolve_application


@pytest.mark.asyncio
async def test_single_application_is_used(seed) -> None:
    student = await seed.student()
    app = await seed.application(student.id)
    async with seed.maker() as session:
        assert await resolve_application(session, student.id) == app.id


@pytest.mark.asyncio
async def test_explicit_attribution_wins_over_ambiguity(seed) -> None:
    student = await seed.student()
    await seed.application(student.id)
    chosen = await seed.application(student.id)
    async with seed.maker() as session:
        assert await resolve_application(session, student.id, chosen.id) == chosen.id


@pytest.mark.asyncio
async def test_several_applications_without_attribution_fail_closed(seed) -> None:
    student = await seed.student()
    a = await seed.application(student.id)
    b = await seed.application(student.id)
    async with seed.maker() as session:
        with pytest.raises(AmbiguousAttribution) as exc:
            await resolve_application(session, student.id)
    assert exc.value.candidates == [a.id, b.id]
    assert exc.value.student_id == student.id


@pytest.mark.asyncio
async def test_foreign_or_missing_application(seed) -> None:
    student = await seed.student()
    other = await seed.student(email="x@example.com")
    foreign = await seed.application(other.id)
    async with seed.maker() as session:
        with pytest.raises(NotFound):
            await resolve_application(session, student.id, foreign.id)
        with pytest.raises(NotFound):
            await resolve_application(session, student.id)
