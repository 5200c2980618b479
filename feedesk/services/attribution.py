from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.db.models import ScholarshipApplication
from feedesk.payment.types import AmbiguousAttribution, NotFound

logger = logging.getLogger(__name__)


async def list_application_ids(session: AsyncSession, student_id: int) -> list[int]:
    rows = await session.scalars(
        select(ScholarshipApplication.id)
        .where(ScholarshipApplication.student_id == student_id)
        .order_by(ScholarshipApplication.id)
    )
    return list(rows)


async def resolve_application(
    session: AsyncSession,
    student_id: int,
    explicit_application_id: Optional[int] = None,
) -> int:
    """Pick the one application an application-scoped payment settles.

    An explicit attribution wins; otherwise a student with a single application gets
    that one. Several candidates without attribution fail closed with AmbiguousAttribution.
    """
    if explicit_application_id is not None:
        app = await session.get(ScholarshipApplication, explicit_application_id)
        if app is None or app.student_id != student_id:
            raise NotFound("application", explicit_application_id)
        return app.id

    candidates = await list_application_ids(session, student_id)
    if not candidates:
        raise NotFound("application for student", student_id)
    if len(candidates) > 1:
        logger.info(
            "attribution.ambiguous",
            extra={"extra": {"student_id": student_id, "candidates": candidates}},
        )
        raise AmbiguousAttribution(student_id, candidates)
    return candidates[0]
