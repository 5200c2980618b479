from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from feedesk.db.models import AuditLog
from feedesk.utils.time import utc_naive_now


async def log_audit(
    session: AsyncSession,
    *,
    actor: str,
    action: str,
    target_type: str,
    target_id: Optional[int] = None,
    performed_by: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    entry = AuditLog(
        actor=actor,
        action=action,
        target_type=target_type,
        target_id=target_id,
        performed_by=performed_by,
        meta=json.dumps(meta, ensure_ascii=False, default=str) if meta is not None else None,
        created_at=utc_naive_now(),
    )
    session.add(entry)
    await session.flush()
