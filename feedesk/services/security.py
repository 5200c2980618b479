from __future__ import annotations

import os
from typing import Set

from feedesk.config import settings

CAP_PAYMENTS_REVIEW = "PAYMENTS_REVIEW"
CAP_PAYMENTS_ATTRIBUTE = "PAYMENTS_ATTRIBUTE"
CAP_LEDGER_AUDIT = "LEDGER_AUDIT"


def _parse_csv(s: str) -> Set[str]:
    return {x.strip().upper() for x in s.split(",") if x.strip()}


def get_admin_ids() -> Set[int]:
    return set(settings.telegram_admin_ids)


def is_admin_uid(uid: int | None) -> bool:
    return bool(uid and uid in get_admin_ids())


def _caps_for(uid: int) -> Set[str]:
    # Per-admin override: ADMIN_CAPS_<uid>="PAYMENTS_REVIEW,LEDGER_AUDIT"; default ADMIN_CAPS_DEFAULT ("*")
    raw = os.getenv(f"ADMIN_CAPS_{uid}", "").strip() or os.getenv("ADMIN_CAPS_DEFAULT", "*").strip()
    if raw == "*" or not raw:
        return {"*"}
    return _parse_csv(raw)


def has_capability(uid: int | None, code: str) -> bool:
    if not is_admin_uid(uid):
        return False
    caps = _caps_for(int(uid))  # type: ignore[arg-type]
    return ("*" in caps) or (code.strip().upper() in caps)
