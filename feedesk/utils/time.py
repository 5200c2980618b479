from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_naive_now() -> datetime:
    """UTC wall clock without tzinfo, matching the DateTime columns."""
    return utc_now().replace(tzinfo=None)
