from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator

# Task-local correlation id; one per admin review so every log line of a settlement can be joined
_cid = contextvars.ContextVar("correlation_id", default="")


def set_correlation_id(value: str | None = None) -> str:
    cid = value or uuid.uuid4().hex
    _cid.set(cid)
    return cid


def get_correlation_id() -> str:
    return _cid.get("")


@contextmanager
def correlation_scope(value: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block, restoring the outer one afterwards.

    Nested scopes reuse the outer id unless an explicit value is given.
    """
    outer = _cid.get("")
    token = _cid.set(value or outer or uuid.uuid4().hex)
    try:
        yield _cid.get()
    finally:
        _cid.reset(token)


def clear_correlation_id() -> None:
    _cid.set("")
