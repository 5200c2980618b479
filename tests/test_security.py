from __future__ import annotations

import pytest

from feedesk.config import settings
from feedesk.services.security import CAP_LEDGER_AUDIT, CAP_PAYMENTS_REVIEW, has_capability, is_admin_uid


def test_capabilities_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "telegram_admin_ids", [1, 2])
    monkeypatch.setenv("ADMIN_CAPS_DEFAULT", "*")
    monkeypatch.setenv("ADMIN_CAPS_2", "ledger_audit")

    assert is_admin_uid(1) and not is_admin_uid(3) and not is_admin_uid(None)
    assert has_capability(1, CAP_PAYMENTS_REVIEW)
    assert has_capability(2, CAP_LEDGER_AUDIT)
    assert not has_capability(2, CAP_PAYMENTS_REVIEW)
    assert not has_capability(3, CAP_LEDGER_AUDIT)
