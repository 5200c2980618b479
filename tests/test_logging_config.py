from __future__ import annotations

import logging

import pytest

from feedesk.logging_config import CorrelationFilter, _sanitize_obj, _sanitize_str, setup_logging
from feedesk.utils.correlation import correlation_scope


def test_sanitize_authorization_bearer_masked() -> None:
    out = _sanitize_str("Authorization: Bearer ABCDEFGHIJKLMNOP")
    assert "Bearer [REDACTED]" in out


def test_sanitize_access_token_kv_masked() -> None:
    out = _sanitize_str('{"access_token":"abc.def.ghi","other":"x"}')
    assert '"access_token":"[REDACTED]"' in out


def test_sanitize_webhook_url_token_masked() -> None:
    out = _sanitize_str("https://hooks.example/fees?token=SECRET123&x=1")
    assert "token=[REDACTED]&x=1" in out


def test_sanitize_email_masked() -> None:
    assert _sanitize_str("payer ana.souza@example.com approved") == "payer a***@example.com approved"


def test_sanitize_nested_objects() -> None:
    obj = {
        "authorization": "Authorization: Bearer VERYSECRETTOKEN",
        "nested": [
            {"access_token": "abc123456"},
            {"payer_email": "rui@example.com", "phone": "+15551234567"},
        ],
    }
    out = _sanitize_obj(obj)
    assert out["nested"][0]["access_token"] == "***3456"
    assert out["nested"][1]["payer_email"] == "r***@example.com"
    assert out["nested"][1]["phone"] == "***4567"
    assert "[REDACTED]" in out["authorization"]


def test_correlation_filter_uses_scope() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", None, None)
    with correlation_scope("abc123"):
        CorrelationFilter().filter(record)
    assert record.correlation_id == "abc123"


def test_httpx_logger_level_warning_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("LOG_TO_FILE", "0")
    setup_logging()
    logger = logging.getLogger("httpx")
    assert logger.level == logging.WARNING or logger.getEffectiveLevel() == logging.WARNING
