from __future__ import annotations

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from feedesk.config import settings
from feedesk.payment.types import FeeCategory
from feedesk.services.notifications import (
    AdminSummary,
    NotificationDispatcher,
    OpsAlert,
    PayerDecisionNotice,
    UniversityFeePaid,
    WebhookTransport,
    event_payload,
)


def _notice(**kw) -> PayerDecisionNotice:
    base = dict(payment_id=3, fee_category=FeeCategory.I20_CONTROL, amount=Decimal("900.00"), approved=True)
    base.update(kw)
    return PayerDecisionNotice(**base)


def test_university_notice_only_for_application_scoped_fees() -> None:
    with pytest.raises(ValueError):
        UniversityFeePaid(fee_category=FeeCategory.SELECTION_PROCESS, application_id=1, student_id=1)
    ev = UniversityFeePaid(fee_category=FeeCategory.APPLICATION, application_id=4, student_id=2)
    assert ev.endpoint == "notify-university-application-fee-paid"


def test_event_payload_is_json_ready() -> None:
    payload = event_payload(_notice(approved=False, reason="blurry"))
    assert payload["type"] == "payer_decision"
    assert payload["fee_category"] == "i20_control"
    assert payload["amount"] == "900.00"
    assert "blurry" in payload["message"]
    json.dumps(payload)


@pytest.mark.asyncio
async def test_dispatch_returns_immediately_and_times_out_in_background() -> None:
    class SlowTransport:
        async def send(self, event):
            await asyncio.sleep(30)
            return True

    dispatcher = NotificationDispatcher(SlowTransport(), timeout=0.05)
    warning = await asyncio.wait_for(dispatcher.dispatch(_notice()), timeout=1)
    assert warning is None

    await dispatcher.aclose()
    assert list(dispatcher.failures) == ["payer_decision"]


@pytest.mark.asyncio
async def test_dispatch_swallows_transport_errors() -> None:
    class BrokenTransport:
        async def send(self, event):
            raise RuntimeError("boom")

    dispatcher = NotificationDispatcher(BrokenTransport(), timeout=1)
    assert await dispatcher.dispatch(OpsAlert(payment_id=1, message="ledger failed")) is None
    await dispatcher.aclose()
    assert list(dispatcher.failures) == ["ops_alert"]


@pytest.mark.asyncio
async def test_university_webhook_url_and_auth(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    monkeypatch.setattr(settings, "university_notify_base_url", "https://uni.example/functions/v1/")
    monkeypatch.setattr(settings, "university_notify_token", "service-key")
    transport = WebhookTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    try:
        ok = await transport.send(
            UniversityFeePaid(fee_category=FeeCategory.SCHOLARSHIP, application_id=9, student_id=2, scholarship_id=5)
        )
    finally:
        await transport.aclose()

    assert ok is True
    assert str(seen[0].url) == "https://uni.example/functions/v1/notify-university-scholarship-fee-paid"
    assert seen[0].headers["Authorization"] == "Bearer service-key"
    body = json.loads(seen[0].content)
    assert body["application_id"] == 9
    assert body["scholarship_id"] == 5


@pytest.mark.asyncio
async def test_generic_webhook_and_rejected_status(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(503)

    monkeypatch.setattr(settings, "notify_webhook_url", "https://hooks.example/fees")
    monkeypatch.setattr(settings, "telegram_bot_token", "")
    monkeypatch.setattr(settings, "log_chat_id", "")
    monkeypatch.setattr(settings, "admin_notify_email", "ops@example.com")
    transport = WebhookTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    try:
        ok = await transport.send(
            AdminSummary(payment_id=3, fee_category=FeeCategory.SELECTION_PROCESS, amount=Decimal("400.00"))
        )
    finally:
        await transport.aclose()

    assert ok is False
    assert seen[0]["type"] == "admin_summary"
    assert seen[0]["admin_email"] == "ops@example.com"


@pytest.mark.asyncio
async def test_university_notice_skipped_without_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    monkeypatch.setattr(settings, "university_notify_base_url", "")
    transport = WebhookTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    try:
        assert await transport.send(
            UniversityFeePaid(fee_category=FeeCategory.APPLICATION, application_id=1, student_id=1)
        ) is False
    finally:
        await transport.aclose()


class _InstantTransport:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok

    async def send(self, event):
        return self.ok


@pytest.mark.asyncio
async def test_finished_jobs_are_not_retained() -> None:
    dispatcher = NotificationDispatcher(_InstantTransport(), timeout=1)
    for i in range(20):
        assert await dispatcher.dispatch(_notice(payment_id=i)) is None
    await asyncio.sleep(0.05)
    assert dispatcher.in_flight == 0

    await dispatcher.dispatch(_notice(payment_id=99))
    assert len(dispatcher._jobs) == 1
    await dispatcher.aclose()
    assert dispatcher.in_flight == 0


@pytest.mark.asyncio
async def test_failure_history_is_bounded() -> None:
    dispatcher = NotificationDispatcher(_InstantTransport(ok=False), timeout=1, max_failures=5)
    for i in range(8):
        await dispatcher.dispatch(_notice(payment_id=i))
    await dispatcher.aclose()

    assert len(dispatcher.failures) == 5
    assert dispatcher.failure_count == 8
