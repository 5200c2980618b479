from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Protocol, Union

import aiojobs
import httpx
from aiogram import Bot

from feedesk.config import settings
from feedesk.payment.types import FeeCategory
from feedesk.utils.money import usd

logger = logging.getLogger(__name__)

_bot_singleton: Optional[Bot] = None
_bot_lock = asyncio.Lock()


async def _get_bot() -> Optional[Bot]:
    global _bot_singleton
    if _bot_singleton is not None:
        return _bot_singleton
    async with _bot_lock:
        if _bot_singleton is not None:
            return _bot_singleton
        token = settings.telegram_bot_token.strip()
        if not token:
            logger.warning("notify: TELEGRAM_BOT_TOKEN missing; telegram notices disabled")
            return None
        _bot_singleton = Bot(token=token)
        return _bot_singleton


async def notify_user(telegram_id: int, text: str, *, disable_web_page_preview: bool = True) -> bool:
    """Send a direct message to a user. Returns True if sent, False otherwise."""
    bot = await _get_bot()
    if bot is None:
        return False
    try:
        await bot.send_message(chat_id=telegram_id, text=text, disable_web_page_preview=disable_web_page_preview)
        return True
    except Exception as e:
        logger.warning("notify_user failed", extra={"extra": {"telegram_id": telegram_id, "err": str(e)}})
        return False


async def notify_log(text: str, *, disable_web_page_preview: bool = True) -> bool:
    """Send a message to LOG_CHAT_ID if configured. Returns True if sent, False otherwise."""
    raw = settings.log_chat_id.strip()
    if not raw:
        return False
    bot = await _get_bot()
    if bot is None:
        return False
    try:
        chat_id = int(raw)
    except ValueError:
        logger.warning("notify_log: invalid LOG_CHAT_ID: %s", raw)
        return False
    try:
        await bot.send_message(chat_id=chat_id, text=text, disable_web_page_preview=disable_web_page_preview)
        return True
    except Exception as e:
        logger.warning("notify_log failed", extra={"extra": {"err": str(e)}})
        return False


async def aclose_bot() -> None:
    global _bot_singleton
    if _bot_singleton is not None:
        try:
            await _bot_singleton.session.close()
        finally:
            _bot_singleton = None


# ================= Events ================= #


@dataclass
class PayerDecisionNotice:
    payment_id: int
    fee_category: FeeCategory
    amount: Decimal
    approved: bool
    payer_email: str = ""
    payer_name: str = ""
    payer_telegram_id: Optional[int] = None
    reason: Optional[str] = None
    reviewer_id: Optional[int] = None

    kind = "payer_decision"

    def text(self) -> str:
        if self.approved:
            return f"Your {self.fee_category.label} payment of {usd(self.amount)} was approved and processed."
        return (
            f"Your {self.fee_category.label} payment of {usd(self.amount)} was rejected. "
            f"Reason: {self.reason}. Please review and submit a new payment if needed."
        )


@dataclass
class AdminSummary:
    payment_id: int
    fee_category: FeeCategory
    amount: Decimal
    student_name: str = ""
    student_email: str = ""
    seller_name: Optional[str] = None
    seller_email: Optional[str] = None
    referral_code: Optional[str] = None
    affiliate_admin_email: Optional[str] = None

    kind = "admin_summary"

    def text(self) -> str:
        msg = f"{self.fee_category.label} payment of {usd(self.amount)} from {self.student_name or 'student'} approved (#{self.payment_id})."
        if self.seller_name:
            msg += f" Seller: {self.seller_name} ({self.referral_code})."
        return msg


@dataclass
class AffiliateAdminSummary:
    payment_id: int
    fee_category: FeeCategory
    amount: Decimal
    affiliate_admin_email: str
    affiliate_admin_name: str = ""
    student_name: str = ""
    seller_name: str = ""
    referral_code: str = ""

    kind = "affiliate_admin_summary"

    def text(self) -> str:
        return (
            f"{self.fee_category.label} payment of {usd(self.amount)} from {self.student_name} was approved. "
            f"Seller: {self.seller_name} ({self.referral_code})."
        )


@dataclass
class SellerSummary:
    payment_id: int
    fee_category: FeeCategory
    amount: Decimal
    seller_email: str
    seller_name: str = ""
    student_name: str = ""
    referral_code: str = ""

    kind = "seller_summary"

    def text(self) -> str:
        return f"The {self.fee_category.label} payment of {usd(self.amount)} from your student {self.student_name} was approved."


@dataclass
class ReferralRewardNotice:
    referrer_id: int
    referred_student_id: int
    coins: int
    referrer_email: str = ""
    referrer_name: str = ""
    referred_student_name: str = ""

    kind = "referral_reward"

    def text(self) -> str:
        return (
            f"You received {self.coins} coins as a referral reward: {self.referred_student_name or 'a student'} "
            "paid the Selection Process Fee using your code."
        )


@dataclass
class UniversityFeePaid:
    """External university-facing call; application and scholarship fees only."""

    fee_category: FeeCategory
    application_id: int
    student_id: int
    scholarship_id: Optional[int] = None

    kind = "university_fee_paid"

    def __post_init__(self) -> None:
        if not self.fee_category.application_scoped:
            raise ValueError(f"university notice not defined for {self.fee_category.value}")

    @property
    def endpoint(self) -> str:
        return f"notify-university-{self.fee_category.value}-fee-paid"


@dataclass
class OpsAlert:
    payment_id: int
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    kind = "ops_alert"

    def text(self) -> str:
        return f"[manual payment #{self.payment_id}] {self.message}"


NotificationEvent = Union[
    PayerDecisionNotice,
    AdminSummary,
    AffiliateAdminSummary,
    SellerSummary,
    ReferralRewardNotice,
    UniversityFeePaid,
    OpsAlert,
]


def event_payload(event: NotificationEvent) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": event.kind}
    for key, value in asdict(event).items():
        if isinstance(value, FeeCategory):
            value = value.value
        elif isinstance(value, Decimal):
            value = str(value)
        payload[key] = value
    if not isinstance(event, UniversityFeePaid):
        payload["message"] = event.text()
    return payload


# ================= Transport ================= #


class NotificationTransport(Protocol):
    async def send(self, event: NotificationEvent) -> bool:
        ...


class WebhookTransport:
    """Delivers events as JSON webhooks, mirroring admin-facing ones into the Telegram log chat.

    One attempt per event; the caller bounds the whole send with a timeout.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.notify_timeout_seconds, connect=min(3.0, settings.notify_timeout_seconds)),
            headers={"User-Agent": "feedesk/1.0", "Content-Type": "application/json"},
        )

    async def _post(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> bool:
        resp = await self._client.post(url, json=payload, headers=headers)
        if resp.status_code >= 400:
            logger.warning(
                "notify: webhook rejected",
                extra={"extra": {"url": url, "status": resp.status_code, "type": payload.get("type")}},
            )
            return False
        return True

    async def send(self, event: NotificationEvent) -> bool:
        payload = event_payload(event)
        if isinstance(event, UniversityFeePaid):
            base = settings.university_notify_base_url.rstrip("/")
            if not base:
                logger.warning("notify: UNIVERSITY_NOTIFY_BASE_URL missing; university notice skipped")
                return False
            headers = {}
            if settings.university_notify_token:
                headers["Authorization"] = f"Bearer {settings.university_notify_token}"
            return await self._post(f"{base}/{event.endpoint}", payload, headers=headers)

        delivered = False
        if isinstance(event, (AdminSummary, OpsAlert)):
            delivered = await notify_log(event.text())
        if isinstance(event, PayerDecisionNotice) and event.payer_telegram_id:
            delivered = await notify_user(event.payer_telegram_id, event.text()) or delivered
        if isinstance(event, AdminSummary):
            payload["admin_email"] = settings.admin_notify_email

        url = settings.notify_webhook_url.strip()
        if not url:
            if not delivered:
                logger.warning("notify: NOTIFY_WEBHOOK_URL missing", extra={"extra": {"type": event.kind}})
            return delivered
        return await self._post(url, payload) or delivered

    async def aclose(self) -> None:
        await self._client.aclose()


# ================= Dispatcher ================= #


class NotificationDispatcher:
    """Fire-and-forget fan-out. `dispatch` never raises into the caller."""

    def __init__(
        self,
        transport: Optional[NotificationTransport] = None,
        *,
        timeout: Optional[float] = None,
        max_failures: int = 100,
    ) -> None:
        self._transport = transport
        self._timeout = settings.notify_timeout_seconds if timeout is None else timeout
        self._scheduler: Optional[aiojobs.Scheduler] = None
        self._jobs: List[aiojobs.Job[None]] = []
        # Most recent failed kinds only; failure_count keeps the running total
        self.failures: Deque[str] = deque(maxlen=max_failures)
        self.failure_count = 0

    def _get_transport(self) -> NotificationTransport:
        if self._transport is None:
            self._transport = WebhookTransport()
        return self._transport

    async def _get_scheduler(self) -> aiojobs.Scheduler:
        if self._scheduler is None:
            self._scheduler = aiojobs.Scheduler(limit=50, pending_limit=1000)
        return self._scheduler

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            ok = await asyncio.wait_for(self._get_transport().send(event), timeout=self._timeout)
        except asyncio.TimeoutError:
            ok = False
            logger.warning("notify: delivery timed out", extra={"extra": {"type": event.kind}})
        except Exception as e:
            ok = False
            logger.warning("notify: delivery failed", extra={"extra": {"type": event.kind, "err": str(e)}})
        if not ok:
            self.failures.append(event.kind)
            self.failure_count += 1

    async def dispatch(self, event: NotificationEvent) -> Optional[str]:
        """Schedule delivery. Returns a warning string when the event could not even be scheduled."""
        try:
            scheduler = await self._get_scheduler()
            job = await scheduler.spawn(self._deliver(event))
            self._jobs = [j for j in self._jobs if not j.closed]
            self._jobs.append(job)
            return None
        except Exception as e:
            logger.warning("notify: could not schedule", extra={"extra": {"type": event.kind, "err": str(e)}})
            return f"{event.kind} notification not scheduled: {e}"

    @property
    def in_flight(self) -> int:
        return sum(1 for j in self._jobs if not j.closed)

    async def drain(self) -> None:
        """Wait for every scheduled delivery (used on shutdown and in tests)."""
        jobs, self._jobs = self._jobs, []
        for job in jobs:
            try:
                await job.wait()
            except Exception:
                logger.debug("notify: job ended with error", exc_info=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._scheduler is not None:
            await self._scheduler.close()
            self._scheduler = None
        if isinstance(self._transport, WebhookTransport):
            await self._transport.aclose()
