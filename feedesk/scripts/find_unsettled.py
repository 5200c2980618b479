from __future__ import annotations

import asyncio
import logging
from typing import List

from feedesk.db.session import session_scope
from feedesk.logging_config import setup_logging
from feedesk.services.notifications import aclose_bot, notify_log
from feedesk.services.reconciliation import UnsettledPayment, find_unsettled_payments
from feedesk.utils.money import usd

logger = logging.getLogger(__name__)


def format_report(rows: List[UnsettledPayment]) -> str:
    if not rows:
        return "Reconciliation: every approved manual payment has its ledger entry."
    lines = [f"Reconciliation: {len(rows)} approved manual payment(s) without a ledger entry"]
    for r in rows:
        when = r.reviewed_at.strftime("%Y-%m-%d %H:%M") if r.reviewed_at else "-"
        lines.append(f"#{r.payment_id} {r.fee_category} {usd(r.amount)} student={r.student_id} reviewed={when}")
    return "\n".join(lines)


async def run(*, send_to_log_chat: bool = True) -> int:
    async with session_scope() as session:
        rows = await find_unsettled_payments(session)
    report = format_report(rows)
    print(report)
    if rows and send_to_log_chat:
        await notify_log(report)
    return len(rows)


async def main() -> None:
    setup_logging()
    try:
        count = await run()
    finally:
        await aclose_bot()
    logger.info("reconciliation finished", extra={"extra": {"unsettled": count}})
    if count:
        raise SystemExit(2)


if __name__ == "__main__":
    asyncio.run(main())
