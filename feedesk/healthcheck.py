import os
import sys
import asyncio

import httpx
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

# Healthcheck: validate ENV, Telegram token presence, DB connectivity (SELECT 1),
# and optional reachability of the university notification endpoint.
#
# Skip the endpoint check with HEALTHCHECK_SKIP_UNIVERSITY=1
# (useful in staging or when the university integration is down).


async def _check_db() -> bool:
    db_url = os.getenv("DB_URL", "")
    if not db_url:
        return False
    try:
        engine = create_async_engine(db_url, pool_pre_ping=True)
        async with engine.connect() as conn:  # type: ignore[func-returns-value]
            await conn.execute(text("SELECT 1"))
        await engine.dispose()
        return True
    except Exception:
        return False


async def _check_university() -> bool:
    base = (os.getenv("UNIVERSITY_NOTIFY_BASE_URL", "") or "").rstrip("/")
    if not base:
        # Not configured: university notices are skipped at runtime, nothing to check
        return True
    try:
        timeout = httpx.Timeout(6.0, connect=3.0)
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.head(base)
            # Any HTTP answer means the host is reachable; only transport errors fail
            return resp.status_code < 500
    except httpx.HTTPError:
        return False


def main() -> int:
    token = os.getenv("TELEGRAM_BOT_TOKEN")
    if not token:
        print("missing TELEGRAM_BOT_TOKEN", file=sys.stderr)
        return 1

    ok_db = asyncio.run(_check_db())
    if not ok_db:
        print("db not ready", file=sys.stderr)
        return 1

    skip_uni = os.getenv("HEALTHCHECK_SKIP_UNIVERSITY", "0").strip().lower() in {"1", "true", "yes", "on"}
    if not skip_uni and not asyncio.run(_check_university()):
        print("university endpoint not reachable", file=sys.stderr)
        return 1

    print("ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
