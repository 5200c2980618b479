from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List

from dotenv import find_dotenv, load_dotenv

# Settings defaults below read os.environ at import time, so .env is loaded first.
# Variables already set in the environment win over the file.
load_dotenv(find_dotenv(usecwd=True))


def _parse_csv_ints(raw: str) -> List[int]:
    ids: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            pass
    return ids


def _decimal_env(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default).strip()
    try:
        return Decimal(raw)
    except InvalidOperation:
        return Decimal(default)


@dataclass
class Settings:
    app_env: str = os.getenv("APP_ENV", "production")

    db_url: str = os.getenv("DB_URL", "")

    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    telegram_admin_ids: List[int] = field(default_factory=lambda: _parse_csv_ints(os.getenv("TELEGRAM_ADMIN_IDS", "")))
    log_chat_id: str = os.getenv("LOG_CHAT_ID", "")

    # Outbound webhooks (payer/admin/seller notices and the university-facing integration)
    notify_webhook_url: str = os.getenv("NOTIFY_WEBHOOK_URL", "")
    university_notify_base_url: str = os.getenv("UNIVERSITY_NOTIFY_BASE_URL", "")
    university_notify_token: str = os.getenv("UNIVERSITY_NOTIFY_TOKEN", "")
    notify_timeout_seconds: float = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))
    admin_notify_email: str = os.getenv("ADMIN_NOTIFY_EMAIL", "admin@example.com")

    # Pricing defaults (USD)
    default_selection_process_fee: Decimal = _decimal_env("DEFAULT_SELECTION_PROCESS_FEE", "400.00")
    default_application_fee: Decimal = _decimal_env("DEFAULT_APPLICATION_FEE", "350.00")
    default_scholarship_fee: Decimal = _decimal_env("DEFAULT_SCHOLARSHIP_FEE", "900.00")
    default_i20_control_fee: Decimal = _decimal_env("DEFAULT_I20_CONTROL_FEE", "900.00")
    dependent_surcharge: Decimal = _decimal_env("DEPENDENT_SURCHARGE", "150.00")

    referral_reward_coins: int = int(os.getenv("REFERRAL_REWARD_COINS", "180"))
    pending_list_limit: int = int(os.getenv("PENDING_LIST_LIMIT", "10"))


settings = Settings()
