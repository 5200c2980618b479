from __future__ import annotations

import json
import logging
import logging.config
import os
import re
from typing import Any, Dict

from feedesk.utils.correlation import get_correlation_id


# ================= Sensitive Data Masking ================= #
_BEARER_RE = re.compile(r"(Authorization\s*:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE)
_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# Token-like query parameters inside webhook URLs: ...?token=XYZ / &apikey=XYZ
_URL_TOKEN_RE = re.compile(r"([?&](?:token|apikey|api_key|key|signature)=)([^&\s\"]+)", re.IGNORECASE)
_ACCESS_TOKEN_KV_RE = re.compile(r"(access_token\"?\s*[:=]\s*\"?)([A-Za-z0-9._-]+)", re.IGNORECASE)

_SECRET_KEYS = {"token", "access_token", "university_notify_token", "authorization_token"}
_CONTACT_KEYS = {"email", "payer_email", "student_email", "seller_email", "affiliate_admin_email", "phone"}


def _mask_tail(val: str, keep: int = 4) -> str:
    if not isinstance(val, str):
        return val
    if len(val) <= keep:
        return "[REDACTED]"
    return "***" + val[-keep:]


def _mask_email(m: re.Match[str]) -> str:
    return f"{m.group(1)}***{m.group(3)}"


def _sanitize_str(s: str) -> str:
    if not isinstance(s, str) or not s:
        return s
    s = _BEARER_RE.sub(lambda m: m.group(1) + "[REDACTED]", s)
    s = _URL_TOKEN_RE.sub(lambda m: m.group(1) + "[REDACTED]", s)
    s = _ACCESS_TOKEN_KV_RE.sub(lambda m: m.group(1) + "[REDACTED]", s)
    s = _EMAIL_RE.sub(_mask_email, s)
    return s


def _sanitize_obj(obj: Any) -> Any:
    try:
        if isinstance(obj, dict):
            out: Dict[str, Any] = {}
            for k, v in obj.items():
                lk = str(k).lower()
                if lk in _SECRET_KEYS:
                    out[k] = "[REDACTED]" if not isinstance(v, str) else _mask_tail(v)
                elif lk in _CONTACT_KEYS and isinstance(v, str):
                    out[k] = _mask_tail(v) if lk == "phone" else _sanitize_str(v)
                elif lk in {"url", "authorization", "auth", "webhook_url"}:
                    out[k] = _sanitize_str(str(v))
                else:
                    out[k] = _sanitize_obj(v)
            return out
        if isinstance(obj, (list, tuple)):
            t = type(obj)
            return t(_sanitize_obj(v) for v in obj)
        if isinstance(obj, str):
            return _sanitize_str(obj)
    except Exception:
        return obj
    return obj


class SensitiveDataFilter(logging.Filter):
    """Masks secrets and payer contact data in message, args and the structured extra payload."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            if isinstance(record.msg, str):
                record.msg = _sanitize_str(record.msg)
            if record.args:
                if isinstance(record.args, tuple):
                    record.args = tuple(_sanitize_obj(a) for a in record.args)
                elif isinstance(record.args, dict):
                    record.args = _sanitize_obj(record.args)
            if hasattr(record, "extra") and isinstance(record.extra, dict):
                record.extra = _sanitize_obj(record.extra)
        except Exception:
            # Never break logging
            pass
        return True


class CorrelationFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.correlation_id = get_correlation_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = getattr(record, "correlation_id", None)
        if cid and cid != "-":
            payload["correlation_id"] = cid
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)
        payload = _sanitize_obj(payload)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _flag(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _file_target() -> tuple[str, bool]:
    """Log file path and whether to write it; without LOG_TO_FILE the file is used only if writable."""
    path = os.getenv("LOG_FILE_PATH") or os.path.join(os.getcwd(), "logs", "feedesk.log")
    wanted = _flag("LOG_TO_FILE")
    if wanted is not None:
        return path, wanted
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        open(path, "a", encoding="utf-8").close()
    except OSError:
        return path, False
    return path, True


def _handler(level: str, formatter: str, **opts: Any) -> Dict[str, Any]:
    opts.update(level=level, formatter=formatter, filters=["correlation", "sensitive"])
    return opts


def setup_logging() -> None:
    """Configure structured logging with payer data and secret masking.

    ENV:
      - APP_ENV: production|staging|development (default: production)
      - LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO in prod, DEBUG otherwise)
      - LOG_FORMAT: json|text (default: json in prod, text otherwise)
      - LOG_TO_FILE: 1/0 (default: 1 if the log file is writable)
      - LOG_FILE_PATH: path to log file (default: ./logs/feedesk.log)
    """
    env = os.getenv("APP_ENV", "production").lower()
    prod = env == "production"
    level = os.getenv("LOG_LEVEL", "INFO" if prod else "DEBUG").upper()
    fmt = os.getenv("LOG_FORMAT", "json" if prod else "text").lower()
    formatter = "json" if fmt == "json" else "plain"
    file_path, to_file = _file_target()

    handlers: Dict[str, Dict[str, Any]] = {
        "console": _handler(level, formatter, **{"class": "logging.StreamHandler", "stream": "ext://sys.stdout"}),
    }
    if to_file:
        handlers["file"] = _handler(
            level,
            formatter,
            **{
                "class": "logging.handlers.RotatingFileHandler",
                "filename": file_path,
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 3,
                "encoding": "utf-8",
                "delay": True,
            },
        )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "sensitive": {"()": SensitiveDataFilter},
                "correlation": {"()": CorrelationFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter},
                "plain": {"format": "%(asctime)s %(levelname)s [%(name)s] [%(correlation_id)s] %(message)s"},
            },
            "handlers": handlers,
            "root": {"level": level, "handlers": list(handlers)},
            "loggers": {
                "aiogram": {"level": level},
                # httpx logs full request URLs at INFO
                "httpx": {"level": "WARNING" if prod else "INFO"},
                "sqlalchemy.engine": {"level": "WARNING"},
                "aiojobs": {"level": "WARNING"},
            },
        }
    )

    logging.getLogger(__name__).info(
        "logging configured",
        extra={"extra": {"env": env, "level": level, "format": fmt, "file": file_path if to_file else None}},
    )
