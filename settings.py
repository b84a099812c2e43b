from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


_HOST_ENV = "HOST"
_PORT_ENV = "PORT"
_EMAIL_USER_ENV = "EMAIL_USER"
_EMAIL_PASS_ENV = "EMAIL_PASS"
_ALERT_RECIPIENT_ENV = "ALERT_USER"
_EMAIL_SERVICE_ENV = "EMAIL_SERVICE"
_SMTP_HOST_ENV = "SMTP_HOST"
_SMTP_PORT_ENV = "SMTP_PORT"
_NOTIFY_TIMEOUT_ENV = "NOTIFY_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    email_user: Optional[str]
    email_password: Optional[str]
    alert_recipient: Optional[str]
    email_service: str
    smtp_host: str
    smtp_port: int
    notify_timeout: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings(
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_positive_int(_PORT_ENV, 8000),
        email_user=_read_optional_env(_EMAIL_USER_ENV),
        email_password=_read_optional_env(_EMAIL_PASS_ENV),
        alert_recipient=_read_optional_env(_ALERT_RECIPIENT_ENV),
        email_service=_read_str_env(_EMAIL_SERVICE_ENV, "gmail"),
        smtp_host=_read_str_env(_SMTP_HOST_ENV, "smtp.gmail.com"),
        smtp_port=_read_positive_int(_SMTP_PORT_ENV, 587),
        notify_timeout=_read_positive_float(_NOTIFY_TIMEOUT_ENV, 15.0),
        log_level=_read_log_level("INFO"),
    )
