from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_BACKEND_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
_DOTENV_LOADED = False
_ERP_TARGET_LOGGED = False

OPEN_SHIFT_POLICIES = ("backend", "zero_when_clocked_in")


@dataclass(frozen=True)
class ErpSettings:
    api_url: str
    api_key: str
    api_secret: str
    timeout_seconds: float = 30.0
    max_range_days: int = 31
    open_shift_policy: str = "backend"
    company_name: str = "BizSmart Enterprises Ltd"

    @property
    def token_header(self) -> str:
        return f"token {self.api_key}:{self.api_secret}"


def ensure_backend_env_loaded() -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)
    _DOTENV_LOADED = True


def _to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def _to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        return default


def _open_shift_policy(value: str | None) -> str:
    text = (value or "").strip().lower()
    if text in OPEN_SHIFT_POLICIES:
        return text
    if text:
        logger.warning("Unknown WORK_HOURS_OPEN_SHIFT_POLICY %r; using 'backend'", text)
    return "backend"


def get_erp_settings() -> ErpSettings:
    ensure_backend_env_loaded()
    return ErpSettings(
        api_url=(os.getenv("ERP_API_URL") or "").strip().rstrip("/"),
        api_key=(os.getenv("ERP_API_KEY") or "").strip(),
        api_secret=os.getenv("ERP_API_SECRET") or "",
        timeout_seconds=_to_float(os.getenv("ERP_TIMEOUT_SECONDS"), 30.0),
        max_range_days=max(1, _to_int(os.getenv("WORK_HOURS_MAX_RANGE_DAYS"), 31)),
        open_shift_policy=_open_shift_policy(os.getenv("WORK_HOURS_OPEN_SHIFT_POLICY")),
        company_name=(os.getenv("REPORT_COMPANY_NAME") or "").strip() or "BizSmart Enterprises Ltd",
    )


def validate_erp_settings(settings: ErpSettings) -> None:
    if not settings.api_url:
        raise RuntimeError("ERP_API_URL is empty; set ERP_API_URL in backend/.env")
    if not settings.api_key or not settings.api_secret:
        raise RuntimeError("API configuration missing; set ERP_API_KEY and ERP_API_SECRET in backend/.env")


def log_erp_target_once(settings: ErpSettings) -> None:
    global _ERP_TARGET_LOGGED
    if _ERP_TARGET_LOGGED:
        return
    logger.info(
        "ERP: using %s (timeout %ss)",
        settings.api_url or "<empty>",
        settings.timeout_seconds,
    )
    _ERP_TARGET_LOGGED = True


ensure_backend_env_loaded()
