from dataclasses import dataclass
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from todowhats.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_SYNC_INTERVAL_SECONDS

load_dotenv()


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    db_path: Path
    sync_interval_seconds: float
    http_timeout_seconds: float
    timezone: str
    log_level: str


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    api_base_url = os.getenv("API_BASE_URL", "").strip()
    db_raw = os.getenv("DB_PATH", "data/todowhats.db").strip()
    tz = os.getenv("TZ", "UTC").strip() or "UTC"
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    if not api_base_url:
        raise RuntimeError("API_BASE_URL missing in .env")
    if not api_base_url.startswith(("http://", "https://")):
        raise RuntimeError(f"API_BASE_URL must be an http(s) URL, got {api_base_url!r}")
    if not isinstance(logging.getLevelName(log_level), int):
        raise RuntimeError(f"LOG_LEVEL invalid: {log_level!r}")

    return Settings(
        api_base_url=api_base_url.rstrip("/"),
        db_path=Path(db_raw or "data/todowhats.db"),
        sync_interval_seconds=_positive_float("SYNC_INTERVAL_SECONDS", DEFAULT_SYNC_INTERVAL_SECONDS),
        http_timeout_seconds=_positive_float("HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
        timezone=tz,
        log_level=log_level,
    )
