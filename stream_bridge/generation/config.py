"""Runtime configuration for the generation bridge, loaded once at startup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = (
    "https://aihubmix.com/gemini/v1beta/models/gemini-3-pro-image-preview:streamGenerateContent"
)


def _read_float(source: Mapping[str, str], name: str, default: float) -> float:
    raw = source.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _read_int(source: Mapping[str, str], name: str, default: int) -> int:
    raw = source.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be >= 1")
    return value


@dataclass(frozen=True)
class BridgeSettings:
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    cache_dir: Path = Path("./cache")
    database_url: Optional[str] = None
    stall_timeout_seconds: float = 60.0
    connect_timeout_seconds: float = 10.0
    max_prompt_length: int = 5000
    persist_workers: int = 4
    default_max_age_hours: float = 24.0
    redis_url: Optional[str] = None
    log_level: str = "INFO"

    @property
    def cache_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+pysqlite:///{self.cache_dir / 'artifacts.db'}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BridgeSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        api_key = source.get("AIHUBMIX_API_KEY", "").strip()
        if not api_key:
            logger.warning("AIHUBMIX_API_KEY not set. Generation endpoints will not work.")

        base_url = source.get("GENERATION_BASE_URL", DEFAULT_BASE_URL).strip()
        if not (base_url.startswith("http://") or base_url.startswith("https://")):
            raise ValueError("GENERATION_BASE_URL must start with http:// or https://")

        return cls(
            api_key=api_key,
            base_url=base_url,
            cache_dir=Path(source.get("CACHE_DIR", "./cache").strip() or "./cache"),
            database_url=source.get("CACHE_DATABASE_URL", "").strip() or None,
            stall_timeout_seconds=_read_float(source, "STREAM_STALL_TIMEOUT", 60.0),
            connect_timeout_seconds=_read_float(source, "CONNECT_TIMEOUT", 10.0),
            max_prompt_length=_read_int(source, "MAX_TEXT_LENGTH", 5000),
            persist_workers=_read_int(source, "PERSIST_WORKERS", 4),
            default_max_age_hours=_read_float(source, "CACHE_MAX_AGE_HOURS", 24.0),
            redis_url=source.get("REDIS_URL", "").strip() or None,
            log_level=source.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
