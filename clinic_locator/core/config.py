"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

from clinic_locator.models import DEFAULT_KEYWORDS, DEFAULT_RADIUS_MILES, RADIUS_OPTIONS_MILES

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    locator_port: int = 9000
    default_radius_miles: int = DEFAULT_RADIUS_MILES
    keywords: Tuple[str, ...] = DEFAULT_KEYWORDS
    max_pages: int = 1
    detail_delay: float = 0.0
    watch_timeout: float = 10.0
    session_idle_seconds: float = 1800.0


def _parse_keywords(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    locator_port = int(os.getenv("LOCATOR_PORT", "9000"))
    max_pages = max(1, int(os.getenv("NEARBY_MAX_PAGES", "1")))
    detail_delay = float(os.getenv("DETAIL_FETCH_DELAY", "0"))
    watch_timeout = float(os.getenv("WATCH_TIMEOUT_SECONDS", "10"))
    session_idle_seconds = float(os.getenv("SESSION_IDLE_SECONDS", "1800"))

    default_radius_miles = DEFAULT_RADIUS_MILES
    radius_raw = os.getenv("DEFAULT_RADIUS_MILES")
    if radius_raw:
        try:
            radius = int(radius_raw)
        except ValueError:
            radius = None
        if radius in RADIUS_OPTIONS_MILES:
            default_radius_miles = radius
        else:
            logger.warning(
                "DEFAULT_RADIUS_MILES=%s is not one of %s; using %d.",
                radius_raw,
                RADIUS_OPTIONS_MILES,
                DEFAULT_RADIUS_MILES,
            )

    keywords = _parse_keywords(os.getenv("CLINIC_KEYWORDS", "")) or DEFAULT_KEYWORDS

    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; Google Maps requests will fail.")

    return Settings(
        google_api_key=google_api_key,
        locator_port=locator_port,
        default_radius_miles=default_radius_miles,
        keywords=keywords,
        max_pages=max_pages,
        detail_delay=detail_delay,
        watch_timeout=watch_timeout,
        session_idle_seconds=session_idle_seconds,
    )


def require_api_key(settings: Settings) -> str:
    if not settings.google_api_key:
        raise ConfigError("GOOGLE_API_KEY must be set in the environment to query Google Maps.")
    return settings.google_api_key
