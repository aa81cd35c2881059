"""Environment-driven settings for contributor fetch sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

UPSTREAM_MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 50
CONSECUTIVE_EMPTY_PAGE_LIMIT = 3


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "1" if default else "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(value, maximum))


def _env_float(name: str, default: float, *, minimum: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        return default


def github_token() -> Optional[str]:
    for name in ("GITHUB_TOKEN", "GH_TOKEN"):
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


@dataclass(frozen=True)
class FetchSettings:
    base_url: str = "https://api.github.com"
    timeout_seconds: float = 20.0
    max_pages_ceiling: int = 50
    max_retries: int = 3
    transient_retry_delay_seconds: float = 2.0
    commit_sample_size: int = 10
    detail_sample_size: int = 5
    run_store_enabled: bool = True


def load_fetch_settings() -> FetchSettings:
    return FetchSettings(
        base_url=(os.getenv("GITHUB_API_BASE_URL") or "https://api.github.com").strip().rstrip("/"),
        timeout_seconds=_env_float("GITHUB_TIMEOUT_SECONDS", 20.0, minimum=1.0),
        max_pages_ceiling=_env_int("CONTRIBUTORS_MAX_PAGES_CEILING", 50, minimum=1, maximum=1000),
        max_retries=_env_int("CONTRIBUTORS_MAX_RETRIES", 3, minimum=0, maximum=10),
        transient_retry_delay_seconds=_env_float(
            "CONTRIBUTORS_TRANSIENT_RETRY_DELAY_SECONDS", 2.0, minimum=0.0
        ),
        commit_sample_size=_env_int("CONTRIBUTORS_ENRICH_COMMIT_SAMPLE", 10, minimum=1, maximum=100),
        detail_sample_size=_env_int("CONTRIBUTORS_ENRICH_DETAIL_SAMPLE", 5, minimum=0, maximum=100),
        run_store_enabled=_env_flag("FETCH_RUN_STORE_ENABLED", True),
    )
