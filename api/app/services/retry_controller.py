"""Retry/recovery controller for every upstream call a fetch session makes (pages and enrichment).

Dispatches on GitHubAPIError.kind:
- QUOTA_EXHAUSTED: wait for reset and retry when force_complete, otherwise stop gracefully
- NOT_FOUND: fatal, re-raised untouched
- TRANSIENT: short fixed delay, then retry
Retry budget is shared by the whole session, not per page.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from app.models.fetch_session import FetchSession
from app.services.github_client import GitHubAPIError, UpstreamErrorKind

log = logging.getLogger(__name__)

T = TypeVar("T")

MIN_QUOTA_WAIT_SECONDS = 60.0
MAX_QUOTA_WAIT_SECONDS = 300.0

Sleep = Callable[[float], Awaitable[None]]


class QuotaStop(Exception):
    """Quota is exhausted and the session should end with what it has."""

    def __init__(self, context: str, cause: Optional[GitHubAPIError] = None) -> None:
        super().__init__(f"Quota exhausted during {context}")
        self.context = context
        self.cause = cause


class RetryController:
    def __init__(
        self,
        session: FetchSession,
        *,
        force_complete: bool = False,
        max_retries: int = 3,
        transient_delay_seconds: float = 2.0,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.session = session
        self.force_complete = force_complete
        self.max_retries = max_retries
        self.transient_delay_seconds = transient_delay_seconds
        self._sleep = sleep
        self._clock = clock

    @property
    def retries_left(self) -> int:
        return max(0, self.max_retries - self.session.retries)

    def quota_wait_seconds(self, error: GitHubAPIError) -> float:
        if error.reset_at is None:
            return MIN_QUOTA_WAIT_SECONDS
        until_reset = (error.reset_at - self._clock()).total_seconds()
        return max(MIN_QUOTA_WAIT_SECONDS, min(until_reset, MAX_QUOTA_WAIT_SECONDS))

    async def run(self, operation: Callable[[], Awaitable[T]], context: str) -> T:
        while True:
            try:
                return await operation()
            except GitHubAPIError as exc:
                delay = self._recovery_delay(exc, context)
            self.session.retries += 1
            log.info(
                "upstream_retry session=%s context=%s attempt=%s delay_seconds=%.1f",
                self.session.slug,
                context,
                self.session.retries,
                delay,
            )
            await self._sleep(delay)

    def _recovery_delay(self, exc: GitHubAPIError, context: str) -> float:
        """Return how long to wait before retrying, or raise when the error is final."""
        if exc.kind == UpstreamErrorKind.NOT_FOUND:
            raise exc

        if exc.kind == UpstreamErrorKind.QUOTA_EXHAUSTED:
            if not self.force_complete or self.retries_left == 0:
                self.session.quota_exhausted = True
                log.warning(
                    "upstream_quota_exhausted session=%s context=%s force_complete=%s retries=%s",
                    self.session.slug,
                    context,
                    self.force_complete,
                    self.session.retries,
                )
                raise QuotaStop(context, exc) from exc
            return self.quota_wait_seconds(exc)

        if self.retries_left == 0:
            log.error(
                "upstream_retries_exhausted session=%s context=%s status=%s error=%s",
                self.session.slug,
                context,
                exc.status_code,
                exc,
            )
            raise exc
        return self.transient_delay_seconds
