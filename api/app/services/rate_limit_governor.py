"""Rate-limit governor: turns the trailing quota signal into a pacing decision."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from app.models.github_contributor import RateLimitState

log = logging.getLogger(__name__)

CRITICAL_REMAINING = 5
LOW_REMAINING = 10
MAX_GOVERNOR_WAIT_SECONDS = 60.0


class GovernorDecision(str, Enum):
    CONTINUE = "continue"
    CONTINUE_AFTER = "continue_after"
    ABORT = "abort"


@dataclass(frozen=True)
class GovernorAction:
    decision: GovernorDecision
    delay_seconds: float = 0.0

    @classmethod
    def proceed(cls) -> "GovernorAction":
        return cls(GovernorDecision.CONTINUE)

    @classmethod
    def wait(cls, seconds: float) -> "GovernorAction":
        return cls(GovernorDecision.CONTINUE_AFTER, max(0.0, seconds))


class RateLimitGovernor:
    """Never aborts on its own; ABORT needs the session to pass stop_on_exhaustion (no force_complete)."""

    def __init__(
        self,
        critical_remaining: int = CRITICAL_REMAINING,
        low_remaining: int = LOW_REMAINING,
        max_wait_seconds: float = MAX_GOVERNOR_WAIT_SECONDS,
    ) -> None:
        self.critical_remaining = critical_remaining
        self.low_remaining = low_remaining
        self.max_wait_seconds = max_wait_seconds
        self.warnings = 0

    def observe(
        self,
        state: Optional[RateLimitState],
        now: datetime | None = None,
        *,
        stop_on_exhaustion: bool = False,
    ) -> GovernorAction:
        """Pacing for the next request.

        ABORT only when the caller opted in (no force_complete) and the quota is
        fully spent until a future reset; the next request would fail anyway.
        """
        if state is None:
            return GovernorAction.proceed()
        current = now or datetime.now(timezone.utc)
        until_reset = state.seconds_until_reset(current)
        if stop_on_exhaustion and state.remaining == 0 and until_reset > 0:
            log.warning("rate_limit_exhausted remaining=0 reset_at=%s", state.reset_at.isoformat())
            return GovernorAction(GovernorDecision.ABORT)
        if state.remaining < self.critical_remaining and until_reset > 0:
            delay = min(until_reset, self.max_wait_seconds)
            log.warning(
                "rate_limit_critical remaining=%s reset_at=%s sleep_seconds=%.1f",
                state.remaining,
                state.reset_at.isoformat(),
                delay,
            )
            return GovernorAction.wait(delay)
        if state.remaining < self.low_remaining:
            self.warnings += 1
            log.warning("rate_limit_low remaining=%s reset_at=%s", state.remaining, state.reset_at.isoformat())
        return GovernorAction.proceed()
