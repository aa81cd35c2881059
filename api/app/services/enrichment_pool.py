"""Enrich one page of base contributor records with profile + commit statistics.

Records are processed in small concurrent batches whose size follows the
remaining quota. Every input record yields exactly one output record, in the
input order; a record whose enrichment fails comes back with base fields only.

Upstream calls go through the session's RetryController when one is given, so
transient errors are retried and quota errors either wait (force_complete) or
stop the session. A quota stop raised mid-page surfaces as EnrichmentStopped,
carrying the page as far as it got.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from app.models.github_contributor import RECENT_ACTIVITY_LIMIT, ActivityItem, GitHubContributor
from app.services.contributor_aggregator import estimate_line_counts
from app.services.github_client import ContributorSource, GitHubAPIError
from app.services.retry_controller import QuotaStop, RetryController

log = logging.getLogger(__name__)

MIN_BATCH_SIZE = 2
MAX_BATCH_SIZE = 5

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class EnrichmentStopped(QuotaStop):
    """Quota ran out during enrichment; ``records`` is the whole page, base records where unfinished."""

    def __init__(self, stop: QuotaStop, records: list[GitHubContributor]) -> None:
        super().__init__(stop.context, stop.cause)
        self.records = records


def batch_size_for(remaining: Optional[int]) -> int:
    if remaining is None:
        return MAX_BATCH_SIZE
    return max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, remaining // 10))


def inter_batch_delay_for(remaining: Optional[int]) -> float:
    if remaining is None or remaining > 1000:
        return 0.0
    if remaining > 100:
        return 0.1
    if remaining > 50:
        return 0.5
    return 1.0


class EnrichmentPool:
    def __init__(
        self,
        client: ContributorSource,
        *,
        retry: Optional[RetryController] = None,
        commit_sample_size: int = 10,
        detail_sample_size: int = 5,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.retry = retry
        self.commit_sample_size = commit_sample_size
        self.detail_sample_size = detail_sample_size
        self._sleep = sleep
        self.failures = 0

    def _remaining(self) -> Optional[int]:
        state = self.client.rate_limit
        return state.remaining if state is not None else None

    async def _call(self, operation: Callable[[], Awaitable[T]], context: str) -> T:
        if self.retry is None:
            return await operation()
        return await self.retry.run(operation, context)

    async def enrich_page(self, owner: str, repo: str, records: list[GitHubContributor]) -> list[GitHubContributor]:
        results = list(records)
        start = 0
        while start < len(records):
            size = batch_size_for(self._remaining())
            indexes = range(start, min(start + size, len(records)))
            outcomes = await asyncio.gather(
                *(self.enrich_one(owner, repo, records[i]) for i in indexes),
                return_exceptions=True,
            )
            stop: Optional[QuotaStop] = None
            for i, outcome in zip(indexes, outcomes):
                if isinstance(outcome, QuotaStop):
                    stop = stop or outcome
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results[i] = outcome
            if stop is not None:
                log.warning(
                    "contributor_enrichment_stopped repo=%s/%s enriched=%s of=%s",
                    owner,
                    repo,
                    sum(1 for i in range(len(records)) if results[i] is not records[i]),
                    len(records),
                )
                raise EnrichmentStopped(stop, results)
            start += size
            if start < len(records):
                delay = inter_batch_delay_for(self._remaining())
                if delay > 0:
                    await self._sleep(delay)
        return results

    async def enrich_one(self, owner: str, repo: str, record: GitHubContributor) -> GitHubContributor:
        """Raises QuotaStop when the session must end; every other upstream failure degrades the record."""
        login = record.login
        try:
            profile = await self._call(lambda: self.client.get_user(login), f"profile {login}")
            commits = await self._call(
                lambda: self.client.list_author_commits(owner, repo, login, self.commit_sample_size),
                f"commits {login}",
            )
        except (GitHubAPIError, ValueError) as exc:
            self.failures += 1
            log.warning(
                "contributor_enrichment_failed repo=%s/%s login=%s error=%s",
                owner,
                repo,
                login,
                exc,
            )
            return record

        sampled = 0
        added = 0
        deleted = 0
        recent: list[ActivityItem] = []
        for position, commit in enumerate(commits):
            if position < self.detail_sample_size:
                sha = commit.sha
                try:
                    additions, deletions = await self._call(
                        lambda: self.client.get_commit_stats(owner, repo, sha), f"commit {sha}"
                    )
                except (GitHubAPIError, ValueError) as exc:
                    log.debug("commit_stats_failed repo=%s/%s sha=%s error=%s", owner, repo, sha, exc)
                else:
                    sampled += 1
                    added += additions
                    deleted += deletions
                    commit = commit.model_copy(update={"additions": additions, "deletions": deletions})
            if len(recent) < RECENT_ACTIVITY_LIMIT:
                recent.append(commit)

        lines_added, lines_deleted = estimate_line_counts(added, deleted, sampled, record.contributions)
        dates = [commit.date for commit in commits if commit.date is not None]
        return record.model_copy(
            update={
                "user_details": profile,
                "commit_count": record.contributions,
                "lines_added": lines_added,
                "lines_deleted": lines_deleted,
                "commits": recent,
                "first_contribution": min(dates) if dates else None,
                "last_contribution": max(dates) if dates else None,
            }
        )
