"""Contributor roster fetch session: pagination driver for GET /api/contributors.

Walks the upstream contributors listing page by page, pacing itself with the
rate-limit governor, recovering through the retry controller, enriching pages
when asked, and hands the aggregated roster to filter/sort/window.

Stops on: 3 consecutive empty pages, max_pages, the safety ceiling, quota
exhaustion without force_complete, or a fatal upstream error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.models.contributor_response import ContributorsResponse, FetchMeta, PaginationInfo
from app.models.fetch_session import FetchSession
from app.models.github_contributor import FetchOptions, FilterCriteria, GitHubContributor
from app.services.contributor_aggregator import ContributorAggregator
from app.services.contributor_filters import apply_criteria, window
from app.services.enrichment_pool import EnrichmentPool, EnrichmentStopped
from app.services.fetch_config import (
    CONSECUTIVE_EMPTY_PAGE_LIMIT,
    UPSTREAM_MAX_PER_PAGE,
    FetchSettings,
    load_fetch_settings,
)
from app.services.github_client import ContributorSource, GitHubAPIError, UpstreamErrorKind
from app.services.rate_limit_governor import GovernorDecision, RateLimitGovernor
from app.services.retry_controller import QuotaStop, RetryController

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RepositoryNotFound(Exception):
    pass


@dataclass
class FetchOutcome:
    status_code: int
    response: ContributorsResponse
    session: FetchSession


class ContributorFetchSession:
    def __init__(
        self,
        client: ContributorSource,
        owner: str,
        repo: str,
        options: FetchOptions,
        *,
        settings: Optional[FetchSettings] = None,
        governor: Optional[RateLimitGovernor] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.options = options
        self.settings = settings or load_fetch_settings()
        self.governor = governor or RateLimitGovernor()
        self.session = FetchSession(owner=owner, repo=repo, page=1 if options.fetch_all else options.page)
        self.aggregator = ContributorAggregator()
        self.retry = RetryController(
            self.session,
            force_complete=options.force_complete,
            max_retries=self.settings.max_retries,
            transient_delay_seconds=self.settings.transient_retry_delay_seconds,
            sleep=sleep,
        )
        self.pool = (
            EnrichmentPool(
                client,
                retry=self.retry,
                commit_sample_size=self.settings.commit_sample_size,
                detail_sample_size=self.settings.detail_sample_size,
                sleep=sleep,
            )
            if options.enhanced
            else None
        )
        self._sleep = sleep
        self._last_page_size = 0

    @property
    def page_limit(self) -> int:
        ceiling = self.settings.max_pages_ceiling
        if self.options.max_pages > 0:
            return min(self.options.max_pages, ceiling)
        return ceiling

    async def _fetch_page(self, page: int, per_page: int) -> list[GitHubContributor]:
        s = self.session
        try:
            return await self.retry.run(
                lambda: self.client.list_contributors(s.owner, s.repo, page, per_page),
                context=f"contributors page {page}",
            )
        except GitHubAPIError as exc:
            if exc.kind == UpstreamErrorKind.NOT_FOUND and s.pages_fetched == 0:
                raise RepositoryNotFound(s.slug) from exc
            raise

    async def _consume_page(self, records: list[GitHubContributor]) -> None:
        s = self.session
        s.pages_fetched += 1
        self._last_page_size = len(records)
        if not records:
            s.consecutive_empty_pages += 1
            return
        s.consecutive_empty_pages = 0
        s.total_observed += len(records)
        if self.pool is not None:
            try:
                records = await self.pool.enrich_page(s.owner, s.repo, records)
            except EnrichmentStopped as stop:
                # keep the page: enriched where finished, base records elsewhere
                self.aggregator.merge(stop.records)
                raise
        self.aggregator.merge(records)
        remaining = self.client.rate_limit.remaining if self.client.rate_limit else None
        log.info(
            "contributors_page_fetched session=%s page=%s count=%s aggregated=%s remaining=%s",
            s.slug,
            s.page,
            len(records),
            len(self.aggregator),
            remaining,
        )

    async def _pace(self) -> None:
        action = self.governor.observe(self.client.rate_limit, stop_on_exhaustion=not self.options.force_complete)
        if action.decision == GovernorDecision.ABORT:
            self.session.quota_exhausted = True
            raise QuotaStop(f"contributors page {self.session.page}")
        if action.decision == GovernorDecision.CONTINUE_AFTER and action.delay_seconds > 0:
            await self._sleep(action.delay_seconds)

    async def _drive_all(self) -> None:
        s = self.session
        while True:
            if s.page > self.page_limit:
                if self.options.max_pages == 0 or self.options.max_pages > self.settings.max_pages_ceiling:
                    s.ceiling_hit = True
                    s.warn(
                        f"Stopped after {s.pages_fetched} pages (safety ceiling of "
                        f"{self.settings.max_pages_ceiling * UPSTREAM_MAX_PER_PAGE} contributors)."
                    )
                break
            await self._pace()
            records = await self._fetch_page(s.page, UPSTREAM_MAX_PER_PAGE)
            await self._consume_page(records)
            if s.consecutive_empty_pages >= CONSECUTIVE_EMPTY_PAGE_LIMIT:
                log.info("contributors_listing_exhausted session=%s pages=%s", s.slug, s.pages_fetched)
                break
            s.page += 1

    async def _drive_single(self) -> None:
        records = await self._fetch_page(self.options.page, self.options.per_page)
        await self._consume_page(records)

    async def collect(self) -> list[GitHubContributor]:
        """Run pagination. Raises RepositoryNotFound and fatal GitHubAPIError; quota stops are absorbed."""
        try:
            if self.options.fetch_all:
                await self._drive_all()
            else:
                await self._drive_single()
        except QuotaStop:
            self.session.warn(
                "GitHub API rate limit reached; returning partial results "
                f"({len(self.aggregator)} contributors from {self.session.pages_fetched} pages)."
            )
        log.info(
            "contributors_session_done session=%s pages=%s listed=%s retries=%s quota_exhausted=%s diagnostics=%s",
            self.session.slug,
            self.session.pages_fetched,
            self.session.total_observed,
            self.session.retries,
            self.session.quota_exhausted,
            self.aggregator.diagnostics(),
        )
        return self.aggregator.records()

    def meta(self) -> FetchMeta:
        s = self.session
        return FetchMeta(
            total_fetched=len(self.aggregator),
            rate_limit_hit=s.quota_exhausted,
            pages_fetched=s.pages_fetched,
            warning=s.warning,
        )

    def build_response(self, records: list[GitHubContributor], criteria: FilterCriteria) -> ContributorsResponse:
        filtered = apply_criteria(records, criteria)
        if self.options.fetch_all:
            view = window(filtered, self.options.page, self.options.per_page, full=True)
            has_next = False
        else:
            # the single upstream page already is the requested window
            view = window(filtered, 1, self.options.per_page)
            has_next = view.has_next or self._last_page_size >= self.options.per_page
        return ContributorsResponse(
            success=True,
            data=view.items,
            pagination=PaginationInfo(
                page=self.options.page,
                per_page=self.options.per_page,
                total_count=view.total_count,
                has_next=has_next,
            ),
            meta=self.meta(),
        )


async def fetch_contributors(
    client: ContributorSource,
    owner: str,
    repo: str,
    options: FetchOptions,
    criteria: FilterCriteria,
    *,
    settings: Optional[FetchSettings] = None,
    governor: Optional[RateLimitGovernor] = None,
    sleep: Sleep = asyncio.sleep,
) -> FetchOutcome:
    """Run one session end to end and map its result onto a status code + envelope."""
    runner = ContributorFetchSession(
        client, owner, repo, options, settings=settings, governor=governor, sleep=sleep
    )
    session = runner.session
    try:
        records = await runner.collect()
    except RepositoryNotFound:
        log.info("contributors_repository_not_found session=%s", session.slug)
        return FetchOutcome(404, ContributorsResponse(success=False, error="Repository not found"), session)
    except GitHubAPIError as exc:
        log.error(
            "contributors_session_failed session=%s page=%s status=%s kind=%s error=%s",
            session.slug,
            session.page,
            exc.status_code,
            exc.kind.value,
            exc,
        )
        return FetchOutcome(500, ContributorsResponse(success=False, error="Internal server error"), session)

    if session.quota_exhausted and not records:
        return FetchOutcome(
            429,
            ContributorsResponse(
                success=False,
                error="GitHub API rate limit exceeded before any contributors were fetched",
                meta=runner.meta(),
            ),
            session,
        )
    return FetchOutcome(200, runner.build_response(records, criteria), session)
