"""Contributor roster API routes.

GET /api/contributors            -> fetch, enrich, filter, sort and window a repository's contributors
GET /api/contributors/rankings   -> top contributors by contributions, lines added, recent activity
GET /api/contributors/rate-limit -> current upstream quota
GET /api/contributors/runs       -> recent fetch sessions
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.models.contributor_response import (
    ContributorsResponse,
    FetchRunList,
    RankingsResponse,
    RateLimitResponse,
)
from app.models.github_contributor import FetchOptions, FilterCriteria, SortKey, SortOrder
from app.services import fetch_run_store
from app.services.contributor_fetch_service import FetchOutcome, Sleep, fetch_contributors
from app.services.contributor_rankings import RANKING_LIMIT, rank_contributors
from app.services.fetch_config import (
    DEFAULT_PER_PAGE,
    UPSTREAM_MAX_PER_PAGE,
    FetchSettings,
    github_token,
    load_fetch_settings,
)
from app.services.github_client import ContributorSource, GitHubAPIError, GitHubClient
from app.services.repository_ref import parse_github_url

router = APIRouter()
log = logging.getLogger(__name__)

ClientFactory = Callable[[], ContributorSource]


class MissingCredentialError(RuntimeError):
    pass


def get_fetch_settings() -> FetchSettings:
    return load_fetch_settings()


def get_client_factory(settings: FetchSettings = Depends(get_fetch_settings)) -> ClientFactory:
    def _build() -> ContributorSource:
        token = github_token()
        if not token:
            raise MissingCredentialError("GitHub token not configured")
        return GitHubClient(token=token, base_url=settings.base_url, timeout=settings.timeout_seconds)

    return _build


def get_sleep() -> Sleep:
    return asyncio.sleep


class InvalidTarget(ValueError):
    pass


def resolve_target(owner: Optional[str], repo: Optional[str], repo_url: Optional[str]) -> tuple[str, str]:
    """owner+repo win over repo_url; raises InvalidTarget with the 400 message."""
    if repo_url and not (owner and repo):
        parsed = parse_github_url(repo_url)
        if parsed is None:
            raise InvalidTarget("Invalid GitHub repository URL")
        owner, repo = parsed
    owner = (owner or "").strip()
    repo = (repo or "").strip()
    if not owner or not repo:
        raise InvalidTarget("Missing required parameters: owner and repo")
    return owner, repo


def _error(status_code: int, message: str) -> JSONResponse:
    body = ContributorsResponse(success=False, error=message)
    return JSONResponse(status_code=status_code, content=body.to_payload())


def _record_run(outcome: FetchOutcome, options: FetchOptions, elapsed_ms: float) -> None:
    meta = outcome.response.meta
    try:
        fetch_run_store.record_run(
            owner=outcome.session.owner,
            repo=outcome.session.repo,
            enhanced=options.enhanced,
            fetch_all=options.fetch_all,
            force_complete=options.force_complete,
            status_code=outcome.status_code,
            pages_fetched=outcome.session.pages_fetched,
            total_fetched=meta.total_fetched if meta else 0,
            rate_limit_hit=outcome.session.quota_exhausted,
            warning=outcome.session.warning,
            elapsed_ms=elapsed_ms,
        )
    except Exception:
        # Run history must not affect request success.
        log.warning("contributor_fetch_run_record_failed session=%s", outcome.session.slug, exc_info=True)


@router.get("/contributors", response_model=ContributorsResponse)
async def list_repository_contributors(
    owner: Optional[str] = Query(None, description="Repository owner (user or organization)."),
    repo: Optional[str] = Query(None, description="Repository name."),
    repo_url: Optional[str] = Query(None, description="GitHub URL or owner/repo, instead of owner+repo."),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PER_PAGE, ge=1, description="Capped at 100."),
    enhanced: bool = Query(False, description="Fetch profile + commit statistics per contributor."),
    fetch_all: bool = Query(False, description="Walk every upstream page instead of one."),
    max_pages: int = Query(0, ge=0, description="0 = unlimited (up to the safety ceiling)."),
    force_complete: bool = Query(False, description="Wait out quota exhaustion instead of returning partial data."),
    min_contributions: Optional[int] = Query(None, ge=0),
    max_contributions: Optional[int] = Query(None, ge=0),
    location: Optional[str] = Query(None),
    company: Optional[str] = Query(None),
    sort_by: SortKey = Query(SortKey.CONTRIBUTIONS),
    sort_order: SortOrder = Query(SortOrder.DESC),
    settings: FetchSettings = Depends(get_fetch_settings),
    client_factory: ClientFactory = Depends(get_client_factory),
    sleep: Sleep = Depends(get_sleep),
):
    """Fetch a repository's contributor roster."""
    try:
        owner, repo = resolve_target(owner, repo, repo_url)
    except InvalidTarget as exc:
        return _error(400, str(exc))

    try:
        client = client_factory()
    except MissingCredentialError as exc:
        log.error("contributors_missing_credential owner=%s repo=%s", owner, repo)
        return _error(500, str(exc))

    options = FetchOptions(
        page=page,
        per_page=min(per_page, UPSTREAM_MAX_PER_PAGE),
        enhanced=enhanced,
        fetch_all=fetch_all,
        max_pages=max_pages,
        force_complete=force_complete,
    )
    criteria = FilterCriteria(
        min_contributions=min_contributions,
        max_contributions=max_contributions,
        location=location or None,
        company=company or None,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    started = time.perf_counter()
    try:
        outcome = await fetch_contributors(client, owner, repo, options, criteria, settings=settings, sleep=sleep)
    except Exception:
        log.exception("contributors_api_error owner=%s repo=%s", owner, repo)
        return _error(500, "Internal server error")
    finally:
        await client.aclose()
    elapsed_ms = (time.perf_counter() - started) * 1000.0

    if settings.run_store_enabled:
        await asyncio.to_thread(_record_run, outcome, options, elapsed_ms)
    return JSONResponse(status_code=outcome.status_code, content=outcome.response.to_payload())


@router.get("/contributors/rankings", response_model=RankingsResponse)
async def get_contributor_rankings(
    owner: Optional[str] = Query(None),
    repo: Optional[str] = Query(None),
    repo_url: Optional[str] = Query(None),
    enhanced: bool = Query(True, description="Lines-added and recent-activity boards need enrichment."),
    max_pages: int = Query(1, ge=0, description="Upstream pages to rank over; 0 = up to the safety ceiling."),
    force_complete: bool = Query(False),
    limit: int = Query(RANKING_LIMIT, ge=1, le=UPSTREAM_MAX_PER_PAGE),
    settings: FetchSettings = Depends(get_fetch_settings),
    client_factory: ClientFactory = Depends(get_client_factory),
    sleep: Sleep = Depends(get_sleep),
):
    """Leaderboards over the collected roster (unfiltered)."""
    try:
        owner, repo = resolve_target(owner, repo, repo_url)
    except InvalidTarget as exc:
        return _error(400, str(exc))
    try:
        client = client_factory()
    except MissingCredentialError as exc:
        return _error(500, str(exc))

    options = FetchOptions(enhanced=enhanced, fetch_all=True, max_pages=max_pages, force_complete=force_complete)
    started = time.perf_counter()
    try:
        outcome = await fetch_contributors(
            client, owner, repo, options, FilterCriteria(), settings=settings, sleep=sleep
        )
    except Exception:
        log.exception("contributor_rankings_error owner=%s repo=%s", owner, repo)
        return _error(500, "Internal server error")
    finally:
        await client.aclose()
    elapsed_ms = (time.perf_counter() - started) * 1000.0

    if settings.run_store_enabled:
        await asyncio.to_thread(_record_run, outcome, options, elapsed_ms)
    roster = outcome.response
    if outcome.status_code != 200 or roster.data is None:
        return JSONResponse(status_code=outcome.status_code, content=roster.to_payload())
    body = RankingsResponse(success=True, data=rank_contributors(roster.data, limit), meta=roster.meta)
    return JSONResponse(status_code=200, content=body.to_payload())


@router.get("/contributors/rate-limit", response_model=RateLimitResponse)
async def get_upstream_rate_limit(client_factory: ClientFactory = Depends(get_client_factory)):
    """Current core quota of the configured GitHub token."""
    try:
        client = client_factory()
    except MissingCredentialError as exc:
        return JSONResponse(status_code=500, content=RateLimitResponse(success=False, error=str(exc)).to_payload())
    try:
        state = await client.get_rate_limit()
    except GitHubAPIError as exc:
        log.warning("rate_limit_check_failed status=%s error=%s", exc.status_code, exc)
        body = RateLimitResponse(success=False, error="Failed to check rate limit")
        return JSONResponse(status_code=500, content=body.to_payload())
    finally:
        await client.aclose()
    return JSONResponse(status_code=200, content=RateLimitResponse(success=True, data=state).to_payload())


@router.get("/contributors/runs", response_model=FetchRunList)
def list_fetch_runs(
    limit: int = Query(50, ge=1, le=500),
    owner: Optional[str] = Query(None),
    repo: Optional[str] = Query(None),
) -> FetchRunList:
    """Most recent contributor fetch sessions, newest first."""
    runs = fetch_run_store.list_runs(limit=limit, owner=owner, repo=repo)
    return FetchRunList(runs=runs, total=len(runs))
