"""GitHub API client for contributor roster sessions.

Async REST wrapper with:
- optional token auth (GITHUB_TOKEN / GH_TOKEN)
- rate-limit tracking from X-RateLimit-* headers on every response
- basic ETag conditional requests + in-memory response cache
- one typed decoding boundary: callers only ever see roster models
- failures raised as GitHubAPIError tagged with an UpstreamErrorKind
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol
from urllib.parse import quote, urlencode

import httpx

from app.models.github_contributor import (
    ActivityItem,
    ContributorKind,
    ContributorProfile,
    GitHubContributor,
    RateLimitState,
)
from app.models.github_repository import RepositoryInfo

log = logging.getLogger(__name__)


class UpstreamErrorKind(str, Enum):
    QUOTA_EXHAUSTED = "quota_exhausted"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


def classify_status(status_code: int) -> UpstreamErrorKind:
    if status_code in (403, 429):
        return UpstreamErrorKind.QUOTA_EXHAUSTED
    if status_code == 404:
        return UpstreamErrorKind.NOT_FOUND
    return UpstreamErrorKind.TRANSIENT


class GitHubAPIError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        kind: UpstreamErrorKind | None = None,
        reset_at: datetime | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind or classify_status(status_code)
        self.reset_at = reset_at


class ContributorSource(Protocol):
    """What a fetch session needs from the upstream. Implementations: GitHubClient, test fakes."""

    rate_limit: Optional[RateLimitState]

    async def list_contributors(self, owner: str, repo: str, page: int, per_page: int) -> list[GitHubContributor]:
        ...

    async def get_user(self, login: str) -> ContributorProfile:
        ...

    async def list_author_commits(self, owner: str, repo: str, author: str, per_page: int) -> list[ActivityItem]:
        ...

    async def get_commit_stats(self, owner: str, repo: str, sha: str) -> tuple[int, int]:
        ...

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        ...

    async def get_rate_limit(self) -> RateLimitState:
        ...

    async def aclose(self) -> None:
        ...


def _parse_datetime(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _repo_path(owner: str, repo: str) -> str:
    return f"/repos/{_segment(owner)}/{_segment(repo)}"


def rate_limit_from_headers(headers: httpx.Headers) -> RateLimitState | None:
    remaining = headers.get("X-RateLimit-Remaining")
    reset = headers.get("X-RateLimit-Reset")
    limit = headers.get("X-RateLimit-Limit")
    try:
        rem_i = int(remaining) if remaining is not None else None
        reset_i = int(reset) if reset is not None else None
        limit_i = int(limit) if limit is not None else 5000
    except ValueError:
        return None
    if rem_i is None or reset_i is None:
        return None
    return RateLimitState(
        remaining=max(0, rem_i),
        reset_at=datetime.fromtimestamp(reset_i, tz=timezone.utc),
        limit=limit_i,
    )


def decode_contributor(item: Any) -> GitHubContributor | None:
    if not isinstance(item, dict):
        return None
    login = str(item.get("login") or "").strip()
    if not login:
        # anon=false still occasionally yields email-only rows
        return None
    contributions = _non_negative_int(item.get("contributions"))
    return GitHubContributor(
        login=login,
        id=_non_negative_int(item.get("id")),
        avatar_url=str(item.get("avatar_url") or ""),
        html_url=str(item.get("html_url") or ""),
        contributions=contributions,
        type=ContributorKind.BOT if item.get("type") == "Bot" else ContributorKind.USER,
        commit_count=contributions,
    )


def decode_profile(data: Any) -> ContributorProfile:
    if not isinstance(data, dict):
        raise GitHubAPIError("Unexpected user payload", kind=UpstreamErrorKind.TRANSIENT)
    return ContributorProfile(
        name=data.get("name") or None,
        email=data.get("email") or None,
        bio=data.get("bio") or None,
        location=data.get("location") or None,
        company=data.get("company") or None,
        blog=data.get("blog") or None,
        twitter_username=data.get("twitter_username") or None,
        public_repos=_non_negative_int(data.get("public_repos")),
        followers=_non_negative_int(data.get("followers")),
        following=_non_negative_int(data.get("following")),
        created_at=_parse_datetime(data.get("created_at")),
        updated_at=_parse_datetime(data.get("updated_at")),
    )


def decode_repository(data: Any) -> RepositoryInfo:
    if not isinstance(data, dict) or not data.get("name"):
        raise GitHubAPIError("Unexpected repository payload", kind=UpstreamErrorKind.TRANSIENT)
    return RepositoryInfo(
        name=str(data["name"]),
        full_name=str(data.get("full_name") or data["name"]),
        description=data.get("description") or None,
        html_url=str(data.get("html_url") or ""),
        stargazers_count=_non_negative_int(data.get("stargazers_count")),
        forks_count=_non_negative_int(data.get("forks_count")),
        # /repos reports watchers_count as stars; subscribers_count is the watcher count
        watchers_count=_non_negative_int(data.get("subscribers_count", data.get("watchers_count"))),
        open_issues_count=_non_negative_int(data.get("open_issues_count")),
        default_branch=str(data.get("default_branch") or "main"),
        language=data.get("language") or None,
    )


def decode_commit(item: Any) -> ActivityItem | None:
    if not isinstance(item, dict) or not item.get("sha"):
        return None
    commit = item.get("commit") if isinstance(item.get("commit"), dict) else {}
    author = commit.get("author") if isinstance(commit.get("author"), dict) else {}
    committer = commit.get("committer") if isinstance(commit.get("committer"), dict) else {}
    stats = item.get("stats") if isinstance(item.get("stats"), dict) else None
    return ActivityItem(
        sha=str(item["sha"]),
        message=str(commit.get("message") or ""),
        author_name=str(author.get("name") or ""),
        author_email=str(author.get("email") or ""),
        date=_parse_datetime(author.get("date")) or _parse_datetime(committer.get("date")),
        additions=_non_negative_int(stats.get("additions")) if stats else None,
        deletions=_non_negative_int(stats.get("deletions")) if stats else None,
    )


class GitHubClient:
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        user_agent: str = "repo-roster/1.0",
        timeout: float = 20.0,
    ) -> None:
        env_token = os.getenv("GITHUB_TOKEN")
        if not env_token:
            env_token = os.getenv("GH_TOKEN")
        if env_token:
            env_token = env_token.strip() or None
        self._token = token or env_token
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(timeout=timeout, headers=self._headers)

        # Per-session caches; 304 responses do not count against the quota
        self._etag_by_url: dict[str, str] = {}
        self._json_cache_by_url: dict[str, Any] = {}
        self.rate_limit: Optional[RateLimitState] = None
        self.request_count = 0

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _observe_rate_limit(self, r: httpx.Response) -> None:
        state = rate_limit_from_headers(r.headers)
        if state is not None:
            self.rate_limit = state

    async def _request(self, method: str, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        self.request_count += 1
        try:
            r = await self._client.request(method, url, headers=headers or None)
        except httpx.HTTPError as exc:
            raise GitHubAPIError(
                f"GitHub request failed for {url}: {exc.__class__.__name__}",
                kind=UpstreamErrorKind.TRANSIENT,
            ) from exc
        self._observe_rate_limit(r)
        return r

    async def get_json(self, path: str) -> Any:
        """GET JSON for a path or full URL. Uses ETag conditional requests when possible."""
        url = path if path.startswith("http") else f"{self._base_url}{path}"

        extra_headers: dict[str, str] = {}
        etag = self._etag_by_url.get(url)
        if etag:
            extra_headers["If-None-Match"] = etag

        r = await self._request("GET", url, headers=extra_headers)

        if r.status_code == 304:
            if url in self._json_cache_by_url:
                return self._json_cache_by_url[url]
            # If cache was lost, retry without condition.
            r = await self._request("GET", url, headers={})

        if r.status_code == 204:
            return []

        if r.status_code >= 400:
            reset_at = self.rate_limit.reset_at if self.rate_limit is not None else None
            raise GitHubAPIError(
                f"GitHub API error {r.status_code} for {url}: {r.text[:200]}",
                status_code=r.status_code,
                reset_at=reset_at,
            )

        try:
            data = r.json()
        except ValueError as exc:
            raise GitHubAPIError(
                f"GitHub API returned non-JSON body for {url}",
                status_code=r.status_code,
                kind=UpstreamErrorKind.TRANSIENT,
            ) from exc

        new_etag = r.headers.get("ETag")
        if new_etag:
            self._etag_by_url[url] = new_etag
        self._json_cache_by_url[url] = data
        return data

    async def list_contributors(self, owner: str, repo: str, page: int, per_page: int = 100) -> list[GitHubContributor]:
        query = urlencode({"per_page": per_page, "page": page, "anon": "false"})
        data = await self.get_json(f"{_repo_path(owner, repo)}/contributors?{query}")
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            data = data["items"]
        if not isinstance(data, list):
            log.warning("github_contributors_unexpected_payload owner=%s repo=%s page=%s", owner, repo, page)
            return []
        out: list[GitHubContributor] = []
        for item in data:
            record = decode_contributor(item)
            if record is not None:
                out.append(record)
        return out

    async def get_user(self, login: str) -> ContributorProfile:
        return decode_profile(await self.get_json(f"/users/{_segment(login)}"))

    async def list_author_commits(self, owner: str, repo: str, author: str, per_page: int = 10) -> list[ActivityItem]:
        query = urlencode({"author": author, "per_page": per_page})
        data = await self.get_json(f"{_repo_path(owner, repo)}/commits?{query}")
        if not isinstance(data, list):
            return []
        out: list[ActivityItem] = []
        for item in data:
            commit = decode_commit(item)
            if commit is not None:
                out.append(commit)
        return out

    async def get_commit_stats(self, owner: str, repo: str, sha: str) -> tuple[int, int]:
        commit = decode_commit(await self.get_json(f"{_repo_path(owner, repo)}/commits/{_segment(sha)}"))
        if commit is None:
            return 0, 0
        return commit.additions or 0, commit.deletions or 0

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        return decode_repository(await self.get_json(_repo_path(owner, repo)))

    async def get_rate_limit(self) -> RateLimitState:
        data = await self.get_json("/rate_limit")
        resources = data.get("resources") if isinstance(data, dict) else None
        core = resources.get("core") if isinstance(resources, dict) else None
        if not isinstance(core, dict):
            core = data.get("rate") if isinstance(data, dict) else None
        if not isinstance(core, dict):
            raise GitHubAPIError("Rate limit payload missing core resource", kind=UpstreamErrorKind.TRANSIENT)
        state = RateLimitState(
            remaining=_non_negative_int(core.get("remaining")),
            reset_at=datetime.fromtimestamp(_non_negative_int(core.get("reset")), tz=timezone.utc),
            limit=_non_negative_int(core.get("limit")) or 5000,
        )
        self.rate_limit = state
        return state
