"""Response envelopes for the contributor roster endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.models.github_contributor import GitHubContributor, RateLimitState
from app.models.github_repository import RepositoryInfo

T = TypeVar("T")


class PaginationInfo(BaseModel):
    page: int
    per_page: int
    total_count: int
    has_next: bool


class FetchMeta(BaseModel):
    total_fetched: int
    rate_limit_hit: bool
    pages_fetched: int
    warning: Optional[str] = None


class APIResponse(BaseModel, Generic[T]):
    """{ success, data, error?, pagination?, meta? } envelope."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    pagination: Optional[PaginationInfo] = None
    meta: Optional[FetchMeta] = None

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", exclude_none=True)
        payload.setdefault("data", None)
        return payload


ContributorsResponse = APIResponse[list[GitHubContributor]]
RateLimitResponse = APIResponse[RateLimitState]
RepositoryResponse = APIResponse[RepositoryInfo]


class RankedContributor(GitHubContributor):
    rank: int


class ContributorRankings(BaseModel):
    """Top contributors three ways; each list is ranked from 1."""

    by_contributions: list[RankedContributor] = Field(default_factory=list)
    by_lines_added: list[RankedContributor] = Field(default_factory=list)
    by_recent_activity: list[RankedContributor] = Field(default_factory=list)


RankingsResponse = APIResponse[ContributorRankings]


class FetchRun(BaseModel):
    """Summary of one fetch session, as stored by the fetch-run store."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner: str
    repo: str
    enhanced: bool
    fetch_all: bool
    force_complete: bool
    status_code: int
    pages_fetched: int = 0
    total_fetched: int = 0
    rate_limit_hit: bool = False
    warning: Optional[str] = None
    elapsed_ms: float = 0.0
    created_at: datetime


class FetchRunList(BaseModel):
    runs: list[FetchRun] = Field(default_factory=list)
    total: int = 0
