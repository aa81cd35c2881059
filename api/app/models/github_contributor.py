"""GitHub contributor roster models.

Typed records produced by the upstream decoding boundary and returned by
GET /api/contributors. Field names follow the roster wire contract consumed by
the web client (login, contributions, user_details, ...).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

RECENT_ACTIVITY_LIMIT = 5


class ContributorKind(str, Enum):
    USER = "User"
    BOT = "Bot"


class SortKey(str, Enum):
    CONTRIBUTIONS = "contributions"
    NAME = "name"
    RECENT_ACTIVITY = "recent_activity"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ContributorProfile(BaseModel):
    """Profile fields from GET /users/{login}; present only after enrichment."""

    name: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    blog: Optional[str] = None
    twitter_username: Optional[str] = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActivityItem(BaseModel):
    """One commit authored by the contributor in the fetched repository."""

    sha: str
    message: str = ""
    author_name: str = ""
    author_email: str = ""
    date: Optional[datetime] = None
    additions: Optional[int] = None
    deletions: Optional[int] = None


class GitHubContributor(BaseModel):
    """One roster row, keyed by login."""

    login: str
    id: int = Field(default=0, ge=0)
    avatar_url: str = ""
    html_url: str = ""
    contributions: int = Field(default=0, ge=0)
    type: ContributorKind = ContributorKind.USER
    user_details: Optional[ContributorProfile] = None
    commit_count: Optional[int] = Field(default=None, ge=0)
    lines_added: int = Field(default=0, ge=0)
    lines_deleted: int = Field(default=0, ge=0)
    first_contribution: Optional[datetime] = None
    last_contribution: Optional[datetime] = None
    commits: list[ActivityItem] = Field(default_factory=list, max_length=RECENT_ACTIVITY_LIMIT)

    def model_post_init(self, __context) -> None:
        if self.commit_count is None:
            self.commit_count = self.contributions

    @property
    def display_name(self) -> str:
        if self.user_details is not None and self.user_details.name:
            return self.user_details.name
        return self.login


class RateLimitState(BaseModel):
    """Core quota signal from X-RateLimit-* headers or GET /rate_limit."""

    remaining: int = Field(ge=0)
    reset_at: datetime
    limit: int = 5000

    @computed_field  # type: ignore[misc]
    @property
    def used(self) -> int:
        return max(0, self.limit - self.remaining)

    def seconds_until_reset(self, now: datetime | None = None) -> float:
        current = now or datetime.now(timezone.utc)
        return (self.reset_at - current).total_seconds()


class FilterCriteria(BaseModel):
    """Caller-supplied filter predicates and ordering."""

    min_contributions: Optional[int] = None
    max_contributions: Optional[int] = None
    location: Optional[str] = None
    company: Optional[str] = None
    sort_by: SortKey = SortKey.CONTRIBUTIONS
    sort_order: SortOrder = SortOrder.DESC


class FetchOptions(BaseModel):
    """How one fetch session walks the upstream listing."""

    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=50, ge=1, le=100)
    enhanced: bool = False
    fetch_all: bool = False
    max_pages: int = Field(default=0, ge=0)
    force_complete: bool = False
