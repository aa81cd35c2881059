"""Pydantic models."""

from app.models.contributor_response import (
    APIResponse,
    ContributorRankings,
    ContributorsResponse,
    FetchMeta,
    FetchRun,
    FetchRunList,
    PaginationInfo,
    RankedContributor,
    RankingsResponse,
    RateLimitResponse,
    RepositoryResponse,
)
from app.models.github_contributor import (
    ActivityItem,
    ContributorKind,
    ContributorProfile,
    FetchOptions,
    FilterCriteria,
    GitHubContributor,
    RateLimitState,
    SortKey,
    SortOrder,
)
from app.models.github_repository import RepositoryInfo

__all__ = [
    "APIResponse",
    "ActivityItem",
    "ContributorKind",
    "ContributorProfile",
    "ContributorRankings",
    "ContributorsResponse",
    "FetchMeta",
    "FetchOptions",
    "FetchRun",
    "FetchRunList",
    "FilterCriteria",
    "GitHubContributor",
    "PaginationInfo",
    "RankedContributor",
    "RankingsResponse",
    "RateLimitResponse",
    "RateLimitState",
    "RepositoryInfo",
    "RepositoryResponse",
    "SortKey",
    "SortOrder",
]
