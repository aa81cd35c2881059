"""Filter, sort and window the aggregated roster."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cmp_to_key
from typing import Callable, Optional

from app.models.github_contributor import (
    FilterCriteria,
    GitHubContributor,
    SortKey,
    SortOrder,
)

Comparator = Callable[[GitHubContributor, GitHubContributor], int]


def _contains(value: Optional[str], needle: str) -> bool:
    if not value:
        return False
    return needle.casefold() in value.casefold()


def matches(record: GitHubContributor, criteria: FilterCriteria) -> bool:
    """Conjunctive; bounds inclusive; substring filters fail when the profile field is absent."""
    if criteria.min_contributions is not None and record.contributions < criteria.min_contributions:
        return False
    if criteria.max_contributions is not None and record.contributions > criteria.max_contributions:
        return False
    profile = record.user_details
    if criteria.location:
        if not _contains(profile.location if profile else None, criteria.location):
            return False
    if criteria.company:
        if not _contains(profile.company if profile else None, criteria.company):
            return False
    return True


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def compare_contributions(a: GitHubContributor, b: GitHubContributor) -> int:
    return _sign(a.contributions, b.contributions)


def compare_names(a: GitHubContributor, b: GitHubContributor) -> int:
    return _sign(a.display_name.casefold(), b.display_name.casefold())


def compare_recent_activity(a: GitHubContributor, b: GitHubContributor) -> int:
    # Pairs missing a timestamp fall back to contribution order, so the result is not a pure time order.
    if a.last_contribution is not None and b.last_contribution is not None:
        return _sign(a.last_contribution, b.last_contribution)
    return compare_contributions(a, b)


_COMPARATORS: dict[SortKey, Comparator] = {
    SortKey.CONTRIBUTIONS: compare_contributions,
    SortKey.NAME: compare_names,
    SortKey.RECENT_ACTIVITY: compare_recent_activity,
}


def sort_records(records: list[GitHubContributor], sort_by: SortKey, sort_order: SortOrder) -> list[GitHubContributor]:
    compare = _COMPARATORS[sort_by]
    sign = -1 if sort_order == SortOrder.DESC else 1
    # sorted() is stable, so equal keys keep accumulation order in both directions
    return sorted(records, key=cmp_to_key(lambda a, b: sign * compare(a, b)))


def apply_criteria(records: list[GitHubContributor], criteria: FilterCriteria) -> list[GitHubContributor]:
    filtered = [record for record in records if matches(record, criteria)]
    return sort_records(filtered, criteria.sort_by, criteria.sort_order)


@dataclass(frozen=True)
class Window:
    items: list[GitHubContributor]
    page: int
    per_page: int
    total_count: int
    has_next: bool


def window(records: list[GitHubContributor], page: int, per_page: int, full: bool = False) -> Window:
    total = len(records)
    if full:
        return Window(items=list(records), page=page, per_page=per_page, total_count=total, has_next=False)
    start = (max(1, page) - 1) * per_page
    end = start + per_page
    return Window(
        items=records[start:end],
        page=page,
        per_page=per_page,
        total_count=total,
        has_next=end < total,
    )
