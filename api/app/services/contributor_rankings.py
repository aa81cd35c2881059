"""Leaderboards over a collected roster: contributions, lines added, recent activity."""

from __future__ import annotations

from typing import Callable, Iterable

from app.models.contributor_response import ContributorRankings, RankedContributor
from app.models.github_contributor import GitHubContributor

RANKING_LIMIT = 20


def _ranked(
    records: Iterable[GitHubContributor], key: Callable[[GitHubContributor], object], limit: int
) -> list[RankedContributor]:
    # sorted() is stable, so ties keep roster order
    ordered = sorted(records, key=key, reverse=True)[:limit]
    return [RankedContributor(rank=position, **record.model_dump()) for position, record in enumerate(ordered, start=1)]


def rank_contributors(records: list[GitHubContributor], limit: int = RANKING_LIMIT) -> ContributorRankings:
    """Top ``limit`` records per board.

    Lines-added only ranks records with lines_added > 0 and recent activity only
    ranks records with a last_contribution, so unenriched rosters leave both empty.
    """
    return ContributorRankings(
        by_contributions=_ranked(records, lambda r: r.contributions, limit),
        by_lines_added=_ranked([r for r in records if r.lines_added > 0], lambda r: r.lines_added, limit),
        by_recent_activity=_ranked(
            [r for r in records if r.last_contribution is not None], lambda r: r.last_contribution, limit
        ),
    )
