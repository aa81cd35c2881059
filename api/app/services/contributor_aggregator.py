"""In-memory roster for one fetch session: merge by login, estimate line counts."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from app.models.github_contributor import GitHubContributor

log = logging.getLogger(__name__)


def estimate_line_counts(
    sampled_added: int,
    sampled_deleted: int,
    sample_size: int,
    contributions: int,
) -> tuple[int, int]:
    """Extrapolate sampled line counts to the full contribution count.

    When fewer commits were sampled than the contributor made, scale by
    contributions / max(sample_size, 1) and round half up. Directionally right,
    deliberately approximate.
    """
    if sample_size >= contributions:
        return sampled_added, sampled_deleted
    ratio = contributions / max(sample_size, 1)
    return _round_half_up(sampled_added * ratio), _round_half_up(sampled_deleted * ratio)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    if isinstance(value, (int, float)):
        return value == 0
    return False


def merge_records(existing: GitHubContributor, incoming: GitHubContributor) -> GitHubContributor:
    """Last write wins per field, but never replaces a present value with an empty one.

    Activity timestamps are the exception: the merged first/last contribution
    are the earliest and latest timestamps seen on either record.
    """
    updates: dict[str, Any] = {}
    for name in GitHubContributor.model_fields:
        if name == "login":
            continue
        value = getattr(incoming, name)
        if not _is_empty(value):
            updates[name] = value
    # activity bounds span both records so first_contribution <= last_contribution holds
    stamps = [
        ts
        for record in (existing, incoming)
        for ts in (record.first_contribution, record.last_contribution)
        if ts is not None
    ]
    if existing.first_contribution is not None or incoming.first_contribution is not None:
        updates["first_contribution"] = min(stamps)
    if existing.last_contribution is not None or incoming.last_contribution is not None:
        updates["last_contribution"] = max(stamps)
    if not updates:
        return existing
    return existing.model_copy(update=updates)


class ContributorAggregator:
    """Owns the session's collection. Insertion order is first-seen order."""

    def __init__(self) -> None:
        self._records: dict[str, GitHubContributor] = {}
        self.observed = 0
        self.duplicates = 0

    def __len__(self) -> int:
        return len(self._records)

    def merge(self, incoming: Iterable[GitHubContributor]) -> list[GitHubContributor]:
        for record in incoming:
            self.observed += 1
            current = self._records.get(record.login)
            if current is None:
                self._records[record.login] = record
                continue
            self.duplicates += 1
            log.debug("contributor_duplicate_merged login=%s", record.login)
            self._records[record.login] = merge_records(current, record)
        return self.records()

    def records(self) -> list[GitHubContributor]:
        return list(self._records.values())

    @property
    def total_contributions(self) -> int:
        return sum(record.contributions for record in self._records.values())

    def diagnostics(self) -> dict[str, int]:
        return {
            "records": len(self._records),
            "observed": self.observed,
            "duplicates": self.duplicates,
            "total_contributions": self.total_contributions,
        }
