"""Per-request fetch session state. Lives only for one GET /api/contributors call."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FetchSession:
    owner: str
    repo: str
    page: int = 1
    consecutive_empty_pages: int = 0
    total_observed: int = 0
    retries: int = 0
    quota_exhausted: bool = False
    pages_fetched: int = 0
    ceiling_hit: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    @property
    def warning(self) -> str | None:
        return " ".join(self.warnings) if self.warnings else None
