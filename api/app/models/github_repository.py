"""Repository summary returned by GET/POST /api/repository."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class RepositoryInfo(BaseModel):
    name: str
    full_name: str
    description: Optional[str] = None
    html_url: str = ""
    stargazers_count: int = 0
    forks_count: int = 0
    watchers_count: int = 0
    open_issues_count: int = 0
    default_branch: str = "main"
    language: Optional[str] = None
