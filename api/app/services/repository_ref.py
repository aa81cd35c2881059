"""Resolve owner/repo from the URL forms people paste into the search box."""

from __future__ import annotations

import re

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_PATTERNS = (
    re.compile(r"^https?://(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+?)(?:\.git)?(?:[/#?].*)?$", re.IGNORECASE),
    re.compile(r"^git@github\.com:([^/\s]+)/([^/\s]+?)(?:\.git)?$", re.IGNORECASE),
    re.compile(r"^github\.com/([^/\s]+)/([^/\s#?]+?)(?:\.git)?(?:[/#?].*)?$", re.IGNORECASE),
    re.compile(r"^([^/\s:]+)/([^/\s]+?)(?:\.git)?$"),
)


def parse_github_url(url: str) -> tuple[str, str] | None:
    if not url or not isinstance(url, str):
        return None
    u = url.strip().replace("git+", "")
    for pattern in _PATTERNS:
        m = pattern.match(u)
        if not m:
            continue
        owner = m.group(1).strip()
        repo = m.group(2).strip()
        if repo.lower().endswith(".git"):
            repo = repo[:-4]
        if owner and repo and _NAME_RE.match(owner) and _NAME_RE.match(repo):
            return owner, repo
    return None
