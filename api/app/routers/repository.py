"""Repository metadata routes.

GET  /api/repository  -> summary for owner+repo (or repo_url)
POST /api/repository  -> same, from a JSON body {"repositoryUrl": "..."}
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from app.models.contributor_response import RepositoryResponse
from app.routers.contributors import (
    ClientFactory,
    InvalidTarget,
    MissingCredentialError,
    get_client_factory,
    resolve_target,
)
from app.services.github_client import GitHubAPIError, UpstreamErrorKind

router = APIRouter()
log = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=RepositoryResponse(success=False, error=message).to_payload())


async def _repository_summary(owner: str, repo: str, client_factory: ClientFactory) -> JSONResponse:
    try:
        client = client_factory()
    except MissingCredentialError as exc:
        log.error("repository_missing_credential owner=%s repo=%s", owner, repo)
        return _error(500, str(exc))
    try:
        info = await client.get_repository(owner, repo)
    except GitHubAPIError as exc:
        if exc.kind == UpstreamErrorKind.NOT_FOUND:
            log.info("repository_not_found owner=%s repo=%s", owner, repo)
            return _error(404, "Repository not found")
        log.warning("repository_fetch_failed owner=%s repo=%s status=%s error=%s", owner, repo, exc.status_code, exc)
        return _error(500, "Internal server error")
    finally:
        await client.aclose()
    return JSONResponse(status_code=200, content=RepositoryResponse(success=True, data=info).to_payload())


@router.get("/repository", response_model=RepositoryResponse)
async def get_repository(
    owner: Optional[str] = Query(None),
    repo: Optional[str] = Query(None),
    repo_url: Optional[str] = Query(None),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Stars, forks, watchers, open issues, default branch and primary language."""
    try:
        owner, repo = resolve_target(owner, repo, repo_url)
    except InvalidTarget as exc:
        return _error(400, str(exc))
    return await _repository_summary(owner, repo, client_factory)


@router.post("/repository", response_model=RepositoryResponse)
async def lookup_repository(
    payload: Optional[dict] = Body(None),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Resolve a GitHub URL from the body, then answer as GET does."""
    repository_url = payload.get("repositoryUrl") if isinstance(payload, dict) else None
    if not isinstance(repository_url, str) or not repository_url.strip():
        return _error(400, "Repository URL is required")
    try:
        owner, repo = resolve_target(None, None, repository_url)
    except InvalidTarget as exc:
        return _error(400, str(exc))
    return await _repository_summary(owner, repo, client_factory)
