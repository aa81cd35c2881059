"""Health, readiness and version endpoints."""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from app.services import fetch_run_store
from app.services.fetch_config import github_token, load_fetch_settings

router = APIRouter()

HEALTH_VERSION = "1.0.0"
STARTED_AT = datetime.now(timezone.utc)


def _utc_stamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class HealthResponse(BaseModel):
    """GET /api/health: liveness only, never touches GitHub or the database."""

    model_config = ConfigDict(extra="forbid")
    status: Annotated[str, Field(description="Always 'ok' when the process answers")]
    version: Annotated[str, Field(description="Semver MAJOR.MINOR.PATCH")]
    timestamp: Annotated[str, Field(description="ISO8601 UTC")]
    uptime_seconds: Annotated[int, Field(ge=0)]


class ReadinessResponse(BaseModel):
    """GET /api/ready: whether roster requests can be served right now."""

    model_config = ConfigDict(extra="forbid")
    status: str
    github_token: bool
    run_store: str
    timestamp: str


def _run_store_state() -> str:
    if not load_fetch_settings().run_store_enabled:
        return "disabled"
    try:
        fetch_run_store.count_runs()
    except SQLAlchemyError:
        return "unavailable"
    return "ok"


@router.get("/version")
async def version():
    """Return API version (lightweight, for dashboards)."""
    return {"version": HEALTH_VERSION}


@router.get("/ready", response_model=ReadinessResponse)
def ready():
    """Readiness check. A missing token or broken run store makes this 503."""
    token = bool(github_token())
    store = _run_store_state()
    ok = token and store != "unavailable"
    body = ReadinessResponse(
        status="ready" if ok else "not_ready",
        github_token=token,
        run_store=store,
        timestamp=_utc_stamp(datetime.now(timezone.utc)),
    )
    return JSONResponse(status_code=200 if ok else 503, content=body.model_dump())


@router.get("/health", response_model=HealthResponse)
async def health():
    """Return API health status."""
    now = datetime.now(timezone.utc)
    return HealthResponse(
        status="ok",
        version=HEALTH_VERSION,
        timestamp=_utc_stamp(now),
        uptime_seconds=max(0, int((now - STARTED_AT).total_seconds())),
    )
