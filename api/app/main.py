"""Repository Contributor Roster API.

Mounts the roster, repository and health routers under /api and times every request.
Roster fetches can walk dozens of upstream pages, so slow or failing requests
are logged with the repository and paging flags that made them expensive.
"""

from __future__ import annotations

import logging
import os
import time
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from app.routers import contributors, health, repository

app = FastAPI(
    title="Repository Contributor Roster API",
    description="Paginated, quota-aware GitHub contributor rosters",
    version=health.HEALTH_VERSION,
)

request_log = logging.getLogger("roster.api.requests")
if not request_log.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    request_log.addHandler(_handler)
request_log.propagate = False
request_log.setLevel(logging.INFO)

_EXPENSIVE_PARAMS = ("fetch_all", "enhanced", "max_pages", "force_complete", "per_page")
_REQUEST_ID_HEADERS = ("x-request-id", "x-correlation-id", "x-amzn-trace-id")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "1" if default else "").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def _slow_threshold_ms() -> float:
    try:
        return max(25.0, float(os.getenv("API_SLOW_REQUEST_MS", "1500").strip()))
    except ValueError:
        return 1500.0


def _request_id(request: Request) -> str:
    for key in _REQUEST_ID_HEADERS:
        value = request.headers.get(key)
        if value:
            return value
    return uuid.uuid4().hex[:16]


def _roster_target(request: Request) -> str:
    params = request.query_params
    if params.get("owner") and params.get("repo"):
        return f"{params['owner']}/{params['repo']}"
    return params.get("repo_url") or "-"


def _paging_flags(request: Request) -> dict[str, str]:
    return {key: request.query_params[key] for key in _EXPENSIVE_PARAMS if key in request.query_params}


def _stamp(response: Response, request_id: str, elapsed_ms: float) -> None:
    response.headers["x-roster-runtime-ms"] = f"{max(0.1, elapsed_ms):.4f}"
    response.headers["x-roster-request-id"] = request_id


def _log_request(request: Request, request_id: str, status_code: int, elapsed_ms: float, error: str | None) -> None:
    route = request.scope.get("route")
    level = logging.ERROR if status_code >= 500 else logging.WARNING
    if elapsed_ms < _slow_threshold_ms() and status_code < 500:
        level = logging.INFO
    request_log.log(
        level,
        "api_request id=%s method=%s route=%s path=%s target=%s flags=%s status=%s elapsed_ms=%.2f error=%s",
        request_id,
        request.method,
        getattr(route, "path", "") or "unknown",
        request.url.path,
        _roster_target(request),
        _paging_flags(request),
        status_code,
        elapsed_ms,
        error or "none",
    )


allowed_origins = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["x-roster-runtime-ms", "x-roster-request-id"],
)


@app.get("/", include_in_schema=False)
async def root():
    """Landing info for API discovery."""
    return {
        "name": app.title,
        "version": app.version,
        "docs": "/docs",
        "health": "/api/health",
    }


app.include_router(contributors.router, prefix="/api", tags=["contributors"])
app.include_router(repository.router, prefix="/api", tags=["repository"])
app.include_router(health.router, prefix="/api", tags=["health"])


@app.middleware("http")
async def time_requests(request: Request, call_next):
    started = time.perf_counter()
    request_id = _request_id(request)
    try:
        response = await call_next(request)
    except Exception as exc:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        _log_request(request, request_id, 500, elapsed_ms, f"{exc.__class__.__name__}:{exc}")
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    _stamp(response, request_id, elapsed_ms)
    if (
        elapsed_ms >= _slow_threshold_ms()
        or response.status_code >= 500
        or _env_flag("API_LOG_ALL_REQUESTS", False)
    ):
        _log_request(request, request_id, response.status_code, elapsed_ms, None)
    return response
