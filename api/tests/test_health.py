"""Tests for the landing, health, readiness and version endpoints."""

import re
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.main import app


@pytest_asyncio.fixture
async def client():
    """ASGI client for testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_root_returns_landing_info(client: AsyncClient):
    """GET / returns exactly name, version, docs, health."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert set(data.keys()) == {"name", "version", "docs", "health"}
    assert isinstance(data["name"], str) and data["name"]
    assert data["docs"] == "/docs"
    assert data["health"] == "/api/health"


@pytest.mark.asyncio
async def test_docs_returns_200(client: AsyncClient):
    response = await client.get("/docs", follow_redirects=True)
    assert response.status_code == 200, "GET /docs must return 200 (OpenAPI UI reachable)"


@pytest.mark.asyncio
async def test_health_api_contract(client: AsyncClient):
    """200, exact keys, status ok, semver, ISO8601 UTC."""
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.headers.get("content-type", "").startswith("application/json")
    data = response.json()
    assert set(data.keys()) == {"status", "version", "timestamp", "uptime_seconds"}
    assert data["status"] == "ok"
    assert re.fullmatch(r"\d+\.\d+\.\d+", data["version"]), f"version must match MAJOR.MINOR.PATCH: {data['version']}"
    ts = data["timestamp"]
    assert ts.endswith("Z"), "timestamp must end with Z"
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    assert dt.tzinfo is not None
    assert isinstance(data["uptime_seconds"], int) and data["uptime_seconds"] >= 0


@pytest.mark.asyncio
async def test_version_endpoint(client: AsyncClient):
    response = await client.get("/api/version")
    assert response.status_code == 200
    assert response.json() == {"version": app.version}

@pytest.mark.asyncio
async def test_ready_without_token_is_503(client: AsyncClient):
    """Readiness fails until a GitHub token is configured."""
    response = await client.get("/api/ready")
    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "not_ready"
    assert data["github_token"] is False
    assert data["run_store"] == "ok"


@pytest.mark.asyncio
async def test_ready_with_token_returns_200(client: AsyncClient, monkeypatch):
    monkeypatch.setenv("GH_TOKEN", "test-token")
    response = await client.get("/api/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "ready"
    assert response.json()["github_token"] is True


@pytest.mark.asyncio
async def test_ready_reports_disabled_run_store(client: AsyncClient, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "test-token")
    monkeypatch.setenv("FETCH_RUN_STORE_ENABLED", "false")
    response = await client.get("/api/ready")
    assert response.status_code == 200
    assert response.json()["run_store"] == "disabled"



@pytest.mark.asyncio
async def test_cors_allows_origins(client: AsyncClient):
    response = await client.get("/api/health", headers={"Origin": "http://localhost:3000"})
    assert response.status_code == 200
    assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"
