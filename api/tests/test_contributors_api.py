"""Tests for the contributor roster API.

GET /api/contributors, /rankings, /rate-limit and /runs
against an in-memory upstream (fakes.FakeGitHub) wired in via dependency
overrides.
"""

import threading

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import app
from app.routers.contributors import get_client_factory, get_sleep
from app.services import fetch_run_store
from fakes import FakeGitHub, api_error, make_contributor, make_page, quota


@pytest.fixture
def fake():
    return FakeGitHub({1: make_page("user", 3)})


@pytest_asyncio.fixture
async def client(fake, sleeps):
    app.dependency_overrides[get_client_factory] = lambda: (lambda: fake)
    app.dependency_overrides[get_sleep] = lambda: sleeps
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def bare_client():
    """No overrides: the real client factory, which needs GITHUB_TOKEN."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_missing_owner_and_repo_is_400(client: AsyncClient):
    response = await client.get("/api/contributors", params={"owner": "octo"})
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "data": None,
        "error": "Missing required parameters: owner and repo",
    }


@pytest.mark.asyncio
async def test_invalid_repo_url_is_400(client: AsyncClient):
    response = await client.get("/api/contributors", params={"repo_url": "https://gitlab.com/a"})
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid GitHub repository URL"


@pytest.mark.asyncio
async def test_missing_token_is_500(bare_client: AsyncClient):
    response = await bare_client.get("/api/contributors", params={"owner": "octo", "repo": "cat"})
    assert response.status_code == 500
    assert response.json() == {"success": False, "data": None, "error": "GitHub token not configured"}


@pytest.mark.asyncio
async def test_roster_envelope(client: AsyncClient, fake: FakeGitHub):
    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "cat", "per_page": 10})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [row["login"] for row in body["data"]] == ["user0", "user1", "user2"]
    first = body["data"][0]
    assert first["contributions"] == 1000
    assert first["commit_count"] == 1000
    assert first["type"] == "User"
    assert body["pagination"] == {"page": 1, "per_page": 10, "total_count": 3, "has_next": False}
    assert body["meta"]["total_fetched"] == 3
    assert body["meta"]["rate_limit_hit"] is False
    assert fake.page_calls == [(1, 10)]
    assert fake.closed is True


@pytest.mark.asyncio
async def test_repo_url_resolves_owner_and_repo(client: AsyncClient):
    response = await client.get("/api/contributors", params={"repo_url": "https://github.com/octo/cat.git"})
    assert response.status_code == 200
    assert len(response.json()["data"]) == 3


@pytest.mark.asyncio
async def test_per_page_is_capped(client: AsyncClient, fake: FakeGitHub):
    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "cat", "per_page": 500})
    assert response.status_code == 200
    assert fake.page_calls == [(1, 100)]
    assert response.json()["pagination"]["per_page"] == 100


@pytest.mark.asyncio
async def test_filters_and_sort_via_query(client: AsyncClient, fake: FakeGitHub):
    fake.pages[1] = [make_contributor("a", 5), make_contributor("b", 50), make_contributor("c", 500)]
    response = await client.get(
        "/api/contributors",
        params={
            "owner": "octo",
            "repo": "cat",
            "min_contributions": 10,
            "sort_by": "contributions",
            "sort_order": "asc",
        },
    )
    assert [row["login"] for row in response.json()["data"]] == ["b", "c"]


@pytest.mark.asyncio
async def test_invalid_sort_key_is_422(client: AsyncClient):
    response = await client.get("/api/contributors", params={"owner": "o", "repo": "r", "sort_by": "stars"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_repository_is_404(client: AsyncClient, fake: FakeGitHub):
    fake.errors[1] = [api_error(404)]
    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "missing"})
    assert response.status_code == 404
    assert response.json() == {"success": False, "data": None, "error": "Repository not found"}


@pytest.mark.asyncio
async def test_partial_results_when_quota_runs_out(client: AsyncClient, fake: FakeGitHub):
    fake.pages = {page: make_page(f"p{page}-", 2) for page in range(1, 6)}
    fake.errors[3] = [api_error(403, reset_in=30)]

    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "cat", "fetch_all": "true"})

    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["rate_limit_hit"] is True
    assert body["meta"]["pages_fetched"] == 2
    assert body["meta"]["total_fetched"] == 4
    assert "warning" in body["meta"]


@pytest.mark.asyncio
async def test_quota_exhausted_before_any_data_is_429(client: AsyncClient, fake: FakeGitHub):
    fake.errors[1] = [api_error(429, reset_in=30)]
    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "cat"})
    assert response.status_code == 429
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_unexpected_failure_is_500(client: AsyncClient, fake: FakeGitHub):
    fake.errors[1] = [ValueError("bad upstream row")]
    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "cat"})
    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
    assert fake.closed is True


@pytest.mark.asyncio
async def test_runs_are_recorded_and_listed(client: AsyncClient):
    await client.get("/api/contributors", params={"owner": "octo", "repo": "cat"})
    await client.get("/api/contributors", params={"owner": "octo", "repo": "dog", "fetch_all": "true"})

    response = await client.get("/api/contributors/runs")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [run["repo"] for run in body["runs"]] == ["dog", "cat"]
    assert body["runs"][0]["fetch_all"] is True
    assert body["runs"][1]["status_code"] == 200
    assert body["runs"][1]["total_fetched"] == 3

    filtered = await client.get("/api/contributors/runs", params={"repo": "cat"})
    assert filtered.json()["total"] == 1


@pytest.mark.asyncio
async def test_run_store_can_be_disabled(client: AsyncClient, monkeypatch):
    monkeypatch.setenv("FETCH_RUN_STORE_ENABLED", "0")
    await client.get("/api/contributors", params={"owner": "octo", "repo": "cat"})
    assert fetch_run_store.count_runs() == 0


@pytest.mark.asyncio
async def test_rate_limit_endpoint(client: AsyncClient, fake: FakeGitHub):
    fake.rate_limit = quota(1234, 600)
    response = await client.get("/api/contributors/rate-limit")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["remaining"] == 1234
    assert body["data"]["used"] == 5000 - 1234
    assert "reset_at" in body["data"]


@pytest.mark.asyncio
async def test_rate_limit_endpoint_upstream_failure(client: AsyncClient, fake: FakeGitHub, monkeypatch):
    async def _boom():
        raise api_error(502)

    monkeypatch.setattr(fake, "get_rate_limit", _boom)
    response = await client.get("/api/contributors/rate-limit")
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to check rate limit"


@pytest.mark.asyncio
async def test_responses_carry_runtime_headers(client: AsyncClient):
    response = await client.get(
        "/api/contributors", params={"owner": "octo", "repo": "cat"}, headers={"x-request-id": "req-42"}
    )
    assert response.headers["x-roster-request-id"] == "req-42"
    assert float(response.headers["x-roster-runtime-ms"]) >= 0


@pytest.mark.asyncio
async def test_run_log_writes_happen_off_the_event_loop(client: AsyncClient, monkeypatch):
    loop_thread = threading.get_ident()
    writers: list[int] = []
    record_run = fetch_run_store.record_run

    def tracking_record_run(**kwargs):
        writers.append(threading.get_ident())
        return record_run(**kwargs)

    monkeypatch.setattr(fetch_run_store, "record_run", tracking_record_run)
    response = await client.get("/api/contributors", params={"owner": "octo", "repo": "cat"})

    assert response.status_code == 200
    assert len(writers) == 1
    assert writers[0] != loop_thread
    assert fetch_run_store.count_runs() == 1


@pytest.mark.asyncio
async def test_rankings_endpoint(client: AsyncClient, fake: FakeGitHub):
    fake.pages = {1: [make_contributor("low", 2), make_contributor("high", 200), make_contributor("mid", 20)]}

    response = await client.get("/api/contributors/rankings", params={"owner": "octo", "repo": "cat", "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    boards = body["data"]
    assert [(r["rank"], r["login"]) for r in boards["by_contributions"]] == [(1, "high"), (2, "mid")]
    # enrichment without commit history yields no line or activity rankings
    assert boards["by_lines_added"] == []
    assert boards["by_recent_activity"] == []
    assert body["meta"]["total_fetched"] == 3
    assert [call[0] for call in fake.page_calls] == [1]
    assert set(fake.user_calls) == {"low", "high", "mid"}


@pytest.mark.asyncio
async def test_rankings_pass_through_upstream_status(client: AsyncClient, fake: FakeGitHub):
    fake.errors = {1: [api_error(404)]}

    response = await client.get("/api/contributors/rankings", params={"repo_url": "octo/cat"})

    assert response.status_code == 404
    assert response.json() == {"success": False, "data": None, "error": "Repository not found"}


@pytest.mark.asyncio
async def test_rankings_require_a_repository(client: AsyncClient):
    response = await client.get("/api/contributors/rankings")
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required parameters: owner and repo"
