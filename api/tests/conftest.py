"""Pytest configuration and fixtures.

Async tests run under ``pytest-asyncio``. Upstream GitHub traffic is faked
either with ``respx`` (client tests) or with ``fakes.FakeGitHub`` (session and
API tests), so no test touches the network or really sleeps.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    # Env-driven settings are read per request; keep them and the run store per-test.
    from app.services import fetch_run_store

    fetch_run_store.reset_engine_cache()
    for key in (
        "DATABASE_URL",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "GITHUB_API_BASE_URL",
        "CONTRIBUTORS_MAX_PAGES_CEILING",
        "CONTRIBUTORS_MAX_RETRIES",
        "CONTRIBUTORS_TRANSIENT_RETRY_DELAY_SECONDS",
        "CONTRIBUTORS_ENRICH_COMMIT_SAMPLE",
        "CONTRIBUTORS_ENRICH_DETAIL_SAMPLE",
        "FETCH_RUN_STORE_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("FETCH_RUN_DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'fetch_runs_test.db'}")
    yield
    fetch_run_store.reset_engine_cache()


@pytest.fixture
def sleeps():
    from fakes import SleepRecorder

    return SleepRecorder()
