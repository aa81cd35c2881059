"""Tests for quota-aware batch enrichment of contributor pages."""

from datetime import datetime, timedelta, timezone

import pytest

from app.models.github_contributor import ActivityItem, ContributorProfile
from app.models.fetch_session import FetchSession
from app.services.enrichment_pool import EnrichmentPool, EnrichmentStopped, batch_size_for, inter_batch_delay_for
from app.services.retry_controller import QuotaStop, RetryController
from fakes import FakeGitHub, api_error, make_contributor, make_page, quota

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _commits(count: int) -> list[ActivityItem]:
    return [ActivityItem(sha=f"c{i}", message=f"commit {i}", date=START + timedelta(days=i)) for i in range(count)]


@pytest.mark.parametrize("remaining, expected", [(None, 5), (0, 2), (15, 2), (30, 3), (49, 4), (1000, 5)])
def test_batch_size_follows_remaining_quota(remaining, expected):
    assert batch_size_for(remaining) == expected


@pytest.mark.parametrize("remaining, expected", [(None, 0.0), (5000, 0.0), (1001, 0.0), (500, 0.1), (75, 0.5), (10, 1.0)])
def test_inter_batch_delay_follows_remaining_quota(remaining, expected):
    assert inter_batch_delay_for(remaining) == expected


@pytest.mark.asyncio
async def test_enrich_one_fills_profile_stats_and_activity(sleeps):
    fake = FakeGitHub(
        profiles={"octocat": ContributorProfile(name="The Octocat", location="SF")},
        commits={"octocat": _commits(10)},
        stats={f"c{i}": (10, 2) for i in range(10)},
    )
    pool = EnrichmentPool(fake, sleep=sleeps)

    record = await pool.enrich_one("owner", "repo", make_contributor("octocat", 50))

    assert record.user_details.name == "The Octocat"
    assert record.commit_count == 50
    # five sampled commits at 10/2 lines, scaled by 50 / 5
    assert record.lines_added == 500
    assert record.lines_deleted == 100
    assert [c.sha for c in record.commits] == ["c0", "c1", "c2", "c3", "c4"]
    assert record.commits[0].additions == 10
    assert record.first_contribution == START
    assert record.last_contribution == START + timedelta(days=9)
    assert pool.failures == 0


@pytest.mark.asyncio
async def test_missing_commit_detail_only_shrinks_the_sample(sleeps):
    fake = FakeGitHub(commits={"octocat": _commits(3)}, stats={"c0": (30, 6), "c2": (10, 2)})
    pool = EnrichmentPool(fake, sleep=sleeps)

    record = await pool.enrich_one("owner", "repo", make_contributor("octocat", 3))

    # c1 has no detail: sample is 2 of 3 contributions, scaled by 1.5
    assert record.lines_added == 60
    assert record.lines_deleted == 12
    assert record.commits[1].additions is None
    assert pool.failures == 0


@pytest.mark.asyncio
async def test_failed_enrichment_degrades_to_base_record(sleeps):
    fake = FakeGitHub(failing_users={"ghost"})
    pool = EnrichmentPool(fake, sleep=sleeps)
    base = make_contributor("ghost", 7)

    record = await pool.enrich_one("owner", "repo", base)

    assert record == base
    assert record.user_details is None
    assert pool.failures == 1


@pytest.mark.asyncio
async def test_enrich_page_preserves_order_and_batches_with_delay(sleeps):
    fake = FakeGitHub(failing_users={"user3"}, rate_limit=quota(30, 600))
    pool = EnrichmentPool(fake, sleep=sleeps)
    records = make_page("user", 7)

    enriched = await pool.enrich_page("owner", "repo", records)

    assert [r.login for r in enriched] == [r.login for r in records]
    assert enriched[3].user_details is None
    assert all(r.user_details is not None for i, r in enumerate(enriched) if i != 3)
    assert fake.user_calls == [r.login for r in records]
    # remaining=30: batches of 3, 3, 1 with a 1s pause between them
    assert sleeps.calls == [1.0, 1.0]


@pytest.mark.asyncio
async def test_enrich_page_without_quota_signal_does_not_pause(sleeps):
    fake = FakeGitHub()
    pool = EnrichmentPool(fake, sleep=sleeps)

    enriched = await pool.enrich_page("owner", "repo", make_page("user", 12))

    assert len(enriched) == 12
    assert sleeps.calls == []


def _retrying_pool(fake, sleeps, force_complete=False):
    retry = RetryController(FetchSession(owner="owner", repo="repo"), force_complete=force_complete, sleep=sleeps)
    return EnrichmentPool(fake, retry=retry, sleep=sleeps)


@pytest.mark.asyncio
async def test_transient_profile_error_is_retried(sleeps):
    fake = FakeGitHub(user_errors={"octocat": [api_error(502)]})
    pool = _retrying_pool(fake, sleeps)

    record = await pool.enrich_one("owner", "repo", make_contributor("octocat", 3))

    assert record.user_details.name == "Octocat"
    assert fake.user_calls == ["octocat", "octocat"]
    assert sleeps.calls == [2.0]
    assert pool.retry.session.retries == 1
    assert pool.failures == 0


@pytest.mark.asyncio
async def test_quota_error_waits_for_reset_when_forced(sleeps):
    fake = FakeGitHub(user_errors={"octocat": [api_error(403, reset_in=90)]})
    pool = _retrying_pool(fake, sleeps, force_complete=True)

    record = await pool.enrich_one("owner", "repo", make_contributor("octocat", 3))

    assert record.user_details is not None
    assert len(sleeps.calls) == 1
    assert 60 <= sleeps.calls[0] <= 90
    assert pool.retry.session.quota_exhausted is False


@pytest.mark.asyncio
async def test_quota_error_stops_the_page_but_keeps_every_record(sleeps):
    records = make_page("user", 3)
    fake = FakeGitHub(user_errors={"user1": [api_error(403, reset_in=90)]})
    pool = _retrying_pool(fake, sleeps)

    with pytest.raises(EnrichmentStopped) as excinfo:
        await pool.enrich_page("owner", "repo", records)

    stopped = excinfo.value
    assert isinstance(stopped, QuotaStop)
    assert [r.login for r in stopped.records] == ["user0", "user1", "user2"]
    assert stopped.records[0].user_details is not None
    assert stopped.records[1] == records[1]
    assert pool.retry.session.quota_exhausted is True
    assert sleeps.calls == []
