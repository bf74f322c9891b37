"""
Tests for Source and Refresh State Repositories
===============================================
"""

import pytest
from datetime import datetime, timezone, timedelta, date

from metrofeed.database.models import Source
from metrofeed.storage.source_repository import SourceRepository
from metrofeed.storage.refresh_state_repository import RefreshStateRepository


class TestSourceRepository:
    """Test suite for SourceRepository."""

    @pytest.fixture
    def source_repo(self, db_connection, clock, sample_source):
        repo = SourceRepository(db_connection, clock=clock)
        repo.upsert_source(sample_source)
        return repo

    def test_enabled_sources_ordered_by_priority(self, source_repo):
        source_repo.upsert_source(Source(id="zimlive", name="ZimLive", url="https://www.zimlive.com/feed/", priority=9))
        source_repo.upsert_source(Source(id="off", name="Off", url="https://off.example.com/feed/", enabled=False))

        assert [s.id for s in source_repo.get_enabled_sources()] == ["zimlive", "herald-zimbabwe"]
        assert len(source_repo.get_all_sources()) == 3

    def test_failures_accumulate_and_success_clears_last_error(self, source_repo, sample_source):
        source_repo.record_fetch_failure(sample_source.id, "HTTP 500")
        source_repo.record_fetch_failure(sample_source.id, "Request timeout after 30.0s")

        failed = source_repo.get_source(sample_source.id)
        assert failed.error_count == 2
        assert failed.last_error == "Request timeout after 30.0s"

        source_repo.record_fetch_success(sample_source.id, items_fetched=7)

        recovered = source_repo.get_source(sample_source.id)
        assert recovered.error_count == 2
        assert recovered.last_error is None
        assert recovered.fetch_count == 1
        assert recovered.last_fetched_at == datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

    def test_long_error_message_is_truncated(self, source_repo, sample_source):
        source_repo.record_fetch_failure(sample_source.id, "x" * 2000)
        assert len(source_repo.get_source(sample_source.id).last_error) == 500

    def test_upsert_keeps_status_fields(self, source_repo, sample_source):
        source_repo.record_fetch_failure(sample_source.id, "HTTP 503")
        source_repo.upsert_source(sample_source.model_copy(update={"priority": 1, "daily_quota": 10}))

        updated = source_repo.get_source(sample_source.id)
        assert updated.priority == 1
        assert updated.daily_quota == 10
        assert updated.error_count == 1

    def test_daily_stats(self, source_repo, sample_source):
        source_repo.record_fetch_success(sample_source.id, items_fetched=5)
        source_repo.record_fetch_success(sample_source.id, items_fetched=3)

        stats = source_repo.get_daily_stats(sample_source.id)
        assert stats.date_tracked == date(2024, 3, 15)
        assert stats.articles_fetched == 8
        assert stats.successful_fetches == 2
        assert stats.articles_stored == 0

    def test_unknown_source_status_is_ignored(self, source_repo):
        assert source_repo.record_fetch_failure("ghost", "boom") is False
        assert source_repo.get_source("ghost") is None


class TestRefreshStateRepository:
    """Test suite for RefreshStateRepository."""

    @pytest.fixture
    def state_repo(self, db_connection, clock):
        return RefreshStateRepository(db_connection, clock=clock)

    def test_due_when_never_run(self, state_repo):
        assert state_repo.get_last_successful_run() is None
        assert state_repo.is_due(3600) is True

    def test_due_after_interval(self, state_repo, clock):
        state_repo.set_last_successful_run(clock())

        assert state_repo.is_due(3600) is False
        assert state_repo.is_due(3600, clock() + timedelta(minutes=59)) is False
        assert state_repo.is_due(3600, clock() + timedelta(minutes=60)) is True

    def test_failure_does_not_touch_last_run(self, state_repo, clock):
        state_repo.set_last_successful_run(clock())
        clock.advance(hours=2)
        state_repo.record_failure("lock store failure")

        assert state_repo.get_last_successful_run() == datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        failure = state_repo.get_last_failure()
        assert failure["reason"] == "lock store failure"
        assert failure["failed_at"] == clock()
