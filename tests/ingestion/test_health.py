"""
Tests for the provider circuit breaker
"""

import pytest
from datetime import timedelta

from harvest_intel.ingestion.health import CLOSED, HALF_OPEN, OPEN, ProviderHealthTracker


@pytest.fixture
def tracker(clock):
    return ProviderHealthTracker(max_consecutive_failures=5, timeout=timedelta(minutes=15), clock=clock)


def fail(tracker, provider, times):
    for _ in range(times):
        tracker.record_failure(provider)


class TestProviderHealthTracker:
    """Test cases for ProviderHealthTracker"""

    def test_unknown_provider_is_available(self, tracker):
        assert tracker.state("tomorrow_io") == CLOSED
        assert tracker.is_available("tomorrow_io")

    def test_opens_after_consecutive_failures(self, tracker):
        fail(tracker, "tomorrow_io", 4)
        assert tracker.is_available("tomorrow_io")

        tracker.record_failure("tomorrow_io")

        assert tracker.state("tomorrow_io") == OPEN
        assert not tracker.is_available("tomorrow_io")

    def test_still_open_at_exact_timeout(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)

        clock.advance(minutes=15)

        assert tracker.state("tomorrow_io") == OPEN

    def test_half_open_after_timeout(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)

        clock.advance(minutes=15, seconds=1)

        assert tracker.state("tomorrow_io") == HALF_OPEN
        assert tracker.is_available("tomorrow_io")

    def test_success_resets_failures(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)
        clock.advance(minutes=16)

        tracker.record_success("tomorrow_io")

        assert tracker.consecutive_failures("tomorrow_io") == 0
        assert tracker.state("tomorrow_io") == CLOSED

    def test_failed_probe_reopens(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)
        clock.advance(minutes=16)

        tracker.record_failure("tomorrow_io")

        assert tracker.state("tomorrow_io") == OPEN
        assert tracker.consecutive_failures("tomorrow_io") == 6

    def test_interleaved_success_prevents_opening(self, tracker):
        fail(tracker, "msc", 4)
        tracker.record_success("msc")
        fail(tracker, "msc", 4)

        assert tracker.state("msc") == CLOSED

    def test_providers_are_independent(self, tracker):
        fail(tracker, "tomorrow_io", 5)

        assert not tracker.is_available("tomorrow_io")
        assert tracker.is_available("msc")

    def test_snapshot(self, tracker, fixed_now):
        fail(tracker, "tomorrow_io", 5)
        tracker.record_success("msc")

        report = tracker.snapshot()

        assert report["tomorrow_io"]["state"] == OPEN
        assert report["tomorrow_io"]["is_healthy"] is False
        assert report["tomorrow_io"]["consecutive_failures"] == 5
        assert report["tomorrow_io"]["total_failures"] == 5
        assert report["tomorrow_io"]["last_failure"] == fixed_now.isoformat()
        assert report["msc"]["is_healthy"] is True
        assert report["msc"]["total_successes"] == 1
        assert report["msc"]["last_failure"] is None

    def test_closed_provider_always_acquired(self, tracker):
        assert tracker.try_acquire("tomorrow_io")
        assert tracker.try_acquire("tomorrow_io")

    def test_open_provider_not_acquired(self, tracker):
        fail(tracker, "tomorrow_io", 5)

        assert not tracker.try_acquire("tomorrow_io")

    def test_half_open_probe_is_exclusive(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)
        clock.advance(minutes=16)

        assert tracker.try_acquire("tomorrow_io")
        assert not tracker.try_acquire("tomorrow_io")
        assert tracker.state("tomorrow_io") == HALF_OPEN

    def test_probe_outcome_frees_claim(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)
        clock.advance(minutes=16)
        tracker.try_acquire("tomorrow_io")

        tracker.record_failure("tomorrow_io")
        assert not tracker.try_acquire("tomorrow_io")

        clock.advance(minutes=16)
        assert tracker.try_acquire("tomorrow_io")
        tracker.record_success("tomorrow_io")
        assert tracker.try_acquire("tomorrow_io")
        assert tracker.try_acquire("tomorrow_io")

    def test_release_frees_claim(self, tracker, clock):
        fail(tracker, "tomorrow_io", 5)
        clock.advance(minutes=16)
        tracker.try_acquire("tomorrow_io")

        tracker.release("tomorrow_io")

        assert tracker.try_acquire("tomorrow_io")
