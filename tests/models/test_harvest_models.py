"""
Tests for harvest planning and cache models
"""

import pytest
from datetime import timedelta

from pydantic import ValidationError

from harvest_intel.models.cache import CacheEntry, CacheStatistics, CapabilityPayload
from harvest_intel.models.harvest import (
    CapabilityScore,
    CropType,
    HarvestRecommendation,
    HarvestWindow,
    LocationCluster
)


@pytest.fixture
def make_window(fixed_now, make_sample):
    def _make(start_hour, end_hour, confidence=0.8):
        return HarvestWindow(
            start_time=fixed_now + timedelta(hours=start_hour),
            end_time=fixed_now + timedelta(hours=end_hour),
            weather=make_sample(),
            recommendation=HarvestRecommendation.ACCEPTABLE,
            confidence_score=confidence,
            priority=7,
            combine_weather_multiplier=0.7
        )
    return _make


class TestHarvestWindow:
    """Test cases for HarvestWindow"""

    def test_overlap_is_half_open(self, make_window):
        morning = make_window(0, 4)
        midday = make_window(4, 8)
        straddling = make_window(3, 5)

        assert not morning.overlaps(midday)
        assert morning.overlaps(straddling)
        assert straddling.overlaps(midday)
        assert morning.overlaps(morning)

    def test_end_must_follow_start(self, make_window):
        with pytest.raises(ValidationError):
            make_window(4, 4)

    @pytest.mark.parametrize("confidence", [-0.1, 1.1])
    def test_confidence_bounds(self, make_window, confidence):
        with pytest.raises(ValidationError):
            make_window(0, 4, confidence=confidence)

    def test_duration(self, make_window):
        assert make_window(6, 10).duration == timedelta(hours=4)


class TestCapabilityScore:
    """Test cases for CapabilityScore"""

    def test_crop_score_falls_back_to_overall(self, capability):
        assert capability.crop_score(CropType.WHEAT) == 9.0
        assert capability.crop_score(CropType.OATS) == 8.0

    def test_defaults(self):
        score = CapabilityScore(combine_spec_id="c1")

        assert score.overall_score == 5.0
        assert score.crop_specific_scores == {}


class TestLocationCluster:
    """Test cases for LocationCluster"""

    def test_requires_fields(self, field_location):
        with pytest.raises(ValidationError):
            LocationCluster(id="cluster_0", representative=field_location, fields=[])

    def test_field_ids(self, field_location):
        cluster = LocationCluster(id="cluster_0", representative=field_location, fields=[field_location])

        assert cluster.field_ids == ["field-1"]


class TestCacheModels:
    """Test cases for cache envelopes and statistics"""

    def test_entry_expiry(self, capability, fixed_now):
        entry = CacheEntry(
            key="k", scope="system", payload=CapabilityPayload(capability=capability),
            created_at=fixed_now, last_accessed=fixed_now,
            expires_at=fixed_now + timedelta(minutes=1)
        )

        assert not entry.is_expired(fixed_now)
        assert entry.is_expired(fixed_now + timedelta(minutes=1))

    def test_entry_without_expiry_never_expires(self, capability, fixed_now):
        entry = CacheEntry(
            key="k", scope="system", payload=CapabilityPayload(capability=capability),
            created_at=fixed_now, last_accessed=fixed_now
        )

        assert not entry.is_expired(fixed_now + timedelta(days=365))

    def test_payload_is_discriminated_by_kind(self, capability, fixed_now):
        entry = CacheEntry(
            key="k", scope="system", payload=CapabilityPayload(capability=capability),
            created_at=fixed_now, last_accessed=fixed_now
        )

        restored = CacheEntry.model_validate_json(entry.model_dump_json())

        assert isinstance(restored.payload, CapabilityPayload)

    def test_unknown_kind_rejected(self):
        raw = (
            '{"key": "k", "scope": "system", "payload": {"kind": "mystery"},'
            ' "created_at": "2024-09-01T12:00:00Z", "last_accessed": "2024-09-01T12:00:00Z"}'
        )

        with pytest.raises(ValidationError):
            CacheEntry.model_validate_json(raw)

    def test_statistics(self):
        stats = CacheStatistics(scope="user-1", hits=3, misses=1, total_size=512)

        assert stats.hit_rate == 0.75
        assert stats.memory_usage == 512
        assert stats.to_dict()["scope"] == "user-1"
