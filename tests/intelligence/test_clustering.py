"""
Tests for location clustering
"""

import pytest

from harvest_intel.intelligence.clustering import LocationClusterer
from harvest_intel.models.weather import FieldLocation


def field(field_id, latitude, longitude):
    return FieldLocation(id=field_id, name=field_id, latitude=latitude, longitude=longitude, user_id="user-1")


@pytest.fixture
def locations():
    return [
        field("a", 50.0, -100.0),
        field("b", 50.005, -100.0),
        field("c", 50.0, -100.007),
        field("d", 50.45, -100.0),
        field("e", 50.452, -100.003),
    ]


class TestLocationClusterer:
    """Test cases for LocationClusterer"""

    def test_groups_nearby_fields(self, locations):
        clusters = LocationClusterer(radius_km=2.0).cluster(locations)

        assert [c.id for c in clusters] == ["cluster_0", "cluster_1"]
        assert clusters[0].field_ids == ["a", "b", "c"]
        assert clusters[1].field_ids == ["d", "e"]
        assert clusters[0].representative.id == "a"
        assert clusters[1].representative.id == "d"

    def test_every_location_assigned_once(self, locations):
        clusters = LocationClusterer().cluster(locations)

        assigned = [fid for c in clusters for fid in c.field_ids]
        assert sorted(assigned) == ["a", "b", "c", "d", "e"]

    def test_same_input_same_output(self, locations):
        clusterer = LocationClusterer()

        first = clusterer.cluster(locations)
        second = clusterer.cluster(locations)

        assert [c.field_ids for c in first] == [c.field_ids for c in second]

    def test_membership_is_measured_from_representative(self):
        # b is 1.5 km from a, c is 1.5 km from b but 3 km from a
        locations = [field("a", 50.0, -100.0), field("b", 50.0135, -100.0), field("c", 50.027, -100.0)]

        clusters = LocationClusterer(radius_km=2.0).cluster(locations)

        assert [c.field_ids for c in clusters] == [["a", "b"], ["c"]]

    def test_radius_override(self, locations):
        clusters = LocationClusterer(radius_km=2.0).cluster(locations, radius_km=100.0)

        assert len(clusters) == 1
        assert clusters[0].field_ids == ["a", "b", "c", "d", "e"]

    def test_empty_input(self):
        assert LocationClusterer().cluster([]) == []

    def test_single_location(self):
        clusters = LocationClusterer().cluster([field("solo", 52.0, -106.0)])

        assert len(clusters) == 1
        assert clusters[0].fields[0].id == "solo"

    @pytest.mark.parametrize("radius", [0, -1.0])
    def test_invalid_radius(self, radius, locations):
        with pytest.raises(ValueError):
            LocationClusterer(radius_km=radius)
        with pytest.raises(ValueError):
            LocationClusterer().cluster(locations, radius_km=radius)
