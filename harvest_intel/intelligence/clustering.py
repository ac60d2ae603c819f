"""
Location clustering: collapse nearby fields into one forecast fetch
"""

from typing import List, Optional, Sequence

from ..models.harvest import LocationCluster
from ..models.weather import FieldLocation
from ..utils.geo import haversine_km
from ..utils.logger import get_logger

logger = get_logger(__name__)


class LocationClusterer:
    """
    Greedy single-pass clusterer

    Locations are visited in input order. Each location not yet assigned
    becomes the representative of a new cluster, which then absorbs every
    later unassigned location within ``radius_km`` of it. The result
    depends on input order and is a cost-saving heuristic, not an optimal
    grouping.
    """

    def __init__(self, radius_km: float = 2.0):
        if radius_km <= 0:
            raise ValueError(f"Cluster radius {radius_km} km must be positive")
        self.radius_km = radius_km

    def cluster(
        self,
        locations: Sequence[FieldLocation],
        radius_km: Optional[float] = None
    ) -> List[LocationCluster]:
        """
        Group locations around first-seen representatives

        Args:
            locations: Fields in caller order
            radius_km: Override for the configured radius

        Returns:
            Clusters ``cluster_0``, ``cluster_1``, ... in creation order
        """
        radius = self.radius_km if radius_km is None else radius_km
        if radius <= 0:
            raise ValueError(f"Cluster radius {radius} km must be positive")

        assigned = [False] * len(locations)
        clusters: List[LocationCluster] = []

        for i, representative in enumerate(locations):
            if assigned[i]:
                continue
            assigned[i] = True
            members = [representative]

            for j in range(i + 1, len(locations)):
                if assigned[j]:
                    continue
                candidate = locations[j]
                distance = haversine_km(
                    representative.latitude, representative.longitude,
                    candidate.latitude, candidate.longitude
                )
                if distance <= radius:
                    assigned[j] = True
                    members.append(candidate)

            clusters.append(LocationCluster(
                id=f"cluster_{len(clusters)}",
                representative=representative,
                fields=members
            ))

        logger.debug(f"Clustered {len(locations)} locations into {len(clusters)} clusters ({radius} km)")
        return clusters
