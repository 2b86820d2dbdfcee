"""Fixed development routes around Lower Manhattan, used by the UI without network access."""
import logging
from typing import Dict, List, Tuple

from carpool_router.services.distance_estimator import HaversineEstimator
from carpool_router.services.route_types import (
    Coordinate, Route, RouteLeg, Waypoint, WaypointType,
)

logger = logging.getLogger(__name__)

_ORIGIN = (40.7128, -74.0060)
_DESTINATION = (40.7484, -73.9857)
_PICKUPS = [
    (40.7589, -73.9851),
    (40.7505, -73.9934),
    (40.7421, -73.9911),
    (40.7336, -73.9887),
    (40.7251, -73.9893),
    (40.7166, -73.9869),
    (40.7081, -73.9845),
]

# scenario -> (pickup count, total distance m, total duration s)
MOCK_SCENARIOS: Dict[str, Tuple[int, float, float]] = {
    "basic": (2, 8500.0, 1500.0),
    "medium": (4, 12300.0, 2100.0),
    "max": (7, 18700.0, 3120.0),
}


def _waypoints(pickup_count: int) -> List[Waypoint]:
    points = [Waypoint(Coordinate(*_ORIGIN), WaypointType.ORIGIN, "Origin")]
    for i, (lat, lng) in enumerate(_PICKUPS[:pickup_count]):
        points.append(Waypoint(Coordinate(lat, lng), WaypointType.PICKUP, f"Pickup {i + 1}"))
    points.append(Waypoint(Coordinate(*_DESTINATION), WaypointType.DESTINATION, "Destination"))
    return points


def get_mock_route(scenario: str = "basic") -> Route:
    if scenario not in MOCK_SCENARIOS:
        logger.warning(f"Unknown mock scenario '{scenario}', using 'basic'")
        scenario = "basic"
    pickup_count, total_distance, total_duration = MOCK_SCENARIOS[scenario]
    points = _waypoints(pickup_count)

    # leg shapes come from straight-line distances, scaled to the fixed totals
    estimator = HaversineEstimator()
    raw = [estimator.estimate(a.location, b.location).distance_m for a, b in zip(points, points[1:])]
    raw_total = sum(raw)
    legs = [
        RouteLeg(
            origin=a,
            destination=b,
            distance_m=total_distance * share / raw_total,
            duration_s=total_duration * share / raw_total,
            source="mock",
        )
        for (a, b), share in zip(zip(points, points[1:]), raw)
    ]

    return Route(
        waypoints=points,
        legs=legs,
        total_distance=total_distance,
        total_duration=total_duration,
        pickup_order=list(range(pickup_count)),
        algorithm="mock",
        baseline_distance=total_distance,
        baseline_duration=total_duration,
    )
