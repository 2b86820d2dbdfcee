import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from carpool_router.errors import InvalidInputError
from carpool_router.services.distance_estimator import haversine_m
from carpool_router.services.route_types import (
    Route, RouteConstraints, Waypoint, WaypointType, validate_waypoint,
)
from carpool_router.services.waypoint_sequencer import WaypointSequencer

logger = logging.getLogger(__name__)


@dataclass
class DriverPlan:
    driver_index: int
    driver: Waypoint
    passenger_indices: List[int]
    route: Route


@dataclass
class GroupPlan:
    plans: List[DriverPlan]
    total_distance: float
    total_duration: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "plans": [
                {
                    "driver_index": p.driver_index,
                    "driver_name": p.driver.name,
                    "passenger_indices": list(p.passenger_indices),
                    "route": p.route.to_dict(),
                }
                for p in self.plans
            ],
            "total_distance": self.total_distance,
            "total_duration": self.total_duration,
            "warnings": list(self.warnings),
        }


class GroupRoutePlanner:
    """
    Routes a group with several drivers sharing one destination.

    Each passenger goes to the closest driver that still has a free seat
    (ties go to the lower driver index), then every driver's pickups are
    ordered by the waypoint sequencer.
    """

    def __init__(self, sequencer: WaypointSequencer):
        self.sequencer = sequencer

    def assign_passengers(self, drivers: Sequence[Waypoint], pickups: Sequence[Waypoint],
                          capacity: int) -> List[List[int]]:
        clusters: List[List[int]] = [[] for _ in drivers]
        for p_idx, pickup in enumerate(pickups):
            ranked = sorted(
                range(len(drivers)),
                key=lambda d_idx: (haversine_m(pickup.location, drivers[d_idx].location), d_idx),
            )
            for d_idx in ranked:
                if len(clusters[d_idx]) < capacity:
                    clusters[d_idx].append(p_idx)
                    break
        return clusters

    def plan(self, drivers: Sequence[Waypoint], pickups: Sequence[Waypoint], destination: Waypoint,
             constraints: Optional[RouteConstraints] = None) -> GroupPlan:
        constraints = constraints or RouteConstraints()
        drivers = list(drivers)
        pickups = list(pickups)

        if not drivers:
            raise InvalidInputError("At least one driver is required")
        if destination is None or destination.type != WaypointType.DESTINATION:
            raise InvalidInputError("A destination waypoint is required", waypoint=destination)
        for wp in drivers + pickups + [destination]:
            validate_waypoint(wp)
        if len(pickups) > constraints.max_passengers * len(drivers):
            raise InvalidInputError(
                f"Maximum {constraints.max_passengers} passengers allowed per vehicle "
                f"({len(pickups)} passengers for {len(drivers)} drivers)"
            )

        clusters = self.assign_passengers(drivers, pickups, constraints.max_passengers)
        logger.info(
            f"Assigned {len(pickups)} passengers to {len(drivers)} drivers: "
            f"{[len(c) for c in clusters]}"
        )

        plans: List[DriverPlan] = []
        warnings: List[str] = []
        for d_idx, (driver, cluster) in enumerate(zip(drivers, clusters)):
            origin = driver if driver.type == WaypointType.ORIGIN else Waypoint(
                location=driver.location, type=WaypointType.ORIGIN, name=driver.name
            )
            route = self.sequencer.sequence(origin, [pickups[i] for i in cluster], destination, constraints)
            # map the sequencer's cluster-local order back to group pickup indices
            ordered = [cluster[i] for i in route.pickup_order]
            plans.append(DriverPlan(driver_index=d_idx, driver=driver, passenger_indices=ordered, route=route))
            warnings.extend(f"Driver {d_idx}: {w}" for w in route.warnings)

        return GroupPlan(
            plans=plans,
            total_distance=sum(p.route.total_distance for p in plans),
            total_duration=sum(p.route.total_duration for p in plans),
            warnings=warnings,
        )
