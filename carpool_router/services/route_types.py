"""
Domain types shared by the estimator, sequencer and planner.

Plain frozen dataclasses; the pydantic request/response models in
``carpool_router.schemas`` convert to and from these.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from carpool_router.errors import InvalidInputError


class WaypointType(str, Enum):
    ORIGIN = "origin"
    PICKUP = "pickup"
    DESTINATION = "destination"


class Objective(str, Enum):
    DURATION = "duration"
    DISTANCE = "distance"


class TrafficLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    SEVERE = "severe"
    # ask the traffic service for the level at the route origin
    LIVE = "live"


class Algorithm(str, Enum):
    AUTO = "auto"
    EXHAUSTIVE = "exhaustive"
    NEAREST_NEIGHBOR = "nearest_neighbor"
    OR_TOOLS = "or_tools"


# Aliases the UI has used for waypoint roles
WAYPOINT_TYPE_ALIASES = {
    "origin": WaypointType.ORIGIN,
    "start": WaypointType.ORIGIN,
    "driver": WaypointType.ORIGIN,
    "pickup": WaypointType.PICKUP,
    "waypoint": WaypointType.PICKUP,
    "passenger": WaypointType.PICKUP,
    "destination": WaypointType.DESTINATION,
    "end": WaypointType.DESTINATION,
}


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Waypoint:
    location: Coordinate
    type: WaypointType
    name: Optional[str] = None

    def label(self) -> str:
        return self.name or f"{self.type.value} ({self.location.lat:.5f}, {self.location.lng:.5f})"


@dataclass(frozen=True)
class LegEstimate:
    distance_m: float
    duration_s: float
    source: str = "haversine"


@dataclass(frozen=True)
class RouteLeg:
    origin: Waypoint
    destination: Waypoint
    distance_m: float
    duration_s: float
    source: str


@dataclass
class RouteConstraints:
    max_passengers: int = 8
    max_distance_m: Optional[float] = 100_000.0
    max_duration_s: Optional[float] = 120 * 60.0
    # Accepted for compatibility; ordering does not consider them yet.
    time_windows: Optional[Dict[str, Any]] = None
    objective: Objective = Objective.DISTANCE
    algorithm: Algorithm = Algorithm.AUTO
    traffic: Optional[TrafficLevel] = None


@dataclass
class Route:
    waypoints: List[Waypoint]
    legs: List[RouteLeg]
    total_distance: float
    total_duration: float
    pickup_order: List[int]
    algorithm: str
    baseline_distance: float
    baseline_duration: float
    warnings: List[str] = field(default_factory=list)
    # [lng, lat] pairs, GeoJSON order
    geometry: List[List[float]] = field(default_factory=list)
    geometry_source: str = "straight_line"
    traffic_multiplier: float = 1.0

    def __post_init__(self):
        if not self.geometry:
            self.geometry = straight_line_geometry(self.waypoints)
            self.geometry_source = "straight_line"

    @property
    def origin(self) -> Waypoint:
        return self.waypoints[0]

    @property
    def destination(self) -> Waypoint:
        return self.waypoints[-1]

    def to_dict(self) -> Dict[str, Any]:
        def _waypoint(wp: Waypoint) -> Dict[str, Any]:
            return {
                "location": {"lat": wp.location.lat, "lng": wp.location.lng},
                "type": wp.type.value,
                "name": wp.name,
            }

        return {
            "waypoints": [_waypoint(wp) for wp in self.waypoints],
            "legs": [
                {
                    "from": _waypoint(leg.origin),
                    "to": _waypoint(leg.destination),
                    "distance_m": leg.distance_m,
                    "duration_s": leg.duration_s,
                    "source": leg.source,
                }
                for leg in self.legs
            ],
            "total_distance": self.total_distance,
            "total_duration": self.total_duration,
            "pickup_order": list(self.pickup_order),
            "algorithm": self.algorithm,
            "baseline_distance": self.baseline_distance,
            "baseline_duration": self.baseline_duration,
            "warnings": list(self.warnings),
            "geometry": {"type": "LineString", "coordinates": [list(p) for p in self.geometry]},
            "geometry_source": self.geometry_source,
            "traffic_multiplier": self.traffic_multiplier,
        }


def straight_line_geometry(waypoints: List[Waypoint]) -> List[List[float]]:
    return [[wp.location.lng, wp.location.lat] for wp in waypoints]


def validate_coordinate(lat: Any, lng: Any, waypoint: Optional[Waypoint] = None) -> Coordinate:
    """Return a Coordinate or raise InvalidInputError for NaN/inf/out-of-range values"""
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Coordinate ({lat!r}, {lng!r}) is not numeric", waypoint=waypoint)

    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        raise InvalidInputError(f"Coordinate ({lat_f}, {lng_f}) is not finite", waypoint=waypoint)
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidInputError(f"Latitude {lat_f} is outside [-90, 90]", waypoint=waypoint)
    if not -180.0 <= lng_f <= 180.0:
        raise InvalidInputError(f"Longitude {lng_f} is outside [-180, 180]", waypoint=waypoint)
    return Coordinate(lat=lat_f, lng=lng_f)


def validate_waypoint(waypoint: Waypoint) -> Waypoint:
    validate_coordinate(waypoint.location.lat, waypoint.location.lng, waypoint=waypoint)
    return waypoint


def make_waypoint(lat: float, lng: float, type: str = "pickup", name: Optional[str] = None) -> Waypoint:
    wp_type = WAYPOINT_TYPE_ALIASES.get(str(type).lower())
    if wp_type is None:
        raise InvalidInputError(f"Unknown waypoint type {type!r}")
    location = validate_coordinate(lat, lng)
    return Waypoint(location=location, type=wp_type, name=name)
