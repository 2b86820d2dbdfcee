from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from carpool_router.services.route_types import (
    Algorithm, Coordinate, Objective, RouteConstraints, TrafficLevel, Waypoint,
    WaypointType,
)


class CoordinatePoint(BaseModel):
    """A single coordinate point with optional metadata"""
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")
    name: Optional[str] = Field(None, description="Optional location name")

    def to_waypoint(self, wp_type: WaypointType) -> Waypoint:
        return Waypoint(location=Coordinate(self.lat, self.lng), type=wp_type, name=self.name)


class RouteConstraintsIn(BaseModel):
    max_passengers: Optional[int] = Field(None, ge=1, le=50, description="Passengers per vehicle")
    max_distance_km: Optional[float] = Field(None, gt=0, description="Warn above this route distance")
    max_duration_minutes: Optional[float] = Field(None, gt=0, description="Warn above this route duration")
    time_windows: Optional[Dict[str, Any]] = Field(None, description="Accepted but not used for ordering")
    objective: Objective = Field(Objective.DISTANCE, description="Cost minimized by the ordering")
    algorithm: Algorithm = Field(Algorithm.AUTO, description="Ordering strategy")
    traffic: Optional[TrafficLevel] = Field(None, description="Congestion level applied to durations; 'live' asks the traffic service")

    def to_constraints(self, defaults: RouteConstraints) -> RouteConstraints:
        return RouteConstraints(
            max_passengers=self.max_passengers or defaults.max_passengers,
            max_distance_m=self.max_distance_km * 1000 if self.max_distance_km else defaults.max_distance_m,
            max_duration_s=self.max_duration_minutes * 60 if self.max_duration_minutes else defaults.max_duration_s,
            time_windows=self.time_windows,
            objective=self.objective,
            algorithm=self.algorithm,
            traffic=self.traffic or defaults.traffic,
        )


class OptimizeRouteRequest(BaseModel):
    """One driver: origin, pickups in any order, shared destination"""
    origin: CoordinatePoint = Field(..., description="Driver start")
    destination: CoordinatePoint = Field(..., description="Shared destination")
    pickups: List[CoordinatePoint] = Field(default_factory=list, description="Passenger pickup points")
    constraints: Optional[RouteConstraintsIn] = None


class GroupPlanRequest(BaseModel):
    drivers: List[CoordinatePoint] = Field(..., min_length=1, description="Driver start points")
    passengers: List[CoordinatePoint] = Field(default_factory=list, description="Passenger pickup points")
    destination: CoordinatePoint
    constraints: Optional[RouteConstraintsIn] = None


class LegEstimateRequest(BaseModel):
    origin: CoordinatePoint
    destination: CoordinatePoint


class GroupRouteUpdate(OptimizeRouteRequest):
    seq: Optional[int] = Field(None, ge=1, description="Client sequence number; must increase per group")
