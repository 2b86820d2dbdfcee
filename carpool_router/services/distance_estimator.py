import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import requests

from carpool_router.errors import RateLimitTimeout
from carpool_router.services.http_retry import (
    ProviderError, RetryPolicy, fetch_json,
)
from carpool_router.services.rate_limiter import RateLimiter
from carpool_router.services.route_types import Coordinate, LegEstimate

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in meters"""
    lat1_rad = math.radians(a.lat)
    lat2_rad = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2)
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


@dataclass
class MatrixEstimate:
    distance_m: np.ndarray
    duration_s: np.ndarray
    source: str

    def leg(self, i: int, j: int) -> LegEstimate:
        return LegEstimate(
            distance_m=float(self.distance_m[i, j]),
            duration_s=float(self.duration_s[i, j]),
            source=self.source,
        )


class LegEstimateError(Exception):
    """Estimating the leg between points i and j failed"""

    def __init__(self, i: int, j: int, cause: Exception):
        super().__init__(f"Leg {i}->{j} could not be estimated: {cause}")
        self.i = i
        self.j = j
        self.cause = cause


class DistanceEstimator:
    name = "estimator"

    def estimate(self, a: Coordinate, b: Coordinate) -> LegEstimate:
        raise NotImplementedError

    def estimate_matrix(self, points: Sequence[Coordinate]) -> MatrixEstimate:
        """Pairwise matrix built from single-leg estimates"""
        n = len(points)
        distance = np.zeros((n, n), dtype=float)
        duration = np.zeros((n, n), dtype=float)
        sources = set()
        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                try:
                    leg = self.estimate(points[i], points[j])
                except Exception as e:
                    raise LegEstimateError(i, j, e) from e
                distance[i, j] = leg.distance_m
                duration[i, j] = leg.duration_s
                sources.add(leg.source)
        return MatrixEstimate(distance, duration, "+".join(sorted(sources)) or self.name)

    def route_geometry(self, points: Sequence[Coordinate]) -> Optional[List[List[float]]]:
        """Road-following path through ``points`` as [lng, lat] pairs, or None when unknown"""
        return None


class HaversineEstimator(DistanceEstimator):
    """Offline estimate: great-circle distance at a fixed average speed"""

    name = "haversine"

    def __init__(self, average_speed_kmph: float = 30.0, road_factor: float = 1.0):
        if average_speed_kmph <= 0:
            raise ValueError("average_speed_kmph must be positive")
        self.average_speed_kmph = average_speed_kmph
        self.road_factor = road_factor

    def _duration_s(self, distance_m):
        return distance_m / 1000.0 / self.average_speed_kmph * 3600.0

    def estimate(self, a: Coordinate, b: Coordinate) -> LegEstimate:
        distance = haversine_m(a, b) * self.road_factor
        return LegEstimate(distance_m=distance, duration_s=self._duration_s(distance), source=self.name)

    def estimate_matrix(self, points: Sequence[Coordinate]) -> MatrixEstimate:
        lat = np.radians(np.array([p.lat for p in points], dtype=float))
        lng = np.radians(np.array([p.lng for p in points], dtype=float))
        dlat = lat[None, :] - lat[:, None]
        dlng = lng[None, :] - lng[:, None]
        h = np.sin(dlat / 2) ** 2 + np.cos(lat)[:, None] * np.cos(lat)[None, :] * np.sin(dlng / 2) ** 2
        distance = 2 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(h))) * self.road_factor
        np.fill_diagonal(distance, 0.0)
        return MatrixEstimate(distance, self._duration_s(distance), self.name)


class RoutingServiceEstimator(DistanceEstimator):
    """
    Road-network estimates from an OSRM-compatible routing API.

    Every outbound call goes through the shared rate limiter and the retry
    policy. When the service stays unreachable the haversine fallback is
    used instead, so a route can always be produced offline.
    """

    name = "osrm"

    def __init__(
        self,
        base_url: str,
        fallback: HaversineEstimator,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout_s: float = 10.0,
        profile: str = "driving",
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.fallback = fallback
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_s = timeout_s
        self.profile = profile
        self.session = session or requests.Session()

    @staticmethod
    def _coords(points: Sequence[Coordinate]) -> str:
        # OSRM wants lng,lat
        return ";".join(f"{p.lng},{p.lat}" for p in points)

    def _get(self, path: str, params: dict) -> dict:
        data = self.retry_policy.call(
            fetch_json,
            self.session,
            f"{self.base_url}{path}",
            params=params,
            timeout=self.timeout_s,
            rate_limiter=self.rate_limiter,
        )
        if data.get("code") != "Ok":
            raise ProviderError(f"Routing service answered {data.get('code')}: {data.get('message', '')}")
        return data

    def estimate(self, a: Coordinate, b: Coordinate) -> LegEstimate:
        try:
            data = self._get(
                f"/route/v1/{self.profile}/{self._coords([a, b])}",
                {"overview": "false", "steps": "false"},
            )
            route = data["routes"][0]
            return LegEstimate(
                distance_m=float(route["distance"]),
                duration_s=float(route["duration"]),
                source=self.name,
            )
        except (ProviderError, RateLimitTimeout, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Routing service unavailable, using haversine estimate: {e}")
            return self.fallback.estimate(a, b)

    def estimate_matrix(self, points: Sequence[Coordinate]) -> MatrixEstimate:
        if len(points) < 2:
            return self.fallback.estimate_matrix(points)
        n = len(points)
        try:
            data = self._get(
                f"/table/v1/{self.profile}/{self._coords(points)}",
                {"annotations": "distance,duration"},
            )
            distances: List[List[Optional[float]]] = data["distances"]
            durations: List[List[Optional[float]]] = data["durations"]
            if len(distances) != n or len(durations) != n or any(len(row) != n for row in distances + durations):
                raise ProviderError(f"Routing table is not {n}x{n}")
        except (ProviderError, RateLimitTimeout, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Routing table unavailable, using haversine matrix: {e}")
            return self.fallback.estimate_matrix(points)

        fallback = self.fallback.estimate_matrix(points)
        distance = np.zeros((n, n), dtype=float)
        duration = np.zeros((n, n), dtype=float)
        patched = 0
        for i in range(n):
            for j in range(n):
                if i == j:
                    continue
                d = distances[i][j]
                t = durations[i][j]
                if d is None or t is None:
                    # unroutable pair
                    distance[i, j] = fallback.distance_m[i, j]
                    duration[i, j] = fallback.duration_s[i, j]
                    patched += 1
                else:
                    distance[i, j] = float(d)
                    duration[i, j] = float(t)

        source = self.name if patched == 0 else f"{self.name}+{self.fallback.name}"
        if patched:
            logger.info(f"Routing table had {patched} unroutable cells, filled with haversine")
        return MatrixEstimate(distance, duration, source)

    def route_geometry(self, points: Sequence[Coordinate]) -> Optional[List[List[float]]]:
        if len(points) < 2:
            return None
        try:
            data = self._get(
                f"/route/v1/{self.profile}/{self._coords(points)}",
                {"overview": "full", "geometries": "geojson", "steps": "false"},
            )
            coordinates = data["routes"][0]["geometry"]["coordinates"]
            path = [[float(lng), float(lat)] for lng, lat in coordinates]
        except (ProviderError, RateLimitTimeout, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Route geometry unavailable, using straight lines: {e}")
            return None
        return path or None
