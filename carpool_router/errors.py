from typing import List, Optional


class CarpoolRouterError(Exception):
    """Base class for errors raised by the route optimizer service"""


class InvalidInputError(CarpoolRouterError):
    """Bad coordinates, missing origin/destination or too many pickups"""

    def __init__(self, message: str, waypoint=None):
        super().__init__(message)
        self.waypoint = waypoint


class RouteComputationError(CarpoolRouterError):
    """A required leg could not be estimated"""

    def __init__(self, message: str, waypoint=None):
        super().__init__(message)
        self.waypoint = waypoint


class GeocodeError(CarpoolRouterError):
    """Every geocoding provider failed for a lookup"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class RateLimitTimeout(CarpoolRouterError):
    def __init__(self, wait_s: float, max_wait_s: float):
        super().__init__(
            f"Rate limiter wait of {wait_s:.2f}s exceeds the {max_wait_s:.2f}s bound"
        )
        self.wait_s = wait_s
        self.max_wait_s = max_wait_s


class StaleRequestError(CarpoolRouterError):
    """A recompute request was superseded by a newer one for the same scope"""

    def __init__(self, scope: str, seq: int, latest: int):
        super().__init__(f"Request {seq} for {scope} is stale (latest is {latest})")
        self.scope = scope
        self.seq = seq
        self.latest = latest
