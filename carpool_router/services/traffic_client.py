import logging
from typing import Dict, Optional

import requests

from carpool_router.errors import RateLimitTimeout
from carpool_router.services.http_retry import ProviderError, RetryPolicy, fetch_json
from carpool_router.services.rate_limiter import RateLimiter
from carpool_router.services.route_types import Coordinate, TrafficLevel

logger = logging.getLogger(__name__)

# Duration multipliers per congestion level
TRAFFIC_MULTIPLIERS: Dict[str, float] = {
    "low": 1.0,
    "medium": 1.3,
    "moderate": 1.3,
    "high": 1.8,
    "severe": 2.5,
}

DEFAULT_TRAFFIC_FLOW = {
    "current_speed_kmph": 50,
    "free_flow_speed_kmph": 60,
    "congestion_level": "LOW",
    "confidence_level": 0.5,
}


def traffic_multiplier(level: Optional[str]) -> float:
    """Duration multiplier for a congestion level; unknown levels count as free flow"""
    if not level:
        return 1.0
    return TRAFFIC_MULTIPLIERS.get(str(level).strip().lower(), 1.0)


class TrafficClient:
    """Congestion levels from the traffic service, used to scale travel durations"""

    def __init__(
        self,
        base_url: str,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        timeout_s: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def get_traffic_flow(self, lat: float, lng: float) -> Dict:
        """Get traffic flow data from traffic service"""
        try:
            data = self.retry_policy.call(
                fetch_json,
                self.session,
                f"{self.base_url}/traffic/flow",
                params={"lat": lat, "lng": lng},
                timeout=self.timeout_s,
                rate_limiter=self.rate_limiter,
            )
        except (ProviderError, RateLimitTimeout) as e:
            logger.warning(f"Traffic service unavailable: {e}")
            return dict(DEFAULT_TRAFFIC_FLOW)
        if not isinstance(data, dict):
            logger.warning(f"Traffic service returned {type(data).__name__}, using defaults")
            return dict(DEFAULT_TRAFFIC_FLOW)
        return data

    def multiplier_at(self, location: Coordinate) -> float:
        flow = self.get_traffic_flow(location.lat, location.lng)
        multiplier = traffic_multiplier(flow.get("congestion_level"))
        logger.debug(f"Traffic at ({location.lat:.5f}, {location.lng:.5f}): "
                     f"{flow.get('congestion_level')} -> x{multiplier}")
        return multiplier

    def multiplier_for(self, level: Optional[TrafficLevel], location: Coordinate) -> float:
        """Multiplier for an explicit level, or the live level at ``location``"""
        if level is None:
            return 1.0
        if level == TrafficLevel.LIVE:
            return self.multiplier_at(location)
        return traffic_multiplier(level.value)
