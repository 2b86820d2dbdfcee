import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name, str(default)).strip().lower()
    return v in ("1", "true", "yes", "y", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Settings:
    database_url: str = "sqlite:///./carpool_router.db"
    document_store: str = "sql"

    mapquest_api_key: Optional[str] = None
    mapquest_geocoding_url: str = "https://www.mapquestapi.com/geocoding/v1"
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    nominatim_user_agent: str = "carpool-router/1.0"
    osrm_url: str = "https://router.project-osrm.org"
    use_routing_service: bool = True
    traffic_service_url: Optional[str] = None

    geocoder_timeout_s: float = 5.0
    routing_timeout_s: float = 10.0
    rate_limit_interval_s: float = 0.1
    rate_limit_max_wait_s: Optional[float] = None
    retry_attempts: int = 3
    retry_backoff_s: float = 1.0
    retry_backoff_max_s: float = 5.0
    geocode_cache_ttl_s: float = 24 * 60 * 60
    geocode_cache_size: int = 500
    route_cache_ttl_s: float = 24 * 60 * 60
    route_cache_size: int = 100

    average_speed_kmph: float = 30.0
    road_factor: float = 1.0
    exhaustive_limit: int = 7
    max_passengers: int = 8
    max_route_distance_m: float = 100_000.0
    max_route_duration_s: float = 120 * 60.0
    recompute_debounce_s: float = 0.4

    host: str = "0.0.0.0"
    port: int = 8003

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            document_store=os.getenv("DOCUMENT_STORE", cls.document_store).strip().lower(),
            mapquest_api_key=os.getenv("MAPQUEST_API_KEY") or None,
            mapquest_geocoding_url=os.getenv("MAPQUEST_GEOCODING_URL", cls.mapquest_geocoding_url),
            nominatim_url=os.getenv("NOMINATIM_URL", cls.nominatim_url),
            nominatim_user_agent=os.getenv("NOMINATIM_USER_AGENT", cls.nominatim_user_agent),
            osrm_url=os.getenv("OSRM_URL", cls.osrm_url),
            use_routing_service=_env_bool("USE_ROUTING_SERVICE", cls.use_routing_service),
            traffic_service_url=os.getenv("TRAFFIC_SERVICE_URL") or None,
            geocoder_timeout_s=_env_float("GEOCODER_TIMEOUT_S", cls.geocoder_timeout_s),
            routing_timeout_s=_env_float("ROUTING_TIMEOUT_S", cls.routing_timeout_s),
            rate_limit_interval_s=_env_float("RATE_LIMIT_INTERVAL_MS", 100.0) / 1000.0,
            rate_limit_max_wait_s=_env_float("RATE_LIMIT_MAX_WAIT_S", None),
            retry_attempts=_env_int("RETRY_ATTEMPTS", cls.retry_attempts),
            retry_backoff_s=_env_float("RETRY_BACKOFF_S", cls.retry_backoff_s),
            retry_backoff_max_s=_env_float("RETRY_BACKOFF_MAX_S", cls.retry_backoff_max_s),
            geocode_cache_ttl_s=_env_float("GEOCODE_CACHE_TTL_S", cls.geocode_cache_ttl_s),
            geocode_cache_size=_env_int("GEOCODE_CACHE_SIZE", cls.geocode_cache_size),
            route_cache_ttl_s=_env_float("ROUTE_CACHE_TTL_S", cls.route_cache_ttl_s),
            route_cache_size=_env_int("ROUTE_CACHE_SIZE", cls.route_cache_size),
            average_speed_kmph=_env_float("AVERAGE_SPEED_KMPH", cls.average_speed_kmph),
            road_factor=_env_float("ROAD_FACTOR", cls.road_factor),
            exhaustive_limit=_env_int("EXHAUSTIVE_LIMIT", cls.exhaustive_limit),
            max_passengers=_env_int("MAX_PASSENGERS", cls.max_passengers),
            max_route_distance_m=_env_float("MAX_ROUTE_DISTANCE_KM", 100.0) * 1000.0,
            max_route_duration_s=_env_float("MAX_ROUTE_DURATION_MIN", 120.0) * 60.0,
            recompute_debounce_s=_env_float("RECOMPUTE_DEBOUNCE_MS", 400.0) / 1000.0,
            host=os.getenv("HOST", cls.host),
            port=_env_int("PORT", cls.port),
        )
