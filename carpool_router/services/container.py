import logging
from dataclasses import dataclass
from typing import Optional

import requests

from carpool_router.config import Settings
from carpool_router.database import create_db_engine, create_session_factory, init_db
from carpool_router.services.distance_estimator import (
    DistanceEstimator, HaversineEstimator, RoutingServiceEstimator,
)
from carpool_router.services.document_store import (
    DocumentStore, InMemoryDocumentStore, SqlDocumentStore,
)
from carpool_router.services.geocoder import (
    GeocodingService, MapQuestProvider, NominatimProvider,
)
from carpool_router.services.group_planner import GroupRoutePlanner
from carpool_router.services.http_retry import RetryPolicy
from carpool_router.services.rate_limiter import RateLimiter
from carpool_router.services.recompute import RecomputeTracker
from carpool_router.services.route_types import RouteConstraints
from carpool_router.services.traffic_client import TrafficClient
from carpool_router.services.ttl_cache import TTLCache
from carpool_router.services.waypoint_sequencer import WaypointSequencer

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every long-lived service object, built once per application"""

    settings: Settings
    rate_limiter: RateLimiter
    estimator: DistanceEstimator
    geocoder: GeocodingService
    sequencer: WaypointSequencer
    planner: GroupRoutePlanner
    tracker: RecomputeTracker
    store: DocumentStore
    route_cache: TTLCache
    traffic: Optional[TrafficClient] = None

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "ServiceContainer":
        session = session or requests.Session()
        rate_limiter = RateLimiter(settings.rate_limit_interval_s, max_wait_s=settings.rate_limit_max_wait_s)
        retry_policy = RetryPolicy(
            attempts=settings.retry_attempts,
            backoff_s=settings.retry_backoff_s,
            backoff_max_s=settings.retry_backoff_max_s,
        )

        haversine = HaversineEstimator(settings.average_speed_kmph, settings.road_factor)
        if settings.use_routing_service:
            estimator: DistanceEstimator = RoutingServiceEstimator(
                settings.osrm_url,
                fallback=haversine,
                rate_limiter=rate_limiter,
                retry_policy=retry_policy,
                timeout_s=settings.routing_timeout_s,
                session=session,
            )
        else:
            estimator = haversine

        provider_kwargs = dict(
            session=session,
            timeout_s=settings.geocoder_timeout_s,
            rate_limiter=rate_limiter,
            retry_policy=retry_policy,
        )
        providers = []
        if settings.mapquest_api_key:
            providers.append(MapQuestProvider(
                settings.mapquest_api_key, settings.mapquest_geocoding_url, **provider_kwargs
            ))
        providers.append(NominatimProvider(
            settings.nominatim_url, settings.nominatim_user_agent, **provider_kwargs
        ))
        geocoder = GeocodingService(
            providers, TTLCache(settings.geocode_cache_ttl_s, settings.geocode_cache_size)
        )

        if settings.document_store == "memory":
            store: DocumentStore = InMemoryDocumentStore()
        elif settings.document_store == "sql":
            engine = create_db_engine(settings.database_url)
            init_db(engine)
            store = SqlDocumentStore(create_session_factory(engine))
        else:
            raise ValueError(f"Unknown document store '{settings.document_store}'")

        traffic = None
        if settings.traffic_service_url:
            traffic = TrafficClient(
                settings.traffic_service_url,
                rate_limiter=rate_limiter,
                retry_policy=retry_policy,
                timeout_s=settings.routing_timeout_s,
                session=session,
            )

        sequencer = WaypointSequencer(estimator, exhaustive_limit=settings.exhaustive_limit, traffic=traffic)
        logger.info(
            f"Services ready: estimator={estimator.name}, "
            f"geocoders={[p.name for p in providers]}, store={settings.document_store}, "
            f"traffic={settings.traffic_service_url or 'off'}"
        )
        return cls(
            settings=settings,
            rate_limiter=rate_limiter,
            estimator=estimator,
            geocoder=geocoder,
            sequencer=sequencer,
            planner=GroupRoutePlanner(sequencer),
            tracker=RecomputeTracker(settings.recompute_debounce_s),
            store=store,
            route_cache=TTLCache(settings.route_cache_ttl_s, settings.route_cache_size),
            traffic=traffic,
        )

    def default_constraints(self) -> RouteConstraints:
        return RouteConstraints(
            max_passengers=self.settings.max_passengers,
            max_distance_m=self.settings.max_route_distance_m,
            max_duration_s=self.settings.max_route_duration_s,
        )
