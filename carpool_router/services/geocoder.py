"""
Geocoding adapter.

Lookups run through a chain of providers tried in order. Each provider
call passes through the shared rate limiter and that provider's retry
policy; when a provider is exhausted the next one is tried. Results are
cached by normalized query.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

import requests

from carpool_router.errors import GeocodeError
from carpool_router.services.http_retry import ProviderError, RetryPolicy, fetch_json
from carpool_router.services.rate_limiter import RateLimiter
from carpool_router.services.route_types import validate_coordinate
from carpool_router.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


def coordinate_label(lat: float, lng: float) -> str:
    """Label used when no provider can name a coordinate"""
    return f"Location ({float(lat):.6f}, {float(lng):.6f})"


@dataclass(frozen=True)
class GeocodeCandidate:
    display_name: str
    lat: float
    lng: float
    importance: float
    quality: Optional[str]
    provider: str


@dataclass
class ProviderResult:
    value: Any
    provider: str
    cached: bool = False
    errors: List[str] = field(default_factory=list)


class GeocodingProvider:
    name = "provider"

    def __init__(self, session: Optional[requests.Session] = None, timeout_s: float = 5.0,
                 rate_limiter: Optional[RateLimiter] = None, retry_policy: Optional[RetryPolicy] = None):
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()

    def _get(self, url: str, params: dict, headers: Optional[dict] = None) -> Any:
        return self.retry_policy.call(
            fetch_json,
            self.session,
            url,
            params=params,
            headers=headers,
            timeout=self.timeout_s,
            rate_limiter=self.rate_limiter,
        )

    def search(self, query: str, limit: int = 10, country: Optional[str] = None) -> List[GeocodeCandidate]:
        raise NotImplementedError

    def reverse(self, lat: float, lng: float) -> str:
        raise NotImplementedError


class MapQuestProvider(GeocodingProvider):
    name = "mapquest"

    def __init__(self, api_key: str, base_url: str = "https://www.mapquestapi.com/geocoding/v1", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    @staticmethod
    def _format_address(location: dict) -> str:
        locality = f"{location.get('adminArea5', '')}, {location.get('adminArea3', '')} {location.get('postalCode', '')}"
        street = location.get("street")
        return f"{street}, {locality}".strip() if street else locality.strip()

    def _locations(self, data: dict) -> List[dict]:
        status = data.get("info", {}).get("statuscode", 0)
        if status != 0:
            messages = "; ".join(data.get("info", {}).get("messages", []))
            raise ProviderError(f"MapQuest status {status}: {messages}")
        results = data.get("results") or []
        if not results:
            return []
        return results[0].get("locations") or []

    def search(self, query: str, limit: int = 10, country: Optional[str] = None) -> List[GeocodeCandidate]:
        params = {
            "key": self.api_key,
            "location": query,
            "maxResults": limit,
            "outFormat": "json",
            "thumbMaps": "false",
        }
        if country:
            params["country"] = country
        data = self._get(f"{self.base_url}/address", params)

        candidates = []
        for location in self._locations(data):
            lat_lng = location.get("latLng") or {}
            if "lat" not in lat_lng or "lng" not in lat_lng:
                continue
            quality = location.get("geocodeQuality")
            candidates.append(GeocodeCandidate(
                display_name=self._format_address(location),
                lat=float(lat_lng["lat"]),
                lng=float(lat_lng["lng"]),
                importance=1.0 if quality == "POINT" else 0.5,
                quality=quality,
                provider=self.name,
            ))
        return candidates

    def reverse(self, lat: float, lng: float) -> str:
        data = self._get(f"{self.base_url}/reverse", {
            "key": self.api_key,
            "location": f"{lat},{lng}",
            "outFormat": "json",
            "thumbMaps": "false",
        })
        locations = self._locations(data)
        if not locations:
            raise ProviderError("MapQuest reverse lookup returned no results")
        return self._format_address(locations[0])


class NominatimProvider(GeocodingProvider):
    name = "nominatim"

    def __init__(self, base_url: str = "https://nominatim.openstreetmap.org",
                 user_agent: str = "carpool-router/1.0", **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.headers = {"User-Agent": user_agent}

    def search(self, query: str, limit: int = 10, country: Optional[str] = None) -> List[GeocodeCandidate]:
        params = {"q": query, "format": "jsonv2", "limit": limit}
        if country:
            params["countrycodes"] = country.lower()
        data = self._get(f"{self.base_url}/search", params, headers=self.headers)
        if not isinstance(data, list):
            raise ProviderError("Nominatim search returned an unexpected payload")

        candidates = []
        for place in data:
            try:
                lat = float(place["lat"])
                lng = float(place["lon"])
            except (KeyError, TypeError, ValueError):
                continue
            candidates.append(GeocodeCandidate(
                display_name=place.get("display_name", ""),
                lat=lat,
                lng=lng,
                importance=float(place.get("importance") or 0.0),
                quality=place.get("type"),
                provider=self.name,
            ))
        return candidates

    def reverse(self, lat: float, lng: float) -> str:
        data = self._get(
            f"{self.base_url}/reverse",
            {"lat": lat, "lon": lng, "format": "jsonv2"},
            headers=self.headers,
        )
        if not isinstance(data, dict) or data.get("error") or not data.get("display_name"):
            raise ProviderError(f"Nominatim reverse lookup failed: {data.get('error') if isinstance(data, dict) else data}")
        return data["display_name"]


class GeocodingService:
    def __init__(self, providers: Sequence[GeocodingProvider], cache: TTLCache):
        if not providers:
            raise ValueError("At least one geocoding provider is required")
        self.providers = list(providers)
        self.cache = cache

    @staticmethod
    def normalize_query(query: str) -> str:
        return " ".join(query.lower().split())

    def _run_chain(self, operation: str, call: Callable[[GeocodingProvider], Any],
                   accept: Callable[[Any], bool] = lambda value: True) -> ProviderResult:
        errors: List[str] = []
        last_answer: Optional[ProviderResult] = None
        for provider in self.providers:
            try:
                value = call(provider)
            except ProviderError as e:
                logger.warning(f"Geocoding provider {provider.name} failed for {operation}: {e}")
                errors.append(f"{provider.name}: {e}")
                continue
            if accept(value):
                return ProviderResult(value=value, provider=provider.name, errors=errors)
            last_answer = ProviderResult(value=value, provider=provider.name, errors=errors)

        if last_answer is not None:
            return last_answer
        raise GeocodeError(f"All geocoding providers failed for {operation}", errors)

    def resolve_search(self, query: str, limit: int = 10, country: Optional[str] = None) -> ProviderResult:
        if not query or len(query.strip()) < MIN_QUERY_LENGTH:
            return ProviderResult(value=[], provider="none")

        cache_key = f"search:{self.normalize_query(query)}:{limit}:{(country or '').upper()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            candidates, provider = cached
            return ProviderResult(value=list(candidates), provider=provider, cached=True)

        result = self._run_chain(
            f"search '{query}'",
            lambda provider: provider.search(query.strip(), limit=limit, country=country),
            accept=bool,
        )
        ranked = sorted(result.value, key=lambda c: -c.importance)[:limit]
        result.value = ranked
        if ranked:
            self.cache.set(cache_key, (ranked, result.provider))
        return result

    def search(self, query: str, limit: int = 10, country: Optional[str] = None) -> List[GeocodeCandidate]:
        return self.resolve_search(query, limit=limit, country=country).value

    def geocode(self, address: str, country: Optional[str] = None) -> GeocodeCandidate:
        candidates = self.search(address, limit=1, country=country)
        if not candidates:
            raise GeocodeError(f"No results found for '{address}'")
        return candidates[0]

    def resolve_reverse(self, lat: float, lng: float) -> ProviderResult:
        coordinate = validate_coordinate(lat, lng)
        cache_key = f"reverse:{coordinate.lat:.6f}:{coordinate.lng:.6f}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            address, provider = cached
            return ProviderResult(value=address, provider=provider, cached=True)

        result = self._run_chain(
            f"reverse ({coordinate.lat}, {coordinate.lng})",
            lambda provider: provider.reverse(coordinate.lat, coordinate.lng),
        )
        self.cache.set(cache_key, (result.value, result.provider))
        return result

    def reverse_geocode(self, lat: float, lng: float, fallback_to_coordinates: bool = False) -> str:
        try:
            return self.resolve_reverse(lat, lng).value
        except GeocodeError:
            if not fallback_to_coordinates:
                raise
            logger.info(f"Reverse geocoding exhausted, labelling ({lat}, {lng}) by coordinates")
            return coordinate_label(lat, lng)
