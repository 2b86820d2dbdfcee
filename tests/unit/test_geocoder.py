import pytest
import responses

from carpool_router.errors import GeocodeError, InvalidInputError
from carpool_router.services.geocoder import (
    GeocodingService, MapQuestProvider, NominatimProvider,
)
from carpool_router.services.http_retry import RetryPolicy
from carpool_router.services.rate_limiter import RateLimiter
from carpool_router.services.ttl_cache import TTLCache
from factories import FakeClock

NOMINATIM = "http://nominatim.test"
MAPQUEST = "http://mapquest.test/geocoding/v1"

DALLAS_PLACE = {
    "display_name": "Dallas, Dallas County, Texas, United States",
    "lat": "32.7762719",
    "lon": "-96.7968559",
    "importance": 0.82,
    "type": "city",
}


def no_retry():
    return RetryPolicy(attempts=1, backoff_s=0.0, sleep=lambda s: None)


def nominatim():
    return NominatimProvider(NOMINATIM, "carpool-router-tests/1.0", retry_policy=no_retry())


def mapquest():
    return MapQuestProvider("test-key", MAPQUEST, retry_policy=no_retry())


def service(*providers, clock=None):
    return GeocodingService(list(providers), TTLCache(60.0, clock=clock or FakeClock()))


@responses.activate
def test_repeated_query_hits_network_once():
    responses.add(responses.GET, f"{NOMINATIM}/search", json=[DALLAS_PLACE], status=200)
    geocoder = service(nominatim())

    first = geocoder.resolve_search("Dallas TX")
    second = geocoder.resolve_search("  dallas   tx ")

    assert len(responses.calls) == 1
    assert first.cached is False
    assert second.cached is True
    assert second.value[0].lat == pytest.approx(32.7762719)
    assert responses.calls[0].request.headers["User-Agent"] == "carpool-router-tests/1.0"


@responses.activate
def test_cache_entry_expires():
    clock = FakeClock()
    responses.add(responses.GET, f"{NOMINATIM}/search", json=[DALLAS_PLACE], status=200)
    geocoder = service(nominatim(), clock=clock)

    geocoder.search("Dallas TX")
    clock.advance(61.0)
    geocoder.search("Dallas TX")

    assert len(responses.calls) == 2


@responses.activate
def test_falls_back_to_next_provider():
    responses.add(responses.GET, f"{MAPQUEST}/address", status=500)
    responses.add(responses.GET, f"{NOMINATIM}/search", json=[DALLAS_PLACE], status=200)
    geocoder = service(mapquest(), nominatim())

    result = geocoder.resolve_search("Dallas TX")

    assert result.provider == "nominatim"
    assert len(result.errors) == 1
    assert result.errors[0].startswith("mapquest")
    assert result.value[0].provider == "nominatim"


@responses.activate
def test_every_provider_failing_raises():
    responses.add(responses.GET, f"{MAPQUEST}/address", status=503)
    responses.add(responses.GET, f"{NOMINATIM}/search", status=500)
    geocoder = service(mapquest(), nominatim())

    with pytest.raises(GeocodeError) as exc_info:
        geocoder.search("Dallas TX")
    assert len(exc_info.value.errors) == 2


@responses.activate
def test_no_results_anywhere_is_an_empty_list():
    responses.add(responses.GET, f"{NOMINATIM}/search", json=[], status=200)
    geocoder = service(nominatim())
    assert geocoder.search("zzqqxx nowhere") == []
    with pytest.raises(GeocodeError):
        geocoder.geocode("zzqqxx nowhere")


@responses.activate
def test_short_query_makes_no_call():
    geocoder = service(nominatim())
    assert geocoder.search("a") == []
    assert geocoder.search("  ") == []
    assert len(responses.calls) == 0


@responses.activate
def test_mapquest_candidates_ranked_by_quality():
    responses.add(
        responses.GET,
        f"{MAPQUEST}/address",
        json={
            "info": {"statuscode": 0, "messages": []},
            "results": [{
                "locations": [
                    {"street": "", "adminArea5": "Dallas", "adminArea3": "TX", "postalCode": "",
                     "geocodeQuality": "CITY", "latLng": {"lat": 32.78, "lng": -96.80}},
                    {"street": "1500 Marilla St", "adminArea5": "Dallas", "adminArea3": "TX", "postalCode": "75201",
                     "geocodeQuality": "POINT", "latLng": {"lat": 32.776, "lng": -96.797}},
                ]
            }],
        },
        status=200,
    )
    candidates = service(mapquest()).search("1500 Marilla St Dallas")

    assert [c.quality for c in candidates] == ["POINT", "CITY"]
    assert candidates[0].display_name == "1500 Marilla St, Dallas, TX 75201"
    assert candidates[0].importance == 1.0
    assert "key=test-key" in responses.calls[0].request.url


@responses.activate
def test_reverse_geocode_cached_by_coordinate():
    responses.add(
        responses.GET, f"{NOMINATIM}/reverse",
        json={"display_name": "Dealey Plaza, Dallas, Texas"}, status=200,
    )
    geocoder = service(nominatim())

    assert geocoder.reverse_geocode(32.7788, -96.8084) == "Dealey Plaza, Dallas, Texas"
    assert geocoder.resolve_reverse(32.7788, -96.8084).cached is True
    assert len(responses.calls) == 1


@responses.activate
def test_reverse_geocode_coordinate_label_fallback():
    responses.add(responses.GET, f"{NOMINATIM}/reverse", json={"error": "Unable to geocode"}, status=200)
    geocoder = service(nominatim())

    with pytest.raises(GeocodeError):
        geocoder.reverse_geocode(0.0, -160.0)
    assert geocoder.reverse_geocode(0.0, -160.0, fallback_to_coordinates=True) == "Location (0.000000, -160.000000)"


def test_reverse_geocode_rejects_bad_coordinate():
    with pytest.raises(InvalidInputError):
        service(nominatim()).reverse_geocode(95.0, 0.0)


@responses.activate
def test_rapid_searches_are_spaced_by_the_limiter():
    clock = FakeClock()
    responses.add(responses.GET, f"{NOMINATIM}/search", json=[DALLAS_PLACE], status=200)
    provider = NominatimProvider(
        NOMINATIM, "carpool-router-tests/1.0",
        rate_limiter=RateLimiter(0.1, clock=clock, sleep=clock.sleep),
        retry_policy=no_retry(),
    )
    geocoder = service(provider, clock=clock)

    for query in ["Dallas TX", "Plano TX", "Irving TX"]:
        geocoder.search(query)

    assert len(responses.calls) == 3
    assert clock.sleeps == pytest.approx([0.1, 0.1])
