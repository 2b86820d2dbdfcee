# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from carpool_router.config import Settings
from carpool_router.main import create_app
from carpool_router.services.container import ServiceContainer
from factories import FakeClock, destination, origin, pickup


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dallas():
    """Driver downtown, two passengers, shared destination to the north-east"""
    return (
        origin(32.7767, -96.7970, "Driver"),
        [pickup(32.80, -96.80, "Alice"), pickup(32.75, -96.75, "Bob")],
        destination(32.90, -96.70, "Office"),
    )


@pytest.fixture
def settings():
    return Settings(
        document_store="memory",
        use_routing_service=False,
        mapquest_api_key=None,
        nominatim_url="http://nominatim.test",
        osrm_url="http://osrm.test",
        rate_limit_interval_s=0.0,
        retry_attempts=1,
        retry_backoff_s=0.0,
        recompute_debounce_s=0.0,
    )


@pytest.fixture
def services(settings):
    return ServiceContainer.from_settings(settings)


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))
