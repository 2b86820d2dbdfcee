import pytest
import responses

from carpool_router.services.distance_estimator import HaversineEstimator
from carpool_router.services.http_retry import RetryPolicy
from carpool_router.services.route_types import Coordinate, RouteConstraints, TrafficLevel
from carpool_router.services.traffic_client import TrafficClient, traffic_multiplier
from carpool_router.services.waypoint_sequencer import WaypointSequencer

TRAFFIC = "http://traffic.test/api/v1"
DOWNTOWN = Coordinate(32.7767, -96.7970)


def make_client():
    return TrafficClient(TRAFFIC, retry_policy=RetryPolicy(attempts=1, backoff_s=0.0, sleep=lambda s: None))


@pytest.mark.parametrize("level, expected", [
    ("low", 1.0),
    ("MEDIUM", 1.3),
    ("MODERATE", 1.3),
    ("high", 1.8),
    ("severe", 2.5),
    ("gridlock", 1.0),
    (None, 1.0),
])
def test_traffic_multiplier(level, expected):
    assert traffic_multiplier(level) == expected


@responses.activate
def test_live_congestion_level():
    responses.add(
        responses.GET, f"{TRAFFIC}/traffic/flow",
        json={"current_speed_kmph": 12, "free_flow_speed_kmph": 60, "congestion_level": "SEVERE"},
        status=200,
    )
    assert make_client().multiplier_at(DOWNTOWN) == 2.5
    assert "lat=32.7767" in responses.calls[0].request.url


@responses.activate
def test_traffic_service_down_means_free_flow():
    responses.add(responses.GET, f"{TRAFFIC}/traffic/flow", status=503)
    client = make_client()

    assert client.get_traffic_flow(DOWNTOWN.lat, DOWNTOWN.lng)["congestion_level"] == "LOW"
    assert client.multiplier_for(TrafficLevel.LIVE, DOWNTOWN) == 1.0


def test_explicit_level_makes_no_call():
    client = make_client()
    assert client.multiplier_for(TrafficLevel.HIGH, DOWNTOWN) == 1.8
    assert client.multiplier_for(None, DOWNTOWN) == 1.0


@responses.activate
def test_live_traffic_applied_to_route(dallas):
    responses.add(responses.GET, f"{TRAFFIC}/traffic/flow", json={"congestion_level": "HIGH"}, status=200)
    o, pickups, d = dallas
    sequencer = WaypointSequencer(HaversineEstimator(), traffic=make_client())

    free = sequencer.sequence(o, pickups, d)
    live = sequencer.sequence(o, pickups, d, RouteConstraints(traffic=TrafficLevel.LIVE))

    assert len(responses.calls) == 1
    assert live.traffic_multiplier == 1.8
    assert live.total_duration == pytest.approx(free.total_duration * 1.8)
