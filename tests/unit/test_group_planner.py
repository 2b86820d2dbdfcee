import pytest

from carpool_router.errors import InvalidInputError
from carpool_router.services.distance_estimator import HaversineEstimator
from carpool_router.services.group_planner import GroupRoutePlanner
from carpool_router.services.route_types import RouteConstraints
from carpool_router.services.waypoint_sequencer import WaypointSequencer
from factories import destination, origin, pickup

NORTH_DRIVER = origin(32.95, -96.80, "North")
SOUTH_DRIVER = origin(32.65, -96.80, "South")
OFFICE = destination(32.78, -96.80, "Office")


@pytest.fixture
def planner():
    return GroupRoutePlanner(WaypointSequencer(HaversineEstimator()))


def test_passengers_go_to_nearest_driver(planner):
    passengers = [pickup(32.93, -96.81), pickup(32.66, -96.79), pickup(32.91, -96.79)]
    plan = planner.plan([NORTH_DRIVER, SOUTH_DRIVER], passengers, OFFICE)

    assert sorted(plan.plans[0].passenger_indices) == [0, 2]
    assert plan.plans[1].passenger_indices == [1]
    assert plan.total_distance == pytest.approx(sum(p.route.total_distance for p in plan.plans))


def test_capacity_pushes_overflow_to_next_driver(planner):
    passengers = [pickup(32.93, -96.81), pickup(32.92, -96.80)]
    plan = planner.plan([NORTH_DRIVER, SOUTH_DRIVER], passengers, OFFICE, RouteConstraints(max_passengers=1))

    assigned = [i for p in plan.plans for i in p.passenger_indices]
    assert sorted(assigned) == [0, 1]
    assert all(len(p.passenger_indices) <= 1 for p in plan.plans)


def test_passenger_indices_follow_visiting_order(planner):
    passengers = [pickup(32.80, -96.80), pickup(32.93, -96.81), pickup(32.88, -96.80)]
    plan = planner.plan([NORTH_DRIVER], passengers, OFFICE)

    driver_plan = plan.plans[0]
    assert driver_plan.route.waypoints[1:-1] == [passengers[i] for i in driver_plan.passenger_indices]


def test_driver_without_passengers_drives_direct(planner):
    plan = planner.plan([NORTH_DRIVER, SOUTH_DRIVER], [pickup(32.94, -96.80)], OFFICE)
    assert plan.plans[1].passenger_indices == []
    assert len(plan.plans[1].route.waypoints) == 2


def test_more_passengers_than_seats_rejected(planner):
    passengers = [pickup(32.90 + i * 0.001, -96.80) for i in range(3)]
    with pytest.raises(InvalidInputError):
        planner.plan([NORTH_DRIVER], passengers, OFFICE, RouteConstraints(max_passengers=2))


def test_requires_a_driver(planner):
    with pytest.raises(InvalidInputError):
        planner.plan([], [pickup(32.90, -96.80)], OFFICE)


def test_plan_serializes(planner):
    data = planner.plan([NORTH_DRIVER], [pickup(32.90, -96.80)], OFFICE).to_dict()
    assert data["plans"][0]["driver_name"] == "North"
    assert data["plans"][0]["route"]["legs"][0]["from"]["type"] == "origin"
