import numpy as np
import pytest

from carpool_router.errors import InvalidInputError, RouteComputationError
from carpool_router.services.distance_estimator import (
    DistanceEstimator, HaversineEstimator, MatrixEstimate, haversine_m,
)
from carpool_router.services.route_types import (
    Algorithm, Coordinate, LegEstimate, Objective, RouteConstraints, TrafficLevel,
    Waypoint, WaypointType,
)
from carpool_router.services.waypoint_sequencer import (
    WaypointSequencer, exhaustive_order, nearest_neighbor_order, path_cost, two_opt,
)
from factories import destination, origin, pickup

# o -> a is expensive, o -> b is cheap, so visiting b first wins
TOY_COST = np.array([
    [0.0, 10.0, 1.0, 50.0],
    [10.0, 0.0, 1.0, 1.0],
    [1.0, 1.0, 0.0, 10.0],
    [50.0, 1.0, 10.0, 0.0],
])

SCATTERED_PICKUPS = [
    pickup(32.85, -96.85),
    pickup(32.76, -96.70),
    pickup(32.88, -96.78),
    pickup(32.79, -96.82),
    pickup(32.82, -96.72),
]


@pytest.fixture
def sequencer():
    return WaypointSequencer(HaversineEstimator())


def test_path_cost_sums_consecutive_legs():
    assert path_cost(TOY_COST, [0, 1]) == 21.0
    assert path_cost(TOY_COST, [1, 0]) == 3.0


def test_exhaustive_finds_cheapest_order():
    assert exhaustive_order(TOY_COST) == [1, 0]


def test_nearest_neighbor_and_two_opt():
    assert nearest_neighbor_order(TOY_COST) == [1, 0]
    assert two_opt(TOY_COST, [0, 1]) == [1, 0]


def test_zero_pickups_is_direct_leg(sequencer):
    o, d = origin(32.7767, -96.7970), destination(32.90, -96.70)
    route = sequencer.sequence(o, [], d)

    assert route.waypoints == [o, d]
    assert len(route.legs) == 1
    assert route.total_distance == pytest.approx(haversine_m(o.location, d.location))
    assert route.pickup_order == []


def test_one_pickup_composes_two_legs(sequencer):
    o, p, d = origin(32.7767, -96.7970), pickup(32.80, -96.80), destination(32.90, -96.70)
    route = sequencer.sequence(o, [p], d)

    assert route.waypoints == [o, p, d]
    expected = haversine_m(o.location, p.location) + haversine_m(p.location, d.location)
    assert route.total_distance == pytest.approx(expected)
    assert route.total_duration == pytest.approx(expected / 1000 * 120)


def test_dallas_route(sequencer, dallas):
    o, pickups, d = dallas
    route = sequencer.sequence(o, pickups, d)

    assert len(route.waypoints) == 4
    assert route.origin == o
    assert route.destination == d
    assert sorted(route.pickup_order) == [0, 1]
    assert route.total_distance <= route.baseline_distance
    assert route.total_distance == pytest.approx(sum(leg.distance_m for leg in route.legs))


@pytest.mark.parametrize("algorithm", [Algorithm.AUTO, Algorithm.EXHAUSTIVE, Algorithm.NEAREST_NEIGHBOR])
def test_never_worse_than_input_order(sequencer, algorithm):
    o, d = origin(32.7767, -96.7970), destination(32.90, -96.70)
    route = sequencer.sequence(o, SCATTERED_PICKUPS, d, RouteConstraints(algorithm=algorithm))

    assert route.total_distance <= route.baseline_distance
    assert route.total_duration <= route.baseline_duration
    assert sorted(route.pickup_order) == list(range(len(SCATTERED_PICKUPS)))
    assert route.waypoints[1:-1] == [SCATTERED_PICKUPS[i] for i in route.pickup_order]


def test_same_input_same_order(sequencer):
    o, d = origin(32.7767, -96.7970), destination(32.90, -96.70)
    first = sequencer.sequence(o, SCATTERED_PICKUPS, d)
    second = sequencer.sequence(o, SCATTERED_PICKUPS, d)
    assert first.pickup_order == second.pickup_order
    assert first.total_duration == second.total_duration


def test_ties_keep_input_order(sequencer):
    o, d = origin(32.7767, -96.7970), destination(32.90, -96.70)
    same_spot = [pickup(32.80, -96.80, "first"), pickup(32.80, -96.80, "second")]
    route = sequencer.sequence(o, same_spot, d)
    assert route.pickup_order == [0, 1]


def test_or_tools_above_exhaustive_limit():
    sequencer = WaypointSequencer(HaversineEstimator(), exhaustive_limit=3)
    o, d = origin(32.7767, -96.7970), destination(32.90, -96.70)
    route = sequencer.sequence(o, SCATTERED_PICKUPS, d)

    assert route.algorithm.startswith("or_tools")
    assert sorted(route.pickup_order) == list(range(len(SCATTERED_PICKUPS)))
    assert route.total_duration <= route.baseline_duration


def test_out_of_range_latitude_rejected(sequencer):
    bad = Waypoint(Coordinate(200.0, -96.80), WaypointType.PICKUP, "bad")
    with pytest.raises(InvalidInputError) as exc_info:
        sequencer.sequence(origin(32.7767, -96.7970), [bad], destination(32.90, -96.70))
    assert exc_info.value.waypoint == bad


def test_nan_coordinate_rejected(sequencer):
    bad = Waypoint(Coordinate(float("nan"), -96.80), WaypointType.PICKUP)
    with pytest.raises(InvalidInputError):
        sequencer.sequence(origin(32.7767, -96.7970), [bad], destination(32.90, -96.70))


def test_too_many_pickups_rejected(sequencer):
    pickups = [pickup(32.80 + i * 0.001, -96.80) for i in range(3)]
    with pytest.raises(InvalidInputError):
        sequencer.sequence(
            origin(32.7767, -96.7970), pickups, destination(32.90, -96.70), RouteConstraints(max_passengers=2)
        )


def test_sequence_waypoints_requires_single_origin(sequencer):
    waypoints = [origin(32.77, -96.79), origin(32.78, -96.79), destination(32.90, -96.70)]
    with pytest.raises(InvalidInputError):
        sequencer.sequence_waypoints(waypoints)


def test_sequence_waypoints_splits_by_type(sequencer, dallas):
    o, pickups, d = dallas
    route = sequencer.sequence_waypoints([pickups[0], d, o, pickups[1]])
    assert route.origin == o
    assert route.destination == d
    assert len(route.waypoints) == 4


class FailingEstimator(DistanceEstimator):
    name = "failing"

    def __init__(self, unreachable: Coordinate):
        self.unreachable = unreachable
        self.inner = HaversineEstimator()

    def estimate(self, a, b) -> LegEstimate:
        if self.unreachable in (a, b):
            raise ConnectionError("no road")
        return self.inner.estimate(a, b)


def test_estimator_failure_names_the_waypoint(dallas):
    o, pickups, d = dallas
    sequencer = WaypointSequencer(FailingEstimator(pickups[1].location))
    with pytest.raises(RouteComputationError) as exc_info:
        sequencer.sequence(o, pickups, d)
    assert exc_info.value.waypoint == pickups[1]


def test_limits_produce_warnings_not_errors(sequencer, dallas):
    o, pickups, d = dallas
    route = sequencer.sequence(o, pickups, d, RouteConstraints(max_distance_m=1000.0, max_duration_s=60.0))
    assert len(route.warnings) == 2
    assert "exceeds" in route.warnings[0]


def test_time_windows_accepted(sequencer, dallas):
    o, pickups, d = dallas
    route = sequencer.sequence(o, pickups, d, RouteConstraints(time_windows={"Alice": ["08:00", "08:15"]}))
    assert len(route.waypoints) == 4


def test_direct_route(sequencer):
    o, d = origin(40.7128, -74.0060), destination(40.7484, -73.9857)
    route = sequencer.direct_route(o, d)
    assert route.algorithm == "direct"
    assert route.legs[0].source == "haversine"


class SkewedEstimator(DistanceEstimator):
    """Input order is short but slow; the swapped order is long but fast"""

    name = "skewed"

    def estimate_matrix(self, points):
        distance = np.full((4, 4), 9000.0)
        duration = np.full((4, 4), 9000.0)
        np.fill_diagonal(distance, 0.0)
        np.fill_diagonal(duration, 0.0)
        for a, b in [(0, 1), (1, 2), (2, 3)]:
            distance[a, b], duration[a, b] = 1000.0, 600.0
        for a, b in [(0, 2), (2, 1), (1, 3)]:
            distance[a, b], duration[a, b] = 5000.0, 60.0
        return MatrixEstimate(distance, duration, self.name)


def test_default_constraints_never_longer_than_input_order(dallas):
    o, pickups, d = dallas
    route = WaypointSequencer(SkewedEstimator()).sequence(o, pickups, d)

    assert route.pickup_order == [0, 1]
    assert route.total_distance == 3000.0
    assert route.total_distance <= route.baseline_distance


def test_duration_objective_still_bounded_by_input_order_distance(dallas):
    o, pickups, d = dallas
    route = WaypointSequencer(SkewedEstimator()).sequence(
        o, pickups, d, RouteConstraints(objective=Objective.DURATION)
    )

    assert route.pickup_order == [0, 1]
    assert route.algorithm == "exhaustive+input_order"
    assert route.total_distance <= route.baseline_distance


def test_traffic_level_scales_durations_only(sequencer, dallas):
    o, pickups, d = dallas
    free = sequencer.sequence(o, pickups, d)
    heavy = sequencer.sequence(o, pickups, d, RouteConstraints(traffic=TrafficLevel.HIGH))

    assert heavy.traffic_multiplier == 1.8
    assert heavy.total_distance == pytest.approx(free.total_distance)
    assert heavy.total_duration == pytest.approx(free.total_duration * 1.8)
    assert heavy.legs[0].duration_s == pytest.approx(free.legs[0].duration_s * 1.8)


def test_live_traffic_without_service_is_free_flow(sequencer, dallas):
    o, pickups, d = dallas
    route = sequencer.sequence(o, pickups, d, RouteConstraints(traffic=TrafficLevel.LIVE))
    assert route.traffic_multiplier == 1.0


def test_offline_route_geometry_is_straight_lines(sequencer, dallas):
    o, pickups, d = dallas
    route = sequencer.sequence(o, pickups, d)

    assert route.geometry_source == "straight_line"
    assert route.geometry == [[wp.location.lng, wp.location.lat] for wp in route.waypoints]
    body = route.to_dict()
    assert body["geometry"]["type"] == "LineString"
    assert body["geometry"]["coordinates"][0] == [o.location.lng, o.location.lat]
