"""
Waypoint sequencing for a single vehicle.

Orders the pickup stops between a fixed origin (driver start) and a fixed
destination. Node indices inside this module are:

    0            origin
    1 .. n       pickups, in input order
    n + 1        destination

Orders are expressed as lists of pickup indices (0-based, input order).
"""
import itertools
import logging
from typing import List, Optional, Sequence

import numpy as np
from ortools.constraint_solver import pywrapcp
from ortools.constraint_solver import routing_enums_pb2

from carpool_router.errors import InvalidInputError, RouteComputationError
from carpool_router.services.distance_estimator import (
    DistanceEstimator, HaversineEstimator, LegEstimateError, MatrixEstimate,
)
from carpool_router.services.http_retry import ProviderError
from carpool_router.services.route_types import (
    Algorithm, Objective, Route, RouteConstraints, RouteLeg, TrafficLevel,
    Waypoint, WaypointType, validate_waypoint,
)
from carpool_router.services.traffic_client import TrafficClient, traffic_multiplier

logger = logging.getLogger(__name__)

TWO_OPT_EPSILON = 1e-9


def path_cost(cost: np.ndarray, order: Sequence[int]) -> float:
    """Cost of origin -> pickups in ``order`` -> destination"""
    n = cost.shape[0] - 2
    nodes = [0] + [i + 1 for i in order] + [n + 1]
    return float(sum(cost[nodes[k], nodes[k + 1]] for k in range(len(nodes) - 1)))


def exhaustive_order(cost: np.ndarray) -> List[int]:
    """Best order over all permutations; ties keep the lexicographically first"""
    n = cost.shape[0] - 2
    best_order: List[int] = list(range(n))
    best_cost = path_cost(cost, best_order)
    for perm in itertools.permutations(range(n)):
        c = path_cost(cost, perm)
        if c < best_cost:
            best_cost = c
            best_order = list(perm)
    return best_order


def nearest_neighbor_order(cost: np.ndarray) -> List[int]:
    n = cost.shape[0] - 2
    unvisited = list(range(n))
    order: List[int] = []
    current = 0
    while unvisited:
        nearest = unvisited[0]
        nearest_cost = cost[current, nearest + 1]
        for candidate in unvisited[1:]:
            c = cost[current, candidate + 1]
            if c < nearest_cost:
                nearest = candidate
                nearest_cost = c
        order.append(nearest)
        unvisited.remove(nearest)
        current = nearest + 1
    return order


def two_opt(cost: np.ndarray, order: Sequence[int]) -> List[int]:
    """2-opt on the open path; origin and destination never move"""
    best = list(order)
    best_cost = path_cost(cost, best)
    improved = True
    while improved:
        improved = False
        for i in range(len(best) - 1):
            for j in range(i + 1, len(best)):
                candidate = best[:i] + best[i:j + 1][::-1] + best[j + 1:]
                c = path_cost(cost, candidate)
                if c < best_cost - TWO_OPT_EPSILON:
                    best = candidate
                    best_cost = c
                    improved = True
    return best


def or_tools_order(cost: np.ndarray, time_limit_s: int = 5) -> Optional[List[int]]:
    """Solve the fixed-start, fixed-end path with the OR-Tools routing solver"""
    num_nodes = cost.shape[0]
    n = num_nodes - 2
    if n == 0:
        return []

    manager = pywrapcp.RoutingIndexManager(num_nodes, 1, [0], [n + 1])
    routing = pywrapcp.RoutingModel(manager)

    def cost_callback(from_index, to_index):
        from_node = manager.IndexToNode(from_index)
        to_node = manager.IndexToNode(to_index)
        return int(round(cost[from_node][to_node]))

    transit_callback_index = routing.RegisterTransitCallback(cost_callback)
    routing.SetArcCostEvaluatorOfAllVehicles(transit_callback_index)

    search_parameters = pywrapcp.DefaultRoutingSearchParameters()
    search_parameters.first_solution_strategy = (
        routing_enums_pb2.FirstSolutionStrategy.PATH_CHEAPEST_ARC
    )
    # greedy descent stops at a local optimum, so results are repeatable
    search_parameters.local_search_metaheuristic = (
        routing_enums_pb2.LocalSearchMetaheuristic.GREEDY_DESCENT
    )
    search_parameters.time_limit.FromSeconds(time_limit_s)

    solution = routing.SolveWithParameters(search_parameters)
    if not solution:
        return None

    order: List[int] = []
    index = solution.Value(routing.NextVar(routing.Start(0)))
    while not routing.IsEnd(index):
        order.append(manager.IndexToNode(index) - 1)
        index = solution.Value(routing.NextVar(index))
    return order


class WaypointSequencer:
    """Orders pickups between a fixed origin and destination"""

    def __init__(self, estimator: DistanceEstimator, exhaustive_limit: int = 7,
                 or_tools_time_limit_s: int = 5, traffic: Optional[TrafficClient] = None):
        self.estimator = estimator
        self.exhaustive_limit = exhaustive_limit
        self.or_tools_time_limit_s = or_tools_time_limit_s
        self.traffic = traffic

    def sequence_waypoints(self, waypoints: Sequence[Waypoint],
                           constraints: Optional[RouteConstraints] = None) -> Route:
        """Split a typed waypoint list into origin/pickups/destination and sequence it"""
        origins = [wp for wp in waypoints if wp.type == WaypointType.ORIGIN]
        destinations = [wp for wp in waypoints if wp.type == WaypointType.DESTINATION]
        pickups = [wp for wp in waypoints if wp.type == WaypointType.PICKUP]

        if len(origins) != 1:
            raise InvalidInputError(f"Exactly one origin is required, got {len(origins)}")
        if len(destinations) != 1:
            raise InvalidInputError(f"Exactly one destination is required, got {len(destinations)}")
        return self.sequence(origins[0], pickups, destinations[0], constraints)

    def sequence(self, origin: Waypoint, pickups: Sequence[Waypoint], destination: Waypoint,
                 constraints: Optional[RouteConstraints] = None) -> Route:
        constraints = constraints or RouteConstraints()
        pickups = list(pickups)

        self._validate(origin, pickups, destination, constraints)
        points = [origin] + pickups + [destination]
        matrix = self._build_matrix(points)
        multiplier = self._traffic_multiplier(constraints, origin)
        if multiplier != 1.0:
            matrix = MatrixEstimate(matrix.distance_m, matrix.duration_s * multiplier, matrix.source)
        cost = matrix.duration_s if constraints.objective == Objective.DURATION else matrix.distance_m

        baseline = list(range(len(pickups)))
        order, algorithm = self._order(cost, constraints.algorithm)
        # the result may never be longer than visiting pickups in input order
        if (path_cost(cost, order) > path_cost(cost, baseline)
                or path_cost(matrix.distance_m, order) > path_cost(matrix.distance_m, baseline)):
            logger.info(f"{algorithm} order is worse than input order, keeping input order")
            order = baseline
            algorithm = f"{algorithm}+input_order"

        route = self._build_route(origin, pickups, destination, order, matrix, algorithm)
        route.warnings = self._check_soft_constraints(route, constraints)
        route.traffic_multiplier = multiplier
        self._attach_geometry(route)

        logger.info(
            f"Sequenced {len(pickups)} pickups with {algorithm}: "
            f"{route.total_distance / 1000:.2f}km, {route.total_duration / 60:.1f}min "
            f"(input order {route.baseline_distance / 1000:.2f}km)"
        )
        return route

    def direct_route(self, origin: Waypoint, destination: Waypoint) -> Route:
        """Offline straight-line route, used when nothing better is available"""
        validate_waypoint(origin)
        validate_waypoint(destination)
        matrix = HaversineEstimator().estimate_matrix([origin.location, destination.location])
        return self._build_route(origin, [], destination, [], matrix, "direct")

    def _validate(self, origin: Waypoint, pickups: List[Waypoint], destination: Waypoint,
                  constraints: RouteConstraints) -> None:
        if origin is None or destination is None:
            raise InvalidInputError("Both an origin and a destination are required")
        if origin.type != WaypointType.ORIGIN:
            raise InvalidInputError(f"First waypoint must be an origin, got {origin.type.value}", waypoint=origin)
        if destination.type != WaypointType.DESTINATION:
            raise InvalidInputError(
                f"Last waypoint must be a destination, got {destination.type.value}", waypoint=destination
            )
        for wp in pickups:
            if wp.type != WaypointType.PICKUP:
                raise InvalidInputError(f"Intermediate waypoint must be a pickup, got {wp.type.value}", waypoint=wp)
        if len(pickups) > constraints.max_passengers:
            raise InvalidInputError(
                f"Maximum {constraints.max_passengers} passengers allowed per vehicle, got {len(pickups)}"
            )

        for wp in [origin] + pickups + [destination]:
            validate_waypoint(wp)

        if constraints.time_windows:
            logger.debug(f"Time windows supplied but not applied to ordering: {constraints.time_windows}")

    def _build_matrix(self, points: List[Waypoint]) -> MatrixEstimate:
        try:
            matrix = self.estimator.estimate_matrix([wp.location for wp in points])
        except LegEstimateError as e:
            offending = points[e.j]
            raise RouteComputationError(
                f"Could not estimate leg {points[e.i].label()} -> {offending.label()}: {e.cause}",
                waypoint=offending,
            ) from e
        except ProviderError as e:
            raise RouteComputationError(f"Distance estimation failed: {e}") from e

        for i, j in zip(*np.where(~np.isfinite(matrix.duration_s) | ~np.isfinite(matrix.distance_m))):
            if i != j:
                raise RouteComputationError(
                    f"No estimate for leg {points[i].label()} -> {points[j].label()}",
                    waypoint=points[j],
                )
        return matrix

    def _traffic_multiplier(self, constraints: RouteConstraints, origin: Waypoint) -> float:
        level = constraints.traffic
        if level is None:
            return 1.0
        if self.traffic is not None:
            return self.traffic.multiplier_for(level, origin.location)
        if level == TrafficLevel.LIVE:
            logger.debug("Live traffic requested but no traffic service configured")
            return 1.0
        return traffic_multiplier(level.value)

    def _attach_geometry(self, route: Route) -> None:
        path = self.estimator.route_geometry([wp.location for wp in route.waypoints])
        if path:
            route.geometry = path
            route.geometry_source = self.estimator.name
        else:
            logger.debug(f"No road geometry from {self.estimator.name}, keeping straight lines")

    def _order(self, cost: np.ndarray, algorithm: Algorithm):
        n = cost.shape[0] - 2
        if n <= 1:
            return list(range(n)), "trivial"

        if algorithm == Algorithm.AUTO:
            algorithm = Algorithm.EXHAUSTIVE if n <= self.exhaustive_limit else Algorithm.OR_TOOLS

        if algorithm == Algorithm.EXHAUSTIVE:
            return exhaustive_order(cost), algorithm.value
        if algorithm == Algorithm.OR_TOOLS:
            order = or_tools_order(cost, self.or_tools_time_limit_s)
            if order is not None and sorted(order) == list(range(n)):
                return order, algorithm.value
            logger.warning("OR-Tools found no solution, falling back to nearest neighbor")
        return two_opt(cost, nearest_neighbor_order(cost)), Algorithm.NEAREST_NEIGHBOR.value

    @staticmethod
    def _build_route(origin: Waypoint, pickups: List[Waypoint], destination: Waypoint,
                     order: List[int], matrix: MatrixEstimate, algorithm: str) -> Route:
        n = len(pickups)
        nodes = [0] + [i + 1 for i in order] + [n + 1]
        points = [origin] + pickups + [destination]

        legs = []
        for a, b in zip(nodes, nodes[1:]):
            leg = matrix.leg(a, b)
            legs.append(RouteLeg(
                origin=points[a],
                destination=points[b],
                distance_m=leg.distance_m,
                duration_s=leg.duration_s,
                source=leg.source,
            ))

        return Route(
            waypoints=[points[k] for k in nodes],
            legs=legs,
            total_distance=float(sum(leg.distance_m for leg in legs)),
            total_duration=float(sum(leg.duration_s for leg in legs)),
            pickup_order=list(order),
            algorithm=algorithm,
            baseline_distance=path_cost(matrix.distance_m, list(range(n))),
            baseline_duration=path_cost(matrix.duration_s, list(range(n))),
        )

    @staticmethod
    def _check_soft_constraints(route: Route, constraints: RouteConstraints) -> List[str]:
        warnings = []
        if constraints.max_distance_m is not None and route.total_distance > constraints.max_distance_m:
            warnings.append(
                f"Route distance {route.total_distance / 1000:.1f}km exceeds "
                f"{constraints.max_distance_m / 1000:.1f}km limit"
            )
        if constraints.max_duration_s is not None and route.total_duration > constraints.max_duration_s:
            warnings.append(
                f"Route duration {route.total_duration / 60:.1f}min exceeds "
                f"{constraints.max_duration_s / 60:.1f}min limit"
            )
        for warning in warnings:
            logger.warning(f"⚠️ {warning}")
        return warnings
