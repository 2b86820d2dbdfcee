from fastapi import APIRouter, Depends, HTTPException

from carpool_router.dependencies import get_services
from carpool_router.errors import InvalidInputError
from carpool_router.schemas.routing import (
    GroupPlanRequest, LegEstimateRequest, OptimizeRouteRequest,
)
from carpool_router.services.container import ServiceContainer
from carpool_router.services.mock_routes import MOCK_SCENARIOS, get_mock_route
from carpool_router.services.recompute import route_inputs_key
from carpool_router.services.route_types import TrafficLevel, WaypointType, validate_waypoint
from carpool_router.utils.http_errors import http_error_for
from carpool_router.utils.logger import logger, log_exception

router = APIRouter(prefix="/routes", tags=["route-optimization"])


@router.post("/optimize", response_model=dict)
def optimize_route(request: OptimizeRouteRequest, services: ServiceContainer = Depends(get_services)):
    """
    Order the pickups of one driver between their start point and the shared destination.

    Returns the ordered waypoints, per-leg estimates, totals and the
    input-order baseline the result was compared against.
    """
    try:
        logger.info(f"📍 Route optimization request: {len(request.pickups)} pickups")
        defaults = services.default_constraints()
        constraints = request.constraints.to_constraints(defaults) if request.constraints else defaults
        origin = request.origin.to_waypoint(WaypointType.ORIGIN)
        pickups = [p.to_waypoint(WaypointType.PICKUP) for p in request.pickups]
        destination = request.destination.to_waypoint(WaypointType.DESTINATION)

        # live-traffic routes are never cached
        cacheable = constraints.traffic != TrafficLevel.LIVE
        cache_key = route_inputs_key(origin, pickups, destination, constraints)
        if cacheable:
            cached = services.route_cache.get(cache_key)
            if cached is not None:
                logger.info(f"✅ Serving cached route: {cached['total_distance'] / 1000:.2f}km")
                return {**cached, "cached": True}

        route = services.sequencer.sequence(origin, pickups, destination, constraints)
        result = route.to_dict()
        if cacheable:
            services.route_cache.set(cache_key, result)

        logger.info(f"✅ Route optimized: {route.total_distance / 1000:.2f}km, {route.total_duration / 60:.1f}min, algorithm={route.algorithm}")
        return {**result, "cached": False}
    except HTTPException:
        raise
    except InvalidInputError as e:
        logger.warning(f"⚠️ Invalid route request: {str(e)}")
        raise http_error_for(e)
    except Exception as e:
        log_exception(logger, "❌ Route optimization failed", e)
        raise http_error_for(e)


@router.post("/plan-group", response_model=dict)
def plan_group_route(request: GroupPlanRequest, services: ServiceContainer = Depends(get_services)):
    """Split passengers between several drivers and order each driver's pickups"""
    try:
        logger.info(f"🚗 Group plan request: {len(request.drivers)} drivers, {len(request.passengers)} passengers")
        defaults = services.default_constraints()
        constraints = request.constraints.to_constraints(defaults) if request.constraints else defaults

        plan = services.planner.plan(
            [d.to_waypoint(WaypointType.ORIGIN) for d in request.drivers],
            [p.to_waypoint(WaypointType.PICKUP) for p in request.passengers],
            request.destination.to_waypoint(WaypointType.DESTINATION),
            constraints,
        )

        logger.info(f"✅ Group planned: {plan.total_distance / 1000:.2f}km over {len(plan.plans)} vehicles")
        return plan.to_dict()
    except HTTPException:
        raise
    except InvalidInputError as e:
        logger.warning(f"⚠️ Invalid group plan request: {str(e)}")
        raise http_error_for(e)
    except Exception as e:
        log_exception(logger, "❌ Group planning failed", e)
        raise http_error_for(e)


@router.post("/estimate", response_model=dict)
def estimate_leg(request: LegEstimateRequest, services: ServiceContainer = Depends(get_services)):
    """Distance and duration of a single leg"""
    try:
        origin = validate_waypoint(request.origin.to_waypoint(WaypointType.ORIGIN))
        destination = validate_waypoint(request.destination.to_waypoint(WaypointType.DESTINATION))
        leg = services.estimator.estimate(origin.location, destination.location)
        return {
            "distance_m": leg.distance_m,
            "duration_s": leg.duration_s,
            "source": leg.source,
        }
    except HTTPException:
        raise
    except Exception as e:
        log_exception(logger, "❌ Leg estimate failed", e)
        raise http_error_for(e)


@router.get("/mock/{scenario}", response_model=dict)
def mock_route(scenario: str):
    """Fixed development route; unknown scenarios fall back to 'basic'"""
    logger.debug(f"Mock route requested: {scenario}")
    resolved = scenario if scenario in MOCK_SCENARIOS else "basic"
    return {"scenario": resolved, **get_mock_route(resolved).to_dict()}
