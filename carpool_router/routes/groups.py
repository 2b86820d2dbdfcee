from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from carpool_router.dependencies import get_services
from carpool_router.errors import InvalidInputError, StaleRequestError
from carpool_router.schemas.routing import GroupRouteUpdate
from carpool_router.services.container import ServiceContainer
from carpool_router.services.recompute import route_inputs_key
from carpool_router.services.route_types import WaypointType
from carpool_router.utils.http_errors import http_error_for
from carpool_router.utils.logger import logger, log_exception

router = APIRouter(prefix="/groups", tags=["group-routes"])


def route_document_id(group_id: str) -> str:
    return f"groups/{group_id}/route"


@router.put("/{group_id}/route", response_model=dict)
def recompute_group_route(group_id: str, request: GroupRouteUpdate,
                          services: ServiceContainer = Depends(get_services)):
    """
    Recompute and store the route of a group after its members changed.

    Requests are debounced per group. A request that is superseded by a
    newer one, either during the quiet period or while computing, gets a
    409 and its result is not stored. Unchanged inputs reuse the stored
    route.
    """
    scope = f"groups/{group_id}"
    doc_id = route_document_id(group_id)
    try:
        defaults = services.default_constraints()
        constraints = request.constraints.to_constraints(defaults) if request.constraints else defaults
        origin = request.origin.to_waypoint(WaypointType.ORIGIN)
        pickups = [p.to_waypoint(WaypointType.PICKUP) for p in request.pickups]
        destination = request.destination.to_waypoint(WaypointType.DESTINATION)

        ticket = services.tracker.issue(scope, route_inputs_key(origin, pickups, destination, constraints), request.seq)
        logger.info(f"🔄 Recompute {ticket.seq} requested for group {group_id}: {len(pickups)} pickups")

        if not services.tracker.settle(ticket):
            raise HTTPException(status_code=409, detail=f"Request {ticket.seq} superseded by a newer request")

        if services.tracker.is_unchanged(ticket):
            stored = services.store.get(doc_id)
            if stored is not None:
                logger.info(f"✅ Group {group_id} inputs unchanged, reusing stored route")
                return {**stored, "reused": True}

        route = services.sequencer.sequence(origin, pickups, destination, constraints)
        document = {
            "group_id": group_id,
            "seq": ticket.seq,
            "inputs_key": ticket.inputs_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "route": route.to_dict(),
        }
        committed = services.tracker.commit(
            ticket,
            write=lambda: services.store.set(doc_id, document, notify=False),
            publish=lambda stored: services.store.notify(doc_id, stored),
        )
        if not committed:
            raise HTTPException(status_code=409, detail=f"Request {ticket.seq} superseded while computing")

        logger.info(f"✅ Stored route {ticket.seq} for group {group_id}: {route.total_distance / 1000:.2f}km")
        return {**document, "reused": False}
    except HTTPException:
        raise
    except (InvalidInputError, StaleRequestError) as e:
        logger.warning(f"⚠️ Rejected recompute for group {group_id}: {str(e)}")
        raise http_error_for(e)
    except Exception as e:
        log_exception(logger, f"❌ Recompute failed for group {group_id}", e)
        raise http_error_for(e)


@router.get("/{group_id}/route", response_model=dict)
def get_group_route(group_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        logger.info(f"🔍 Fetching route for group: {group_id}")
        document = services.store.get(route_document_id(group_id))
        if document is None:
            logger.warning(f"⚠️ No route stored for group: {group_id}")
            raise HTTPException(status_code=404, detail="Route not found")
        return document
    except HTTPException:
        raise
    except Exception as e:
        log_exception(logger, f"❌ Error fetching route for group {group_id}", e)
        raise HTTPException(status_code=500, detail=f"Failed to fetch route: {str(e)}")
