from fastapi import HTTPException

from carpool_router.errors import (
    GeocodeError, InvalidInputError, RateLimitTimeout, RouteComputationError,
    StaleRequestError,
)


def _waypoint_detail(waypoint):
    if waypoint is None:
        return None
    return {
        "lat": waypoint.location.lat,
        "lng": waypoint.location.lng,
        "type": waypoint.type.value,
        "name": waypoint.name,
    }


def http_error_for(exc: Exception) -> HTTPException:
    """Map a domain error onto the HTTP status the API reports for it"""
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=422, detail={"message": str(exc), "waypoint": _waypoint_detail(exc.waypoint)})
    if isinstance(exc, RouteComputationError):
        return HTTPException(status_code=502, detail={"message": str(exc), "waypoint": _waypoint_detail(exc.waypoint)})
    if isinstance(exc, GeocodeError):
        return HTTPException(status_code=502, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, RateLimitTimeout):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, StaleRequestError):
        return HTTPException(status_code=409, detail={"message": str(exc), "latest_seq": exc.latest})
    return HTTPException(status_code=500, detail=f"Internal error: {str(exc)}")
