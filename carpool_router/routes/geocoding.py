from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from carpool_router.dependencies import get_services
from carpool_router.errors import GeocodeError, InvalidInputError
from carpool_router.schemas.geocoding import (
    GeocodeCandidateOut, GeocodeSearchResponse, ReverseGeocodeResponse,
)
from carpool_router.services.container import ServiceContainer
from carpool_router.services.geocoder import coordinate_label
from carpool_router.utils.http_errors import http_error_for
from carpool_router.utils.logger import logger, log_exception

router = APIRouter(prefix="/geocode", tags=["geocoding"])


@router.get("/search", response_model=GeocodeSearchResponse)
def search_places(
        q: str = Query(..., description="Place name or address"),
        limit: int = Query(10, ge=1, le=50),
        country: Optional[str] = Query(None, min_length=2, max_length=3, description="ISO country code"),
        services: ServiceContainer = Depends(get_services)
):
    """Ranked place candidates; queries under two characters return no results"""
    try:
        logger.info(f"🔍 Geocode search: '{q}' limit={limit} country={country}")
        result = services.geocoder.resolve_search(q, limit=limit, country=country)
        logger.info(f"✅ {len(result.value)} candidates from {result.provider} (cached={result.cached})")
        return GeocodeSearchResponse(
            query=q,
            results=[
                GeocodeCandidateOut(
                    display_name=c.display_name,
                    lat=c.lat,
                    lng=c.lng,
                    importance=c.importance,
                    quality=c.quality,
                    provider=c.provider,
                )
                for c in result.value
            ],
            provider=result.provider,
            cached=result.cached,
            errors=result.errors,
        )
    except HTTPException:
        raise
    except Exception as e:
        log_exception(logger, f"❌ Geocode search failed for '{q}'", e)
        raise http_error_for(e)


@router.get("/reverse", response_model=ReverseGeocodeResponse)
def reverse_geocode(
        lat: float = Query(..., description="Latitude"),
        lng: float = Query(..., description="Longitude"),
        fallback: bool = Query(False, description="Label by coordinates when every provider fails"),
        services: ServiceContainer = Depends(get_services)
):
    try:
        logger.info(f"📍 Reverse geocode: ({lat}, {lng})")
        try:
            result = services.geocoder.resolve_reverse(lat, lng)
        except GeocodeError as e:
            if not fallback:
                raise
            logger.warning(f"⚠️ Reverse geocode exhausted, using coordinate label: {str(e)}")
            return ReverseGeocodeResponse(lat=lat, lng=lng, address=coordinate_label(lat, lng), provider="coordinates")

        return ReverseGeocodeResponse(
            lat=lat, lng=lng, address=result.value, provider=result.provider, cached=result.cached
        )
    except HTTPException:
        raise
    except InvalidInputError as e:
        logger.warning(f"⚠️ Invalid coordinate for reverse geocode: {str(e)}")
        raise http_error_for(e)
    except Exception as e:
        log_exception(logger, f"❌ Reverse geocode failed for ({lat}, {lng})", e)
        raise http_error_for(e)
