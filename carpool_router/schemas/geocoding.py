from pydantic import BaseModel, Field
from typing import List, Optional


class GeocodeCandidateOut(BaseModel):
    display_name: str
    lat: float
    lng: float
    importance: float = Field(..., description="Provider relevance, higher is better")
    quality: Optional[str] = None
    provider: str


class GeocodeSearchResponse(BaseModel):
    query: str
    results: List[GeocodeCandidateOut]
    provider: str
    cached: bool = False
    errors: List[str] = Field(default_factory=list, description="Providers that failed before this answer")


class ReverseGeocodeResponse(BaseModel):
    lat: float
    lng: float
    address: str
    provider: str
    cached: bool = False
