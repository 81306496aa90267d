"""
Places API routes.

Thin transport over PlaceService: parse query params, map caller errors to
400s, and shape PlaceCards into JSON.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from domain.models import BoundingBox, GeoPoint, InvalidQueryError, PlaceCard, SearchResult
from services.geo import meters_to_miles
from services.place_service import PlaceService, get_default_place_service

router = APIRouter()
logger = logging.getLogger(__name__)


class PlaceCardResponse(BaseModel):
    id: str
    source: str
    source_id: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: str
    subcategory: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    status: str
    distance: Optional[float] = None
    distance_miles: Optional[float] = None
    photos: List[str] = []
    cover_image_url: Optional[str] = None
    signals: List[str] = []
    match_score: Optional[float] = None
    popularity: Optional[float] = None


class FetchMetricsResponse(BaseModel):
    fromCanonical: int
    fromCoverage: int
    fallbackTriggered: bool
    total: int
    coverageBackend: Optional[str] = None


class PlacesInBoundsResponse(BaseModel):
    places: List[PlaceCardResponse]
    metrics: FetchMetricsResponse


class SearchPlacesResponse(BaseModel):
    places: List[PlaceCardResponse]


class SuggestionResponse(BaseModel):
    id: str
    name: str
    category: str
    city: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance: Optional[float] = None
    distance_miles: Optional[float] = None
    match_score: float = 0.0


class SuggestionsResponse(BaseModel):
    suggestions: List[SuggestionResponse]


def place_to_response(place: PlaceCard) -> PlaceCardResponse:
    """Convert a domain PlaceCard to API response; miles are for display only."""
    data = place.to_dict()
    data["distance_miles"] = meters_to_miles(place.distance)
    return PlaceCardResponse(**data)


def suggestion_to_response(result: SearchResult) -> SuggestionResponse:
    address = ", ".join(p for p in (result.address, result.city) if p) or None
    return SuggestionResponse(
        id=result.id,
        name=result.name,
        category=result.category,
        city=result.city,
        address=address,
        latitude=result.latitude,
        longitude=result.longitude,
        distance=result.distance,
        distance_miles=meters_to_miles(result.distance),
        match_score=result.match_score,
    )


def _bad_request(exc: InvalidQueryError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


@router.get("", response_model=PlacesInBoundsResponse)
def get_places_in_bounds(
    north: Optional[str] = None,
    south: Optional[str] = None,
    east: Optional[str] = None,
    west: Optional[str] = None,
    min_lat: Optional[str] = Query(None, alias="minLat"),
    max_lat: Optional[str] = Query(None, alias="maxLat"),
    min_lng: Optional[str] = Query(None, alias="minLng"),
    max_lng: Optional[str] = Query(None, alias="maxLng"),
    user_lat: Optional[str] = Query(None, alias="userLat"),
    user_lng: Optional[str] = Query(None, alias="userLng"),
    category: Optional[str] = None,
    limit: Optional[int] = None,
    service: PlaceService = Depends(get_default_place_service),
):
    """Places inside a map viewport, canonical first with coverage fill-in."""
    try:
        bbox = BoundingBox.from_params(
            north=north if north is not None else max_lat,
            south=south if south is not None else min_lat,
            east=east if east is not None else max_lng,
            west=west if west is not None else min_lng,
        )
        user_location = GeoPoint.optional(user_lat, user_lng)
        result = service.fetch_places_in_bounds(
            bbox, user_location=user_location, category=category, limit=limit
        )
    except InvalidQueryError as exc:
        raise _bad_request(exc)
    logger.debug("GET /places returning %d places", result.metrics.total)
    return PlacesInBoundsResponse(
        places=[place_to_response(p) for p in result.places],
        metrics=FetchMetricsResponse(**result.metrics.to_dict()),
    )


@router.get("/search", response_model=SearchPlacesResponse)
def search_places(
    q: str = "",
    user_lat: Optional[str] = Query(None, alias="userLat"),
    user_lng: Optional[str] = Query(None, alias="userLng"),
    limit: Optional[int] = None,
    radius: Optional[float] = None,
    category: Optional[str] = None,
    page: Optional[int] = None,
    locality: Optional[str] = None,
    region: Optional[str] = None,
    country: Optional[str] = None,
    min_lat: Optional[str] = Query(None, alias="minLat"),
    max_lat: Optional[str] = Query(None, alias="maxLat"),
    min_lng: Optional[str] = Query(None, alias="minLng"),
    max_lng: Optional[str] = Query(None, alias="maxLng"),
    service: PlaceService = Depends(get_default_place_service),
):
    """Free-text search; explicit locality/region win over ones parsed from `q`."""
    try:
        user_location = GeoPoint.optional(user_lat, user_lng)
        bbox = BoundingBox.optional(north=max_lat, south=min_lat, east=max_lng, west=min_lng)
        results = service.search_places(
            q,
            user_location=user_location,
            limit=limit,
            radius_km=radius,
            category=category,
            bbox=bbox,
            locality=locality,
            region=region,
            country=country,
            page=page,
        )
    except InvalidQueryError as exc:
        raise _bad_request(exc)
    return SearchPlacesResponse(places=[place_to_response(r) for r in results])


@router.get("/suggestions", response_model=SuggestionsResponse)
def search_suggestions(
    q: str = "",
    limit: Optional[int] = None,
    user_lat: Optional[str] = Query(None, alias="userLat"),
    user_lng: Optional[str] = Query(None, alias="userLng"),
    service: PlaceService = Depends(get_default_place_service),
):
    try:
        user_location = GeoPoint.optional(user_lat, user_lng)
        results = service.search_suggestions(q, limit=limit, user_location=user_location)
    except InvalidQueryError as exc:
        raise _bad_request(exc)
    return SuggestionsResponse(suggestions=[suggestion_to_response(r) for r in results])


@router.get("/{place_id}", response_model=PlaceCardResponse)
def get_place(
    place_id: str,
    service: PlaceService = Depends(get_default_place_service),
):
    try:
        place = service.get_place(place_id)
    except InvalidQueryError as exc:
        raise _bad_request(exc)
    if place is None:
        raise HTTPException(status_code=404, detail="Place not found")
    return place_to_response(place)
