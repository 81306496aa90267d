"""
Translate viewports, radius queries and category names into the filter
syntax each backend understands.

- The relational stores get SQLAlchemy boolean expressions (lat/lng ranges,
  ILIKE on denormalized category columns).
- The search index gets Typesense `filter_by` / `sort_by` strings.

Call sites never spell out backend syntax themselves; they go through here.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from domain.models import BoundingBox, GeoPoint
from services.geo import EARTH_RADIUS_M

MAX_RADIUS_KM = 500.0
# same sphere as haversine_m, so a box never clips the exact radius check
KM_PER_DEGREE_LAT = EARTH_RADIUS_M / 1000.0 * math.pi / 180.0
MAX_PAGE = 10
NO_CATEGORY = {"", "all"}

INDEX_LAT_FIELD = "geocodes_lat"
INDEX_LNG_FIELD = "geocodes_lng"
INDEX_GEO_FIELD = "location"
INDEX_CATEGORY_FIELD = "categories"

# name > categories > locality > region > address
SEARCH_QUERY_BY = "name,categories,location_locality,location_region,location_address"
SEARCH_QUERY_BY_WEIGHTS = "5,3,2,1,1"
BOUNDS_QUERY_BY = "name,categories"
BOUNDS_QUERY_BY_WEIGHTS = "3,2"
SUGGEST_QUERY_BY = "name"


@dataclass(frozen=True)
class CategoryTerms:
    sql_term: str  # substring matched with ILIKE against denormalized columns
    index_facet: str  # exact facet value in the search index


CATEGORY_TERMS: Dict[str, CategoryTerms] = {
    "restaurant": CategoryTerms("restaurant", "Dining and Drinking > Restaurant"),
    "restaurants": CategoryTerms("restaurant", "Dining and Drinking > Restaurant"),
    "food": CategoryTerms("restaurant", "Dining and Drinking > Restaurant"),
    "bar": CategoryTerms("bar", "Dining and Drinking > Bar"),
    "bars": CategoryTerms("bar", "Dining and Drinking > Bar"),
    "nightlife": CategoryTerms("bar", "Dining and Drinking > Bar"),
    "cafe": CategoryTerms("cafe", "Dining and Drinking > Cafe, Coffee, and Tea House"),
    "coffee": CategoryTerms("cafe", "Dining and Drinking > Cafe, Coffee, and Tea House"),
    "hotel": CategoryTerms("hotel", "Travel and Transportation > Lodging > Hotel"),
    "hotels": CategoryTerms("hotel", "Travel and Transportation > Lodging > Hotel"),
    "shopping": CategoryTerms("retail", "Retail"),
    "retail": CategoryTerms("retail", "Retail"),
    "fitness": CategoryTerms("fitness", "Sports and Recreation > Gym and Studio"),
    "gym": CategoryTerms("fitness", "Sports and Recreation > Gym and Studio"),
    "beauty": CategoryTerms("beauty", "Business and Professional Services > Health and Beauty Service"),
    "health": CategoryTerms("health", "Health and Medicine"),
    "entertainment": CategoryTerms("entertainment", "Arts and Entertainment"),
    "attraction": CategoryTerms("entertainment", "Arts and Entertainment"),
    "services": CategoryTerms("services", "Business and Professional Services"),
    "automotive": CategoryTerms("automotive", "Business and Professional Services > Automotive Service"),
    "education": CategoryTerms("education", "Community and Government > Education"),
    "outdoors": CategoryTerms("park", "Landmarks and Outdoors"),
    "parks": CategoryTerms("park", "Landmarks and Outdoors"),
}


def resolve_category(category: Optional[str]) -> Optional[CategoryTerms]:
    """Look up a logical category; unknown names pass through unchanged."""
    if category is None:
        return None
    name = category.strip()
    if name.lower() in NO_CATEGORY:
        return None
    return CATEGORY_TERMS.get(name.lower(), CategoryTerms(name, name))


def _like_escape(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _index_value(value: str) -> str:
    """Backtick-quote a filter value so commas and spaces survive."""
    return "`" + value.replace("`", "") + "`"


# --- relational predicates -------------------------------------------------


def bbox_sql_predicate(bbox: BoundingBox, lat_col: Any, lng_col: Any) -> ColumnElement:
    lat_pred = and_(lat_col >= bbox.south, lat_col <= bbox.north)
    if bbox.crosses_antimeridian:
        lng_pred = or_(lng_col >= bbox.west, lng_col <= bbox.east)
    else:
        lng_pred = and_(lng_col >= bbox.west, lng_col <= bbox.east)
    return and_(lat_pred, lng_pred)


def category_sql_predicate(category: Optional[str], *columns: Any) -> Optional[ColumnElement]:
    terms = resolve_category(category)
    if terms is None or not columns:
        return None
    pattern = f"%{_like_escape(terms.sql_term)}%"
    return or_(*(col.ilike(pattern, escape="\\") for col in columns))


def text_sql_predicate(text: str, *columns: Any) -> ColumnElement:
    pattern = f"%{_like_escape(text.strip())}%"
    return or_(*(col.ilike(pattern, escape="\\") for col in columns))


# --- search index filters --------------------------------------------------


def _fmt(value: float) -> str:
    return f"{value:.6f}".rstrip("0").rstrip(".")


def bbox_index_filter(bbox: BoundingBox) -> str:
    lat = f"{INDEX_LAT_FIELD}:[{_fmt(bbox.south)}..{_fmt(bbox.north)}]"
    if bbox.crosses_antimeridian:
        lng = (
            f"({INDEX_LNG_FIELD}:[{_fmt(bbox.west)}..180] || "
            f"{INDEX_LNG_FIELD}:[-180..{_fmt(bbox.east)}])"
        )
    else:
        lng = f"{INDEX_LNG_FIELD}:[{_fmt(bbox.west)}..{_fmt(bbox.east)}]"
    return f"{lat} && {lng}"


def clamp_radius_km(radius_km: float) -> float:
    return max(0.0, min(float(radius_km), MAX_RADIUS_KM))


def bbox_around(center: GeoPoint, radius_km: float) -> BoundingBox:
    """
    Lat/lng box enclosing the circle of `radius_km` around `center`.

    Used to narrow relational queries before the exact haversine check. Near
    the poles, or for circles wider than the globe, the box spans all
    longitudes; across the antimeridian it wraps (west > east).
    """
    radius = clamp_radius_km(radius_km)
    dlat = radius / KM_PER_DEGREE_LAT
    north = min(90.0, center.lat + dlat)
    south = max(-90.0, center.lat - dlat)
    # widest longitude span is on the edge nearest a pole
    cos_lat = math.cos(math.radians(max(abs(north), abs(south))))
    if north >= 90.0 or south <= -90.0 or cos_lat <= 0.0:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
    dlng = radius / (KM_PER_DEGREE_LAT * cos_lat)
    if dlng >= 180.0:
        return BoundingBox(north=north, south=south, east=180.0, west=-180.0)
    west = center.lng - dlng
    east = center.lng + dlng
    if west < -180.0:
        west += 360.0
    if east > 180.0:
        east -= 360.0
    return BoundingBox(north=north, south=south, east=east, west=west)


def radius_index_filter(center: GeoPoint, radius_km: float) -> str:
    radius = clamp_radius_km(radius_km)
    return f"{INDEX_GEO_FIELD}:({_fmt(center.lat)}, {_fmt(center.lng)}, {_fmt(radius)} km)"


def category_index_filter(category: Optional[str]) -> Optional[str]:
    terms = resolve_category(category)
    if terms is None:
        return None
    return f"{INDEX_CATEGORY_FIELD}:={_index_value(terms.index_facet)}"


def geo_sort(center: GeoPoint) -> str:
    return f"{INDEX_GEO_FIELD}({_fmt(center.lat)}, {_fmt(center.lng)}):asc"


def typo_budget(query: str) -> int:
    """Short queries ("mi", "bbq") get no typos, "pizza" gets one, longer get two."""
    length = len("".join((query or "").split()))
    if length <= 3:
        return 0
    if length <= 5:
        return 1
    return 2


def build_search_params(
    query: str,
    *,
    location: Optional[GeoPoint] = None,
    radius_km: Optional[float] = None,
    bbox: Optional[BoundingBox] = None,
    category: Optional[str] = None,
    locality: Optional[str] = None,
    region: Optional[str] = None,
    country: Optional[str] = None,
    page: int = 1,
    per_page: int = 20,
    autocomplete: bool = False,
) -> Dict[str, Any]:
    """
    Build a Typesense search request for free-text place search.

    Sorting: with a location and text, relevance first and distance as the
    tie-breaker; with a location and a wildcard, distance first; otherwise
    relevance then popularity.
    """
    q = (query or "").strip() or "*"
    is_wildcard = q == "*"

    if location is not None and not is_wildcard:
        sort_by = f"_text_match:desc,{geo_sort(location)},popularity:desc"
    elif location is not None:
        sort_by = f"{geo_sort(location)},popularity:desc"
    elif bbox is not None and is_wildcard:
        sort_by = "popularity:desc"
    else:
        sort_by = "_text_match:desc,popularity:desc"

    filters = []
    if location is not None and radius_km:
        filters.append(radius_index_filter(location, radius_km))
    if bbox is not None:
        filters.append(bbox_index_filter(bbox))
    category_filter = category_index_filter(category)
    if category_filter:
        filters.append(category_filter)
    if locality:
        filters.append(f"location_locality:={_index_value(locality)}")
    if region:
        filters.append(f"location_region:={_index_value(region)}")
    if country:
        filters.append(f"location_country:={_index_value(country)}")

    params: Dict[str, Any] = {
        "q": q,
        "query_by": SUGGEST_QUERY_BY if autocomplete else SEARCH_QUERY_BY,
        "sort_by": sort_by,
        "per_page": per_page,
        "page": max(1, min(int(page), MAX_PAGE)),
        "num_typos": typo_budget(q if not is_wildcard else ""),
        "typo_tokens_threshold": 1,
        "drop_tokens_threshold": 2,
        "prioritize_exact_match": "true",
        "prioritize_token_position": "true",
        "text_match_type": "max_score",
    }
    if not autocomplete:
        params["query_by_weights"] = SEARCH_QUERY_BY_WEIGHTS
        params["highlight_full_fields"] = "name"
    params["prefix"] = "true" if autocomplete else "false"
    if filters:
        params["filter_by"] = " && ".join(filters)
    return params


def build_bounds_params(
    bbox: BoundingBox,
    *,
    category: Optional[str] = None,
    per_page: int = 150,
) -> Dict[str, Any]:
    """Wildcard browse of everything inside a viewport, nearest to its center first."""
    filters = [bbox_index_filter(bbox)]
    category_filter = category_index_filter(category)
    if category_filter:
        filters.append(category_filter)
    return {
        "q": "*",
        "query_by": BOUNDS_QUERY_BY,
        "query_by_weights": BOUNDS_QUERY_BY_WEIGHTS,
        "filter_by": " && ".join(filters),
        "sort_by": f"{geo_sort(bbox.center)},popularity:desc",
        "per_page": per_page,
        "page": 1,
    }
