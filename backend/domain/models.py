"""
Core domain models for the places backend.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import math


DEFAULT_CATEGORY = "Place"
DEFAULT_NAME = "Unknown"


class InvalidQueryError(ValueError):
    """Raised when a caller passes missing or malformed query parameters."""


class SourceError(Exception):
    """A backing store or the search index failed to answer."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class PlaceSource(str, Enum):
    """Where a place record came from."""
    CANONICAL = "canonical"  # curated `places` table
    COVERAGE = "coverage"  # raw third-party dataset


class PlaceStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


def _coerce_coord(value: Any, name: str, low: float, high: float) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidQueryError(f"Missing required parameter: {name}")
    if isinstance(value, bool):
        raise InvalidQueryError(f"Parameter {name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"Parameter {name} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise InvalidQueryError(f"Parameter {name} must be finite")
    if number < low or number > high:
        raise InvalidQueryError(f"Parameter {name} out of range [{low}, {high}]: {number}")
    return number


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    @classmethod
    def from_params(cls, lat: Any, lng: Any) -> "GeoPoint":
        return cls(
            lat=_coerce_coord(lat, "lat", -90.0, 90.0),
            lng=_coerce_coord(lng, "lng", -180.0, 180.0),
        )

    @classmethod
    def optional(cls, lat: Any, lng: Any) -> Optional["GeoPoint"]:
        """Build a point only when both halves were supplied."""
        if lat is None and lng is None:
            return None
        return cls.from_params(lat, lng)


@dataclass(frozen=True)
class BoundingBox:
    """
    A map viewport. `west > east` means the box crosses the antimeridian.
    """
    north: float
    south: float
    east: float
    west: float

    @classmethod
    def from_params(cls, north: Any, south: Any, east: Any, west: Any) -> "BoundingBox":
        box = cls(
            north=_coerce_coord(north, "north", -90.0, 90.0),
            south=_coerce_coord(south, "south", -90.0, 90.0),
            east=_coerce_coord(east, "east", -180.0, 180.0),
            west=_coerce_coord(west, "west", -180.0, 180.0),
        )
        if box.south > box.north:
            raise InvalidQueryError(
                f"Bounding box south ({box.south}) is greater than north ({box.north})"
            )
        return box

    @classmethod
    def optional(cls, north: Any, south: Any, east: Any, west: Any) -> Optional["BoundingBox"]:
        """Build a box only when some edge was supplied; a partial box is an error."""
        if north is None and south is None and east is None and west is None:
            return None
        return cls.from_params(north=north, south=south, east=east, west=west)

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    @property
    def center(self) -> GeoPoint:
        lat = (self.north + self.south) / 2
        if self.crosses_antimeridian:
            lng = (self.west + self.east + 360.0) / 2
            if lng > 180.0:
                lng -= 360.0
        else:
            lng = (self.west + self.east) / 2
        return GeoPoint(lat=lat, lng=lng)

    def contains(self, lat: Optional[float], lng: Optional[float]) -> bool:
        if lat is None or lng is None:
            return False
        if lat < self.south or lat > self.north:
            return False
        if self.crosses_antimeridian:
            return lng >= self.west or lng <= self.east
        return self.west <= lng <= self.east


@dataclass
class PlaceCard:
    """
    The unified, source-agnostic place representation returned to callers.

    Built fresh on every request from the canonical table, the coverage table
    or the search index; never persisted.
    """
    id: str
    source: PlaceSource
    source_id: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: str = DEFAULT_CATEGORY
    subcategory: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    status: str = PlaceStatus.ACTIVE.value
    distance: Optional[float] = None  # meters from the caller, when known
    photos: List[str] = field(default_factory=list)
    cover_image_url: Optional[str] = None
    signals: List[str] = field(default_factory=list)
    named: bool = True  # False when `name` is the DEFAULT_NAME placeholder

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_canonical(self) -> bool:
        return self.source == PlaceSource.CANONICAL

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        data.pop("named", None)
        return data


@dataclass
class SearchResult(PlaceCard):
    """PlaceCard plus text-search relevance; only produced on the search path."""
    match_score: float = 0.0
    popularity: float = 50.0


@dataclass
class FetchMetrics:
    from_canonical: int = 0
    from_coverage: int = 0
    fallback_triggered: bool = False
    total: int = 0
    coverage_backend: Optional[str] = None  # "index", "raw" or None when unused

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromCanonical": self.from_canonical,
            "fromCoverage": self.from_coverage,
            "fallbackTriggered": self.fallback_triggered,
            "total": self.total,
            "coverageBackend": self.coverage_backend,
        }


@dataclass
class PlacesInBounds:
    places: List[PlaceCard]
    metrics: FetchMetrics


@dataclass(frozen=True)
class SignalLabel:
    """Reference metadata for a tappable signal (e.g. "Great Coffee")."""
    id: str
    label: str
    slug: Optional[str] = None
    signal_type: Optional[str] = None  # "best_for", "vibe" or "heads_up"
