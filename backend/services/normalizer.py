"""
Map heterogeneous place rows onto the unified PlaceCard shape.

Three inputs are understood:
- canonical `places` rows (ORM objects or plain mappings)
- raw coverage `fsq_places_raw` rows
- search index hits (Typesense `{"document": ..., "text_match_info": ...}`)

Everything here is a pure function of its input: no store or network access.
"""
from __future__ import annotations

import math
import re
from dataclasses import fields
from typing import Any, List, Optional, Sequence, Tuple

from domain.models import (
    DEFAULT_CATEGORY,
    DEFAULT_NAME,
    PlaceCard,
    PlaceSource,
    PlaceStatus,
    SearchResult,
)

COVERAGE_ID_PREFIX = "fsq-"
CANONICAL_INDEX_PREFIX = "tavvy:"
CATEGORY_DELIMITER = ">"
DEFAULT_POPULARITY = 50.0

_QUOTED_ITEM_RE = re.compile(r"'([^']*)'|\"([^\"]*)\"")
_LIST_SEPARATORS_RE = re.compile(r"[|;]")


def _get(row: Any, *names: str) -> Any:
    """Return the first non-empty attribute / key among `names`."""
    for name in names:
        if isinstance(row, dict):
            value = row.get(name)
        else:
            value = getattr(row, name, None)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_photo_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(p) for p in value if p]
    return []


def _split_list_repr(text: str) -> List[str]:
    """Parse "['A > B', 'C']" style strings into their items."""
    items = [a or b for a, b in _QUOTED_ITEM_RE.findall(text)]
    if items:
        return items
    return text.strip("[]").split(",")


def _first_label(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        parts = [str(p) for p in raw if p is not None]
        if not parts:
            return None
        # Some index exports split a list repr on its commas; stitch it back.
        if parts[0].lstrip().startswith("["):
            raw = ",".join(parts)
        else:
            for part in parts:
                if part.strip():
                    return part
            return None
    text = str(raw).strip()
    if not text:
        return None
    if text.startswith("["):
        candidates = _split_list_repr(text)
    else:
        candidates = _LIST_SEPARATORS_RE.split(text)
    for candidate in candidates:
        candidate = candidate.strip().strip("'\"").strip()
        if candidate:
            return candidate
    return None


def parse_category(raw: Any) -> Tuple[str, Optional[str]]:
    """
    Split a hierarchical label such as "Dining and Drinking > Restaurant > Pizzeria".

    Returns (top segment, last segment). The subcategory is None when the
    label has a single segment; an empty or unusable label yields the
    DEFAULT_CATEGORY sentinel so callers never see a blank category.
    """
    label = _first_label(raw)
    if not label:
        return DEFAULT_CATEGORY, None
    segments = [s.strip() for s in label.split(CATEGORY_DELIMITER) if s.strip()]
    if not segments:
        return DEFAULT_CATEGORY, None
    subcategory = segments[-1] if len(segments) > 1 else None
    return segments[0], subcategory


def coverage_place_id(native_id: Any) -> str:
    """Deterministic response id for a coverage record."""
    return f"{COVERAGE_ID_PREFIX}{native_id}"


def normalize_canonical(row: Any) -> PlaceCard:
    pk = _get(row, "id")
    pk_str = str(pk) if pk is not None else ""
    category, parsed_sub = parse_category(
        _get(row, "tavvy_category", "category", "primary_category")
    )
    source_id = _get(row, "source_id")
    name = _clean_str(_get(row, "name"))
    return PlaceCard(
        id=pk_str,
        source=PlaceSource.CANONICAL,
        source_id=str(source_id) if source_id is not None else pk_str,
        name=name or DEFAULT_NAME,
        latitude=_as_float(_get(row, "latitude", "lat")),
        longitude=_as_float(_get(row, "longitude", "lng", "lon")),
        category=category,
        subcategory=_clean_str(_get(row, "tavvy_subcategory", "subcategory")) or parsed_sub,
        address=_clean_str(_get(row, "street", "address", "address_line1")),
        city=_clean_str(_get(row, "city")),
        region=_clean_str(_get(row, "region", "state_region")),
        country=_clean_str(_get(row, "country")),
        postcode=_clean_str(_get(row, "postcode")),
        phone=_clean_str(_get(row, "phone")),
        website=_clean_str(_get(row, "website")),
        status=_clean_str(_get(row, "status", "current_status")) or PlaceStatus.ACTIVE.value,
        photos=_as_photo_list(_get(row, "photos")),
        cover_image_url=_clean_str(_get(row, "cover_image_url")),
        named=name is not None,
    )


def normalize_coverage(row: Any) -> PlaceCard:
    native = _get(row, "fsq_id", "fsq_place_id")
    native_str = str(native) if native is not None else ""
    category, parsed_sub = parse_category(
        _get(row, "category_name", "fsq_category_labels", "category_labels")
    )
    closed = bool(_get(row, "date_closed"))
    name = _clean_str(_get(row, "name"))
    return PlaceCard(
        id=coverage_place_id(native_str),
        source=PlaceSource.COVERAGE,
        source_id=native_str,
        name=name or DEFAULT_NAME,
        latitude=_as_float(_get(row, "latitude")),
        longitude=_as_float(_get(row, "longitude")),
        category=category,
        subcategory=_clean_str(_get(row, "subcategory_name")) or parsed_sub,
        address=_clean_str(_get(row, "address")),
        city=_clean_str(_get(row, "city", "locality")),
        region=_clean_str(_get(row, "region")),
        country=_clean_str(_get(row, "country")),
        postcode=_clean_str(_get(row, "postcode")),
        phone=_clean_str(_get(row, "phone", "tel")),
        website=_clean_str(_get(row, "website")),
        status=PlaceStatus.CLOSED.value if closed else PlaceStatus.ACTIVE.value,
        photos=_as_photo_list(_get(row, "photos")),
        cover_image_url=_clean_str(_get(row, "cover_image_url")),
        named=name is not None,
    )


def _hit_location(doc: dict) -> Tuple[Optional[float], Optional[float]]:
    lat = _as_float(_get(doc, "geocodes_lat", "latitude"))
    lng = _as_float(_get(doc, "geocodes_lng", "longitude"))
    if lat is None or lng is None:
        location = doc.get("location")
        if isinstance(location, Sequence) and not isinstance(location, str) and len(location) == 2:
            lat, lng = _as_float(location[0]), _as_float(location[1])
    return lat, lng


def _hit_distance(hit: dict) -> Optional[float]:
    raw = hit.get("geo_distance_meters")
    if isinstance(raw, dict):
        raw = raw.get("location")
    return _as_float(raw)


def _hit_score(hit: dict) -> float:
    info = hit.get("text_match_info")
    if isinstance(info, dict):
        score = _as_float(info.get("score"))
        if score is not None:
            return score
    return _as_float(hit.get("text_match")) or 0.0


def normalize_index_hit(hit: dict) -> SearchResult:
    doc = hit.get("document") if isinstance(hit.get("document"), dict) else hit
    raw_id = str(doc.get("id") or "")
    native = _get(doc, "fsq_id", "fsq_place_id")
    if raw_id.startswith(CANONICAL_INDEX_PREFIX):
        pk = raw_id[len(CANONICAL_INDEX_PREFIX):]
        source = PlaceSource.CANONICAL
        place_id = pk
        source_id = str(native) if native is not None else pk
    else:
        native_str = str(native) if native is not None else raw_id
        source = PlaceSource.COVERAGE
        place_id = coverage_place_id(native_str)
        source_id = native_str

    lat, lng = _hit_location(doc)
    category, subcategory = parse_category(doc.get("categories"))
    signals = doc.get("tap_signals")
    name = _clean_str(doc.get("name"))
    return SearchResult(
        id=place_id,
        source=source,
        source_id=source_id,
        name=name or DEFAULT_NAME,
        latitude=lat,
        longitude=lng,
        category=category,
        subcategory=subcategory,
        address=_clean_str(_get(doc, "location_address", "address")),
        city=_clean_str(_get(doc, "location_locality", "locality", "city")),
        region=_clean_str(_get(doc, "location_region", "region")),
        country=_clean_str(_get(doc, "location_country", "country")),
        postcode=_clean_str(_get(doc, "location_postcode", "postcode")),
        phone=_clean_str(_get(doc, "tel", "phone")),
        website=_clean_str(doc.get("website")),
        status=PlaceStatus.CLOSED.value if doc.get("date_closed") else PlaceStatus.ACTIVE.value,
        distance=_hit_distance(hit),
        photos=_as_photo_list(doc.get("photos")),
        cover_image_url=_clean_str(doc.get("cover_image_url")),
        signals=[str(s) for s in signals] if isinstance(signals, list) else [],
        named=name is not None,
        match_score=_hit_score(hit),
        popularity=_as_float(doc.get("popularity")) or DEFAULT_POPULARITY,
    )


def to_search_result(card: PlaceCard, match_score: float = 0.0) -> SearchResult:
    """Lift a plain PlaceCard onto the search path's result type."""
    values = {f.name: getattr(card, f.name) for f in fields(PlaceCard)}
    return SearchResult(**values, match_score=match_score)
