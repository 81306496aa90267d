"""
Collapse PlaceCards that describe the same real-world place.

Identity is fuzzy: same name (case-insensitive, trimmed) and close enough on
the map. When in doubt a record is kept; a missed duplicate is preferable to
merging two distinct places.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from domain.models import PlaceCard
from services.geo import haversine_m
from settings import settings

logger = logging.getLogger(__name__)


def name_key(place: PlaceCard) -> str:
    """Comparison key; empty for records whose name is only a placeholder."""
    if not getattr(place, "named", True):
        return ""
    name = getattr(place, "name", None)
    if not isinstance(name, str):
        return ""
    return name.strip().lower()


def _precedence(place: PlaceCard) -> int:
    """Lower sorts first: canonical records win over coverage ones."""
    return 0 if getattr(place, "is_canonical", False) else 1


def _coords(place: PlaceCard) -> Optional[tuple[float, float]]:
    try:
        if place.has_coordinates:
            return float(place.latitude), float(place.longitude)
    except (AttributeError, TypeError, ValueError):
        return None
    return None


def dedupe(
    records: Sequence[PlaceCard],
    threshold_m: Optional[float] = None,
) -> List[PlaceCard]:
    """
    Drop records that duplicate an already-kept record of the same name
    within `threshold_m` meters.

    Within a name group, canonical records are considered before coverage
    ones so curated data survives. Records without coordinates or without a
    usable name are always kept. Survivors keep their input order.
    """
    threshold = settings.DEDUPE_PROXIMITY_M if threshold_m is None else threshold_m
    records = list(records or [])

    groups: Dict[str, List[int]] = {}
    keep = [True] * len(records)
    for idx, place in enumerate(records):
        key = name_key(place)
        if not key:
            continue
        groups.setdefault(key, []).append(idx)

    dropped = 0
    for indices in groups.values():
        if len(indices) < 2:
            continue
        ordered = sorted(indices, key=lambda i: (_precedence(records[i]), i))
        kept_coords: List[tuple[float, float]] = []
        for idx in ordered:
            coords = _coords(records[idx])
            if coords is None:
                continue
            if any(haversine_m(coords[0], coords[1], k[0], k[1]) <= threshold for k in kept_coords):
                keep[idx] = False
                dropped += 1
                continue
            kept_coords.append(coords)

    if dropped:
        logger.debug("dedupe: dropped %d of %d records", dropped, len(records))
    return [place for idx, place in enumerate(records) if keep[idx]]


def dedupe_by_name(records: Sequence[PlaceCard]) -> List[PlaceCard]:
    """
    First-seen-wins per name, with canonical records seen before coverage ones.

    Used on the text-search path, where the index has already narrowed hits
    to near-identical names and proximity checks add nothing.
    """
    ordered = sorted(
        enumerate(records or []),
        key=lambda pair: (_precedence(pair[1]), pair[0]),
    )
    seen: set[str] = set()
    winners: set[int] = set()
    for idx, place in ordered:
        key = name_key(place)
        if key and key in seen:
            continue
        if key:
            seen.add(key)
        winners.add(idx)
    return [place for idx, place in enumerate(records or []) if idx in winners]
