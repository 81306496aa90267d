"""
Hybrid place retrieval over the canonical table, the coverage table and the
search index.

Bounds path:
1. Query the canonical store inside the viewport.
2. If it returned fewer than the fallback threshold, query the coverage path
   (search index first, raw coverage table only if the index call fails),
   skipping records whose native id the canonical rows already carry.
3. Merge, deduplicate, annotate distances, sort and truncate.

Text-search path: one geo-biased, typo-tolerant index query, deduplicated by
name, with the raw coverage table as the fallback when the index is down.

Backend failures never escape: a failed source contributes nothing and the
caller gets whatever the other source produced. Only malformed caller input
(InvalidQueryError) is raised.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from domain.models import (
    BoundingBox,
    FetchMetrics,
    GeoPoint,
    InvalidQueryError,
    PlaceCard,
    PlacesInBounds,
    PlaceSource,
    PlaceStatus,
    SearchResult,
    SourceError,
)
from repositories import CanonicalPlacesRepository, CoveragePlacesRepository, SignalsRepository
from services.dedupe import dedupe, dedupe_by_name
from services.geo import haversine_m
from services.normalizer import (
    CANONICAL_INDEX_PREFIX,
    COVERAGE_ID_PREFIX,
    normalize_canonical,
    normalize_coverage,
    normalize_index_hit,
    to_search_result,
)
from services.query_builder import (
    MAX_PAGE,
    bbox_around,
    build_bounds_params,
    build_search_params,
    clamp_radius_km,
)
from services.query_intent import NEAR_ME_RADIUS_KM, parse_intent, sanitize_query
from services.search_index import SearchIndexClient, SearchIndexError, get_default_search_index
from services.signal_cache import SignalLabelCache, get_default_signal_cache
from settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

CANONICAL_SOURCE = "canonical"
COVERAGE_RAW_SOURCE = "coverage_raw"
BACKEND_INDEX = "index"
BACKEND_RAW = "raw"

MAX_SEARCH_LIMIT = 100
MAX_INDEX_PAGE_SIZE = 250
MIN_SUGGESTION_QUERY_LENGTH = 2
COVERAGE_POOL_WORKERS = 4


@dataclass
class SourceResult:
    """What one backing source contributed to a request."""
    places: List[PlaceCard] = field(default_factory=list)
    error: Optional[SourceError] = None
    backend: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _failed(source: str, exc: Exception, backend: Optional[str] = None) -> SourceResult:
    error = exc if isinstance(exc, SourceError) else SourceError(source, str(exc))
    logger.warning("Place source %s failed, treating as empty: %s", source, error)
    return SourceResult(places=[], error=error, backend=backend)


def _with_distances(places: Sequence[PlaceCard], origin: GeoPoint) -> List[PlaceCard]:
    """Annotate meters from `origin`; records without coordinates are dropped."""
    located: List[PlaceCard] = []
    for place in places:
        if not place.has_coordinates:
            continue
        place.distance = haversine_m(origin.lat, origin.lng, place.latitude, place.longitude)
        located.append(place)
    return located


def _sort_by_distance(places: List[PlaceCard]) -> List[PlaceCard]:
    return sorted(places, key=lambda p: p.distance if p.distance is not None else float("inf"))


def _sort_by_relevance(results: List[SearchResult]) -> List[SearchResult]:
    return sorted(results, key=lambda r: (-r.match_score, -r.popularity))


def _substring_score(name: str, text: str) -> float:
    """Rough relevance for raw-table matches: exact > prefix > contains."""
    name_l = (name or "").strip().lower()
    text_l = text.strip().lower()
    if name_l == text_l:
        return 3.0
    if name_l.startswith(text_l):
        return 2.0
    return 1.0


def _check_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        return default
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"limit must be an integer, got {limit!r}")
    if value < 1:
        raise InvalidQueryError(f"limit must be positive, got {value}")
    return min(value, maximum)


def _check_page(page: Optional[int]) -> int:
    if page is None:
        return 1
    try:
        value = int(page)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"page must be an integer, got {page!r}")
    if value < 1:
        raise InvalidQueryError(f"page must be positive, got {value}")
    return min(value, MAX_PAGE)


class PlaceService:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        index_client: Optional[SearchIndexClient] = None,
        signal_cache: Optional[SignalLabelCache] = None,
        config: Optional[Settings] = None,
    ):
        if session_factory is None:
            from db import SessionLocal

            session_factory = SessionLocal
        self.session_factory = session_factory
        self.index = index_client or get_default_search_index()
        self.signal_cache = signal_cache or get_default_signal_cache()
        self.config = config or default_settings
        self.canonical_repo = CanonicalPlacesRepository()
        self.coverage_repo = CoveragePlacesRepository()
        self.signals_repo = SignalsRepository()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def _coverage_pool(self) -> ThreadPoolExecutor:
        """Shared pool for speculative coverage queries, created on first use."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=COVERAGE_POOL_WORKERS, thread_name_prefix="coverage"
                )
            return self._executor

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    # --- individual sources -------------------------------------------------

    def _attach_signals(self, session: Session, places: List[PlaceCard]) -> None:
        if not places:
            return
        try:
            by_place = self.signals_repo.top_signal_ids(
                session,
                [p.id for p in places],
                per_place=self.config.SIGNALS_PER_PLACE,
            )
        except SQLAlchemyError as exc:
            logger.warning("Could not load signals for %d places: %s", len(places), exc)
            return
        for place in places:
            place.signals = [self.signal_cache.label_for(sid) for sid in by_place.get(place.id, [])]

    def _query_canonical(
        self, bbox: BoundingBox, category: Optional[str], limit: int
    ) -> SourceResult:
        try:
            with self.session_factory() as session:
                rows = self.canonical_repo.list_in_bounds(session, bbox, category=category, limit=limit)
                places = [normalize_canonical(r) for r in rows]
                self._attach_signals(session, places)
        except SQLAlchemyError as exc:
            return _failed(CANONICAL_SOURCE, exc)
        return SourceResult(places=places)

    def _query_coverage_index(
        self, bbox: BoundingBox, category: Optional[str], limit: int
    ) -> SourceResult:
        params = build_bounds_params(bbox, category=category, per_page=min(limit, MAX_INDEX_PAGE_SIZE))
        try:
            data = self.index.search(params)
        except SearchIndexError as exc:
            return _failed(exc.source, exc, backend=BACKEND_INDEX)
        places: List[PlaceCard] = []
        for hit in data.get("hits") or []:
            place = normalize_index_hit(hit)
            # the index also carries curated docs; those come from the canonical query
            if place.source != PlaceSource.COVERAGE:
                continue
            if not bbox.contains(place.latitude, place.longitude):
                continue
            place.distance = None
            places.append(place)
        return SourceResult(places=places, backend=BACKEND_INDEX)

    def _query_coverage_raw(
        self, bbox: BoundingBox, category: Optional[str], limit: int
    ) -> SourceResult:
        try:
            with self.session_factory() as session:
                rows = self.coverage_repo.list_in_bounds(session, bbox, category=category, limit=limit)
                places = [normalize_coverage(r) for r in rows]
        except SQLAlchemyError as exc:
            return _failed(COVERAGE_RAW_SOURCE, exc, backend=BACKEND_RAW)
        return SourceResult(places=places, backend=BACKEND_RAW)

    def _query_coverage(
        self, bbox: BoundingBox, category: Optional[str], limit: int
    ) -> SourceResult:
        result = self._query_coverage_index(bbox, category, limit)
        if result.ok:
            return result
        logger.info("Search index unavailable, using raw coverage table for bounds query")
        return self._query_coverage_raw(bbox, category, limit)

    # --- public operations --------------------------------------------------

    def fetch_places_in_bounds(
        self,
        bbox: BoundingBox,
        user_location: Optional[GeoPoint] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> PlacesInBounds:
        if not isinstance(bbox, BoundingBox):
            raise InvalidQueryError("A bounding box is required")
        fetch_limit = self.config.PLACES_FETCH_LIMIT
        limit = _check_limit(limit, fetch_limit, fetch_limit)
        threshold = self.config.PLACES_FALLBACK_THRESHOLD
        started = time.monotonic()
        metrics = FetchMetrics()

        speculative: Optional[Future] = None
        if self.config.PLACES_PARALLEL_FETCH:
            speculative = self._coverage_pool().submit(self._query_coverage, bbox, category, limit)

        canonical = self._query_canonical(bbox, category, limit)
        metrics.from_canonical = len(canonical.places)

        coverage_places: List[PlaceCard] = []
        if len(canonical.places) < threshold:
            metrics.fallback_triggered = True
            logger.debug(
                "fetch_places_in_bounds: fallback triggered (%d < %d)",
                len(canonical.places),
                threshold,
            )
            if speculative is not None:
                coverage = speculative.result()
            else:
                coverage = self._query_coverage(bbox, category, limit)
            metrics.coverage_backend = coverage.backend
            known_ids = {p.source_id for p in canonical.places if p.source_id}
            remaining = max(0, limit - len(canonical.places))
            coverage_places = [
                p
                for p in coverage.places
                if p.source_id not in known_ids and p.status != PlaceStatus.CLOSED.value
            ][:remaining]
            metrics.from_coverage = len(coverage_places)
        elif speculative is not None:
            # no-op if it already started; the result is simply dropped
            speculative.cancel()

        places = dedupe(canonical.places + coverage_places, self.config.DEDUPE_PROXIMITY_M)
        if user_location is not None:
            places = _sort_by_distance(_with_distances(places, user_location))
        else:
            places = [p for p in places if p.has_coordinates]
        places = places[:limit]
        metrics.total = len(places)

        logger.debug(
            "fetch_places_in_bounds: canonical=%d coverage=%d backend=%s total=%d in %.0fms",
            metrics.from_canonical,
            metrics.from_coverage,
            metrics.coverage_backend,
            metrics.total,
            (time.monotonic() - started) * 1000,
        )
        return PlacesInBounds(places=places, metrics=metrics)

    def _search_raw(
        self,
        text: str,
        limit: int,
        *,
        locality: Optional[str] = None,
        region: Optional[str] = None,
        country: Optional[str] = None,
        category: Optional[str] = None,
        bbox: Optional[BoundingBox] = None,
        center: Optional[GeoPoint] = None,
        radius_km: Optional[float] = None,
        page: int = 1,
    ) -> List[SearchResult]:
        """Substring search on the raw coverage table with the same filters the index gets."""
        area = bbox
        if area is None and center is not None and radius_km:
            area = bbox_around(center, radius_km)
        try:
            with self.session_factory() as session:
                rows = self.coverage_repo.search_by_name(
                    session,
                    text,
                    limit=limit,
                    locality=locality,
                    region=region,
                    country=country,
                    category=category,
                    bbox=area,
                    offset=(page - 1) * limit,
                )
        except SQLAlchemyError as exc:
            _failed(COVERAGE_RAW_SOURCE, exc, backend=BACKEND_RAW)
            return []
        results = []
        for row in rows:
            card = normalize_coverage(row)
            results.append(to_search_result(card, match_score=_substring_score(card.name, text)))
        if center is not None and radius_km:
            radius_m = clamp_radius_km(radius_km) * 1000.0
            results = [r for r in _with_distances(results, center) if r.distance <= radius_m]
        return results

    def search_places(
        self,
        query: str,
        user_location: Optional[GeoPoint] = None,
        limit: Optional[int] = None,
        radius_km: Optional[float] = None,
        category: Optional[str] = None,
        bbox: Optional[BoundingBox] = None,
        locality: Optional[str] = None,
        region: Optional[str] = None,
        country: Optional[str] = None,
        page: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Full text search. Sorted by distance when a location is given,
        otherwise by relevance then popularity.

        Explicit `locality` / `region` override what intent parsing finds in
        the query text. `page` is 1-based and capped at MAX_PAGE.
        """
        text = sanitize_query(query)
        limit = _check_limit(limit, self.config.SEARCH_DEFAULT_LIMIT, MAX_SEARCH_LIMIT)
        page = _check_page(page)
        if radius_km is not None and not (radius_km >= 0):
            raise InvalidQueryError(f"radius must be a non-negative number, got {radius_km!r}")
        if not text:
            return []

        intent = parse_intent(text)
        search_text = intent.clean_query or "*"
        if radius_km is None and intent.near_me and user_location is not None:
            radius_km = NEAR_ME_RADIUS_KM
        locality = locality or intent.locality
        region = region or intent.region

        params = build_search_params(
            search_text,
            location=user_location,
            radius_km=radius_km,
            bbox=bbox,
            category=category,
            locality=locality,
            region=region,
            country=country,
            page=page,
            per_page=min(limit * 2, MAX_INDEX_PAGE_SIZE),
        )
        try:
            data = self.index.search(params)
            results = [normalize_index_hit(hit) for hit in data.get("hits") or []]
        except SearchIndexError as exc:
            _failed(exc.source, exc, backend=BACKEND_INDEX)
            fallback_text = intent.clean_query or text
            logger.info("Search index unavailable, substring search on raw coverage for %r", fallback_text)
            results = self._search_raw(
                fallback_text,
                limit * 2,
                locality=locality,
                region=region,
                country=country,
                category=category,
                bbox=bbox,
                center=user_location,
                radius_km=radius_km,
                page=page,
            )

        results = [r for r in results if r.status != PlaceStatus.CLOSED.value]
        results = dedupe_by_name(results)
        if user_location is not None:
            results = _sort_by_distance(_with_distances(results, user_location))
        else:
            results = _sort_by_relevance(results)
        return results[:limit]

    def search_suggestions(
        self,
        query: str,
        limit: Optional[int] = None,
        user_location: Optional[GeoPoint] = None,
    ) -> List[SearchResult]:
        """
        Autocomplete: name-only prefix search. Any index failure yields no
        suggestions rather than an error.
        """
        text = sanitize_query(query)
        limit = _check_limit(limit, self.config.SUGGESTIONS_DEFAULT_LIMIT, MAX_SEARCH_LIMIT)
        if len(text) < MIN_SUGGESTION_QUERY_LENGTH:
            return []

        params = build_search_params(
            text,
            location=user_location,
            per_page=min(limit * 2, MAX_INDEX_PAGE_SIZE),
            autocomplete=True,
        )
        try:
            data = self.index.search(params)
        except SearchIndexError as exc:
            _failed(exc.source, exc, backend=BACKEND_INDEX)
            return []

        results = [normalize_index_hit(hit) for hit in data.get("hits") or []]
        results = [r for r in results if r.status != PlaceStatus.CLOSED.value]
        results = dedupe_by_name(results)
        if user_location is not None:
            for result in results:
                if result.has_coordinates:
                    result.distance = haversine_m(
                        user_location.lat, user_location.lng, result.latitude, result.longitude
                    )
        return results[:limit]

    def get_place(self, place_id: str) -> Optional[PlaceCard]:
        """Fetch one place, routed to its origin store by the shape of its id."""
        place_id = (place_id or "").strip()
        if not place_id:
            raise InvalidQueryError("place_id is required")
        source = COVERAGE_RAW_SOURCE if place_id.startswith(COVERAGE_ID_PREFIX) else CANONICAL_SOURCE
        try:
            with self.session_factory() as session:
                if place_id.startswith(COVERAGE_ID_PREFIX):
                    row = self.coverage_repo.get_place(session, place_id[len(COVERAGE_ID_PREFIX):])
                    return normalize_coverage(row) if row is not None else None
                if place_id.startswith(CANONICAL_INDEX_PREFIX):
                    place_id = place_id[len(CANONICAL_INDEX_PREFIX):]
                row = self.canonical_repo.get_place(session, place_id)
                if row is None:
                    return None
                place = normalize_canonical(row)
                self._attach_signals(session, [place])
                return place
        except SQLAlchemyError as exc:
            _failed(source, exc)
            return None


_default_place_service: Optional[PlaceService] = None


def get_default_place_service() -> PlaceService:
    global _default_place_service
    if _default_place_service is None:
        _default_place_service = PlaceService()
    return _default_place_service


def close_default_place_service() -> None:
    if _default_place_service is not None:
        _default_place_service.close()
