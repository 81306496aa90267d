"""
Place repositories backed by SQLAlchemy.

Both stores are read-only from this service's point of view. Rows are
returned as ORM objects; shaping them into PlaceCards is the normalizer's job.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from domain.models import BoundingBox, PlaceStatus
from repositories.models import CoveragePlaceORM, PlaceORM
from services.query_builder import (
    bbox_sql_predicate,
    category_sql_predicate,
    text_sql_predicate,
)


class CanonicalPlacesRepository:
    """Queries against the curated `places` table."""

    def list_in_bounds(
        self,
        session: Session,
        bbox: BoundingBox,
        category: Optional[str] = None,
        limit: int = 150,
    ) -> List[PlaceORM]:
        query = session.query(PlaceORM).filter(
            bbox_sql_predicate(bbox, PlaceORM.latitude, PlaceORM.longitude),
            PlaceORM.status == PlaceStatus.ACTIVE.value,
        )
        category_pred = category_sql_predicate(
            category, PlaceORM.tavvy_category, PlaceORM.tavvy_subcategory
        )
        if category_pred is not None:
            query = query.filter(category_pred)
        return query.order_by(PlaceORM.id).limit(limit).all()

    def get_place(self, session: Session, place_id: str) -> Optional[PlaceORM]:
        return session.get(PlaceORM, place_id)


class CoveragePlacesRepository:
    """Queries against the raw `fsq_places_raw` coverage table."""

    def list_in_bounds(
        self,
        session: Session,
        bbox: BoundingBox,
        category: Optional[str] = None,
        limit: int = 150,
    ) -> List[CoveragePlaceORM]:
        query = session.query(CoveragePlaceORM).filter(
            bbox_sql_predicate(bbox, CoveragePlaceORM.latitude, CoveragePlaceORM.longitude),
            CoveragePlaceORM.date_closed.is_(None),
        )
        category_pred = category_sql_predicate(
            category, CoveragePlaceORM.category_name, CoveragePlaceORM.subcategory_name
        )
        if category_pred is not None:
            query = query.filter(category_pred)
        return query.order_by(CoveragePlaceORM.fsq_id).limit(limit).all()

    def search_by_name(
        self,
        session: Session,
        text: str,
        limit: int = 20,
        locality: Optional[str] = None,
        region: Optional[str] = None,
        country: Optional[str] = None,
        category: Optional[str] = None,
        bbox: Optional[BoundingBox] = None,
        offset: int = 0,
    ) -> List[CoveragePlaceORM]:
        """Slow substring search used when the search index is unreachable."""
        query = session.query(CoveragePlaceORM).filter(
            text_sql_predicate(text, CoveragePlaceORM.name),
            CoveragePlaceORM.date_closed.is_(None),
        )
        if locality:
            query = query.filter(text_sql_predicate(locality, CoveragePlaceORM.city))
        if region:
            query = query.filter(CoveragePlaceORM.region == region)
        if country:
            query = query.filter(CoveragePlaceORM.country == country)
        category_pred = category_sql_predicate(
            category, CoveragePlaceORM.category_name, CoveragePlaceORM.subcategory_name
        )
        if category_pred is not None:
            query = query.filter(category_pred)
        if bbox is not None:
            query = query.filter(
                bbox_sql_predicate(bbox, CoveragePlaceORM.latitude, CoveragePlaceORM.longitude)
            )
        query = query.order_by(CoveragePlaceORM.name, CoveragePlaceORM.fsq_id)
        return query.offset(offset).limit(limit).all()

    def get_place(self, session: Session, fsq_id: str) -> Optional[CoveragePlaceORM]:
        return session.get(CoveragePlaceORM, fsq_id)
