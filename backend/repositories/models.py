"""
SQLAlchemy ORM models for the place stores.

The schemas are owned by the hosted database; these models only map the
columns the search layer reads.
"""
from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, JSON, String

from db import Base


class PlaceORM(Base):
    """Canonical, curated places."""

    __tablename__ = "places"

    id = Column(String, primary_key=True, index=True)
    source_type = Column(String, nullable=True)  # e.g. "fsq" when imported from coverage
    source_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    latitude = Column(Float, nullable=True, index=True)
    longitude = Column(Float, nullable=True, index=True)
    street = Column(String, nullable=True)
    city = Column(String, nullable=True)
    region = Column(String, nullable=True)
    country = Column(String, nullable=True)
    postcode = Column(String, nullable=True)
    tavvy_category = Column(String, nullable=True)
    tavvy_subcategory = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    website = Column(String, nullable=True)
    cover_image_url = Column(String, nullable=True)
    photos = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=True)


class CoveragePlaceORM(Base):
    """Raw third-party places dataset used to fill gaps."""

    __tablename__ = "fsq_places_raw"

    fsq_id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=True)
    latitude = Column(Float, nullable=True, index=True)
    longitude = Column(Float, nullable=True, index=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    region = Column(String, nullable=True)
    country = Column(String, nullable=True)
    postcode = Column(String, nullable=True)
    category_name = Column(String, nullable=True)
    subcategory_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    website = Column(String, nullable=True)
    cover_image_url = Column(String, nullable=True)
    photos = Column(JSON, nullable=True)
    date_closed = Column(String, nullable=True)


class ReviewItemORM(Base):
    """Signal label reference data (near-static)."""

    __tablename__ = "review_items"

    id = Column(String, primary_key=True)
    slug = Column(String, nullable=True)
    label = Column(String, nullable=False)
    signal_type = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class SignalAggregateORM(Base):
    """Per-place tap totals for each signal."""

    __tablename__ = "signal_aggregates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    place_id = Column(String, nullable=False, index=True)
    signal_id = Column(String, nullable=False)
    tap_total = Column(Integer, nullable=False, default=0)
