"""
Database setup for the places backend.
Provides SQLAlchemy engine/session utilities for the canonical and coverage stores.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from settings import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # check_same_thread=False allows usage across FastAPI threads
        return {"check_same_thread": False, "timeout": settings.DB_STATEMENT_TIMEOUT_MS / 1000.0}
    if url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"}
    return {}


DATABASE_URL = settings.DATABASE_URL

engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db() -> None:
    """Create tables if they don't exist."""
    from repositories import models  # noqa: F401  Ensures models are registered

    Base.metadata.create_all(bind=engine)


def get_session():
    """FastAPI dependency-style session generator."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
