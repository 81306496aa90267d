import sys
from pathlib import Path

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from db import Base  # noqa: E402
from repositories import models  # noqa: E402,F401  Ensures models are registered


def _memory_engine():
    # StaticPool keeps one connection so every session sees the same in-memory DB
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory database with all place tables."""
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def broken_session_factory():
    """Session factory whose database has no tables, so every query fails."""
    engine = _memory_engine()
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()
