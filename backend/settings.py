import os
from pathlib import Path

# Basic settings helper to read environment configuration.

BACKEND_ROOT = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    return int(val)


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    return float(val)


class Settings:
    def __init__(self) -> None:
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL", f"sqlite:///{BACKEND_ROOT / 'places.db'}"
        )
        self.DB_STATEMENT_TIMEOUT_MS: int = _as_int(os.getenv("DB_STATEMENT_TIMEOUT_MS"), 5000)

        self.TYPESENSE_HOST: str = os.getenv("TYPESENSE_HOST", "localhost")
        self.TYPESENSE_PORT: str = os.getenv("TYPESENSE_PORT", "8108")
        self.TYPESENSE_PROTOCOL: str = os.getenv("TYPESENSE_PROTOCOL", "http")
        self.TYPESENSE_API_KEY: str = os.getenv("TYPESENSE_API_KEY", "")
        self.TYPESENSE_COLLECTION: str = os.getenv("TYPESENSE_COLLECTION", "places")
        self.TYPESENSE_TIMEOUT_SECONDS: float = _as_float(os.getenv("TYPESENSE_TIMEOUT_SECONDS"), 5.0)

        self.PLACES_FETCH_LIMIT: int = _as_int(os.getenv("PLACES_FETCH_LIMIT"), 150)
        self.PLACES_FALLBACK_THRESHOLD: int = _as_int(os.getenv("PLACES_FALLBACK_THRESHOLD"), 40)
        self.DEDUPE_PROXIMITY_M: float = _as_float(os.getenv("DEDUPE_PROXIMITY_M"), 100.0)
        self.PLACES_PARALLEL_FETCH: bool = _as_bool(os.getenv("PLACES_PARALLEL_FETCH"), False)

        self.SEARCH_DEFAULT_LIMIT: int = _as_int(os.getenv("SEARCH_DEFAULT_LIMIT"), 20)
        self.SUGGESTIONS_DEFAULT_LIMIT: int = _as_int(os.getenv("SUGGESTIONS_DEFAULT_LIMIT"), 8)
        self.SIGNALS_PER_PLACE: int = _as_int(os.getenv("SIGNALS_PER_PLACE"), 3)


settings = Settings()
