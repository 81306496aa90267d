"""
Process-wide read-through cache for signal label reference data.

The `review_items` table is near-static, so it is loaded once on first use and
kept for the life of the process. Concurrent first callers share one load.
A failed load is not retried until `retry_after` seconds have passed, so a
down database costs one query per window rather than one per signal lookup.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Iterable, Optional

from domain.models import SignalLabel

logger = logging.getLogger(__name__)

SignalLoader = Callable[[], Iterable[SignalLabel]]

LOAD_RETRY_AFTER_S = 30.0


def fallback_label(signal_id: str) -> str:
    """Turn an id like "quality_food" into "Quality Food"."""
    words = [w for w in str(signal_id).replace("-", "_").split("_") if w]
    return " ".join(w[:1].upper() + w[1:] for w in words) or str(signal_id)


class SignalLabelCache:
    def __init__(
        self,
        loader: SignalLoader,
        retry_after: float = LOAD_RETRY_AFTER_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._retry_after = retry_after
        self._clock = clock
        self._labels: Dict[str, SignalLabel] = {}
        self._loaded = False
        self._failed_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded or self._backing_off():
                return
            try:
                items = list(self._loader())
            except Exception as exc:
                # Stay unpopulated; fallback labels until the retry window passes.
                self._failed_at = self._clock()
                logger.warning(
                    "Signal label cache load failed, retrying in %.0fs: %s", self._retry_after, exc
                )
                return
            self._failed_at = None
            self._labels = {item.id: item for item in items}
            self._loaded = True
            logger.debug("Signal label cache populated with %d labels", len(self._labels))

    def _backing_off(self) -> bool:
        if self._failed_at is None:
            return False
        return self._clock() - self._failed_at < self._retry_after

    def get(self, signal_id: str) -> Optional[SignalLabel]:
        self.ensure_loaded()
        return self._labels.get(signal_id)

    def label_for(self, signal_id: str) -> str:
        item = self.get(signal_id)
        if item and item.label:
            return item.label
        return fallback_label(signal_id)

    def reset(self) -> None:
        with self._lock:
            self._labels = {}
            self._loaded = False
            self._failed_at = None


def _load_from_db() -> list[SignalLabel]:
    from db import SessionLocal
    from repositories.signals import SignalsRepository

    with SessionLocal() as session:
        return SignalsRepository().list_active_labels(session)


_default_signal_cache: Optional[SignalLabelCache] = None


def get_default_signal_cache() -> SignalLabelCache:
    global _default_signal_cache
    if _default_signal_cache is None:
        _default_signal_cache = SignalLabelCache(_load_from_db)
    return _default_signal_cache
