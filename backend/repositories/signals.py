"""
Signal repository backed by SQLAlchemy.
"""
from typing import Dict, List, Sequence

from sqlalchemy.orm import Session

from domain.models import SignalLabel
from repositories.models import ReviewItemORM, SignalAggregateORM


class SignalsRepository:
    """Read-only access to signal labels and per-place tap totals."""

    def list_active_labels(self, session: Session) -> List[SignalLabel]:
        rows = session.query(ReviewItemORM).filter(ReviewItemORM.is_active.is_(True)).all()
        return [
            SignalLabel(id=r.id, label=r.label, slug=r.slug, signal_type=r.signal_type)
            for r in rows
        ]

    def top_signal_ids(
        self, session: Session, place_ids: Sequence[str], per_place: int = 3
    ) -> Dict[str, List[str]]:
        """Signal ids per place, most-tapped first, at most `per_place` each."""
        if not place_ids:
            return {}
        rows = (
            session.query(SignalAggregateORM)
            .filter(
                SignalAggregateORM.place_id.in_(list(place_ids)),
                SignalAggregateORM.tap_total > 0,
            )
            .order_by(
                SignalAggregateORM.place_id,
                SignalAggregateORM.tap_total.desc(),
                SignalAggregateORM.signal_id,
            )
            .all()
        )
        result: Dict[str, List[str]] = {}
        for row in rows:
            ids = result.setdefault(row.place_id, [])
            if len(ids) < per_place:
                ids.append(row.signal_id)
        return result
