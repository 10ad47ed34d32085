"""Usage statistics collector.

Engines notify the collector on start / pause / complete / reset.  It
appends a :class:`TimerEvent` row and folds the event into today's
:class:`DailyStats`.  Only the newest ``MAX_EVENTS`` events are kept.

The collector is a fire-and-forget sink: engines guard every call, so a
failure here costs a stat, never a timer.
"""

from __future__ import annotations

import time
from datetime import date, datetime

from .database.db import KeyValueStore
from .database.models import DailyStats, TimerEvent

MAX_EVENTS = 1000
ACTIONS = ("start", "pause", "complete", "reset")


class StatsCollector:
    """SQLAlchemy-backed sink for ``(kind, action, duration_ms)`` events."""

    def __init__(self, store: KeyValueStore, *, today=date.today) -> None:
        self._store = store
        self._today = today

    def track(self, kind: str, action: str, duration_ms: int | None = None) -> None:
        if action not in ACTIONS:
            raise ValueError(f"unknown action {action!r}")
        with self._store.session() as db:
            db.add(TimerEvent(
                kind=kind,
                action=action,
                timestamp=int(time.time() * 1000),
                duration_ms=duration_ms,
            ))

            day = self._today()
            stats = db.query(DailyStats).filter_by(date=day).first()
            if stats is None:
                stats = DailyStats(
                    date=day, sessions_started=0, sessions_completed=0, total_time_ms=0
                )
                db.add(stats)
            if action == "start":
                stats.sessions_started += 1
            elif action == "complete" and duration_ms:
                stats.sessions_completed += 1
                stats.total_time_ms += duration_ms

            db.flush()
            self._trim(db)

    def overview(self) -> dict:
        """All-time and today's totals."""
        with self._store.session() as db:
            days = db.query(DailyStats).all()
            today = next((d for d in days if d.date == self._today()), None)
            return {
                "all_time_sessions": sum(d.sessions_started for d in days),
                "all_time_completed": sum(d.sessions_completed for d in days),
                "all_time_ms": sum(d.total_time_ms for d in days),
                "today_sessions": today.sessions_started if today else 0,
                "today_completed": today.sessions_completed if today else 0,
                "today_ms": today.total_time_ms if today else 0,
                "events": db.query(TimerEvent).count(),
                "generated_at": datetime.now(),
            }

    @staticmethod
    def _trim(db) -> None:
        count = db.query(TimerEvent).count()
        if count <= MAX_EVENTS:
            return
        stale = (
            db.query(TimerEvent.id)
            .order_by(TimerEvent.id.asc())
            .limit(count - MAX_EVENTS)
            .all()
        )
        db.query(TimerEvent).filter(
            TimerEvent.id.in_([row_id for (row_id,) in stale])
        ).delete(synchronize_session=False)
