"""SQLAlchemy ORM models for Stoppclock."""

from datetime import datetime, date
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Text, BigInteger
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class StoredRecord(Base):
    """One key-value entry.  Every timer kind persists a single JSON
    object under its storage key."""

    __tablename__ = "kv_records"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    revision = Column(Integer, nullable=False, default=1)
    writer = Column(String(64), nullable=True)   # tab id of the last writer
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"<StoredRecord key={self.key} rev={self.revision} "
            f"writer={self.writer}>"
        )


class TimerEvent(Base):
    """A start / pause / complete / reset notification from an engine."""

    __tablename__ = "timer_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(32), nullable=False)
    action = Column(String(16), nullable=False)   # start | pause | complete | reset
    timestamp = Column(BigInteger, nullable=False)  # epoch ms
    duration_ms = Column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<TimerEvent kind={self.kind} action={self.action}>"


class DailyStats(Base):
    """Aggregated per-day usage for quick overview lookups."""

    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, unique=True, default=date.today)
    sessions_started = Column(Integer, nullable=False, default=0)
    sessions_completed = Column(Integer, nullable=False, default=0)
    total_time_ms = Column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<DailyStats date={self.date} started={self.sessions_started} "
            f"completed={self.sessions_completed}>"
        )
