"""Database package."""

from .db import KeyValueStore, DEFAULT_URL
from .models import StoredRecord, TimerEvent, DailyStats

__all__ = ["KeyValueStore", "DEFAULT_URL", "StoredRecord", "TimerEvent", "DailyStats"]
