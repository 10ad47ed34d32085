"""Key-value store on SQLite, with change notification.

The store plays the part of browser storage: one JSON string per key,
last write wins.  Each write bumps a per-key ``revision`` and records
the id of the writing tab so watchers can tell their own writes apart
from foreign ones.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from PyQt6.QtCore import QObject, pyqtSignal
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session as OrmSession
from sqlalchemy.pool import StaticPool

from ..errors import StorageUnavailable
from .models import Base, StoredRecord

logger = logging.getLogger(__name__)

# ── paths ────────────────────────────────────────────────────────────────────

APP_SUPPORT_DIR = Path.home() / "Library" / "Application Support" / "Stoppclock"
DB_PATH = APP_SUPPORT_DIR / "stoppclock.db"
DEFAULT_URL = f"sqlite:///{DB_PATH}"


def _make_engine(url: str):
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty DB.
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    if url == DEFAULT_URL:
        APP_SUPPORT_DIR.mkdir(parents=True, exist_ok=True)
    return create_engine(
        url,
        connect_args={"check_same_thread": False},
        echo=False,
    )


def _run_migrations(engine) -> None:
    """Schema migrations for existing databases.

    Runs after ``create_all`` so new columns exist in fresh installs.
    Each migration is idempotent.
    """
    insp = inspect(engine)
    table_names = set(insp.get_table_names())

    with engine.connect() as conn:
        # ── M1: add writer column to kv_records ──────────────────────────
        if "kv_records" in table_names:
            columns = {c["name"] for c in insp.get_columns("kv_records")}
            if "writer" not in columns:
                conn.execute(text(
                    "ALTER TABLE kv_records ADD COLUMN writer VARCHAR(64)"
                ))
        conn.commit()


class KeyValueStore(QObject):
    """Owns one SQLAlchemy engine and its session factory.

    Signals
    -------
    changed(key: str, writer: str)
        Emitted after every successful write or delete.  ``writer`` is
        the tab id passed to :meth:`set` (empty string when anonymous).
    """

    changed = pyqtSignal(str, str)

    def __init__(self, url: str = DEFAULT_URL, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._url = url
        self._engine = _make_engine(url)
        self._factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    @property
    def url(self) -> str:
        return self._url

    def init(self) -> "KeyValueStore":
        """Create tables and run migrations.  Returns ``self``."""
        try:
            Base.metadata.create_all(self._engine)
            _run_migrations(self._engine)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        return self

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def session(self):
        """Yield a SQLAlchemy session; commit on success, rollback on error."""
        session: OrmSession = self._factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── key-value API ──────────────────────────────────────────────────

    def get(self, key: str) -> str | None:
        try:
            with self.session() as db:
                row = db.get(StoredRecord, key)
                return row.value if row is not None else None
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    def stamp(self, key: str) -> tuple[int, str | None]:
        """``(revision, writer)`` of *key*; ``(0, None)`` when absent."""
        try:
            with self.session() as db:
                row = db.get(StoredRecord, key)
                if row is None:
                    return (0, None)
                return (row.revision, row.writer)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    def set(self, key: str, value: str, *, writer: str | None = None) -> int:
        """Store *value* under *key* and return the new revision."""
        try:
            with self.session() as db:
                row = db.get(StoredRecord, key)
                if row is None:
                    row = StoredRecord(key=key, value=value, revision=1)
                    db.add(row)
                else:
                    row.value = value
                    row.revision += 1
                row.writer = writer
                row.updated_at = datetime.utcnow()
                db.flush()
                revision = row.revision
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        self.changed.emit(key, writer or "")
        return revision

    def delete(self, key: str, *, writer: str | None = None) -> None:
        try:
            with self.session() as db:
                row = db.get(StoredRecord, key)
                if row is None:
                    return
                db.delete(row)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc
        self.changed.emit(key, writer or "")

    def keys(self, prefix: str = "") -> list[str]:
        try:
            with self.session() as db:
                query = db.query(StoredRecord.key)
                if prefix:
                    query = query.filter(StoredRecord.key.startswith(prefix))
                return sorted(k for (k,) in query.all())
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    def clear(self) -> None:
        """Drop every key (the equivalent of clearing browser storage)."""
        for key in self.keys():
            self.delete(key)
