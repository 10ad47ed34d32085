"""Loading and saving timer records through the key-value store.

``RecordStore.load`` never raises by default: missing, malformed or
version-mismatched data yields the kind's default record.  ``save``
never raises either; when the store is unavailable the record is kept
in an in-memory fallback, read back only while the store stays
unreadable.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..database.db import KeyValueStore
from ..errors import MalformedRecord, StorageUnavailable
from .codec import decode, default_record, encode
from .policies import KindPolicy, policy_for_key
from .records import TimerRecord

logger = logging.getLogger(__name__)

DEBOUNCE_MS = 150


class RecordStore:
    """JSON records on top of a :class:`KeyValueStore`.

    ``writer`` is the id of the tab doing the writing; it is stored
    alongside every write so watchers can skip their own changes.
    """

    def __init__(self, store: KeyValueStore, *, writer: str | None = None) -> None:
        self._store = store
        self._writer = writer
        self._fallback: dict[str, str] = {}
        self._warned = False

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def writer(self) -> str | None:
        return self._writer

    @property
    def degraded(self) -> bool:
        """True once the store has failed and the fallback is in use."""
        return self._warned

    # ── raw JSON ───────────────────────────────────────────────────────

    def load_json(self, key: str, *, strict: bool = False) -> Any:
        """Parsed JSON under *key*, or None when absent or unparseable.

        The store is read first.  The in-memory fallback only stands in
        when the read itself fails.  With ``strict=True`` that failure is
        raised as :class:`StorageUnavailable` instead, so callers can tell
        "unreadable right now" from "absent".
        """
        try:
            raw = self._store.get(key)
        except StorageUnavailable as exc:
            if strict:
                raise
            self._warn(exc)
            raw = self._fallback.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.debug("Unparseable JSON under %s", key)
            return None

    def save_json(self, key: str, data: Any) -> int | None:
        """Write *data*; returns the new revision, or None on fallback."""
        raw = json.dumps(data, separators=(",", ":"))
        try:
            revision = self._store.set(key, raw, writer=self._writer)
        except StorageUnavailable as exc:
            self._warn(exc)
            self._fallback[key] = raw
            return None
        self._fallback.pop(key, None)
        return revision

    # ── records ────────────────────────────────────────────────────────

    def load(
        self, key: str, policy: KindPolicy | None = None, *, strict: bool = False
    ) -> TimerRecord:
        policy = policy or policy_for_key(key)
        if policy is None:
            raise KeyError(f"no timer kind is stored under {key!r}")
        data = self.load_json(key, strict=strict)
        if data is None:
            return default_record(policy, first_run=True)
        try:
            return decode(data, policy)
        except MalformedRecord as exc:
            logger.debug("Replacing malformed record %s with defaults: %s", key, exc)
            return default_record(policy, first_run=True)

    def save(self, key: str, record: TimerRecord, policy: KindPolicy | None = None) -> int | None:
        policy = policy or policy_for_key(key)
        if policy is None:
            raise KeyError(f"no timer kind is stored under {key!r}")
        return self.save_json(key, encode(record, policy))

    def _warn(self, exc: Exception) -> None:
        if not self._warned:
            self._warned = True
            logger.warning(
                "Timer storage unavailable, keeping state in memory: %s", exc
            )


class DebouncedWriter(QObject):
    """Coalesces rapid changes into one write ~150 ms after the last one.

    A newer :meth:`schedule` call supersedes the pending value entirely.

    Signals
    -------
    written(revision: int)
        Emitted after a pending value reached the store.
    """

    written = pyqtSignal(int)

    def __init__(
        self,
        save: Callable[[Any], int | None],
        delay_ms: int = DEBOUNCE_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._save = save
        self._pending: Any = None
        self._has_pending = False
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(delay_ms)
        self._timer.timeout.connect(self.flush)

    @property
    def pending(self) -> bool:
        return self._has_pending

    def schedule(self, value: Any) -> None:
        self._pending = value
        self._has_pending = True
        self._timer.start()  # restarts the countdown

    def cancel(self) -> None:
        self._timer.stop()
        self._pending = None
        self._has_pending = False

    def flush(self) -> None:
        """Write the pending value now, if any."""
        self._timer.stop()
        if not self._has_pending:
            return
        value = self._pending
        self._pending = None
        self._has_pending = False
        revision = self._save(value)
        if revision is not None:
            self.written.emit(revision)
