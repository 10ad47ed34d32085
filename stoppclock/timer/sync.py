"""Cross-tab synchronization.

Two sources of truth about foreign writes to a key:

* the store's ``changed`` signal (the native notification), and
* a low-frequency poll of the key's revision, for writers that live in
  another process or otherwise bypass the signal.

Both funnel into :meth:`StorageWatcher.poll`, which compares the
stored ``(revision, writer)`` stamp with the last one seen.  Writes
carrying this tab's id are recorded as seen but not reported.  A
failed read is skipped; it is never taken to mean the key was deleted.
"""

from __future__ import annotations

import logging

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..database.db import KeyValueStore
from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 200


class StorageWatcher(QObject):
    """Watches one key for writes made by other tabs.

    Signals
    -------
    changed(key: str)
        A different tab wrote (or deleted) the key.
    """

    changed = pyqtSignal(str)

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        *,
        tab_id: str,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._store = store
        self._key = key
        self._tab_id = tab_id
        self._seen: int | None = None
        self._watching = False
        self._timer = QTimer(self)
        self._timer.setInterval(poll_interval_ms)
        self._timer.timeout.connect(self.poll)

    @property
    def key(self) -> str:
        return self._key

    @property
    def watching(self) -> bool:
        return self._watching

    def start(self) -> None:
        if self._watching:
            return
        self._watching = True
        try:
            self._seen = self._store.stamp(self._key)[0]
        except StorageUnavailable:
            self._seen = None
        self._store.changed.connect(self._on_store_changed)
        self._timer.start()

    def stop(self) -> None:
        if not self._watching:
            return
        self._watching = False
        self._timer.stop()
        self._store.changed.disconnect(self._on_store_changed)

    def mark_seen(self, revision: int) -> None:
        """Record a revision this tab wrote itself."""
        if self._seen is None or revision > self._seen:
            self._seen = revision

    def invalidate(self) -> None:
        """Forget the last seen revision; the next poll reports the key again."""
        self._seen = None

    def poll(self) -> bool:
        """Check the key now.  Returns True if a foreign change was seen."""
        try:
            revision, writer = self._store.stamp(self._key)
        except StorageUnavailable as exc:
            logger.debug("Skipping poll of %s: %s", self._key, exc)
            return False
        if revision == self._seen:
            return False
        self._seen = revision
        if writer is not None and writer == self._tab_id:
            return False
        self.changed.emit(self._key)
        return True

    def _on_store_changed(self, key: str, writer: str) -> None:
        if key != self._key:
            return
        self.poll()
