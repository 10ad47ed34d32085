"""Pinned timers board: up to three live mini-timers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from ..database.db import KeyValueStore
from . import clock
from .adapter import PinnedTimer, PinnedTimerHandle
from .persistence import RecordStore
from .sync import POLL_INTERVAL_MS

MAX_PINNED = 3


@dataclass(frozen=True)
class PinnedCard:
    id: str
    name: str
    display: str
    status: str


class PinnedTimersBoard(QObject):
    """Holds pinned handles and refreshes their cards on a poll.

    Signals
    -------
    changed()
        The handle list or any card's display/status changed.
    """

    changed = pyqtSignal()

    def __init__(
        self,
        store: KeyValueStore,
        parent: QObject | None = None,
        *,
        tab_id: str | None = None,
        clock_fn: Callable[[], int] = clock.now_ms,
        poll_interval_ms: int = POLL_INTERVAL_MS,
    ) -> None:
        super().__init__(parent)
        self._records = RecordStore(store, writer=tab_id or uuid.uuid4().hex[:12])
        self._clock = clock_fn
        self._timers: list[PinnedTimer] = []
        self._cards: list[PinnedCard] = []
        self._timer = QTimer(self)
        self._timer.setInterval(poll_interval_ms)
        self._timer.timeout.connect(self.refresh)

    @property
    def handles(self) -> list[PinnedTimerHandle]:
        return [t.handle for t in self._timers]

    @property
    def cards(self) -> list[PinnedCard]:
        return list(self._cards)

    def timer(self, handle_id: str) -> PinnedTimer | None:
        return next((t for t in self._timers if t.handle.id == handle_id), None)

    def add(self, handle: PinnedTimerHandle) -> bool:
        """Pin *handle*.  False when the board is full or it is pinned."""
        if len(self._timers) >= MAX_PINNED or self.timer(handle.id) is not None:
            return False
        self._timers.append(PinnedTimer(self._records, handle, clock_fn=self._clock))
        self.refresh(force=True)
        return True

    def remove(self, handle_id: str) -> None:
        before = len(self._timers)
        self._timers = [t for t in self._timers if t.handle.id != handle_id]
        if len(self._timers) != before:
            self.refresh(force=True)

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def refresh(self, force: bool = False) -> None:
        cards = []
        for pinned in self._timers:
            display, status = pinned.describe(pinned.refresh())
            cards.append(PinnedCard(
                id=pinned.handle.id,
                name=pinned.handle.display_name,
                display=display,
                status=status,
            ))
        if force or cards != self._cards:
            self._cards = cards
            self.changed.emit()
