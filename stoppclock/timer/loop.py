"""Render loop as a scoped resource.

The loop is acquired when a record starts running and released when it
stops or its owner is torn down.  Acquiring an active loop is a no-op,
so a record never has two loops.  If the callback raises, the error is
logged and the loop released; the exception never reaches Qt.
"""

from __future__ import annotations

import logging
from typing import Callable

from PyQt6.QtCore import QObject, QTimer

logger = logging.getLogger(__name__)


class RenderLoop(QObject):

    def __init__(
        self,
        callback: Callable[[], None],
        interval_ms: int,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._callback = callback
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.run_once)

    @property
    def active(self) -> bool:
        return self._timer.isActive()

    @property
    def interval(self) -> int:
        return self._timer.interval()

    def acquire(self) -> None:
        if not self._timer.isActive():
            self._timer.start()

    def release(self) -> None:
        self._timer.stop()

    def run_once(self) -> None:
        try:
            self._callback()
        except Exception:
            logger.exception("Render loop callback failed; stopping loop")
            self.release()
