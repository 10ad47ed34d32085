"""Sound and flash effects for timer signals.

Effects are gated by the record's ``signal`` preferences and by the
global settings.  A failing effect is skipped; it never interrupts the
engine.
"""

from __future__ import annotations

import logging

from PyQt6.QtCore import QObject, pyqtSignal

from ..errors import EffectUnavailable
from .policies import Completion, KindPolicy
from .records import TimerRecord

logger = logging.getLogger(__name__)

# (duration_ms, frequency_hz, count)
WARNING_BEEP = (140, 1200, 1)
TICK_BEEP = (60, 1000, 1)
COMPLETE_BEEP = (600, 660, 3)
CYCLE_BEEP = (200, 880, 1)

# (duration_ms, color)
WARNING_FLASH = (250, "#F59E0B")
COMPLETE_FLASH = (900, "#EF4444")
CYCLE_FLASH = (400, "#10B981")


class TimerEffects(QObject):
    """Turns signal events into beeps and flash requests.

    ``player`` is anything with ``beep(duration_ms, frequency, count)``,
    normally a :class:`stoppclock.audio.BeepPlayer`.  Flashes are
    emitted as ``flash_requested(duration_ms, color)`` for the UI.
    """

    flash_requested = pyqtSignal(int, str)

    def __init__(
        self,
        player=None,
        parent: QObject | None = None,
        *,
        sound_enabled: bool = True,
        flash_enabled: bool = True,
    ) -> None:
        super().__init__(parent)
        self._player = player
        self.sound_enabled = sound_enabled
        self.flash_enabled = flash_enabled

    def warning(self, record: TimerRecord) -> None:
        self._flash(record, *WARNING_FLASH)
        self._beep(record, *WARNING_BEEP)

    def tick(self, record: TimerRecord) -> None:
        self._beep(record, *TICK_BEEP)

    def completed(self, record: TimerRecord, policy: KindPolicy) -> None:
        if policy.completion is Completion.REARM:
            self._flash(record, *CYCLE_FLASH)
            self._beep(record, *CYCLE_BEEP)
        else:
            self._flash(record, *COMPLETE_FLASH)
            self._beep(record, *COMPLETE_BEEP)

    # ── internal ──────────────────────────────────────────────────────

    def _beep(self, record: TimerRecord, duration_ms: int, frequency: int, count: int) -> None:
        if not (self.sound_enabled and record.signal.sound) or self._player is None:
            return
        try:
            self._player.beep(duration_ms, frequency, count)
        except EffectUnavailable as exc:
            logger.debug("Skipping sound: %s", exc)
        except Exception:
            logger.debug("Sound backend failed", exc_info=True)

    def _flash(self, record: TimerRecord, duration_ms: int, color: str) -> None:
        if not (self.flash_enabled and record.signal.flash):
            return
        self.flash_requested.emit(duration_ms, color)
