"""In-memory timer state.

A :class:`TimerRecord` is immutable; every operation in
:mod:`stoppclock.timer.clock` returns a new record.  Which of
``remaining_ms`` / ``elapsed_ms`` and ``anchor`` is authoritative is
decided by ``running``:

running=False   the snapshot (``remaining_ms``, ``elapsed_ms`` or
                ``sides``) is the truth and ``anchor`` is None.
running=True    ``anchor`` is the truth: a deadline for countdown-like
                modes, an origin for count-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TimerMode(Enum):
    COUNTDOWN = "countdown"
    COUNT_UP = "count-up"
    INTERVAL = "repeating-interval"
    DUAL = "dual-clock"
    MULTI = "multi"  # container of named countdown sub-timers


COUNTDOWN_LIKE = (TimerMode.COUNTDOWN, TimerMode.INTERVAL, TimerMode.DUAL)


@dataclass(frozen=True)
class SignalPrefs:
    sound: bool = True
    flash: bool = True


SIGNALS_ON = SignalPrefs(sound=True, flash=True)
SIGNALS_OFF = SignalPrefs(sound=False, flash=False)


@dataclass(frozen=True)
class TimerRecord:
    kind: str
    mode: TimerMode
    duration_ms: int | None = None       # duration, interval or per-side budget
    remaining_ms: int = 0
    elapsed_ms: int = 0
    running: bool = False
    anchor: int | None = None            # endAt / startedAt, epoch ms
    warn_at_ms: int | None = None
    signal: SignalPrefs = SIGNALS_ON

    # count-up
    laps: tuple[int, ...] = ()

    # repeating interval
    cycle_count: int = 0

    # dual clock (index 0 = player 1)
    sides: tuple[int, int] = (0, 0)
    active_side: int | None = None
    moves: tuple[int, int] = (0, 0)
    expired_side: int | None = None

    version: int = 1

    @property
    def countdown_like(self) -> bool:
        return self.mode in COUNTDOWN_LIKE

    @property
    def expired(self) -> bool:
        """True once a stopped countdown-like timer has run out."""
        if self.running:
            return False
        if self.mode is TimerMode.DUAL:
            return self.expired_side is not None
        if self.mode in (TimerMode.COUNTDOWN, TimerMode.INTERVAL):
            return self.remaining_ms <= 0
        return False
