"""Warning / completion state machine.

Per run segment::

    idle ──(remaining ≤ warnAt)──▶ warned ──(remaining == 0)──▶ completed

Each arrow fires its signal once.  A warned timer whose remaining time
goes back above the threshold (time was added) returns to idle, so the
warning can fire again on the next crossing.  Independently, the last
few seconds produce one tick per whole second, deduplicated by the
last second ticked.  :meth:`SignalTracker.reset` starts a new segment;
the engine calls it whenever ``running`` toggles.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .policies import Completion, KindPolicy
from .records import TimerMode, TimerRecord

LAST_SECONDS_WINDOW_MS = 10_000


class AlarmPhase(Enum):
    IDLE = "idle"
    WARNED = "warned"
    COMPLETED = "completed"


class SignalKind(Enum):
    WARNING = "warning"
    TICK = "tick"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SignalEvent:
    kind: SignalKind
    value: int   # remaining ms for WARNING, whole seconds for TICK


class SignalTracker:
    """One-shot signal bookkeeping for a single record."""

    def __init__(self, last_seconds_window_ms: int = LAST_SECONDS_WINDOW_MS) -> None:
        self._window = last_seconds_window_ms
        self._phase = AlarmPhase.IDLE
        self._last_tick: int | None = None

    @property
    def phase(self) -> AlarmPhase:
        return self._phase

    @property
    def last_tick(self) -> int | None:
        return self._last_tick

    def reset(self) -> None:
        self._phase = AlarmPhase.IDLE
        self._last_tick = None

    def observe(self, record: TimerRecord, value: int, policy: KindPolicy) -> list[SignalEvent]:
        """Signals due now that *record* shows *value* ms."""
        if not record.running or not record.countdown_like:
            return []
        if self._phase is AlarmPhase.COMPLETED:
            return []

        if value <= 0:
            self._phase = AlarmPhase.COMPLETED
            return [SignalEvent(SignalKind.COMPLETE, 0)]

        events: list[SignalEvent] = []
        warn_at = record.warn_at_ms
        if warn_at is not None and value <= warn_at:
            if self._phase is AlarmPhase.IDLE:
                self._phase = AlarmPhase.WARNED
                events.append(SignalEvent(SignalKind.WARNING, value))
        elif self._phase is AlarmPhase.WARNED:
            self._phase = AlarmPhase.IDLE

        if policy.last_seconds and value <= self._window:
            second = -(-value // 1000)
            if second != self._last_tick:
                self._last_tick = second
                events.append(SignalEvent(SignalKind.TICK, second))
        return events


def apply_completion(record: TimerRecord, policy: KindPolicy, now: int) -> TimerRecord:
    """The record after it reached zero, per the kind's completion policy."""
    if policy.completion is Completion.REARM:
        interval = record.duration_ms or 0
        return replace(
            record,
            running=True,
            remaining_ms=interval,
            anchor=now + interval,
            cycle_count=record.cycle_count + 1,
        )

    if record.mode is TimerMode.DUAL:
        side = record.active_side if record.active_side is not None else 0
        sides = list(record.sides)
        sides[side] = 0
        return replace(
            record,
            running=False,
            anchor=None,
            sides=tuple(sides),
            expired_side=side,
        )

    return replace(record, running=False, remaining_ms=0, anchor=None)
