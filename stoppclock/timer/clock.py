"""Drift-corrected clock.

The displayed value is always derived from the stored anchor and the
current wall-clock time, never from a counter decremented per tick.
A late or skipped tick therefore cannot accumulate error: whatever the
scheduler does, :func:`display_value` is exact as of ``now``.

All functions are pure and return a new :class:`TimerRecord`.
"""

from __future__ import annotations

import time
from dataclasses import replace

from .policies import KindPolicy
from .records import TimerMode, TimerRecord


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# ── reading ──────────────────────────────────────────────────────────────


def side_value(record: TimerRecord, side: int, now: int) -> int:
    """Remaining time of one dual-clock side."""
    budget = record.sides[side]
    if record.running and record.active_side == side and record.anchor is not None:
        return clamp(record.anchor - now, 0, budget)
    return budget


def display_value(record: TimerRecord, now: int) -> int:
    """Remaining (countdown-like) or elapsed (count-up) milliseconds."""
    if record.mode is TimerMode.COUNT_UP:
        if record.running and record.anchor is not None:
            return max(0, record.elapsed_ms + (now - record.anchor))
        return record.elapsed_ms

    if record.mode is TimerMode.DUAL:
        side = record.active_side if record.active_side is not None else 0
        return side_value(record, side, now)

    if record.running and record.anchor is not None:
        return clamp(record.anchor - now, 0, record.duration_ms or 0)
    return record.remaining_ms


def progress(record: TimerRecord, now: int) -> float:
    """0.0 → 1.0 through the current countdown (0.0 for count-up)."""
    total = record.duration_ms or 0
    if record.mode is TimerMode.COUNT_UP or total <= 0:
        return 0.0
    done = total - display_value(record, now)
    return max(0.0, min(1.0, done / total))


# ── run / stop ───────────────────────────────────────────────────────────


def start(record: TimerRecord, now: int) -> TimerRecord:
    """Begin a run segment, continuing from the current snapshot."""
    if record.running:
        return record

    if record.mode is TimerMode.COUNT_UP:
        return replace(record, running=True, anchor=now)

    if record.mode is TimerMode.DUAL:
        if record.expired_side is not None:
            return record
        side = record.active_side if record.active_side is not None else 0
        return replace(
            record,
            running=True,
            active_side=side,
            anchor=now + record.sides[side],
        )

    remaining = record.remaining_ms
    if remaining <= 0:
        # Starting an expired countdown runs it again from the top.
        remaining = record.duration_ms or 0
    return replace(
        record,
        running=True,
        remaining_ms=remaining,
        anchor=now + remaining,
    )


def pause(record: TimerRecord, now: int) -> TimerRecord:
    """Snapshot the live value and drop the anchor.  Idempotent."""
    if not record.running:
        return record

    value = display_value(record, now)
    if record.mode is TimerMode.COUNT_UP:
        return replace(record, running=False, anchor=None, elapsed_ms=value)

    if record.mode is TimerMode.DUAL:
        sides = list(record.sides)
        sides[record.active_side or 0] = value
        return replace(record, running=False, anchor=None, sides=tuple(sides))

    return replace(record, running=False, anchor=None, remaining_ms=value)


def reset(record: TimerRecord) -> TimerRecord:
    """Stop and restore the configured starting point."""
    if record.mode is TimerMode.COUNT_UP:
        return replace(record, running=False, anchor=None, elapsed_ms=0, laps=())

    budget = record.duration_ms or 0
    if record.mode is TimerMode.DUAL:
        return replace(
            record,
            running=False,
            anchor=None,
            sides=(budget, budget),
            active_side=None,
            moves=(0, 0),
            expired_side=None,
        )

    changes = dict(running=False, anchor=None, remaining_ms=budget)
    if record.mode is TimerMode.INTERVAL:
        changes["cycle_count"] = 0
    return replace(record, **changes)


# ── configuration ────────────────────────────────────────────────────────


def adjust(record: TimerRecord, policy: KindPolicy, delta_ms: int, now: int) -> TimerRecord:
    """Add (or subtract) time.  Out-of-range results are clamped."""
    if record.mode not in (TimerMode.COUNTDOWN, TimerMode.INTERVAL):
        return record

    if record.running:
        value = clamp(display_value(record, now) + delta_ms, 0, policy.max_duration_ms)
        return replace(
            record,
            remaining_ms=value,
            anchor=now + value,
            duration_ms=max(record.duration_ms or 0, value),
        )

    value = policy.clamp_duration(record.remaining_ms + delta_ms)
    return replace(record, duration_ms=value, remaining_ms=value)


def set_duration(record: TimerRecord, policy: KindPolicy, duration_ms: int) -> TimerRecord:
    """Configure a new duration / interval / per-side budget and stop."""
    if record.mode is TimerMode.COUNT_UP:
        return record
    value = policy.clamp_duration(duration_ms)
    return reset(replace(record, duration_ms=value))


def lap(record: TimerRecord, now: int) -> TimerRecord:
    """Append the current elapsed total to the lap list (count-up only)."""
    if record.mode is not TimerMode.COUNT_UP:
        return record
    return replace(record, laps=record.laps + (display_value(record, now),))


def press(record: TimerRecord, side: int, now: int) -> TimerRecord:
    """Dual clock: *side* finished its move and hands the clock over.

    Pressing while stopped starts the pressed side. While running, only
    the active side can press; other presses are ignored.
    """
    if record.mode is not TimerMode.DUAL or record.expired_side is not None:
        return record
    other = 1 - side

    if not record.running:
        return replace(
            record,
            running=True,
            active_side=side,
            anchor=now + record.sides[side],
        )

    if record.active_side != side:
        return record

    sides = list(record.sides)
    sides[side] = side_value(record, side, now)
    moves = list(record.moves)
    moves[side] += 1
    return replace(
        record,
        sides=tuple(sides),
        moves=tuple(moves),
        active_side=other,
        anchor=now + sides[other],
    )
