"""Versioned JSON shape of a timer record.

``decode`` validates and clamps every field; it raises
:class:`MalformedRecord` for data it cannot use at all (not an object,
wrong version, wrong mode).  Callers that must never fail go through
:class:`stoppclock.timer.persistence.RecordStore`, which turns that
into the kind's default record.

Legacy records written before the ``mode`` tag existed are recognised
by their field names once, in :func:`migrate_legacy`.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from ..errors import MalformedRecord
from .policies import KindPolicy
from .records import SIGNALS_OFF, SIGNALS_ON, SignalPrefs, TimerMode, TimerRecord

logger = logging.getLogger(__name__)

_PLAYER_FIELDS = (("player1Ms", "player2Ms"), ("player1Time", "player2Time"))


# ── field coercion ───────────────────────────────────────────────────────


def as_int(value: Any, default: int | None) -> int | None:
    """Coerce a JSON number to int; anything else yields *default*."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return default


def _clamped(value: Any, default: int, low: int, high: int) -> int:
    number = as_int(value, default)
    return max(low, min(high, number))


def _signal(data: dict, fallback: SignalPrefs) -> SignalPrefs:
    raw = data.get("signal")
    if not isinstance(raw, dict):
        return fallback
    return SignalPrefs(sound=bool(raw.get("sound")), flash=bool(raw.get("flash")))


def _side(value: Any) -> int | None:
    """JSON player number (1|2) → side index (0|1)."""
    number = as_int(value, None)
    if number in (1, 2):
        return number - 1
    return None


# ── legacy migration ─────────────────────────────────────────────────────


def sniff_mode(data: dict) -> TimerMode | None:
    """Guess the mode of an untagged record from its field names."""
    if "timers" in data:
        return TimerMode.MULTI
    if "intervalMs" in data:
        return TimerMode.INTERVAL
    if any(p1 in data for p1, _ in _PLAYER_FIELDS):
        return TimerMode.DUAL
    if "elapsedMs" in data or "startedAt" in data:
        return TimerMode.COUNT_UP
    if "remainingMs" in data or "endAt" in data:
        return TimerMode.COUNTDOWN
    return None


def migrate_legacy(data: dict) -> dict:
    """Return *data* with an explicit ``mode`` tag (unchanged if tagged)."""
    if "mode" in data:
        return data
    mode = sniff_mode(data)
    if mode is None:
        return data
    migrated = dict(data)
    migrated["mode"] = mode.value
    if mode is TimerMode.DUAL and "player1Time" in data:
        migrated.setdefault("player1Ms", data.get("player1Time"))
        migrated.setdefault("player2Ms", data.get("player2Time"))
        active = _side(data.get("activePlayer"))
        started = as_int(data.get("startedAt"), None)
        if "running" not in data and active is not None and started is not None:
            # a side ran from startedAt with player{n}Time left on its clock
            left = as_int(migrated.get(("player1Ms", "player2Ms")[active]), 0) or 0
            migrated["running"] = True
            migrated.setdefault("endAt", started + left)
    return migrated


def record_mode(data: dict) -> TimerMode | None:
    try:
        return TimerMode(data.get("mode"))
    except ValueError:
        return None


# ── defaults ─────────────────────────────────────────────────────────────


def default_record(policy: KindPolicy, *, first_run: bool = True) -> TimerRecord:
    """Fresh record for *policy*.

    First-run records have sound and flash on; records filled in from
    partial data (imports, presets) start with both off.
    """
    signal = SIGNALS_ON if first_run else SIGNALS_OFF
    budget = policy.default_duration_ms
    if policy.mode is TimerMode.COUNT_UP:
        return TimerRecord(
            kind=policy.kind,
            mode=policy.mode,
            signal=signal,
            version=policy.schema_version,
        )
    if policy.mode is TimerMode.DUAL:
        return TimerRecord(
            kind=policy.kind,
            mode=policy.mode,
            duration_ms=budget,
            sides=(budget, budget),
            warn_at_ms=policy.default_warn_at_ms,
            signal=signal,
            version=policy.schema_version,
        )
    return TimerRecord(
        kind=policy.kind,
        mode=policy.mode,
        duration_ms=budget,
        remaining_ms=budget,
        warn_at_ms=policy.default_warn_at_ms,
        signal=signal,
        version=policy.schema_version,
    )


# ── encode ───────────────────────────────────────────────────────────────


def encode(record: TimerRecord, policy: KindPolicy) -> dict:
    """Serialize *record* to its persisted JSON object."""
    data: dict[str, Any] = {"version": record.version, "mode": record.mode.value}
    signal = {"sound": record.signal.sound, "flash": record.signal.flash}

    if record.mode is TimerMode.COUNT_UP:
        data.update(
            elapsedMs=record.elapsed_ms,
            running=record.running,
            startedAt=record.anchor,
            laps=list(record.laps),
            signal=signal,
        )
        return data

    if record.mode is TimerMode.DUAL:
        data.update(
            durationMs=record.duration_ms,
            player1Ms=record.sides[0],
            player2Ms=record.sides[1],
            activePlayer=None if record.active_side is None else record.active_side + 1,
            running=record.running,
            endAt=record.anchor,
            moves=list(record.moves),
            expiredPlayer=None if record.expired_side is None else record.expired_side + 1,
            warnAtMs=record.warn_at_ms,
            signal=signal,
        )
        return data

    data[policy.duration_field or "durationMs"] = record.duration_ms
    data.update(
        remainingMs=record.remaining_ms,
        running=record.running,
        endAt=record.anchor,
        warnAtMs=record.warn_at_ms,
    )
    if record.mode is TimerMode.INTERVAL:
        data["cycleCount"] = record.cycle_count
    data["signal"] = signal
    return data


# ── decode ───────────────────────────────────────────────────────────────


def decode(data: Any, policy: KindPolicy, *, partial: bool = False) -> TimerRecord:
    """Validate *data* against *policy* and build a record.

    Every numeric field is clamped into its legal range.  With
    ``partial=True`` (preset/share imports) the version check is skipped
    and missing fields are taken from the kind's defaults.
    """
    if not isinstance(data, dict):
        raise MalformedRecord(f"expected object, got {type(data).__name__}")
    data = migrate_legacy(data)

    if not partial and data.get("version") != policy.schema_version:
        raise MalformedRecord(f"version {data.get('version')!r} != {policy.schema_version}")
    mode = record_mode(data)
    if mode is None and partial:
        mode = policy.mode
    if mode is not policy.mode:
        raise MalformedRecord(f"mode {data.get('mode')!r} does not match {policy.kind}")

    base = default_record(policy, first_run=False)
    signal = _signal(data, base.signal)
    running = bool(data.get("running", False))
    anchor = as_int(data.get("endAt" if mode is not TimerMode.COUNT_UP else "startedAt"), None)
    if not running or anchor is None:
        running, anchor = False, None

    if mode is TimerMode.COUNT_UP:
        laps = data.get("laps")
        return TimerRecord(
            kind=policy.kind,
            mode=mode,
            elapsed_ms=max(0, as_int(data.get("elapsedMs"), 0)),
            running=running,
            anchor=anchor,
            laps=tuple(
                max(0, as_int(v, 0)) for v in laps if as_int(v, None) is not None
            ) if isinstance(laps, list) else (),
            signal=signal,
            version=policy.schema_version,
        )

    duration = _clamped(
        data.get(policy.duration_field or "durationMs"),
        base.duration_ms,
        policy.min_duration_ms,
        policy.max_duration_ms,
    )
    if "warnAtMs" in data:
        warn_at = as_int(data.get("warnAtMs"), None)
        warn_at = None if warn_at is None else max(0, min(policy.max_duration_ms, warn_at))
    else:
        warn_at = base.warn_at_ms

    if mode is TimerMode.DUAL:
        p1_field, p2_field = "player1Ms", "player2Ms"
        moves = data.get("moves")
        if not (isinstance(moves, list) and len(moves) == 2):
            moves = [0, 0]
        active = _side(data.get("activePlayer"))
        if running and active is None:
            running, anchor = False, None
        return TimerRecord(
            kind=policy.kind,
            mode=mode,
            duration_ms=duration,
            sides=(
                _clamped(data.get(p1_field), duration, 0, policy.max_duration_ms),
                _clamped(data.get(p2_field), duration, 0, policy.max_duration_ms),
            ),
            active_side=active,
            running=running,
            anchor=anchor,
            moves=(max(0, as_int(moves[0], 0)), max(0, as_int(moves[1], 0))),
            expired_side=_side(data.get("expiredPlayer")),
            warn_at_ms=warn_at,
            signal=signal,
            version=policy.schema_version,
        )

    return TimerRecord(
        kind=policy.kind,
        mode=mode,
        duration_ms=duration,
        remaining_ms=_clamped(data.get("remainingMs"), duration, 0, duration),
        running=running,
        anchor=anchor,
        warn_at_ms=warn_at,
        cycle_count=max(0, as_int(data.get("cycleCount"), 0)) if mode is TimerMode.INTERVAL else 0,
        signal=signal,
        version=policy.schema_version,
    )
