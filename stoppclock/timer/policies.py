"""Per-kind policy objects.

Timer kinds differ only in data: which fields are stored,
the legal duration range, the default warning threshold, what happens
on completion and how fine the visible display is.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .records import TimerMode

HOUR_MS = 3600_000
MINUTE_MS = 60_000


class Completion(Enum):
    STOP = "stop"            # stop at zero, multi-beep
    REARM = "rearm"          # restart the next cycle, single beep
    STOP_ALL = "stop-all"    # dual clock: one side ran out, stop both


@dataclass(frozen=True)
class KindPolicy:
    kind: str
    title: str
    storage_key: str
    mode: TimerMode
    duration_field: str | None = "durationMs"
    default_duration_ms: int | None = 5 * MINUTE_MS
    min_duration_ms: int = 1000
    max_duration_ms: int = 12 * HOUR_MS
    default_warn_at_ms: int | None = None
    completion: Completion = Completion.STOP
    granularity_ms: int = 1000       # visible display step
    tick_interval_ms: int = 100      # render-loop period
    last_seconds: bool = True        # per-second ticks near the end
    time_format: str = "hms"         # hms | hms_cs | ms
    schema_version: int = 1
    nested: bool = False             # record holds named sub-timers
    max_sub_timers: int = 0

    def clamp_duration(self, ms: int) -> int:
        return max(self.min_duration_ms, min(self.max_duration_ms, int(ms)))


KINDS: dict[str, KindPolicy] = {
    "countdown": KindPolicy(
        kind="countdown",
        title="Countdown",
        storage_key="sc.v1.countdown",
        mode=TimerMode.COUNTDOWN,
        default_duration_ms=5 * MINUTE_MS,
        max_duration_ms=12 * HOUR_MS,
        default_warn_at_ms=MINUTE_MS,
    ),
    "digital": KindPolicy(
        kind="digital",
        title="Digital Countdown",
        storage_key="sc.v1.digital",
        mode=TimerMode.COUNTDOWN,
        default_duration_ms=10 * MINUTE_MS,
        max_duration_ms=24 * HOUR_MS,
        default_warn_at_ms=MINUTE_MS,
    ),
    "analog": KindPolicy(
        kind="analog",
        title="Analog Countdown",
        storage_key="sc.v1.analog",
        mode=TimerMode.COUNTDOWN,
        default_duration_ms=30 * MINUTE_MS,
        max_duration_ms=4 * HOUR_MS,
        default_warn_at_ms=MINUTE_MS,
    ),
    "cycle": KindPolicy(
        kind="cycle",
        title="Cycle Timer",
        storage_key="sc.v1.cycle",
        mode=TimerMode.INTERVAL,
        duration_field="intervalMs",
        default_duration_ms=MINUTE_MS,
        max_duration_ms=12 * HOUR_MS,
        completion=Completion.REARM,
    ),
    "stopwatch": KindPolicy(
        kind="stopwatch",
        title="Stopwatch",
        storage_key="sc.v1.stopwatch",
        mode=TimerMode.COUNT_UP,
        duration_field=None,
        default_duration_ms=None,
        granularity_ms=10,
        tick_interval_ms=16,
        last_seconds=False,
        time_format="hms_cs",
    ),
    "chess": KindPolicy(
        kind="chess",
        title="Chess Clock",
        storage_key="sc.v1.chessclock",
        mode=TimerMode.DUAL,
        default_duration_ms=5 * MINUTE_MS,
        max_duration_ms=3 * HOUR_MS,
        completion=Completion.STOP_ALL,
        time_format="ms",
    ),
    "cooking": KindPolicy(
        kind="cooking",
        title="Cooking Timer",
        storage_key="sc.v1.cooking",
        mode=TimerMode.COUNTDOWN,
        default_duration_ms=10 * MINUTE_MS,
        max_duration_ms=12 * HOUR_MS,
        time_format="ms",
        nested=True,
        max_sub_timers=10,
    ),
}

# Used by the pinned-timer adapter for keys no registered kind owns.
_GENERIC: dict[TimerMode, KindPolicy] = {
    TimerMode.COUNTDOWN: KindPolicy(
        kind="generic", title="Timer", storage_key="",
        mode=TimerMode.COUNTDOWN, default_warn_at_ms=None,
    ),
    TimerMode.INTERVAL: KindPolicy(
        kind="generic", title="Timer", storage_key="",
        mode=TimerMode.INTERVAL, duration_field="intervalMs",
        completion=Completion.REARM,
    ),
    TimerMode.COUNT_UP: KindPolicy(
        kind="generic", title="Timer", storage_key="",
        mode=TimerMode.COUNT_UP, duration_field=None,
        default_duration_ms=None, granularity_ms=10, last_seconds=False,
        time_format="hms_cs",
    ),
    TimerMode.DUAL: KindPolicy(
        kind="generic", title="Timer", storage_key="",
        mode=TimerMode.DUAL, completion=Completion.STOP_ALL,
        time_format="ms",
    ),
}


def get_policy(kind: str) -> KindPolicy:
    """Policy for *kind*; raises ``KeyError`` for unknown kinds."""
    return KINDS[kind]


def policy_for_key(key: str) -> KindPolicy | None:
    """Policy whose storage key is *key* (ignoring a ``#sub`` suffix)."""
    base = key.partition("#")[0]
    for policy in KINDS.values():
        if policy.storage_key == base:
            return policy
    return None


def generic_policy(mode: TimerMode) -> KindPolicy:
    return _GENERIC[mode]
