"""Named sub-timers sharing one stored record (the cooking timer).

Stored shape::

    {
      "version": 1,
      "mode": "multi",
      "timers": {"<subId>": {"name": ..., "colorIndex": ..., <countdown record>}},
      "nextColorIndex": <int>
    }

Each sub-timer is an ordinary countdown record plus a name, so the
pinned-timer adapter can project one out, edit it with the generic
clock functions and splice it back without touching its siblings.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from PyQt6.QtCore import QObject, pyqtSignal

from ..database.db import KeyValueStore
from ..errors import MalformedRecord, StorageUnavailable
from ..settings import Settings
from . import clock
from .alarms import SignalKind, SignalTracker, apply_completion
from .codec import as_int, decode, default_record, encode
from .effects import TimerEffects
from .loop import RenderLoop
from .persistence import DebouncedWriter, RecordStore
from .policies import KindPolicy, get_policy
from .records import TimerMode, TimerRecord
from .sync import StorageWatcher

logger = logging.getLogger(__name__)

PALETTE_SIZE = 8


@dataclass(frozen=True)
class SubTimer:
    name: str
    record: TimerRecord
    color_index: int = 0


@dataclass(frozen=True)
class MultiRecord:
    timers: dict[str, SubTimer] = field(default_factory=dict)
    next_color_index: int = 0
    version: int = 1


# ── codec ────────────────────────────────────────────────────────────────


def _legacy_timers(items: list) -> dict[str, dict]:
    """Old list-shaped sub-timers stored a start time, not a deadline."""
    migrated: dict[str, dict] = {}
    for item in items:
        if not isinstance(item, dict) or "id" not in item:
            continue
        sub = dict(item)
        started = as_int(sub.pop("startedAt", None), None)
        if sub.get("running") and started is not None:
            sub["endAt"] = started + (as_int(sub.get("remainingMs"), 0) or 0)
        migrated[str(sub.pop("id"))] = sub
    return migrated


def encode_sub(sub: SubTimer, policy: KindPolicy) -> dict:
    data = encode(sub.record, policy)
    data["name"] = sub.name
    data["colorIndex"] = sub.color_index
    return data


def decode_sub(data: Any, policy: KindPolicy) -> SubTimer:
    if not isinstance(data, dict):
        raise MalformedRecord("sub-timer is not an object")
    return SubTimer(
        name=str(data.get("name") or "Timer"),
        record=decode(data, policy, partial=True),
        color_index=max(0, as_int(data.get("colorIndex"), 0)) % PALETTE_SIZE,
    )


def encode_multi(multi: MultiRecord, policy: KindPolicy) -> dict:
    return {
        "version": multi.version,
        "mode": TimerMode.MULTI.value,
        "timers": {sid: encode_sub(sub, policy) for sid, sub in multi.timers.items()},
        "nextColorIndex": multi.next_color_index,
    }


def decode_multi(data: Any, policy: KindPolicy) -> MultiRecord:
    if not isinstance(data, dict):
        raise MalformedRecord("expected object")
    if data.get("version") != policy.schema_version:
        raise MalformedRecord(f"version {data.get('version')!r}")
    if data.get("mode", TimerMode.MULTI.value) != TimerMode.MULTI.value:
        raise MalformedRecord(f"mode {data.get('mode')!r} is not multi")

    raw = data.get("timers")
    if isinstance(raw, list):
        raw = _legacy_timers(raw)
    if not isinstance(raw, dict):
        raw = {}

    timers: dict[str, SubTimer] = {}
    for sid, sub in raw.items():
        if len(timers) >= policy.max_sub_timers:
            break
        try:
            timers[str(sid)] = decode_sub(sub, policy)
        except MalformedRecord as exc:
            logger.debug("Dropping sub-timer %s: %s", sid, exc)
    return MultiRecord(
        timers=timers,
        next_color_index=max(0, as_int(data.get("nextColorIndex"), 0)) % PALETTE_SIZE,
        version=policy.schema_version,
    )


def load_multi(
    records: RecordStore, key: str, policy: KindPolicy, *, strict: bool = False
) -> MultiRecord:
    """Unusable data yields an empty set.

    Raises :class:`StorageUnavailable` only with ``strict=True`` and an
    unreadable store.
    """
    data = records.load_json(key, strict=strict)
    if data is None:
        return MultiRecord(version=policy.schema_version)
    try:
        return decode_multi(data, policy)
    except MalformedRecord as exc:
        logger.debug("Replacing malformed multi-timer %s: %s", key, exc)
        return MultiRecord(version=policy.schema_version)


def project(multi: MultiRecord, sub_id: str) -> TimerRecord | None:
    sub = multi.timers.get(sub_id)
    return sub.record if sub is not None else None


def splice(multi: MultiRecord, sub_id: str, record: TimerRecord) -> MultiRecord:
    """*multi* with *sub_id*'s record replaced; siblings untouched."""
    sub = multi.timers.get(sub_id)
    if sub is None:
        return multi
    timers = dict(multi.timers)
    timers[sub_id] = replace(sub, record=record)
    return replace(multi, timers=timers)


# ── engine ───────────────────────────────────────────────────────────────


class MultiTimerSet(QObject):
    """Several independent named countdowns persisted under one key.

    Signals
    -------
    changed(multi: MultiRecord)
    completed(sub_id: str)
    """

    changed = pyqtSignal(object)
    completed = pyqtSignal(str)

    def __init__(
        self,
        store: KeyValueStore,
        kind: str = "cooking",
        parent: QObject | None = None,
        *,
        tab_id: str | None = None,
        clock_fn: Callable[[], int] = clock.now_ms,
        effects: TimerEffects | None = None,
        stats=None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(parent)
        settings = settings or Settings()
        self._policy = get_policy(kind)
        if not self._policy.nested:
            raise ValueError(f"{kind!r} is not a multi-timer kind")
        self._key = self._policy.storage_key
        self._tab_id = tab_id or uuid.uuid4().hex[:12]
        self._clock = clock_fn
        self._effects = effects
        self._stats = stats
        self._window = settings.last_seconds_window_ms
        self._trackers: dict[str, SignalTracker] = {}
        self._closed = False

        self._records = RecordStore(store, writer=self._tab_id)
        self._loop = RenderLoop(self._on_tick, self._policy.tick_interval_ms, self)
        self._writer = DebouncedWriter(self._save, settings.debounce_ms, self)
        self._watcher = StorageWatcher(
            store,
            self._key,
            tab_id=self._tab_id,
            poll_interval_ms=settings.poll_interval_ms,
            parent=self,
        )
        self._writer.written.connect(self._watcher.mark_seen)
        self._watcher.changed.connect(self._reseed)

        self._multi = load_multi(self._records, self._key, self._policy)
        self._watcher.start()
        self._refresh()

    # ── reading ────────────────────────────────────────────────────────

    @property
    def multi(self) -> MultiRecord:
        return self._multi

    @property
    def key(self) -> str:
        return self._key

    @property
    def loop_active(self) -> bool:
        return self._loop.active

    def ids(self) -> list[str]:
        """Sub-timer ids, soonest to finish first."""
        now = self._clock()
        return sorted(
            self._multi.timers,
            key=lambda sid: clock.display_value(self._multi.timers[sid].record, now),
        )

    def get(self, sub_id: str) -> SubTimer | None:
        return self._multi.timers.get(sub_id)

    def value(self, sub_id: str) -> int | None:
        sub = self._multi.timers.get(sub_id)
        if sub is None:
            return None
        return clock.display_value(sub.record, self._clock())

    # ── controls ───────────────────────────────────────────────────────

    def add(self, name: str, duration_ms: int) -> str | None:
        """Add a stopped sub-timer.  Returns its id, or None when full."""
        if len(self._multi.timers) >= self._policy.max_sub_timers:
            return None
        duration = self._policy.clamp_duration(duration_ms)
        record = replace(
            default_record(self._policy),
            duration_ms=duration,
            remaining_ms=duration,
        )
        sub_id = uuid.uuid4().hex[:8]
        timers = dict(self._multi.timers)
        timers[sub_id] = SubTimer(
            name=name.strip() or "Timer",
            record=record,
            color_index=self._multi.next_color_index,
        )
        self._commit(replace(
            self._multi,
            timers=timers,
            next_color_index=(self._multi.next_color_index + 1) % PALETTE_SIZE,
        ))
        return sub_id

    def remove(self, sub_id: str) -> None:
        if sub_id not in self._multi.timers:
            return
        timers = dict(self._multi.timers)
        del timers[sub_id]
        self._trackers.pop(sub_id, None)
        self._commit(replace(self._multi, timers=timers))
        self._refresh()

    def start(self, sub_id: str) -> None:
        if self._edit(sub_id, lambda r: clock.start(r, self._clock())):
            self._track("start", None)

    def pause(self, sub_id: str) -> None:
        if self._edit(sub_id, lambda r: clock.pause(r, self._clock())):
            self._track("pause", None)

    def reset(self, sub_id: str) -> None:
        self._edit(sub_id, clock.reset)

    def adjust(self, sub_id: str, delta_ms: int) -> None:
        self._edit(sub_id, lambda r: clock.adjust(r, self._policy, delta_ms, self._clock()))

    def flush(self) -> None:
        self._writer.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._loop.release()
        self._watcher.stop()
        self._writer.flush()

    # ── internal ───────────────────────────────────────────────────────

    def _edit(self, sub_id: str, change: Callable[[TimerRecord], TimerRecord]) -> bool:
        current = project(self._multi, sub_id)
        if current is None:
            return False
        record = change(current)
        if record == current:
            return False
        if record.running != current.running:
            self._tracker(sub_id).reset()
        self._commit(splice(self._multi, sub_id, record))
        self._refresh()
        return True

    def _tracker(self, sub_id: str) -> SignalTracker:
        tracker = self._trackers.get(sub_id)
        if tracker is None:
            tracker = self._trackers[sub_id] = SignalTracker(self._window)
        return tracker

    def _on_tick(self) -> None:
        now = self._clock()
        multi = self._multi
        done: list[str] = []
        for sid, sub in multi.timers.items():
            if not sub.record.running:
                continue
            value = clock.display_value(sub.record, now)
            for event in self._tracker(sid).observe(sub.record, value, self._policy):
                if event.kind is SignalKind.COMPLETE:
                    multi = splice(multi, sid, apply_completion(sub.record, self._policy, now))
                    done.append(sid)
                    if self._effects is not None:
                        self._effects.completed(sub.record, self._policy)
                elif event.kind is SignalKind.TICK and self._effects is not None:
                    self._effects.tick(sub.record)

        if done:
            self._commit(multi)
            for sid in done:
                self._tracker(sid).reset()
                self._track("complete", multi.timers[sid].record.duration_ms)
                self.completed.emit(sid)
        if not any(sub.record.running for sub in self._multi.timers.values()):
            self._loop.release()

    def _refresh(self) -> None:
        running = any(sub.record.running for sub in self._multi.timers.values())
        if running and not self._closed:
            self._loop.acquire()
            self._loop.run_once()
        else:
            self._loop.release()

    def _commit(self, multi: MultiRecord, *, persist: bool = True) -> None:
        self._multi = multi
        if persist:
            self._writer.schedule(multi)
        self.changed.emit(multi)

    def _save(self, multi: MultiRecord) -> int | None:
        return self._records.save_json(self._key, encode_multi(multi, self._policy))

    def _reseed(self, key: str) -> None:
        try:
            multi = load_multi(self._records, key, self._policy, strict=True)
        except StorageUnavailable as exc:
            logger.debug("Deferring reseed of %s: %s", key, exc)
            self._watcher.invalidate()
            return
        if multi == self._multi:
            return
        self._writer.cancel()
        for sid, sub in multi.timers.items():
            old = self._multi.timers.get(sid)
            if old is None or old.record.anchor != sub.record.anchor:
                self._tracker(sid).reset()
        for sid in set(self._trackers) - set(multi.timers):
            del self._trackers[sid]
        self._commit(multi, persist=False)
        self._refresh()

    def _track(self, action: str, duration_ms: int | None) -> None:
        if self._stats is None:
            return
        try:
            self._stats.track(self._policy.kind, action, duration_ms)
        except Exception:
            logger.debug("Stats collector failed", exc_info=True)
