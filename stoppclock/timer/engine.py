"""Timer engine: one record, one render loop, one set of signals.

A single parametrized engine drives every timer kind; the differences
live in :class:`~stoppclock.timer.policies.KindPolicy`.

Flows
-----
display   store → record → drift-corrected value → ``display_changed``
mutation  control call → new record (visible immediately) → debounced
          write → store → other tabs' watchers → their ``_reseed``

Reload
------
On construction a running record is checked once, synchronously, so a
timer that expired while no tab was open reports completion before
anything is painted.

Signals
-------
display_changed(value_ms: int)
    Emitted when the visible value changes (per second, or per 1/100 s
    for the stopwatch).
record_changed(record: TimerRecord)
    Emitted after every change to the in-memory record, local or foreign.
running_changed(running: bool)
warning(remaining_ms: int)
    The warning threshold was crossed (once per crossing).
second_tick(seconds: int)
    One whole second passed inside the last-seconds window.
completed(record: TimerRecord)
    The timer reached zero; carries the record after the completion
    policy was applied.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Callable

from PyQt6.QtCore import QObject, pyqtSignal

from ..database.db import KeyValueStore
from ..errors import MalformedRecord, StorageUnavailable
from ..formatting import active_title, format_for
from ..settings import Settings
from . import clock
from .alarms import SignalKind, SignalTracker, apply_completion
from .codec import decode
from .effects import TimerEffects
from .loop import RenderLoop
from .persistence import DebouncedWriter, RecordStore
from .policies import KindPolicy, get_policy
from .records import SignalPrefs, TimerMode, TimerRecord
from .sync import StorageWatcher

logger = logging.getLogger(__name__)


def new_tab_id() -> str:
    return uuid.uuid4().hex[:12]


class TimerEngine(QObject):
    """Drives one persisted timer record."""

    display_changed = pyqtSignal(int)
    record_changed = pyqtSignal(object)
    running_changed = pyqtSignal(bool)
    warning = pyqtSignal(int)
    second_tick = pyqtSignal(int)
    completed = pyqtSignal(object)

    def __init__(
        self,
        store: KeyValueStore,
        kind: str = "countdown",
        parent: QObject | None = None,
        *,
        key: str | None = None,
        tab_id: str | None = None,
        clock_fn: Callable[[], int] = clock.now_ms,
        effects: TimerEffects | None = None,
        stats=None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(parent)
        settings = settings or Settings()
        self._policy: KindPolicy = get_policy(kind)
        if self._policy.nested:
            raise ValueError(f"{kind!r} holds sub-timers; use MultiTimerSet")

        self._key = key or self._policy.storage_key
        self._tab_id = tab_id or new_tab_id()
        self._clock = clock_fn
        self._effects = effects
        self._stats = stats
        self._closed = False

        # ── collaborators ─────────────────────────────────────────────
        self._records = RecordStore(store, writer=self._tab_id)
        self._tracker = SignalTracker(settings.last_seconds_window_ms)
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

        # ── display state ─────────────────────────────────────────────
        self._record: TimerRecord = self._records.load(self._key, self._policy)
        self._display: int = clock.display_value(self._record, self._clock())
        self._bucket: int | None = None

        self._watcher.start()
        self._refresh()

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC PROPERTIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def kind(self) -> str:
        return self._policy.kind

    @property
    def policy(self) -> KindPolicy:
        return self._policy

    @property
    def key(self) -> str:
        return self._key

    @property
    def tab_id(self) -> str:
        return self._tab_id

    @property
    def record(self) -> TimerRecord:
        return self._record

    @property
    def is_running(self) -> bool:
        return self._record.running

    @property
    def loop_active(self) -> bool:
        return self._loop.active

    @property
    def display_value(self) -> int:
        """Last value committed to the UI."""
        return self._display

    def current_value(self) -> int:
        """Value as of right now, uncommitted."""
        return clock.display_value(self._record, self._clock())

    def side_values(self) -> tuple[int, int]:
        """Both sides of a dual clock, as of right now."""
        now = self._clock()
        return (
            clock.side_value(self._record, 0, now),
            clock.side_value(self._record, 1, now),
        )

    @property
    def percent_complete(self) -> float:
        return clock.progress(self._record, self._clock())

    @property
    def formatted(self) -> str:
        return format_for(self._policy, self._display)

    @property
    def title(self) -> str:
        if self._record.running:
            state = "running"
        elif self._record.expired:
            state = "finished"
        elif self._record != self._fresh():
            state = "paused"
        else:
            state = "idle"
        return active_title(self._policy.title, state, self.formatted)

    # ══════════════════════════════════════════════════════════════════
    #  CONTROLS
    # ══════════════════════════════════════════════════════════════════

    def start(self) -> None:
        if self._record.running:
            return
        record = clock.start(self._record, self._clock())
        if record is self._record:
            return
        self._commit(record)
        self._track("start", None)
        self._refresh()

    def pause(self) -> None:
        if not self._record.running:
            return
        self._commit(clock.pause(self._record, self._clock()))
        self._track("pause", self._run_length())
        self._refresh(force=True)

    def toggle(self) -> None:
        if self._record.running:
            self.pause()
        else:
            self.start()

    def reset(self) -> None:
        self._commit(clock.reset(self._record))
        self._track("reset", None)
        self._refresh(force=True)

    def adjust(self, delta_ms: int) -> None:
        """Add or remove time; clamped into the kind's legal range."""
        self._commit(clock.adjust(self._record, self._policy, delta_ms, self._clock()))
        self._refresh(force=True)

    def set_duration(self, duration_ms: int) -> None:
        self._commit(clock.set_duration(self._record, self._policy, duration_ms))
        self._refresh(force=True)

    def set_warn_at(self, warn_at_ms: int | None) -> None:
        if warn_at_ms is not None:
            warn_at_ms = max(0, min(self._policy.max_duration_ms, int(warn_at_ms)))
        self._commit(replace(self._record, warn_at_ms=warn_at_ms))

    def set_signal(self, *, sound: bool | None = None, flash: bool | None = None) -> None:
        current = self._record.signal
        prefs = SignalPrefs(
            sound=current.sound if sound is None else bool(sound),
            flash=current.flash if flash is None else bool(flash),
        )
        self._commit(replace(self._record, signal=prefs))

    def lap(self) -> None:
        """Record a lap (stopwatch only)."""
        self._commit(clock.lap(self._record, self._clock()))

    def press(self, side: int) -> None:
        """Dual clock: *side* (0 or 1) presses; starts it when stopped, else hands over."""
        was_running = self._record.running
        record = clock.press(self._record, side, self._clock())
        if record is self._record:
            return
        self._commit(record)
        if not was_running:
            self._track("start", None)
        self._refresh(force=True)

    def apply_preset(self, partial: dict) -> None:
        """Replace the record with a partial one from a preset or share link.

        Omitted fields take the kind's defaults.  Unusable input is
        ignored.
        """
        try:
            record = decode(partial, self._policy, partial=True)
        except MalformedRecord as exc:
            logger.debug("Ignoring unusable preset for %s: %s", self.kind, exc)
            return
        self._commit(record)
        self._refresh(force=True)

    def flush(self) -> None:
        """Write any pending change to the store now."""
        self._writer.flush()

    def close(self) -> None:
        """Tear down: stop the loop and the watcher, flush pending writes.

        The persisted record keeps running; the next tab to load it
        picks up from the stored anchor.
        """
        if self._closed:
            return
        self._closed = True
        self._loop.release()
        self._watcher.stop()
        self._writer.flush()

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL: loop
    # ══════════════════════════════════════════════════════════════════

    def _on_tick(self) -> None:
        record = self._record
        if not record.running:
            self._loop.release()
            return

        now = self._clock()
        value = clock.display_value(record, now)
        for event in self._tracker.observe(record, value, self._policy):
            if event.kind is SignalKind.COMPLETE:
                self._complete(now)
                return
            if event.kind is SignalKind.WARNING:
                if self._effects is not None:
                    self._effects.warning(record)
                self.warning.emit(event.value)
            elif event.kind is SignalKind.TICK:
                if self._effects is not None:
                    self._effects.tick(record)
                self.second_tick.emit(event.value)
        self._publish(value)

    def _complete(self, now: int) -> None:
        finished = self._record
        record = apply_completion(finished, self._policy, now)
        self._commit(record)
        if record.running:
            # re-armed: the next cycle is a new threshold crossing
            self._tracker.reset()
        if self._effects is not None:
            self._effects.completed(finished, self._policy)
        self._track("complete", finished.duration_ms)
        self._refresh(force=True)
        self.completed.emit(record)

    def _refresh(self, force: bool = False) -> None:
        """Acquire/release the loop to match ``running`` and repaint."""
        if self._record.running and not self._closed:
            self._loop.acquire()
            if force:
                self._bucket = None
            self._loop.run_once()
        else:
            self._loop.release()
            self._publish(clock.display_value(self._record, self._clock()), force=True)

    def _publish(self, value: int, force: bool = False) -> None:
        bucket = value // self._policy.granularity_ms
        if not force and bucket == self._bucket:
            return
        self._bucket = bucket
        self._display = value
        self.display_changed.emit(value)

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL: state & persistence
    # ══════════════════════════════════════════════════════════════════

    def _commit(self, record: TimerRecord, *, persist: bool = True) -> None:
        previous = self._record
        self._record = record
        if (previous.running, previous.active_side) != (record.running, record.active_side):
            self._tracker.reset()
        if persist:
            self._writer.schedule(record)
        self.record_changed.emit(record)
        if previous.running != record.running:
            self.running_changed.emit(record.running)

    def _save(self, record: TimerRecord) -> int | None:
        return self._records.save(self._key, record, self._policy)

    def _reseed(self, key: str) -> None:
        """Another tab wrote our key: replace local state wholesale.

        An unreadable store leaves local state alone; the watcher is
        told to report the key again on its next poll.
        """
        try:
            record = self._records.load(key, self._policy, strict=True)
        except StorageUnavailable as exc:
            logger.debug("Deferring reseed of %s: %s", key, exc)
            self._watcher.invalidate()
            return
        if record == self._record:
            return
        self._writer.cancel()
        if record.anchor != self._record.anchor:
            self._tracker.reset()
        self._commit(record, persist=False)
        self._refresh(force=True)

    def _fresh(self) -> TimerRecord:
        return clock.reset(self._record)

    def _run_length(self) -> int | None:
        record = self._record
        if record.mode is TimerMode.COUNT_UP:
            return record.elapsed_ms
        if record.mode in (TimerMode.COUNTDOWN, TimerMode.INTERVAL) and record.duration_ms:
            return record.duration_ms - record.remaining_ms
        return None

    def _track(self, action: str, duration_ms: int | None) -> None:
        """Fire-and-forget stats notification; never fails the engine."""
        if self._stats is None:
            return
        try:
            self._stats.track(self.kind, action, duration_ms)
        except Exception:
            logger.debug("Stats collector failed for %s/%s", self.kind, action, exc_info=True)
