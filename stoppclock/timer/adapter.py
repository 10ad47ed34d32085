"""Generic access to any stored timer, knowing only its handle.

The adapter never imports a kind's engine.  It reads the stored JSON,
dispatches on the record's ``mode`` tag (untagged legacy records are
tagged once by :func:`~stoppclock.timer.codec.migrate_legacy`) and uses
the same codec and clock functions as the owning engine, so edits made
here and edits made there are interchangeable.  Writes go straight to
the store; the owning engine picks them up through its watcher.

A handle id of the form ``"<storage key>#<sub id>"`` addresses one
sub-timer inside a multi-timer record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..errors import MalformedRecord
from ..formatting import format_for
from . import clock
from .alarms import apply_completion
from .codec import decode, encode, migrate_legacy, record_mode
from .multi import decode_multi, encode_multi, project, splice
from .persistence import RecordStore
from .policies import KINDS, KindPolicy, generic_policy
from .records import TimerMode, TimerRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PinnedTimerHandle:
    id: str
    kind: str
    display_name: str

    @property
    def storage_key(self) -> str:
        return self.id.partition("#")[0]

    @property
    def sub_id(self) -> str | None:
        return self.id.partition("#")[2] or None


def _nested_policy(kind: str) -> KindPolicy:
    policy = KINDS.get(kind)
    if policy is not None and policy.nested:
        return policy
    return next(p for p in KINDS.values() if p.nested)


class PinnedTimer:
    """Start / pause / reset and live display for one pinned handle."""

    def __init__(
        self,
        records: RecordStore,
        handle: PinnedTimerHandle,
        *,
        clock_fn: Callable[[], int] = clock.now_ms,
    ) -> None:
        self._records = records
        self._handle = handle
        self._clock = clock_fn

    @property
    def handle(self) -> PinnedTimerHandle:
        return self._handle

    # ── reading ────────────────────────────────────────────────────────

    def policy_for(self, mode: TimerMode) -> KindPolicy:
        if mode is TimerMode.MULTI:
            return _nested_policy(self._handle.kind)
        policy = KINDS.get(self._handle.kind)
        if policy is not None and policy.mode is mode and not policy.nested:
            return policy
        if self._handle.sub_id is not None and mode is TimerMode.COUNTDOWN:
            return _nested_policy(self._handle.kind)
        return generic_policy(mode)

    def load(self) -> TimerRecord | None:
        """Current record, or None when there is nothing usable stored."""
        loaded = self._load()
        return loaded[0] if loaded is not None else None

    def display_value(self) -> int | None:
        record = self.load()
        if record is None:
            return None
        return clock.display_value(record, self._clock())

    def formatted(self) -> str:
        return self.describe(self.load())[0]

    def status(self) -> str:
        """``running``, ``paused``, ``finished`` or ``no data``."""
        return self.describe(self.load())[1]

    def describe(self, record: TimerRecord | None) -> tuple[str, str]:
        """Display text and status of one already loaded *record*."""
        if record is None:
            return format_for(generic_policy(TimerMode.COUNTDOWN), None), "no data"
        value = clock.display_value(record, self._clock())
        text = format_for(self.policy_for(record.mode), value)
        if record.running:
            if record.countdown_like and value <= 0:
                return text, "finished"
            return text, "running"
        if record.expired:
            return text, "finished"
        return text, "paused"

    # ── controls ───────────────────────────────────────────────────────

    def start(self) -> bool:
        return self._edit(lambda r, p: clock.start(r, self._clock()))

    def pause(self) -> bool:
        return self._edit(lambda r, p: clock.pause(r, self._clock()))

    def reset(self) -> bool:
        return self._edit(lambda r, p: clock.reset(r))

    def refresh(self) -> TimerRecord | None:
        """Load once and, if the record ran out while nobody watched, complete it."""
        loaded = self._load()
        if loaded is None:
            return None
        record, policy, multi = loaded
        now = self._clock()
        if record.running and record.countdown_like and clock.display_value(record, now) <= 0:
            record = apply_completion(record, policy, now)
            self._write(record, policy, multi)
        return record

    # ── internal ───────────────────────────────────────────────────────

    def _load(self):
        """``(record, policy, multi)``; ``multi`` is None for flat records."""
        data = self._records.load_json(self._handle.storage_key)
        if not isinstance(data, dict):
            return None
        data = migrate_legacy(data)
        mode = record_mode(data)
        if mode is None:
            return None
        try:
            if mode is TimerMode.MULTI:
                policy = self.policy_for(mode)
                multi = decode_multi(data, policy)
                record = project(multi, self._handle.sub_id or "")
                if record is None:
                    return None
                return record, policy, multi
            policy = self.policy_for(mode)
            return decode(data, policy), policy, None
        except MalformedRecord as exc:
            logger.debug("Pinned timer %s unreadable: %s", self._handle.id, exc)
            return None

    def _edit(self, change: Callable[[TimerRecord, KindPolicy], TimerRecord]) -> bool:
        loaded = self._load()
        if loaded is None:
            return False
        record, policy, multi = loaded
        updated = change(record, policy)
        if updated == record:
            return False
        self._write(updated, policy, multi)
        return True

    def _write(self, record: TimerRecord, policy: KindPolicy, multi) -> None:
        key = self._handle.storage_key
        if multi is not None:
            self._records.save_json(
                key, encode_multi(splice(multi, self._handle.sub_id, record), policy)
            )
        else:
            self._records.save_json(key, encode(record, policy))
