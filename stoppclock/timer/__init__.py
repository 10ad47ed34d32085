"""Timer package."""

from .records import TimerMode, TimerRecord, SignalPrefs, SIGNALS_ON, SIGNALS_OFF
from .policies import KINDS, Completion, KindPolicy, get_policy, policy_for_key
from .alarms import AlarmPhase, SignalKind, SignalTracker, apply_completion
from .persistence import RecordStore, DebouncedWriter
from .engine import TimerEngine
from .multi import MultiTimerSet, MultiRecord, SubTimer
from .adapter import PinnedTimer, PinnedTimerHandle
from .board import PinnedTimersBoard, MAX_PINNED

__all__ = [
    "TimerMode",
    "TimerRecord",
    "SignalPrefs",
    "SIGNALS_ON",
    "SIGNALS_OFF",
    "KINDS",
    "Completion",
    "KindPolicy",
    "get_policy",
    "policy_for_key",
    "AlarmPhase",
    "SignalKind",
    "SignalTracker",
    "apply_completion",
    "RecordStore",
    "DebouncedWriter",
    "TimerEngine",
    "MultiTimerSet",
    "MultiRecord",
    "SubTimer",
    "PinnedTimer",
    "PinnedTimerHandle",
    "PinnedTimersBoard",
    "MAX_PINNED",
]
