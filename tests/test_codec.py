"""Tests for the persisted record shape and the record store.

Covers: per-kind round trips, first-run defaults, malformed data,
field clamping, signal defaults, legacy migration, the in-memory
fallback when storage fails, and debounced writes.
"""

import json
import logging

import pytest
from PyQt6.QtTest import QTest

from stoppclock.errors import MalformedRecord, StorageUnavailable
from stoppclock.timer.codec import (
    decode, default_record, encode, migrate_legacy, sniff_mode,
)
from stoppclock.timer.persistence import DebouncedWriter, RecordStore
from stoppclock.timer.policies import HOUR_MS, KINDS, get_policy
from stoppclock.timer.records import SIGNALS_OFF, SIGNALS_ON, TimerMode, TimerRecord


# ═══════════════════════════════════════════════════════════════════════════
#  ROUND TRIPS
# ═══════════════════════════════════════════════════════════════════════════


def _sample(kind):
    policy = get_policy(kind)
    record = default_record(policy)
    if policy.mode is TimerMode.COUNT_UP:
        return TimerRecord(
            kind=kind, mode=policy.mode, elapsed_ms=4_321, running=True,
            anchor=1_700_000_000_000, laps=(1_000, 2_500),
        )
    if policy.mode is TimerMode.DUAL:
        return TimerRecord(
            kind=kind, mode=policy.mode, duration_ms=180_000,
            sides=(120_000, 95_000), active_side=1, running=True,
            anchor=1_700_000_095_000, moves=(7, 6),
        )
    return TimerRecord(
        kind=kind, mode=policy.mode, duration_ms=90_000, remaining_ms=45_000,
        running=True, anchor=1_700_000_045_000, warn_at_ms=record.warn_at_ms,
        cycle_count=3 if policy.mode is TimerMode.INTERVAL else 0,
        signal=SIGNALS_OFF,
    )


@pytest.mark.parametrize("kind", ["countdown", "digital", "analog", "cycle", "stopwatch", "chess"])
def test_round_trip(kind):
    policy = get_policy(kind)
    record = _sample(kind)
    data = json.loads(json.dumps(encode(record, policy)))
    assert decode(data, policy) == record


def test_encoded_shape_is_tagged():
    data = encode(default_record(get_policy("cycle")), get_policy("cycle"))
    assert data["version"] == 1
    assert data["mode"] == "repeating-interval"
    assert data["intervalMs"] == 60_000
    assert "durationMs" not in data


def test_dual_uses_player_numbers():
    data = encode(_sample("chess"), get_policy("chess"))
    assert data["activePlayer"] == 2
    assert data["player1Ms"] == 120_000


# ═══════════════════════════════════════════════════════════════════════════
#  DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════


class TestDefaults:

    @pytest.mark.parametrize("kind, duration", [
        ("countdown", 300_000),
        ("digital", 600_000),
        ("analog", 1_800_000),
        ("cycle", 60_000),
        ("chess", 300_000),
    ])
    def test_default_durations(self, kind, duration):
        record = default_record(get_policy(kind))
        assert record.duration_ms == duration
        assert not record.running
        assert record.anchor is None

    def test_first_run_has_signals_on(self):
        assert default_record(get_policy("countdown")).signal == SIGNALS_ON

    def test_partial_defaults_have_signals_off(self):
        assert default_record(get_policy("countdown"), first_run=False).signal == SIGNALS_OFF

    def test_cycle_has_no_warning(self):
        assert default_record(get_policy("cycle")).warn_at_ms is None

    def test_chess_sides(self):
        assert default_record(get_policy("chess")).sides == (300_000, 300_000)


# ═══════════════════════════════════════════════════════════════════════════
#  DECODE VALIDATION
# ═══════════════════════════════════════════════════════════════════════════


def _countdown(**fields):
    data = {
        "version": 1, "mode": "countdown", "durationMs": 300_000,
        "remainingMs": 300_000, "running": False, "endAt": None,
        "warnAtMs": 60_000, "signal": {"sound": True, "flash": True},
    }
    data.update(fields)
    return data


class TestDecode:

    policy = KINDS["countdown"]

    def test_non_object_rejected(self):
        with pytest.raises(MalformedRecord):
            decode([1, 2, 3], self.policy)

    def test_version_mismatch_rejected(self):
        with pytest.raises(MalformedRecord):
            decode(_countdown(version=2), self.policy)

    def test_wrong_mode_rejected(self):
        with pytest.raises(MalformedRecord):
            decode(_countdown(mode="count-up"), self.policy)

    def test_duration_clamped_to_kind_range(self):
        assert decode(_countdown(durationMs=10 ** 12), self.policy).duration_ms == 12 * HOUR_MS
        assert decode(_countdown(durationMs=5), self.policy).duration_ms == 1_000

    def test_remaining_clamped_into_duration(self):
        assert decode(_countdown(remainingMs=-5), self.policy).remaining_ms == 0
        assert decode(_countdown(remainingMs=10 ** 9), self.policy).remaining_ms == 300_000

    def test_non_numeric_fields_fall_back(self):
        record = decode(_countdown(durationMs="lots", remainingMs=True), self.policy)
        assert record.duration_ms == 300_000
        assert record.remaining_ms == 300_000

    def test_warn_at_null_disables_warning(self):
        assert decode(_countdown(warnAtMs=None), self.policy).warn_at_ms is None

    def test_warn_at_absent_takes_default(self):
        data = _countdown()
        del data["warnAtMs"]
        assert decode(data, self.policy).warn_at_ms == 60_000

    def test_warn_at_clamped(self):
        assert decode(_countdown(warnAtMs=-1), self.policy).warn_at_ms == 0

    def test_running_without_anchor_is_stopped(self):
        record = decode(_countdown(running=True, endAt=None), self.policy)
        assert not record.running
        assert record.anchor is None

    def test_dual_running_without_active_player_is_stopped(self):
        data = encode(_sample("chess"), KINDS["chess"])
        data["activePlayer"] = None
        record = decode(data, KINDS["chess"])
        assert not record.running

    def test_missing_signal_is_off(self):
        data = _countdown()
        del data["signal"]
        assert decode(data, self.policy).signal == SIGNALS_OFF

    def test_signal_values_coerced(self):
        record = decode(_countdown(signal={"sound": 1, "flash": 0}), self.policy)
        assert record.signal.sound is True
        assert record.signal.flash is False

    def test_partial_preset(self):
        record = decode({"durationMs": 45_000}, self.policy, partial=True)
        assert record.duration_ms == 45_000
        assert record.remaining_ms == 45_000
        assert record.signal == SIGNALS_OFF


# ═══════════════════════════════════════════════════════════════════════════
#  LEGACY MIGRATION
# ═══════════════════════════════════════════════════════════════════════════


class TestLegacy:

    @pytest.mark.parametrize("data, mode", [
        ({"timers": []}, TimerMode.MULTI),
        ({"intervalMs": 1000}, TimerMode.INTERVAL),
        ({"player1Time": 1000}, TimerMode.DUAL),
        ({"player1Ms": 1000}, TimerMode.DUAL),
        ({"elapsedMs": 0}, TimerMode.COUNT_UP),
        ({"remainingMs": 0}, TimerMode.COUNTDOWN),
        ({"hello": "world"}, None),
    ])
    def test_sniff(self, data, mode):
        assert sniff_mode(data) is mode

    def test_tagged_data_untouched(self):
        data = {"mode": "countdown", "intervalMs": 5}
        assert migrate_legacy(data) is data

    def test_old_chess_fields_renamed(self):
        data = {
            "version": 1, "durationMs": 600_000,
            "player1Time": 200_000, "player2Time": 250_000,
            "running": False,
        }
        record = decode(data, KINDS["chess"])
        assert record.mode is TimerMode.DUAL
        assert record.sides == (200_000, 250_000)

    def test_old_chess_game_in_progress_keeps_running(self):
        started = 1_700_000_000_000
        data = {
            "version": 1, "player1Time": 200_000, "player2Time": 300_000,
            "activePlayer": 1, "startedAt": started,
        }
        record = decode(data, KINDS["chess"])
        assert record.running
        assert record.active_side == 0
        assert record.anchor == started + 200_000
        assert record.sides == (200_000, 300_000)

    def test_old_chess_without_active_player_is_paused(self):
        data = {"version": 1, "player1Time": 200_000, "startedAt": 1_000}
        assert not decode(data, KINDS["chess"]).running

    def test_untagged_countdown_loads(self):
        data = _countdown()
        del data["mode"]
        assert decode(data, KINDS["countdown"]).duration_ms == 300_000


# ═══════════════════════════════════════════════════════════════════════════
#  RECORD STORE
# ═══════════════════════════════════════════════════════════════════════════


class TestRecordStore:

    def test_missing_key_gives_first_run_default(self, store):
        record = RecordStore(store).load("sc.v1.countdown")
        assert record == default_record(KINDS["countdown"])

    def test_save_then_load(self, store):
        records = RecordStore(store, writer="tab-a")
        record = _sample("countdown")
        revision = records.save("sc.v1.countdown", record)
        assert revision == 1
        assert records.load("sc.v1.countdown") == record
        assert store.stamp("sc.v1.countdown") == (1, "tab-a")

    def test_json_is_compact(self, store):
        RecordStore(store).save("sc.v1.countdown", _sample("countdown"))
        assert ", " not in store.get("sc.v1.countdown")

    @pytest.mark.parametrize("raw", ["{oops", "[]", "null", json.dumps(_countdown(version=9))])
    def test_bad_data_loads_default(self, store, raw):
        store.set("sc.v1.countdown", raw)
        record = RecordStore(store).load("sc.v1.countdown")
        assert record == default_record(KINDS["countdown"])

    def test_unknown_key(self, store):
        with pytest.raises(KeyError):
            RecordStore(store).load("not.a.timer")

    def test_storage_failure_falls_back_to_memory(self, store, monkeypatch, caplog):
        def broken(*args, **kwargs):
            raise StorageUnavailable("disk full")

        monkeypatch.setattr(store, "set", broken)
        records = RecordStore(store)
        record = _sample("countdown")

        with caplog.at_level(logging.WARNING, logger="stoppclock.timer.persistence"):
            assert records.save("sc.v1.countdown", record) is None
            records.save("sc.v1.countdown", record)
            monkeypatch.setattr(store, "get", broken)
            assert records.load("sc.v1.countdown") == record

        assert records.degraded
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1

    def test_store_read_first_once_it_recovers(self, store, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageUnavailable("disk full")

        records = RecordStore(store, writer="tab-a")
        monkeypatch.setattr(store, "set", broken)
        records.save("sc.v1.countdown", _sample("countdown"))
        monkeypatch.undo()

        newer = _countdown(durationMs=30_000, remainingMs=30_000)
        store.set("sc.v1.countdown", json.dumps(newer), writer="tab-b")
        assert records.load("sc.v1.countdown").duration_ms == 30_000

    def test_read_failure_loads_default(self, store, monkeypatch):
        def broken(key):
            raise StorageUnavailable("locked")

        monkeypatch.setattr(store, "get", broken)
        record = RecordStore(store).load("sc.v1.cycle")
        assert record == default_record(KINDS["cycle"])


# ═══════════════════════════════════════════════════════════════════════════
#  DEBOUNCED WRITER
# ═══════════════════════════════════════════════════════════════════════════


class TestDebouncedWriter:

    def _writer(self, delay=150):
        saved = []

        def save(value):
            saved.append(value)
            return len(saved)

        return DebouncedWriter(save, delay), saved

    def test_newer_value_supersedes(self, qapp):
        writer, saved = self._writer()
        writer.schedule("a")
        writer.schedule("b")
        assert writer.pending
        writer.flush()
        assert saved == ["b"]
        assert not writer.pending

    def test_flush_without_pending_is_noop(self, qapp):
        writer, saved = self._writer()
        writer.flush()
        assert saved == []

    def test_cancel_drops_pending(self, qapp):
        writer, saved = self._writer()
        writer.schedule("a")
        writer.cancel()
        writer.flush()
        assert saved == []

    def test_written_signal_carries_revision(self, qapp):
        writer, _ = self._writer()
        revisions = []
        writer.written.connect(revisions.append)
        writer.schedule("a")
        writer.flush()
        assert revisions == [1]

    def test_fires_after_delay(self, qapp):
        writer, saved = self._writer(delay=20)
        writer.schedule("a")
        writer.schedule("b")
        assert saved == []
        QTest.qWait(200)
        assert saved == ["b"]
