"""Tests for settings, beep synthesis and timer effects.

Covers:
- Settings dataclass defaults and JSON round-trip
- synthesize_beep WAV output and BeepPlayer caching/volume API
- TimerEffects gating and failure handling
"""

from __future__ import annotations

import io
import json
import wave
from dataclasses import replace

import pytest

from stoppclock.audio.sounds import BeepPlayer, SAMPLE_RATE, synthesize_beep
from stoppclock.errors import EffectUnavailable
from stoppclock.settings import Settings, load_settings, save_settings
from stoppclock.timer.codec import default_record
from stoppclock.timer.effects import (
    COMPLETE_BEEP, CYCLE_BEEP, TICK_BEEP, WARNING_BEEP, TimerEffects,
)
from stoppclock.timer.policies import KINDS
from stoppclock.timer.records import SignalPrefs

from helpers import RecordingPlayer, SignalCollector


# ═══════════════════════════════════════════════════════════════════════
#  SETTINGS
# ═══════════════════════════════════════════════════════════════════════


class TestSettingsDefaults:
    def test_debounce(self):
        assert Settings().debounce_ms == 150

    def test_poll_interval(self):
        assert Settings().poll_interval_ms == 200

    def test_last_seconds_window(self):
        assert Settings().last_seconds_window_ms == 10_000

    def test_sound_and_flash_enabled(self):
        s = Settings()
        assert s.sound_enabled is True
        assert s.flash_enabled is True

    def test_volume_default(self):
        assert Settings().sound_volume == 70


class TestSettingsPersistence:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "settings.json"
        original = Settings(sound_volume=30, flash_enabled=False, db_url="sqlite://")
        save_settings(original, path)
        assert load_settings(path) == original

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "nope.json") == Settings()

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"sound_volume": 10, "work_duration": 1500}))
        assert load_settings(path).sound_volume == 10

    def test_corrupt_file_gives_defaults(self, tmp_path, caplog):
        path = tmp_path / "settings.json"
        path.write_text("{broken")
        assert load_settings(path) == Settings()
        assert "Ignoring unreadable settings" in caplog.text

    def test_non_object_gives_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        assert load_settings(path) == Settings()

    def test_save_creates_parent(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "settings.json"
        save_settings(Settings(), path)
        assert path.exists()


# ═══════════════════════════════════════════════════════════════════════
#  SYNTHESIS
# ═══════════════════════════════════════════════════════════════════════


def _frames(data: bytes) -> int:
    with wave.open(io.BytesIO(data), "rb") as wf:
        assert wf.getnchannels() == 1
        assert wf.getsampwidth() == 2
        assert wf.getframerate() == SAMPLE_RATE
        return wf.getnframes()


class TestSynthesis:
    def test_single_beep_length(self):
        # 100 ms tone + 50 ms trailing silence
        assert _frames(synthesize_beep(100, 1000)) == 4410 + 2205

    def test_pattern_includes_gaps(self):
        # three 600 ms tones, two 150 ms gaps, trailing silence
        assert _frames(synthesize_beep(600, 660, 3)) == 3 * 26460 + 2 * 6615 + 2205

    def test_starts_silent(self):
        data = synthesize_beep(200, 880)
        with wave.open(io.BytesIO(data), "rb") as wf:
            first = wf.readframes(1)
        assert first == b"\x00\x00"


class TestBeepPlayer:
    def test_wav_cached_once(self, qapp, tmp_path):
        player = BeepPlayer(sounds_dir=tmp_path)
        path = player.wav_path(*COMPLETE_BEEP)
        assert path.name == "beep_660hz_600ms_x3.wav"
        mtime = path.stat().st_mtime_ns
        assert player.wav_path(*COMPLETE_BEEP).stat().st_mtime_ns == mtime

    def test_volume_clamped(self, qapp, tmp_path):
        player = BeepPlayer(sounds_dir=tmp_path)
        player.set_volume(150)
        assert player.volume == 100
        player.set_volume(-5)
        assert player.volume == 0

    def test_disabled_is_noop(self, qapp, tmp_path):
        player = BeepPlayer(sounds_dir=tmp_path)
        player.set_enabled(False)
        player.beep(*TICK_BEEP)
        assert not player.enabled
        assert list(tmp_path.iterdir()) == []

    def test_unwritable_cache_raises_effect_unavailable(self, qapp, tmp_path):
        blocker = tmp_path / "sounds"
        blocker.write_text("not a directory")
        player = BeepPlayer(sounds_dir=blocker)
        with pytest.raises(EffectUnavailable):
            player.beep(*TICK_BEEP)


# ═══════════════════════════════════════════════════════════════════════
#  EFFECTS
# ═══════════════════════════════════════════════════════════════════════


@pytest.fixture
def countdown_record():
    return default_record(KINDS["countdown"])


class TestTimerEffects:
    def test_warning_beeps_and_flashes(self, effects, player, countdown_record):
        flashes = SignalCollector()
        effects.flash_requested.connect(flashes)
        effects.warning(countdown_record)
        assert player.beeps == [WARNING_BEEP]
        assert flashes.items == [(250, "#F59E0B")]

    def test_tick_has_no_flash(self, effects, player, countdown_record):
        flashes = SignalCollector()
        effects.flash_requested.connect(flashes)
        effects.tick(countdown_record)
        assert player.beeps == [TICK_BEEP]
        assert len(flashes) == 0

    def test_cycle_completion_single_beep(self, effects, player):
        effects.completed(default_record(KINDS["cycle"]), KINDS["cycle"])
        assert player.beeps == [CYCLE_BEEP]

    def test_record_prefs_gate_sound(self, effects, player, countdown_record):
        quiet = replace(countdown_record, signal=SignalPrefs(sound=False, flash=True))
        effects.completed(quiet, KINDS["countdown"])
        assert player.beeps == []

    def test_global_switches(self, qapp, player, countdown_record):
        effects = TimerEffects(player, sound_enabled=False, flash_enabled=False)
        flashes = SignalCollector()
        effects.flash_requested.connect(flashes)
        effects.completed(countdown_record, KINDS["countdown"])
        assert player.beeps == []
        assert len(flashes) == 0

    def test_no_player(self, qapp, countdown_record):
        TimerEffects(None).completed(countdown_record, KINDS["countdown"])

    @pytest.mark.parametrize("error", [EffectUnavailable("no device"), RuntimeError("boom")])
    def test_player_failure_swallowed(self, qapp, countdown_record, error):
        effects = TimerEffects(RecordingPlayer(fail_with=error))
        effects.warning(countdown_record)
        effects.completed(countdown_record, KINDS["countdown"])
