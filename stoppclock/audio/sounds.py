"""Beep synthesis and playback using numpy + QSoundEffect.

Every beep the engine asks for is a ``(duration_ms, frequency, count)``
triple.  The matching WAV is synthesized with a sine wave and a short
ADSR envelope, cached to disk, and played through ``QSoundEffect``.
Multi-beep patterns are rendered into a single file so they cannot be
cut short by a second play request.

If QtMultimedia is missing or the platform has no audio output,
:meth:`BeepPlayer.beep` raises :class:`EffectUnavailable`; the effects
layer skips the sound and carries on.
"""

from __future__ import annotations

import io
import logging
import wave
from pathlib import Path

import numpy as np

from PyQt6.QtCore import QObject, QUrl

from ..database.db import APP_SUPPORT_DIR
from ..errors import EffectUnavailable

logger = logging.getLogger(__name__)

SOUNDS_DIR = APP_SUPPORT_DIR / "sounds"

SAMPLE_RATE = 44100
PATTERN_GAP_MS = 150


# ═══════════════════════════════════════════════════════════════════════════
#  WAV SYNTHESIS HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def _make_envelope(
    length: int,
    attack: int = 200,
    decay: int = 400,
    sustain_level: float = 0.7,
    release: int = 800,
) -> np.ndarray:
    """ADSR envelope (all durations in samples)."""
    env = np.ones(length, dtype=np.float64)
    a = min(attack, length)
    if a > 0:
        env[:a] = np.linspace(0.0, 1.0, a)
    d_end = min(a + decay, length)
    if decay > 0 and d_end > a:
        env[a:d_end] = np.linspace(1.0, sustain_level, d_end - a)
    s_end = max(length - release, d_end)
    if s_end > d_end:
        env[d_end:s_end] = sustain_level
    if release > 0 and s_end < length:
        env[s_end:] = np.linspace(sustain_level, 0.0, length - s_end)
    return env


def _sine(freq: float, duration_s: float) -> np.ndarray:
    """Pure sine wave at *freq* Hz for *duration_s* seconds."""
    t = np.linspace(0, duration_s, int(SAMPLE_RATE * duration_s), endpoint=False)
    return np.sin(2 * np.pi * freq * t)


def _to_wav_bytes(samples: np.ndarray) -> bytes:
    """Convert a float64 numpy array (-1..1) to 16-bit PCM WAV bytes."""
    samples = np.clip(samples, -1.0, 1.0)
    int_samples = (samples * 32767).astype(np.int16)

    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(SAMPLE_RATE)
        wf.writeframes(int_samples.tobytes())
    return buf.getvalue()


def synthesize_beep(duration_ms: int, frequency: float, count: int = 1) -> bytes:
    """*count* sine beeps of *duration_ms* at *frequency*, as WAV bytes."""
    duration_s = max(duration_ms, 1) / 1000.0
    tone = _sine(frequency, duration_s) * 0.5
    ramp = max(1, min(len(tone) // 4, int(SAMPLE_RATE * 0.02)))
    env = _make_envelope(len(tone), attack=ramp, decay=ramp, sustain_level=0.8, release=ramp)
    beep = tone * env
    gap = np.zeros(int(SAMPLE_RATE * PATTERN_GAP_MS / 1000))

    parts: list[np.ndarray] = []
    for i in range(max(1, count)):
        if i:
            parts.append(gap)
        parts.append(beep)
    # Trailing silence so QSoundEffect doesn't clip the release
    parts.append(np.zeros(int(SAMPLE_RATE * 0.05)))
    return _to_wav_bytes(np.concatenate(parts))


# ═══════════════════════════════════════════════════════════════════════════
#  PLAYER
# ═══════════════════════════════════════════════════════════════════════════


class BeepPlayer(QObject):
    """Synthesizes, caches and plays beeps.

    Usage::

        player = BeepPlayer(parent=self)
        player.set_volume(70)
        player.beep(600, 660, count=3)
    """

    def __init__(
        self,
        parent: QObject | None = None,
        *,
        sounds_dir: Path | None = None,
    ) -> None:
        super().__init__(parent)
        self._enabled = True
        self._volume = 0.7  # 0.0–1.0
        self._sounds_dir = sounds_dir or SOUNDS_DIR
        self._effects: dict[str, object] = {}

    # ── public API ────────────────────────────────────────────────────

    def set_volume(self, level: int) -> None:
        """Set volume (0-100).  Updates all loaded effects."""
        self._volume = max(0, min(level, 100)) / 100.0
        for effect in self._effects.values():
            effect.setVolume(self._volume)

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    @property
    def volume(self) -> int:
        """Current volume as 0-100 integer."""
        return round(self._volume * 100)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def wav_path(self, duration_ms: int, frequency: float, count: int = 1) -> Path:
        """Cached WAV file for a beep, generated on first use."""
        name = f"beep_{int(frequency)}hz_{int(duration_ms)}ms_x{count}.wav"
        path = self._sounds_dir / name
        if not path.exists():
            self._sounds_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(synthesize_beep(duration_ms, frequency, count))
        return path

    def beep(self, duration_ms: int, frequency: float, count: int = 1) -> None:
        """Play a beep.  No-op when disabled."""
        if not self._enabled:
            return
        try:
            path = self.wav_path(duration_ms, frequency, count)
        except OSError as exc:
            raise EffectUnavailable(f"cannot cache beep: {exc}") from exc
        effect = self._effects.get(path.name)
        if effect is None:
            effect = self._load_effect(path)
            self._effects[path.name] = effect
        effect.play()

    # ── internal ──────────────────────────────────────────────────────

    def _load_effect(self, path: Path):
        try:
            from PyQt6.QtMultimedia import QSoundEffect
        except ImportError as exc:
            raise EffectUnavailable("QtMultimedia is not available") from exc
        effect = QSoundEffect(self)
        effect.setSource(QUrl.fromLocalFile(str(path)))
        effect.setVolume(self._volume)
        return effect
