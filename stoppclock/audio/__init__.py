"""Audio package."""

from .sounds import BeepPlayer, synthesize_beep

__all__ = ["BeepPlayer", "synthesize_beep"]
