"""Stoppclock: drift-corrected, persistent, multi-tab timers."""

__version__ = "0.1.0"
