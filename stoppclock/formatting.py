"""Display formatting for timer values and the active-window title."""

from __future__ import annotations

APP_TITLE = "Stoppclock"


def format_hms(ms: int) -> str:
    """``HH:MM:SS`` (floor to the second, negatives shown as zero)."""
    total = max(0, int(ms) // 1000)
    h, rest = divmod(total, 3600)
    m, s = divmod(rest, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_centis(ms: int) -> str:
    """``HH:MM:SS.cc`` for the stopwatch."""
    ms = max(0, int(ms))
    return f"{format_hms(ms)}.{(ms % 1000) // 10:02d}"


def format_ms(ms: int) -> str:
    """``MM:SS`` with minutes allowed past 59."""
    total = max(0, int(ms) // 1000)
    m, s = divmod(total, 60)
    return f"{m:02d}:{s:02d}"


_FORMATTERS = {
    "hms": format_hms,
    "hms_cs": format_centis,
    "ms": format_ms,
}


def format_for(policy, ms: int | None) -> str:
    """Format *ms* the way *policy*'s kind displays it."""
    if ms is None:
        return "--:--:--"
    return _FORMATTERS.get(policy.time_format, format_hms)(ms)


def active_title(timer_title: str, state: str, display: str | None = None) -> str:
    """Window title reflecting a timer's state.

    >>> active_title("Countdown", "running", "00:05:30")
    '⏱️ 00:05:30 - Countdown | Stoppclock'
    """
    if state == "running" and display:
        return f"⏱️ {display} - {timer_title} | {APP_TITLE}"
    if state == "paused" and display:
        return f"⏸️ {display} - {timer_title} | {APP_TITLE}"
    if state == "finished":
        return f"✓ {timer_title} Complete | {APP_TITLE}"
    return APP_TITLE
