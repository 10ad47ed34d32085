"""Application settings with JSON persistence.

Settings are stored at:
    ~/Library/Application Support/Stoppclock/settings.json

Usage::

    settings = load_settings()
    settings.sound_volume = 50
    save_settings(settings)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path

from .database.db import APP_SUPPORT_DIR, DEFAULT_URL

logger = logging.getLogger(__name__)

SETTINGS_PATH = APP_SUPPORT_DIR / "settings.json"


@dataclass
class Settings:
    """All user-configurable preferences."""

    # ── storage ───────────────────────────────────────────────────────
    db_url: str = DEFAULT_URL
    debounce_ms: int = 150                 # delay before a write lands
    poll_interval_ms: int = 200            # cross-tab poll fallback

    # ── signals ───────────────────────────────────────────────────────
    last_seconds_window_ms: int = 10_000   # per-second ticks below this
    sound_enabled: bool = True
    sound_volume: int = 70                 # 0-100
    flash_enabled: bool = True


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from disk, falling back to defaults."""
    path = path or SETTINGS_PATH
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8"))
            # Only use keys that exist in the dataclass
            valid_keys = {f.name for f in fields(Settings)}
            filtered = {k: v for k, v in data.items() if k in valid_keys}
            return Settings(**filtered)
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.warning("Ignoring unreadable settings at %s: %s", path, exc)
    return Settings()


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """Write settings to disk as JSON."""
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(asdict(settings), indent=2) + "\n",
        encoding="utf-8",
    )
