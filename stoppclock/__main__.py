"""Run a timer in the terminal: python -m stoppclock [kind]."""

import logging
import sys

from PyQt6.QtCore import QCoreApplication

from .audio.sounds import BeepPlayer
from .database.db import KeyValueStore
from .settings import load_settings
from .stats import StatsCollector
from .timer.effects import TimerEffects
from .timer.engine import TimerEngine
from .timer.policies import KINDS


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    kind = sys.argv[1] if len(sys.argv) > 1 else "countdown"
    if kind not in KINDS or KINDS[kind].nested:
        runnable = ", ".join(k for k, p in KINDS.items() if not p.nested)
        sys.exit(f"unknown kind {kind!r} (choose from {runnable})")

    settings = load_settings()
    app = QCoreApplication(sys.argv)
    app.setApplicationName("Stoppclock")

    store = KeyValueStore(settings.db_url).init()
    player = BeepPlayer(app)
    player.set_volume(settings.sound_volume)
    effects = TimerEffects(
        player,
        app,
        sound_enabled=settings.sound_enabled,
        flash_enabled=settings.flash_enabled,
    )
    engine = TimerEngine(
        store,
        kind,
        app,
        effects=effects,
        stats=StatsCollector(store),
        settings=settings,
    )

    engine.display_changed.connect(lambda _ms: print(engine.formatted, flush=True))
    engine.warning.connect(lambda ms: print(f"-- {ms // 1000}s left", flush=True))
    engine.completed.connect(
        lambda record: None if record.running else app.quit()
    )
    app.aboutToQuit.connect(engine.close)

    engine.start()
    print(f"{engine.policy.title} running, Ctrl-C to stop", flush=True)
    try:
        sys.exit(app.exec())
    except KeyboardInterrupt:
        engine.pause()
        engine.close()


if __name__ == "__main__":
    main()
