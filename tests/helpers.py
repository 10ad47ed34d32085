"""Shared test helpers for Stoppclock."""


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def clear(self):
        self.items.clear()


class FakeClock:
    """Controllable epoch-ms clock; call it to read the time."""

    def __init__(self, start: int = 0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def set(self, ms: int) -> None:
        self.now = ms

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingPlayer:
    """Stands in for BeepPlayer; records every beep request."""

    def __init__(self, fail_with: Exception | None = None):
        self.beeps: list[tuple[int, int, int]] = []
        self._fail_with = fail_with

    def beep(self, duration_ms, frequency, count=1):
        if self._fail_with is not None:
            raise self._fail_with
        self.beeps.append((duration_ms, frequency, count))


def run_until(engine, clock: FakeClock, until: int, step: int = 16) -> None:
    """Drive an engine's render loop from now to *until* in *step* ms hops."""
    while clock.now < until:
        clock.advance(min(step, until - clock.now))
        engine._on_tick()
