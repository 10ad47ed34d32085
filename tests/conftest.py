"""Shared pytest fixtures for Stoppclock tests."""

import os
import sys

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtWidgets import QApplication

from stoppclock.database.db import KeyValueStore
from stoppclock.timer.effects import TimerEffects
from stoppclock.timer.engine import TimerEngine

from helpers import FakeClock, RecordingPlayer


@pytest.fixture(scope="session")
def qapp():
    """A single QApplication instance shared across the entire test run."""
    app = QApplication.instance() or QApplication(sys.argv)
    yield app


@pytest.fixture
def store(qapp):
    """A fresh in-memory key-value store per test."""
    kv = KeyValueStore("sqlite:///:memory:").init()
    yield kv
    kv.dispose()


@pytest.fixture
def fake_clock():
    return FakeClock(1_000_000)


@pytest.fixture
def player():
    return RecordingPlayer()


@pytest.fixture
def effects(qapp, player):
    return TimerEffects(player)


@pytest.fixture
def make_engine(store, fake_clock, effects):
    """Factory for engines sharing the test store and clock."""
    engines = []

    def _make(kind="countdown", **kwargs):
        kwargs.setdefault("clock_fn", fake_clock)
        kwargs.setdefault("effects", effects)
        engine = TimerEngine(store, kind, **kwargs)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine):
    """Fresh countdown engine (5 min default, 60 s warning)."""
    return make_engine("countdown", tab_id="tab-a")
