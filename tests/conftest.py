"""Shared fixtures for bell tests."""

import json
import threading
from pathlib import Path

import pytest

from bell.scheduler import SchedulerManager


SPRING = {
    "name": "Spring",
    "starts": "2024-01-01",
    "ends": "2024-12-31",
    "days": [
        {"name": "Monday", "events": [{"time": "08:00", "sound": "chime.mp3"}]},
    ],
}


class RecordingPlayer:
    """Stands in for PlaybackEngine.play."""

    def __init__(self):
        self.played = []
        self._lock = threading.Lock()

    def __call__(self, sound):
        with self._lock:
            self.played.append(sound)
        return True


@pytest.fixture
def write_schedule(tmp_path):
    """Write schedule.json and return its path."""
    path = tmp_path / "schedule.json"

    def _write(data) -> Path:
        if isinstance(data, str):
            path.write_text(data)
        else:
            path.write_text(json.dumps(data, indent=2))
        return path

    return _write


@pytest.fixture
def manager():
    mgr = SchedulerManager()
    yield mgr
    mgr.shutdown()


@pytest.fixture
def player():
    return RecordingPlayer()


@pytest.fixture
def spring():
    return json.loads(json.dumps(SPRING))
