# tests/unit/conftest.py
from datetime import datetime, time
from pathlib import Path

import pytest

from config.paths import Paths
from recording.event_writer import EventLog
from sdk.config import RecorderSettings, Source, Window

# 2024-01-01 was a Monday
MONDAY = datetime(2024, 1, 1)


def make_source(name="Radio", url="https://stream.example.com/radio.m3u8", windows=None):
    if windows is None:
        windows = [Window(day_of_week=0, start=time(20, 0), end=time(21, 0))]
    return Source(name=name, capture_url=url, windows=windows)


@pytest.fixture
def paths(tmp_path) -> Paths:
    p = Paths(output_root=tmp_path / "recordings", logs_root=tmp_path / "logs")
    p.ensure_all()
    return p


@pytest.fixture
def event_log(paths):
    log = EventLog.open(paths.log_file, paths.events_file, echo=False)
    yield log
    log.close()


@pytest.fixture
def fast_settings() -> RecorderSettings:
    return RecorderSettings(grace_seconds=0.2, cancel_grace_seconds=1.0, stderr_tail_lines=5)


def read_lines(path: Path):
    return path.read_text(encoding="utf-8").splitlines()
