"""Shared fixtures: fake transport, display and interruption source."""

import pytest

from icyradio import config
from icyradio.display import NowPlayingDisplay
from icyradio.interruptions import InterruptionSource
from icyradio.player import Transport


class FakeTransport(Transport):
    """Records every call; tests flip buffer_empty/failed by hand."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.listeners: list = []
        self._open = False
        self.buffer_empty = False
        self.failed = False
        # Raised from open() when set
        self.open_error: Exception | None = None

    def open(self, url):
        self.calls.append(("open", url))
        if self.open_error is not None:
            raise self.open_error
        self._open = True

    def play(self):
        self.calls.append(("play",))

    def pause(self):
        self.calls.append(("pause",))

    def close(self):
        self.calls.append(("close",))
        self._open = False

    def add_listener(self, listener):
        self.listeners.append(listener)

    @property
    def is_open(self):
        return self._open

    # Plain attributes shadow the base-class properties
    buffer_empty = False
    failed = False


class FakeDisplay(NowPlayingDisplay):
    def __init__(self):
        self.updates: list[tuple] = []

    def update(self, title, artist="", artwork=None):
        self.updates.append((title, artist, artwork))


class FakeInterruptions(InterruptionSource):
    def __init__(self):
        self.listeners: list = []

    def add_listener(self, listener):
        self.listeners.append(listener)


@pytest.fixture(autouse=True)
def _isolated_errors_log(tmp_path, monkeypatch):
    """Keep structured error entries out of the working tree."""
    log_path = tmp_path / "errors.log"
    monkeypatch.setattr(config, "ERRORS_LOG", log_path)
    monkeypatch.setattr(config, "DEV_MODE", False)
    return log_path


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def display():
    return FakeDisplay()


@pytest.fixture()
def interruptions():
    return FakeInterruptions()
