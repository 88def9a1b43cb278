"""Module 2 — Opaque Transport Interface

The audio engine itself (decoding, buffering, network I/O, rate control)
lives outside this package. A host adapts its player to ``Transport`` and
reports back through a ``TransportListener``. Callbacks may arrive on any
thread.
"""
from typing import Sequence

from .models import RawMetadata, TransportStatus


class TransportListener:
    def on_transport_status(self, status: TransportStatus):
        pass

    def on_timed_metadata(self, groups: Sequence[RawMetadata]):
        pass

    def on_failed_to_play_to_end(self, reason: str = ""):
        pass


class Transport:
    """Subclass contract:

        class MyTransport(Transport):
            def open(self, url: str): ...
            def play(self): ...
            def pause(self): ...
            def close(self): ...
            def add_listener(self, listener: TransportListener): ...
            is_open / buffer_empty / failed properties
    """

    def open(self, url: str):
        """Prepare a new stream item for *url*, replacing any current one."""
        raise NotImplementedError

    def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def close(self):
        """Release the current stream item and its connection."""
        raise NotImplementedError

    def add_listener(self, listener: TransportListener):
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        raise NotImplementedError

    @property
    def buffer_empty(self) -> bool:
        return False

    @property
    def failed(self) -> bool:
        return False
