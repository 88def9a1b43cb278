"""EventBus — now-playing and playback events published to the host."""
import asyncio
import logging
from typing import Any

from .config import SUBSCRIBER_QUEUE_SIZE
from .models import Metadata

logger = logging.getLogger(__name__)

METADATA = "metadata"
STATE = "state"
ERROR = "error"


class EventBus:
    """Each subscriber gets its own bounded queue of (event, payload) tuples."""

    def __init__(self):
        self._subscribers: dict[str, asyncio.Queue] = {}

    def subscribe(self, client_id: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[client_id] = q
        return q

    def unsubscribe(self, client_id: str):
        self._subscribers.pop(client_id, None)

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    # ── Typed events ─────────────────────────────────────────────────────────

    async def publish_metadata(self, metadata: Metadata):
        await self.broadcast(METADATA, metadata.as_event())

    async def publish_state(self, playing: bool):
        """True while playing or about to play, False otherwise."""
        await self.broadcast(STATE, bool(playing))

    async def publish_error(self, stage: str, message: str):
        await self.broadcast(ERROR, {"stage": stage, "message": message})

    async def broadcast(self, event: str, data: Any):
        stalled = []
        for cid, q in self._subscribers.items():
            if q.full():
                # Keep the newest now-playing info: make room by dropping the oldest
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            try:
                q.put_nowait((event, data))
            except asyncio.QueueFull:
                stalled.append(cid)
        for cid in stalled:
            logger.warning("Dropping stalled subscriber %s", cid)
            self._subscribers.pop(cid, None)
