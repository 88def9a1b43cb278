"""Module 5 — Playback State Machine

Idle → Buffering → Playing ⇄ Paused; any state → Failed on a transport
failure; Failed/Idle → Buffering on play(). Transitions only happen on
explicit calls or signals from the transport.
"""
import asyncio
import logging
from typing import Optional

from .errors import StreamConfigError, format_error
from .models import PlaybackState, StreamConfig, TransportStatus
from .player import Transport
from .state import EventBus

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Decides whether to reconnect after the stream fails to play to the end."""

    def next_delay(self, failures: int) -> Optional[float]:
        """Seconds to wait before reconnecting, or None to stay failed."""
        raise NotImplementedError


class NoRetry(RetryPolicy):
    def next_delay(self, failures: int) -> Optional[float]:
        return None


class PlaybackStateMachine:
    def __init__(self, transport: Transport, bus: EventBus, retry_policy: Optional[RetryPolicy] = None):
        self.transport = transport
        self.bus = bus
        self.retry_policy = retry_policy or NoRetry()
        self.config: Optional[StreamConfig] = None

        self._state = PlaybackState.IDLE
        self._published: Optional[bool] = None
        self._failures = 0
        self._retry_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    # ── Commands ─────────────────────────────────────────────────────────────

    async def set_stream(self, config: StreamConfig):
        """Tear down the current stream and open *config* in its place.

        If the transport refuses the new URL the machine keeps the previous
        config, lands in FAILED and the error is re-raised as StreamConfigError.
        """
        self._cancel_retry()
        if self.transport.is_open:
            self.transport.close()

        previous = self.config
        self.config = config
        try:
            self._open()
        except Exception as e:
            self.config = previous
            self._set_state(PlaybackState.FAILED)
            await self._publish(False)
            format_error("stream_config", str(e), {"url": config.url})
            raise StreamConfigError(f"could not open {config.url}: {e}") from e
        self._failures = 0

    async def play(self):
        if self.config is None:
            raise StreamConfigError("no stream configured")

        if not self.transport.is_open:
            self._open()
        elif self.transport.buffer_empty or self.transport.failed or self._state is PlaybackState.FAILED:
            logger.info("Re-opening stream %s", self.config.url)
            self.transport.close()
            self._open()

        self.transport.play()

    async def pause(self):
        """Pause but keep the connection."""
        self.transport.pause()

    async def stop(self):
        """Pause and release the connection; the next play() re-opens it."""
        self._cancel_retry()
        self.transport.pause()
        self.transport.close()
        self._set_state(PlaybackState.IDLE)
        await self._publish(False)

    # ── Transport signals ────────────────────────────────────────────────────

    async def on_transport_status(self, status: TransportStatus):
        if status is TransportStatus.PAUSED:
            if self._state not in (PlaybackState.IDLE, PlaybackState.FAILED):
                self._set_state(PlaybackState.PAUSED)
            await self._publish(False)
        elif status is TransportStatus.WAITING_TO_PLAY:
            self._set_state(PlaybackState.BUFFERING)
            await self._publish(True)
        elif status is TransportStatus.PLAYING:
            self._set_state(PlaybackState.PLAYING)
            self._failures = 0
            await self._publish(True)

    async def on_failed_to_play_to_end(self, reason: str = ""):
        self._failures += 1
        self._set_state(PlaybackState.FAILED)
        await self._publish(False)

        url = self.config.url if self.config else ""
        message = format_error("transport", reason or "failed to play to end", {"url": url})
        await self.bus.publish_error("transport", message)

        delay = self.retry_policy.next_delay(self._failures)
        if delay is None:
            return
        logger.info("Reconnecting to %s in %.1fs (failure #%d)", url, delay, self._failures)
        self._cancel_retry()
        self._retry_task = asyncio.create_task(self._retry_after(delay))

    # ── Internals ────────────────────────────────────────────────────────────

    def _open(self):
        self.transport.open(self.config.url)
        self._set_state(PlaybackState.BUFFERING)

    def _set_state(self, new_state: PlaybackState):
        if new_state is not self._state:
            logger.debug("Playback %s → %s", self._state.value, new_state.value)
            self._state = new_state

    async def _publish(self, playing: bool):
        if playing == self._published:
            return
        self._published = playing
        await self.bus.publish_state(playing)

    async def _retry_after(self, delay: float):
        await asyncio.sleep(delay)
        self._retry_task = None
        if self._state is PlaybackState.FAILED:
            await self.play()

    def _cancel_retry(self):
        if self._retry_task and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None
