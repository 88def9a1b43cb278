"""Module 6 — Radio Session

Single entry point for the host. Owns the active stream config and wires the
transport, interruption source, metadata pipeline and state machine together.

All state lives on the asyncio loop the session was started on. Transport and
interruption callbacks may fire on any thread; they are handed to the loop
with call_soon_threadsafe. Metadata announcements are resolved one at a time
by a single worker so that newer announcements never get overtaken.
"""
import asyncio
import logging
from typing import Optional, Sequence

from .artwork import ArtworkResolver
from .display import LogDisplay, NowPlayingDisplay
from .errors import StreamConfigError, format_error
from .interruptions import InterruptionCoordinator, InterruptionListener, InterruptionSource
from .metadata import MetadataPipeline
from .models import ArtworkImage, Metadata, PlaybackState, RawMetadata, StreamConfig, TransportStatus
from .playback import PlaybackStateMachine, RetryPolicy
from .player import Transport, TransportListener
from .state import EventBus

logger = logging.getLogger(__name__)


class RadioSession(TransportListener, InterruptionListener):
    def __init__(
        self,
        transport: Transport,
        display: Optional[NowPlayingDisplay] = None,
        interruptions: Optional[InterruptionSource] = None,
        resolver: Optional[ArtworkResolver] = None,
        bus: Optional[EventBus] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.transport = transport
        self.interruptions = interruptions
        self.display = display or LogDisplay()
        self.bus = bus or EventBus()

        self._owns_resolver = resolver is None
        self.resolver = resolver or ArtworkResolver()

        self.playback = PlaybackStateMachine(transport, self.bus, retry_policy)
        self.coordinator = InterruptionCoordinator(self.playback)
        self.pipeline = MetadataPipeline(self.resolver, self.display, self.bus)

        self._config: Optional[StreamConfig] = None
        self._observers_registered = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        # Items are (stream generation, RawMetadata)
        self._metadata_queue: asyncio.Queue = asyncio.Queue()
        self._stream_generation = 0
        self._worker_task: Optional[asyncio.Task] = None
        self._current_job: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    # ── Read-only state ──────────────────────────────────────────────────────

    @property
    def config(self) -> Optional[StreamConfig]:
        return self._config

    @property
    def state(self) -> PlaybackState:
        return self.playback.state

    @property
    def last_metadata(self) -> Optional[Metadata]:
        return self.pipeline.last_metadata

    @property
    def artwork(self) -> Optional[ArtworkImage]:
        return self.pipeline.current_artwork

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self):
        """Bind to the running loop and start the metadata worker."""
        self._loop = asyncio.get_running_loop()
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._metadata_worker())

    async def close(self):
        """Stop playback, cancel background work and release the HTTP client."""
        self._cancel_current_job()
        for task in [self._worker_task, *self._tasks]:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass
        self._worker_task = None
        self._tasks.clear()

        if self._config is not None:
            await self.playback.stop()
        if self._owns_resolver:
            await self.resolver.aclose()

    # ── Public API (called by the host) ──────────────────────────────────────

    async def set_stream(self, config: StreamConfig):
        """Switch to a new stream. Invalid configs raise before anything changes."""
        try:
            config.validate()
        except StreamConfigError as e:
            format_error("stream_config", str(e), {"url": config.url})
            raise

        # Nothing announced for the old stream may reach the display, including
        # announcements already handed to the loop but not yet queued
        self._stream_generation += 1
        self._drop_pending_metadata()

        self.register_observers_once()
        # Raises StreamConfigError if the transport refuses the URL; the
        # session keeps its previous config in that case
        await self.playback.set_stream(config)

        self.pipeline.reset(config)
        self._config = config
        self.display.update(config.title)
        logger.info("Stream set: %s", config.url)

    async def play(self):
        await self.playback.play()

    async def pause(self):
        await self.playback.pause()

    async def stop(self):
        await self.playback.stop()

    def register_observers_once(self):
        if self._observers_registered:
            return
        self.transport.add_listener(self)
        if self.interruptions is not None:
            self.interruptions.add_listener(self)
        self._observers_registered = True
        logger.info("Transport and interruption observers registered")

    # ── Transport callbacks (any thread) ─────────────────────────────────────

    def on_transport_status(self, status: TransportStatus):
        self._dispatch(self.playback.on_transport_status, status)

    def on_timed_metadata(self, groups: Sequence[RawMetadata]):
        if not groups:
            return
        self._call_soon(self._metadata_queue.put_nowait, (self._stream_generation, groups[0]))

    def on_failed_to_play_to_end(self, reason: str = ""):
        self._dispatch(self.playback.on_failed_to_play_to_end, reason)

    # ── Interruption callbacks (any thread) ──────────────────────────────────

    def on_interruption_began(self):
        self._dispatch(self.coordinator.on_interruption_began)

    def on_interruption_ended(self, should_resume: bool):
        self._dispatch(self.coordinator.on_interruption_ended, should_resume)

    # ── Internals ────────────────────────────────────────────────────────────

    async def _metadata_worker(self):
        while True:
            generation, raw = await self._metadata_queue.get()
            if generation != self._stream_generation:
                logger.debug("Skipping announcement from a previous stream")
                continue
            job = asyncio.create_task(self.pipeline.on_raw_metadata(raw))
            self._current_job = job
            try:
                # wait() instead of await: a cancelled job must not stop the worker
                await asyncio.wait({job})
            finally:
                if self._current_job is job:
                    self._current_job = None
            if not job.cancelled() and job.exception() is not None:
                logger.error("Metadata processing failed", exc_info=job.exception())

    def _drop_pending_metadata(self):
        self._cancel_current_job()
        dropped = 0
        while True:
            try:
                self._metadata_queue.get_nowait()
                dropped += 1
            except asyncio.QueueEmpty:
                break
        if dropped:
            logger.debug("Dropped %d queued announcement(s) from the previous stream", dropped)

    def _cancel_current_job(self):
        if self._current_job and not self._current_job.done():
            self._current_job.cancel()
        self._current_job = None

    def _call_soon(self, fn, *args):
        if self._loop is None:
            logger.warning("Session not started, dropping %s", getattr(fn, "__name__", fn))
            return
        self._loop.call_soon_threadsafe(fn, *args)

    def _dispatch(self, coro_fn, *args):
        self._call_soon(self._spawn, coro_fn, *args)

    def _spawn(self, coro_fn, *args):
        task = asyncio.create_task(coro_fn(*args))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Session callback failed: %s", exc, exc_info=exc)
