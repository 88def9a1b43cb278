"""Audio-session interruptions (phone calls, competing audio) and recovery."""
import logging

from .playback import PlaybackStateMachine

logger = logging.getLogger(__name__)


class InterruptionListener:
    def on_interruption_began(self):
        pass

    def on_interruption_ended(self, should_resume: bool):
        pass


class InterruptionSource:
    """OS-level interruption notifications, adapted by the host."""

    def add_listener(self, listener: InterruptionListener):
        raise NotImplementedError


class InterruptionCoordinator:
    def __init__(self, playback: PlaybackStateMachine):
        self.playback = playback

    async def on_interruption_began(self):
        # The OS suspends output itself; nothing to undo here.
        logger.info("Audio interrupted")

    async def on_interruption_ended(self, should_resume: bool):
        if not should_resume:
            logger.info("Interruption ended, staying paused")
            return
        logger.info("Interruption ended, resuming playback")
        await self.playback.play()
