"""Now-playing display surface — one-way sink for title, artist and artwork."""
import logging
from typing import Optional

from .models import ArtworkImage

logger = logging.getLogger(__name__)


class NowPlayingDisplay:
    """Host-provided surface (lock screen, media session widget, ...).

    The core only ever writes to it.
    """

    def update(self, title: str, artist: str = "", artwork: Optional[ArtworkImage] = None):
        raise NotImplementedError


class LogDisplay(NowPlayingDisplay):
    """Fallback surface when the host doesn't provide one."""

    def update(self, title: str, artist: str = "", artwork: Optional[ArtworkImage] = None):
        origin = artwork.origin.value if artwork else "none"
        logger.info("Now playing: %s - %s (artwork: %s)", artist or "?", title, origin)
