"""Module 4 — Stream Metadata Pipeline

Turns raw in-band announcements into now-playing updates:
parse → dedup → backfill artwork URL → download artwork → display + broadcast.
"""
import logging
from typing import Optional

from .artwork import ArtworkResolver
from .config import TITLE_DELIMITER
from .display import NowPlayingDisplay
from .models import ArtworkImage, ArtworkOrigin, Metadata, RawMetadata, StreamConfig
from .state import EventBus

logger = logging.getLogger(__name__)


def parse_raw(raw: RawMetadata) -> Optional[Metadata]:
    """Split 'Artist - Title' into fields. No delimiter means no artist.

    Returns None when the group carries no title at all.
    """
    title_field = raw.title_field
    if title_field is None:
        return None

    segments = title_field.split(TITLE_DELIMITER)
    if len(segments) == 1:
        artist, title = "", segments[0]
    else:
        artist, title = segments[0], TITLE_DELIMITER.join(segments[1:])

    return Metadata(
        artist=artist.strip(),
        title=title.strip(),
        artwork_url=(raw.artwork_field or "").strip(),
    )


class MetadataPipeline:
    def __init__(self, resolver: ArtworkResolver, display: NowPlayingDisplay, bus: EventBus):
        self.resolver = resolver
        self.display = display
        self.bus = bus
        self.config: Optional[StreamConfig] = None

        self._last_input: Optional[Metadata] = None
        self._last_emitted: Optional[Metadata] = None
        self._artwork: Optional[ArtworkImage] = None
        # Bumped on every stream switch; work started under an older value is stale
        self._generation = 0

    @property
    def last_metadata(self) -> Optional[Metadata]:
        return self._last_emitted

    @property
    def current_artwork(self) -> Optional[ArtworkImage]:
        return self._artwork

    def reset(self, config: Optional[StreamConfig]):
        """Install a new stream config and forget everything about the previous one."""
        self.config = config
        self._last_input = None
        self._last_emitted = None
        self._artwork = None
        self._generation += 1

    async def on_raw_metadata(self, raw: RawMetadata) -> Optional[Metadata]:
        config = self.config
        if config is None or config.ignore_icy:
            return None

        parsed = parse_raw(raw)
        if parsed is None:
            logger.warning("Ignoring metadata group without a title field")
            return None

        # Recorded before any await so a repeat arriving mid-resolution is dropped
        if parsed == self._last_input:
            return None
        self._last_input = parsed

        if not config.premium_enabled:
            return None

        generation = self._generation
        metadata = parsed
        origin = ArtworkOrigin.EMBEDDED_URL

        if not metadata.artwork_url:
            found = await self.resolver.lookup_url(metadata.artist, metadata.title, config.artwork_endpoint)
            if self._is_stale(generation):
                return None
            if found:
                url, origin = found
                metadata = metadata.with_artwork_url(url)

        artwork = None
        if metadata.artwork_url:
            artwork = await self.resolver.fetch_image(metadata.artwork_url, origin)
            if self._is_stale(generation):
                return None
        if artwork is None:
            artwork = self._default_artwork(config)

        if metadata == self._last_emitted:
            return None

        self._artwork = artwork
        self._last_emitted = metadata
        self.display.update(metadata.title, metadata.artist, artwork)
        logger.info("Now playing: %s / %s", metadata.artist or "?", metadata.title)
        await self.bus.publish_metadata(metadata)
        return metadata

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Discarding artwork resolved for a previous stream")
            return True
        return False

    @staticmethod
    def _default_artwork(config: StreamConfig) -> Optional[ArtworkImage]:
        if not config.default_artwork:
            return None
        return ArtworkImage(data=config.default_artwork, origin=ArtworkOrigin.DEFAULT)
