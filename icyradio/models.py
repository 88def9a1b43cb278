"""Data model — stream config, announcements, now-playing metadata, artwork."""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from .config import STREAM_SCHEMES
from .errors import StreamConfigError

_ICY_FIELD = re.compile(r"(\w+)='(.*?)';", re.DOTALL)


class PlaybackState(Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"
    FAILED = "failed"


class TransportStatus(Enum):
    """What the opaque player reports about its own transport."""
    PAUSED = "paused"
    WAITING_TO_PLAY = "waiting-to-play"
    PLAYING = "playing"


class ArtworkOrigin(Enum):
    DEFAULT = "default"
    EMBEDDED_URL = "embedded-url"
    AZURACAST = "azuracast"
    ITUNES = "itunes"


@dataclass(frozen=True)
class StreamConfig:
    url: str
    artwork_endpoint: Optional[str] = None
    ignore_icy: bool = False
    premium_enabled: bool = False
    default_artwork: Optional[bytes] = field(default=None, repr=False)
    title: str = ""

    def validate(self) -> "StreamConfig":
        """Raise StreamConfigError unless the stream URL (and endpoint, if any) can be opened."""
        url = (self.url or "").strip()
        if not url:
            raise StreamConfigError("stream URL is empty")
        parsed = urlparse(url)
        if parsed.scheme.lower() not in STREAM_SCHEMES or not parsed.netloc:
            raise StreamConfigError(f"unsupported stream URL: {self.url!r}")

        if self.artwork_endpoint:
            endpoint = urlparse(self.artwork_endpoint.strip())
            if endpoint.scheme.lower() not in ("http", "https") or not endpoint.netloc:
                raise StreamConfigError(f"invalid artwork endpoint: {self.artwork_endpoint!r}")
        return self


@dataclass(frozen=True)
class RawMetadata:
    """One timed-metadata group as delivered by the stream: title first, then optional artwork URL."""
    fields: tuple = ()

    @property
    def title_field(self) -> Optional[str]:
        return self.fields[0] if self.fields else None

    @property
    def artwork_field(self) -> str:
        return self.fields[1] if len(self.fields) > 1 else ""

    @classmethod
    def from_icy_block(cls, block: str) -> "RawMetadata":
        """Build from an in-band block like ``StreamTitle='A - B';StreamUrl='http://...';``."""
        values = dict(_ICY_FIELD.findall(block or ""))
        if "StreamTitle" not in values:
            return cls()
        if values.get("StreamUrl"):
            return cls((values["StreamTitle"], values["StreamUrl"]))
        return cls((values["StreamTitle"],))


@dataclass(frozen=True)
class Metadata:
    artist: str = ""
    title: str = ""
    artwork_url: str = ""

    def with_artwork_url(self, url: str) -> "Metadata":
        return Metadata(self.artist, self.title, url.strip())

    def as_event(self) -> dict:
        return {"artist": self.artist, "title": self.title, "artworkUrl": self.artwork_url}


@dataclass(frozen=True)
class ArtworkImage:
    data: bytes = field(repr=False)
    origin: ArtworkOrigin
    url: str = ""
    content_type: str = ""
