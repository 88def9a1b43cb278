"""Module 3 — Artwork Resolution (station endpoint, iTunes search, image download)

Every request is bounded by ARTWORK_TIMEOUT. A missing, slow or malformed
source is a normal outcome and resolves to None; nothing here raises to the
caller except cancellation.
"""
import asyncio
import logging
import urllib.parse
from typing import Any, Optional

import httpx

from .config import (
    ARTWORK_HIGH_RES_TOKEN,
    ARTWORK_LOW_RES_TOKEN,
    ARTWORK_TIMEOUT,
    ITUNES_SEARCH_URL,
    TITLE_DELIMITER,
    USER_AGENT,
)
from .models import ArtworkImage, ArtworkOrigin

logger = logging.getLogger(__name__)

# Content types a station or CDN may legitimately label an image with
_BINARY_TYPES = ("application/octet-stream", "binary/octet-stream")


def upgrade_artwork_url(url: str) -> str:
    """Swap the 30x30 thumbnail token for the high-res variant."""
    return url.replace(ARTWORK_LOW_RES_TOKEN, ARTWORK_HIGH_RES_TOKEN)


# quote() keeps these unreserved marks as-is; the search term escapes them too
_UNRESERVED_MARKS = str.maketrans({"-": "%2D", ".": "%2E", "_": "%5F", "~": "%7E"})


def search_term(artist: str, title: str) -> str:
    """Percent-encode 'artist - title' leaving only alphanumerics as-is."""
    term = urllib.parse.quote(f"{artist}{TITLE_DELIMITER}{title}", safe="")
    return term.translate(_UNRESERVED_MARKS)


class ArtworkResolver:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = ARTWORK_TIMEOUT,
        search_url: str = ITUNES_SEARCH_URL,
    ):
        self.timeout = timeout
        self.search_url = search_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    # ── Public API ───────────────────────────────────────────────────────────

    async def resolve(
        self, artist: str, title: str, endpoint_override: Optional[str] = None
    ) -> Optional[ArtworkImage]:
        """Look up the artwork URL for a track and download it."""
        found = await self.lookup_url(artist, title, endpoint_override)
        if not found:
            return None
        url, origin = found
        return await self.fetch_image(url, origin)

    async def lookup_url(
        self, artist: str, title: str, endpoint_override: Optional[str] = None
    ) -> Optional[tuple[str, ArtworkOrigin]]:
        """Find an artwork URL, station endpoint first when one is configured.

        With an override the public search is never consulted, even when the
        station has nothing to offer.
        """
        if endpoint_override:
            url = await self._lookup_station(endpoint_override)
            return (url, ArtworkOrigin.AZURACAST) if url else None

        url = await self._lookup_itunes(artist, title)
        return (url, ArtworkOrigin.ITUNES) if url else None

    async def fetch_image(
        self, url: str, origin: ArtworkOrigin = ArtworkOrigin.EMBEDDED_URL
    ) -> Optional[ArtworkImage]:
        url = (url or "").strip()
        if not _is_http_url(url):
            return None

        r = await self._get(url)
        if r is None:
            return None

        content_type = r.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type and not content_type.startswith("image/") and content_type not in _BINARY_TYPES:
            logger.debug("Artwork at %s is %s, not an image", url, content_type)
            return None
        if not r.content:
            logger.debug("Artwork at %s returned 0 bytes", url)
            return None

        return ArtworkImage(data=r.content, origin=origin, url=url, content_type=content_type)

    # ── Sources ──────────────────────────────────────────────────────────────

    async def _lookup_station(self, endpoint: str) -> Optional[str]:
        """Station endpoint (AzuraCast oEmbed style), expects {"thumbnail_url": ...}."""
        data = await self._get_json(endpoint.strip())
        if not isinstance(data, dict):
            return None
        thumbnail = data.get("thumbnail_url")
        if not isinstance(thumbnail, str) or not thumbnail.strip():
            return None
        return thumbnail.strip()

    async def _lookup_itunes(self, artist: str, title: str) -> Optional[str]:
        # Term is pre-encoded; passing it via params would encode it twice
        url = f"{self.search_url}?term={search_term(artist, title)}&limit=1"
        data = await self._get_json(url)
        if not isinstance(data, dict):
            return None

        try:
            count = int(data.get("resultCount") or 0)
        except (TypeError, ValueError):
            return None
        if count <= 0:
            return None

        results = data.get("results")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return None
        artwork30 = results[0].get("artworkUrl30")
        if not isinstance(artwork30, str) or not artwork30:
            return None
        return upgrade_artwork_url(artwork30)

    # ── HTTP ─────────────────────────────────────────────────────────────────

    async def _get(self, url: str) -> Optional[httpx.Response]:
        try:
            r = await asyncio.wait_for(self._client.get(url), timeout=self.timeout)
            r.raise_for_status()
            return r
        except asyncio.TimeoutError:
            logger.debug("Artwork request timed out after %ss: %s", self.timeout, url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("Artwork request failed for %s: %s", url, e)
        return None

    async def _get_json(self, url: str) -> Any:
        r = await self._get(url)
        if r is None:
            return None
        try:
            return r.json()
        except ValueError:
            logger.debug("Artwork source %s returned invalid JSON", url)
            return None


def _is_http_url(url: str) -> bool:
    parsed = urllib.parse.urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
