"""End-to-end tests for icyradio/session.py with a fake transport and mock network."""

import asyncio
import threading

import httpx
import pytest

from icyradio.artwork import ArtworkResolver
from icyradio.errors import StreamConfigError
from icyradio.models import ArtworkOrigin, PlaybackState, RawMetadata, StreamConfig, TransportStatus
from icyradio.session import RadioSession
from icyradio.state import METADATA, STATE

STREAM = StreamConfig(url="https://stream.example/live", premium_enabled=True, title="Example FM")
OTHER = StreamConfig(url="https://other.example/live", premium_enabled=True, title="Other FM")


def _run(coro):
    return asyncio.run(coro)


async def _next_event(q, timeout=1.0):
    return await asyncio.wait_for(q.get(), timeout)


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


def _itunes_handler(requests):
    async def handler(request):
        requests.append(request.url)
        if request.url.host == "itunes.apple.com":
            return httpx.Response(200, json={
                "resultCount": 1,
                "results": [{"artworkUrl30": "http://x/30x30bb.jpg"}],
            })
        return httpx.Response(200, content=b"jpeg", headers={"content-type": "image/jpeg"})
    return handler


class GatedResolver:
    """Lookup blocks until released so a stream switch can land mid-fetch."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def lookup_url(self, artist, title, endpoint_override=None):
        self.started.set()
        await self.release.wait()
        return "http://x/stale.jpg", ArtworkOrigin.ITUNES

    async def fetch_image(self, url, origin=ArtworkOrigin.EMBEDDED_URL):
        return None

    async def aclose(self):
        pass


class NoArtworkResolver:
    async def lookup_url(self, artist, title, endpoint_override=None):
        return None

    async def fetch_image(self, url, origin=ArtworkOrigin.EMBEDDED_URL):
        return None

    async def aclose(self):
        pass


class TestSetStream:
    def test_invalid_url_fails_fast_without_side_effects(self, transport, display, interruptions):
        async def scenario():
            session = RadioSession(transport, display, interruptions)
            with pytest.raises(StreamConfigError):
                await session.set_stream(StreamConfig(url="not a url"))
            return session

        session = _run(scenario())
        assert session.config is None
        assert session.state is PlaybackState.IDLE
        assert transport.calls == []
        assert transport.listeners == []
        assert display.updates == []

    def test_observers_registered_once(self, transport, display, interruptions):
        async def scenario():
            session = RadioSession(transport, display, interruptions)
            await session.start()
            await session.set_stream(STREAM)
            await session.set_stream(OTHER)
            await session.set_stream(STREAM)
            await session.close()
            return session

        session = _run(scenario())
        assert transport.listeners == [session]
        assert interruptions.listeners == [session]

    def test_station_title_shown_and_stream_opened(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display)
            await session.set_stream(STREAM)
            return session

        session = _run(scenario())
        assert display.updates == [("Example FM", "", None)]
        assert transport.calls == [("open", STREAM.url)]
        assert session.state is PlaybackState.BUFFERING
        assert session.config is STREAM

    def test_refused_open_keeps_previous_stream(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display, resolver=GatedResolver())
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            session.on_transport_status(TransportStatus.PLAYING)
            assert await _next_event(events) == (STATE, True)

            transport.open_error = OSError("connection refused")
            with pytest.raises(StreamConfigError):
                await session.set_stream(OTHER)
            event = events.get_nowait()
            state = session.state
            await session.close()
            return session, event, state

        session, event, state = _run(scenario())
        assert event == (STATE, False)
        assert state is PlaybackState.FAILED
        assert session.config is STREAM
        assert [u[0] for u in display.updates] == ["Example FM"]

    def test_refused_open_reports_failed_state(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display, resolver=GatedResolver())
            transport.open_error = OSError("connection refused")
            with pytest.raises(StreamConfigError):
                await session.set_stream(STREAM)
            return session

        session = _run(scenario())
        assert session.state is PlaybackState.FAILED
        assert session.config is None
        assert display.updates == []


class TestPlayback:
    def test_play_stop_play(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display)
            await session.set_stream(STREAM)
            await session.play()
            await session.stop()
            await session.play()
            return session

        session = _run(scenario())
        assert transport.calls == [
            ("open", STREAM.url), ("play",), ("pause",), ("close",), ("open", STREAM.url), ("play",),
        ]
        assert session.state is PlaybackState.BUFFERING

    def test_status_from_transport_thread(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display)
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)

            worker = threading.Thread(
                target=session.on_transport_status, args=(TransportStatus.WAITING_TO_PLAY,)
            )
            worker.start()
            worker.join()
            event = await _next_event(events)
            await session.close()
            return event

        assert _run(scenario()) == (STATE, True)

    def test_interruption_resume(self, transport, display, interruptions):
        async def scenario():
            session = RadioSession(transport, display, interruptions)
            await session.start()
            await session.set_stream(STREAM)
            transport.calls.clear()
            session.on_interruption_began()
            session.on_interruption_ended(should_resume=False)
            await _settle()
            assert transport.calls == []
            session.on_interruption_ended(should_resume=True)
            await _settle()
            await session.close()

        _run(scenario())
        assert transport.calls[0] == ("play",)

    def test_failure_surfaces_failed_state(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display)
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            session.on_transport_status(TransportStatus.PLAYING)
            assert await _next_event(events) == (STATE, True)
            session.on_failed_to_play_to_end("eof")
            assert await _next_event(events) == (STATE, False)
            state = session.state
            await session.close()
            return state

        assert _run(scenario()) is PlaybackState.FAILED


class TestMetadata:
    def test_announcement_becomes_metadata_event(self, transport, display):
        requests = []

        async def scenario():
            client = httpx.AsyncClient(transport=httpx.MockTransport(_itunes_handler(requests)))
            session = RadioSession(transport, display, resolver=ArtworkResolver(client=client, timeout=1))
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            session.on_timed_metadata([RawMetadata(("Artist - Track",))])
            event = await _next_event(events)
            artwork = session.artwork
            await session.close()
            await client.aclose()
            return event, artwork

        event, artwork = _run(scenario())
        assert event == (METADATA, {"artist": "Artist", "title": "Track", "artworkUrl": "http://x/500x500bb.jpg"})
        assert str(requests[-1]) == "http://x/500x500bb.jpg"
        assert artwork.origin is ArtworkOrigin.ITUNES
        assert display.updates[-1][:2] == ("Track", "Artist")

    def test_announcements_published_in_order(self, transport, display):
        requests = []

        async def scenario():
            client = httpx.AsyncClient(transport=httpx.MockTransport(_itunes_handler(requests)))
            session = RadioSession(transport, display, resolver=ArtworkResolver(client=client, timeout=1))
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            for title in ("A - One", "A - One", "B - Two", "C - Three"):
                session.on_timed_metadata([RawMetadata((title,))])
            titles = [(await _next_event(events))[1]["title"] for _ in range(3)]
            await _settle()
            leftover = events.qsize()
            await session.close()
            await client.aclose()
            return titles, leftover

        titles, leftover = _run(scenario())
        assert titles == ["One", "Two", "Three"]
        assert leftover == 0

    def test_empty_group_list_ignored(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display, resolver=GatedResolver())
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            session.on_timed_metadata([])
            await _settle()
            await session.close()
            return events.qsize()

        assert _run(scenario()) == 0

    def test_stream_switch_discards_stale_artwork(self, transport, display):
        async def scenario():
            resolver = GatedResolver()
            session = RadioSession(transport, display, resolver=resolver)
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            session.on_timed_metadata([RawMetadata(("Old - Song",))])
            await asyncio.wait_for(resolver.started.wait(), 1)

            await session.set_stream(OTHER)
            resolver.release.set()
            await _settle()
            await asyncio.sleep(0.01)

            pending = events.qsize()
            last = session.last_metadata
            await session.close()
            return pending, last

        pending, last = _run(scenario())
        assert pending == 0
        assert last is None
        assert [u[0] for u in display.updates] == ["Example FM", "Other FM"]

    def test_announcement_in_flight_during_switch_is_dropped(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display, resolver=NoArtworkResolver())
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            # Handed to the loop but not yet queued when the switch runs
            session.on_timed_metadata([RawMetadata(("Old Artist - Old Song",))])
            await session.set_stream(OTHER)
            await _settle()
            await asyncio.sleep(0.01)

            pending = events.qsize()
            last = session.last_metadata
            await session.close()
            return pending, last

        pending, last = _run(scenario())
        assert pending == 0
        assert last is None
        assert all(u[0] != "Old Song" for u in display.updates)

    def test_announcement_after_switch_is_published(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display, resolver=NoArtworkResolver())
            events = session.bus.subscribe("host")
            await session.start()
            await session.set_stream(STREAM)
            await session.set_stream(OTHER)
            session.on_timed_metadata([RawMetadata(("New Artist - New Song",))])
            event = await _next_event(events)
            await session.close()
            return event

        assert _run(scenario()) == (METADATA, {"artist": "New Artist", "title": "New Song", "artworkUrl": ""})

    def test_metadata_before_start_is_dropped(self, transport, display):
        async def scenario():
            session = RadioSession(transport, display, resolver=GatedResolver())
            await session.set_stream(STREAM)
            session.on_timed_metadata([RawMetadata(("A - B",))])
            return session

        session = _run(scenario())
        assert session.last_metadata is None
