"""
Pytest configuration and shared fakes for the voice keeper test suite.

The fakes stand in for the Discord gateway, voice sessions, audio dispatches
and the YouTube source so the core can be driven without a network.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from keeper.config import TargetServer
from keeper.errors import MetadataUnavailable, StreamFailure
from keeper.service import VoiceKeeper


class _Events:
    def __init__(self):
        self.handlers = {}

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event, *args):
        for handler in list(self.handlers.get(event, [])):
            handler(*args)


class FakeDispatch(_Events):
    def __init__(self, stream, volume):
        super().__init__()
        self.stream = stream
        self.volume = volume
        self.end_calls = 0

    def end(self):
        self.end_calls += 1


class FakeSession(_Events):
    def __init__(self, channel):
        super().__init__()
        self.channel = channel
        self.deafened = None
        self.disconnect_calls = 0
        self.fail_disconnect = False
        self.dispatches = []

    async def set_self_deafened(self, deafened):
        self.deafened = deafened

    async def disconnect(self):
        self.disconnect_calls += 1
        if self.fail_disconnect:
            raise RuntimeError("socket already closed")

    def attach_stream(self, stream, volume):
        dispatch = FakeDispatch(stream, volume)
        self.dispatches.append(dispatch)
        return dispatch


class FakeGateway:
    def __init__(self):
        self.guilds = {}        # guild_id -> {channel_id: voice_capable}
        self.rejecting = set()  # guild ids whose voice session is refused
        self.sessions = []
        self.open_calls = 0
        self.reuse = False       # hand back the live session, as discord.py does
        self.before_open = None  # optional coroutine hook, awaited with the channel

    def add_channel(self, guild_id, channel_id, voice=True):
        self.guilds.setdefault(guild_id, {})[channel_id] = voice

    def resolve_guild(self, guild_id):
        if guild_id not in self.guilds:
            return None
        return SimpleNamespace(id=guild_id)

    def resolve_voice_channel(self, guild, channel_id):
        channels = self.guilds[guild.id]
        if channel_id not in channels:
            return None
        return SimpleNamespace(id=channel_id, guild=guild, voice=channels[channel_id])

    def is_voice_capable(self, channel):
        return channel.voice

    async def open_voice_session(self, channel):
        self.open_calls += 1
        if self.before_open:
            await self.before_open(channel)
        if channel.guild.id in self.rejecting:
            raise RuntimeError("voice server refused the session")
        if self.reuse:
            for live in self.sessions:
                if live.channel.guild.id == channel.guild.id and not live.disconnect_calls:
                    return live
        session = FakeSession(channel)
        self.sessions.append(session)
        return session


class FakeSource:
    def __init__(self):
        self.titles = {}
        self.opened = []
        self.fail_open = False
        self.before_open = None   # optional hook run inside open_audio_stream

    def is_acceptable_url(self, url):
        return url.startswith("https://youtu.be/")

    async def open_audio_stream(self, url):
        if self.before_open:
            self.before_open()
        if self.fail_open:
            raise StreamFailure("video unavailable")
        stream = SimpleNamespace(url=url, cleanup=MagicMock())
        self.opened.append(stream)
        return stream

    async def fetch_metadata(self, url):
        if url in self.titles:
            return {"title": self.titles[url]}
        raise MetadataUnavailable("no info")


class _Handle:
    def __init__(self, when, delay, callback):
        self.when = when
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """call_later replacement driven by advance()."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = _Handle(self.now + delay, delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        self.now += seconds
        due = [h for h in self.active if h.when <= self.now]
        for handle in due:
            self.handles.remove(handle)
            handle.callback()


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


async def drain():
    """Let tasks spawned by fired timers run to completion."""
    for _ in range(5):
        await asyncio.sleep(0)


# ──────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────

GUILD_A, CHANNEL_A = 111, 1110
GUILD_B, CHANNEL_B = 222, 2220


@pytest.fixture
def target_a():
    return TargetServer(guild_id=GUILD_A, channel_id=CHANNEL_A, name="Server A")


@pytest.fixture
def target_b():
    return TargetServer(guild_id=GUILD_B, channel_id=CHANNEL_B, name="Server B")


@pytest.fixture
def gateway():
    gw = FakeGateway()
    gw.add_channel(GUILD_A, CHANNEL_A)
    gw.add_channel(GUILD_B, CHANNEL_B)
    return gw


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def keeper(target_a, target_b, gateway, source, scheduler, clock, sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    return VoiceKeeper(
        [target_a, target_b], gateway, source,
        clock=clock, call_later=scheduler.call_later, sleep=fake_sleep,
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
