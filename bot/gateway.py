"""
bot/gateway.py
discord.py adapters for the keeper core: guild/channel lookup, voice
sessions, and audio dispatches with start/finish/error/disconnect events.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

import discord

log = logging.getLogger("voicekeeper.gateway")


class _Emitter:
    """Minimal on()/emit() event hub."""

    def __init__(self):
        self._handlers: dict[str, list[Callable]] = {}

    def on(self, event: str, handler: Callable) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def emit(self, event: str, *args) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                log.exception("Handler for %r raised", event)


# ──────────────────────────────────────────────
# Audio dispatch
# ──────────────────────────────────────────────

class DiscordDispatch(_Emitter):
    """One source playing on a voice client."""

    def __init__(self, voice_client: discord.VoiceClient, source: discord.AudioSource):
        super().__init__()
        self.voice_client = voice_client
        self.source = source
        self._ended = False
        self._finished = False

    def end(self) -> None:
        """Stop this dispatch. Leaves the voice client alone if it has moved on."""
        if self._ended:
            return
        self._ended = True
        if self.voice_client.source is self.source:
            self.voice_client.stop()

    def finished(self, error: Optional[Exception]) -> None:
        """Called on the event loop once the player thread is done."""
        if self._finished:
            return
        self._finished = True
        if error:
            self.emit("error", error)
        else:
            self.emit("finish")


# ──────────────────────────────────────────────
# Voice session
# ──────────────────────────────────────────────

class DiscordVoiceSession(_Emitter):

    def __init__(self, gateway: DiscordGateway, voice_client: discord.VoiceClient):
        super().__init__()
        self.gateway = gateway
        self.voice_client = voice_client
        self.closing = False

    @property
    def guild_id(self) -> int:
        return self.voice_client.guild.id

    async def set_self_deafened(self, deafened: bool) -> None:
        await self.voice_client.guild.change_voice_state(
            channel=self.voice_client.channel, self_deaf=deafened,
        )

    async def disconnect(self) -> None:
        """Leave on purpose. Does not fire the 'disconnect' event."""
        self.closing = True
        self.gateway.forget(self)
        await self.voice_client.disconnect(force=True)

    def attach_stream(self, stream: discord.AudioSource, volume: float) -> DiscordDispatch:
        source   = discord.PCMVolumeTransformer(stream, volume=volume)
        dispatch = DiscordDispatch(self.voice_client, source)
        loop     = asyncio.get_running_loop()

        def after_play(error: Optional[Exception]) -> None:
            # Runs on the audio player thread.
            loop.call_soon_threadsafe(dispatch.finished, error)

        if self.voice_client.is_playing():
            self.voice_client.stop()
        self.voice_client.play(source, after=after_play)
        loop.call_soon(dispatch.emit, "start")
        return dispatch


# ──────────────────────────────────────────────
# Gateway
# ──────────────────────────────────────────────

class DiscordGateway:
    """Looks things up on the bot's cache and opens voice sessions."""

    def __init__(self, bot: discord.Client):
        self.bot = bot
        self._sessions: dict[int, DiscordVoiceSession] = {}   # guild_id -> current session

    def resolve_guild(self, guild_id: int) -> Optional[discord.Guild]:
        return self.bot.get_guild(guild_id)

    def resolve_voice_channel(self, guild: discord.Guild, channel_id: int):
        return guild.get_channel(channel_id)

    @staticmethod
    def is_voice_capable(channel) -> bool:
        return isinstance(channel, discord.VoiceChannel)

    async def open_voice_session(self, channel: discord.VoiceChannel) -> DiscordVoiceSession:
        vc = channel.guild.voice_client
        if vc is not None and vc.is_connected():
            if vc.channel is None or vc.channel.id != channel.id:
                try:
                    await vc.move_to(channel)
                except Exception as e:
                    # Move failed; drop the old connection and join fresh
                    log.warning("Move to %s failed (%s), reconnecting.", channel.name, e)
                    await self._force_disconnect(vc)
                    vc = await channel.connect(reconnect=True, self_deaf=True)
        else:
            if vc is not None:
                await self._force_disconnect(vc)
            vc = await channel.connect(reconnect=True, self_deaf=True)

        old = self._sessions.get(channel.guild.id)
        if old is not None and old.voice_client is vc and not old.closing:
            # Same voice client; whatever it is playing carries on.
            return old
        if old is not None:
            old.closing = True
        session = DiscordVoiceSession(self, vc)
        self._sessions[channel.guild.id] = session
        log.debug("Voice session open in %s / %s", channel.guild.name, channel.name)
        return session

    @staticmethod
    async def _force_disconnect(vc) -> None:
        try:
            await vc.disconnect(force=True)
        except Exception as e:
            log.debug("Ignoring error while dropping stale voice client: %s", e)

    def forget(self, session: DiscordVoiceSession) -> None:
        if self._sessions.get(session.guild_id) is session:
            del self._sessions[session.guild_id]

    def notify_disconnected(self, guild_id: int) -> None:
        """The bot was removed from voice in `guild_id` without asking."""
        session = self._sessions.pop(guild_id, None)
        if session is None or session.closing:
            return
        session.emit("disconnect")
