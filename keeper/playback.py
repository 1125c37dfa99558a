"""
keeper/playback.py
Starts and stops streamed audio on connected guilds. At most one dispatch
per guild: a new play() ends the previous one before starting.
"""

from __future__ import annotations
import logging
from typing import Sequence

from .config import COMMAND_PREFIX, TargetServer
from .errors import (
    MetadataUnavailable,
    NotConnected,
    InvalidSource,
    StreamFailure,
    UnknownServerIndex,
)
from .state import ConnectionState, GuildConnectionRegistry
from .status import StatusAggregator

log = logging.getLogger("voicekeeper.playback")


class PlaybackController:

    VOLUME        = 0.5
    UNKNOWN_TITLE = "Unknown Title"

    def __init__(self, registry: GuildConnectionRegistry, targets: Sequence[TargetServer],
                 source, status: StatusAggregator):
        self.registry = registry
        self.targets  = list(targets)
        self.source   = source
        self.status   = status

    def resolve_target(self, server_index: int) -> TargetServer:
        """Map a 1-based server number to its target."""
        if not isinstance(server_index, int) or not 1 <= server_index <= len(self.targets):
            raise UnknownServerIndex(server_index, len(self.targets))
        return self.targets[server_index - 1]

    def _connected_state(self, target: TargetServer) -> ConnectionState:
        state = self.registry.get(target.guild_id)
        if state is None or not state.is_connected or state.connection is None:
            raise NotConnected(target.name, COMMAND_PREFIX)
        return state

    # ──────────────────────────────────────────
    # Play / stop
    # ──────────────────────────────────────────

    async def play(self, server_index: int, url: str) -> str:
        """
        Stream audio from `url` into the target's voice channel.
        Returns the track title (or a placeholder when metadata is unavailable).
        Raises a PlaybackError subclass when playback cannot start.
        """
        target = self.resolve_target(server_index)
        state  = self._connected_state(target)

        if not self.source.is_acceptable_url(url):
            raise InvalidSource(url)

        if state.retire_playback():
            log.info("Stopped previous audio in %s", target.name)
            self.status.refresh()

        try:
            stream = await self.source.open_audio_stream(url)
        except StreamFailure as e:
            log.error("Could not open audio stream for %s: %s", url, e)
            raise
        except Exception as e:
            log.error("Could not open audio stream for %s: %s", url, e)
            raise StreamFailure(f"Could not open audio stream: {e}") from e

        # The stream took a while to resolve; the guild may have changed under us.
        try:
            state = self._connected_state(target)
        except NotConnected:
            _close_stream(stream)
            raise
        state.retire_playback()

        try:
            dispatch = state.connection.attach_stream(stream, volume=self.VOLUME)
        except Exception as e:
            _close_stream(stream)
            log.error("Could not start audio in %s: %s", target.name, e)
            raise StreamFailure(f"Could not start audio: {e}") from e

        state.playback = dispatch
        state.is_audio_playing = True
        self._observe(target, state, dispatch)

        return await self._resolve_title(url)

    def stop(self, server_index: int) -> bool:
        """End playback on the target. Returns False if nothing was playing."""
        target = self.resolve_target(server_index)
        state  = self.registry.get(target.guild_id)
        if state is None or state.playback is None:
            return False

        state.retire_playback()
        log.info("Stopped audio in %s", target.name)
        self.status.refresh()
        return True

    # ──────────────────────────────────────────
    # Dispatch observers
    # ──────────────────────────────────────────

    def _observe(self, target: TargetServer, state: ConnectionState, dispatch) -> None:
        def on_start() -> None:
            log.info("Audio playback started in %s", target.name)
            self.status.refresh()

        def on_finish() -> None:
            if state.playback is not dispatch:
                return
            log.info("Audio playback finished in %s", target.name)
            self._reset(state)

        def on_error(error: Exception) -> None:
            if state.playback is not dispatch:
                return
            log.error("Audio error in %s: %s", target.name, error)
            self._reset(state)

        dispatch.on("start", on_start)
        dispatch.on("finish", on_finish)
        dispatch.on("error", on_error)

    def _reset(self, state: ConnectionState) -> None:
        state.playback = None
        state.is_audio_playing = False
        self.status.refresh()

    async def _resolve_title(self, url: str) -> str:
        try:
            info = await self.source.fetch_metadata(url)
        except MetadataUnavailable as e:
            log.debug("No metadata for %s: %s", url, e)
            return self.UNKNOWN_TITLE
        return info.get("title") or self.UNKNOWN_TITLE


def _close_stream(stream) -> None:
    cleanup = getattr(stream, "cleanup", None)
    if cleanup is not None:
        cleanup()
