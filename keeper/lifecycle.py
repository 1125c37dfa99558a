"""
keeper/lifecycle.py
Connects to each target voice channel, keeps it connected, and tears
everything down on request.

Retries use fixed delays and never give up: 15s after a failed attempt,
10s after the gateway drops an established session.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from .config import CONNECT_PACING, CONNECT_RETRY_DELAY, RECONNECT_DELAY, TargetServer
from .errors import (
    ChannelNotFound,
    ChannelNotVoiceCapable,
    ConnectFailure,
    GatewaySessionFailure,
    GuildNotFound,
)
from .state import ConnectionState, GuildConnectionRegistry
from .status import StatusAggregator

log = logging.getLogger("voicekeeper.lifecycle")

CallLater = Callable[[float, Callable[[], Any]], Any]


class VoiceLifecycleManager:
    """Owns connect / reconnect / disconnect for every configured guild."""

    RETRY_DELAY     = CONNECT_RETRY_DELAY
    RECONNECT_DELAY = RECONNECT_DELAY
    PACING          = CONNECT_PACING

    def __init__(self, registry: GuildConnectionRegistry, gateway, status: StatusAggregator,
                 call_later: Optional[CallLater] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.registry = registry
        self.gateway  = gateway
        self.status   = status
        self._call_later = call_later
        self._sleep      = sleep
        self._retries: dict[TargetServer, Any] = {}   # target -> pending timer handle
        self._tasks: set[asyncio.Task] = set()
        self._generation = 0   # bumped by disconnect_all()
        self._attempts: dict[int, int] = {}   # guild_id -> latest attempt number

    # ──────────────────────────────────────────
    # Connect
    # ──────────────────────────────────────────

    async def connect(self, target: TargetServer) -> bool:
        """Join the target's voice channel. On failure, record it and retry later."""
        self._cancel_retry(target)
        generation = self._generation
        attempt = self._attempts.get(target.guild_id, 0) + 1
        self._attempts[target.guild_id] = attempt
        log.info("Attempting to connect to %s (%s)...", target.name, target.guild_id)

        try:
            session = await self._open_session(target)
        except ConnectFailure as e:
            if generation != self._generation:
                log.info("Dropping failed attempt for %s; left all channels meanwhile.", target.name)
                return False
            if attempt != self._attempts.get(target.guild_id):
                log.info("Dropping failed attempt for %s; a newer attempt took over.", target.name)
                return False
            log.error("Failed to connect to %s: %s", target.name, e)
            self._replace_state(target, ConnectionState(target=target))
            self.status.refresh()
            self._schedule(target, self.RETRY_DELAY, "Retrying connection to")
            return False

        if generation != self._generation:
            # disconnect_all() ran while we were joining; don't resurrect the entry.
            log.info("Left all channels while joining %s; closing the new session.", target.name)
            try:
                await session.disconnect()
            except Exception as e:
                log.warning("Error disconnecting from %s: %s", target.name, e)
            return False

        if attempt != self._attempts.get(target.guild_id):
            log.info("Dropping late session for %s; a newer attempt took over.", target.name)
            return False

        previous = self.registry.get(target.guild_id)
        if previous is not None and previous.connection is session:
            # Same live session handed back; keep its playback.
            previous.target = target
            previous.is_connected = True
        else:
            self._replace_state(target, ConnectionState(
                target=target,
                connection=session,
                is_connected=True,
            ))
            session.on("disconnect", lambda: self._on_disconnect(target, session))
        log.info("Successfully connected to %s", target.name)
        self.status.refresh()
        return True

    def _replace_state(self, target: TargetServer, state: ConnectionState) -> None:
        previous = self.registry.get(target.guild_id)
        if previous is not None and previous.retire_playback():
            log.info("Ended audio in %s left over from the previous session", target.name)
        self.registry.set(target.guild_id, state)

    async def _open_session(self, target: TargetServer):
        guild = self.gateway.resolve_guild(target.guild_id)
        if guild is None:
            raise GuildNotFound(target.guild_id)

        channel = self.gateway.resolve_voice_channel(guild, target.channel_id)
        if channel is None:
            raise ChannelNotFound(target.channel_id, target.name)
        if not self.gateway.is_voice_capable(channel):
            raise ChannelNotVoiceCapable(target.channel_id, target.name)

        try:
            session = await self.gateway.open_voice_session(channel)
        except Exception as e:
            raise GatewaySessionFailure(f"Voice session rejected: {e}") from e

        try:
            await session.set_self_deafened(True)
        except Exception as e:
            # Still connected, just audible to ourselves; not worth a reconnect.
            log.warning("Could not self-deafen in %s: %s", target.name, e)
        return session

    async def connect_all(self, targets: Sequence[TargetServer]) -> int:
        """Connect targets one at a time, in order, pausing between attempts."""
        log.info("Connecting to all %d servers...", len(targets))
        connected = 0
        for i, target in enumerate(targets):
            if i:
                await self._sleep(self.PACING)
            if await self.connect(target):
                connected += 1
        return connected

    # ──────────────────────────────────────────
    # Disconnect
    # ──────────────────────────────────────────

    def _on_disconnect(self, target: TargetServer, session) -> None:
        state = self.registry.get(target.guild_id)
        if state is None or state.connection is not session:
            return  # stale session, or we left on purpose

        log.warning("Disconnected from %s", target.name)
        state.mark_disconnected()
        self.status.refresh()
        self._schedule(target, self.RECONNECT_DELAY, "Attempting to reconnect to")

    async def disconnect_all(self) -> None:
        """Leave every voice channel, stop retrying, and empty the registry."""
        log.info("Disconnecting from all servers...")
        self._generation += 1
        self.cancel_retries()

        for state in self.registry:
            if state.connection is None:
                continue
            try:
                await state.connection.disconnect()
                log.info("Disconnected from %s", state.target.name)
            except Exception as e:
                log.warning("Error disconnecting from %s: %s", state.target.name, e)

        self.registry.clear()
        self.status.refresh()

    # ──────────────────────────────────────────
    # Retry timers
    # ──────────────────────────────────────────

    def _schedule(self, target: TargetServer, delay: float, reason: str) -> None:
        self._cancel_retry(target)

        def fire() -> None:
            self._retries.pop(target, None)
            log.info("%s %s...", reason, target.name)
            task = asyncio.ensure_future(self.connect(target))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._retries[target] = call_later(delay, fire)

    def _cancel_retry(self, target: TargetServer) -> None:
        handle = self._retries.pop(target, None)
        if handle is not None:
            handle.cancel()

    @property
    def pending_retries(self) -> int:
        return len(self._retries)

    def cancel_retries(self) -> None:
        for handle in self._retries.values():
            handle.cancel()
        self._retries.clear()

    def shutdown(self) -> None:
        """Cancel pending retry timers and in-flight reconnect attempts."""
        self.cancel_retries()
        for task in list(self._tasks):
            task.cancel()
