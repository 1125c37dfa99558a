"""
keeper/service.py
VoiceKeeper: the single entry point the bot and the web page talk to.
"""

from __future__ import annotations
import logging
from typing import Sequence

from .config import TargetServer
from .lifecycle import VoiceLifecycleManager
from .playback import PlaybackController
from .state import GuildConnectionRegistry
from .status import ProcessStatus, StatusAggregator

log = logging.getLogger("voicekeeper.service")


class VoiceKeeper:
    """
    Wires registry, lifecycle, playback and status around a gateway and an
    audio source. Extra keyword arguments (call_later, sleep) go to the
    lifecycle manager; `clock` goes to the status aggregator.
    """

    def __init__(self, targets: Sequence[TargetServer], gateway, source, clock=None, **timers):
        self.targets  = list(targets)
        self.registry = GuildConnectionRegistry()
        status_kwargs = {"clock": clock} if clock is not None else {}
        self.status   = StatusAggregator(self.registry, self.targets, **status_kwargs)
        self.lifecycle = VoiceLifecycleManager(self.registry, gateway, self.status, **timers)
        self.playback  = PlaybackController(self.registry, self.targets, source, self.status)

    async def connect_all(self) -> int:
        return await self.lifecycle.connect_all(self.targets)

    async def disconnect_all(self) -> None:
        await self.lifecycle.disconnect_all()

    async def play(self, server_index: int, url: str) -> str:
        return await self.playback.play(server_index, url)

    def stop(self, server_index: int) -> bool:
        return self.playback.stop(server_index)

    def get_status(self) -> ProcessStatus:
        return self.status.snapshot()

    def resolve_target(self, server_index: int) -> TargetServer:
        return self.playback.resolve_target(server_index)

    def shutdown(self) -> None:
        log.info("Cancelling pending reconnect timers.")
        self.lifecycle.shutdown()
