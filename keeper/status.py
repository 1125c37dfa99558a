"""
keeper/status.py
Derives the process-wide status (connected count, presence label, uptime)
from the registry. Nothing here is cached; every call reads live state.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from .config import STREAMING_LABEL, TargetServer
from .state import GuildConnectionRegistry

log = logging.getLogger("voicekeeper.status")


@dataclass(frozen=True)
class TargetStatus:
    index: int                  # 1-based, as used by commands
    target: TargetServer
    is_connected: bool
    is_audio_playing: bool


@dataclass(frozen=True)
class ProcessStatus:
    connected_count: int
    total_count: int
    streaming_label: str
    uptime_seconds: float
    targets: tuple[TargetStatus, ...] = ()


def format_uptime(seconds: float) -> str:
    """Render seconds as '{d}d {h}h {m}m'."""
    seconds = int(seconds)
    days, rem = divmod(seconds, 86_400)
    hours, rem = divmod(rem, 3_600)
    minutes = rem // 60
    return f"{days}d {hours}h {minutes}m"


StatusListener = Callable[[ProcessStatus], None]


class StatusAggregator:
    def __init__(self, registry: GuildConnectionRegistry, targets: Sequence[TargetServer],
                 label: str = STREAMING_LABEL,
                 clock: Callable[[], float] = time.monotonic):
        self.registry = registry
        self.targets  = list(targets)
        self.label    = label
        self._clock   = clock
        self._started = clock()
        self._listeners: list[StatusListener] = []

    def connected_count(self) -> int:
        return sum(1 for state in self.registry if state.is_connected)

    def any_connected(self) -> bool:
        return any(state.is_connected for state in self.registry)

    def any_audio_playing(self) -> bool:
        return any(state.is_audio_playing for state in self.registry)

    def streaming_label(self) -> str:
        # Playing, idle and offline all advertise the same label.
        if self.any_audio_playing():
            return self.label
        if self.any_connected():
            return self.label
        return self.label

    def snapshot(self) -> ProcessStatus:
        rows = []
        for index, target in enumerate(self.targets, 1):
            state = self.registry.get(target.guild_id)
            rows.append(TargetStatus(
                index=index,
                target=target,
                is_connected=bool(state and state.is_connected),
                is_audio_playing=bool(state and state.is_audio_playing),
            ))
        return ProcessStatus(
            connected_count=self.connected_count(),
            total_count=len(self.targets),
            streaming_label=self.streaming_label(),
            uptime_seconds=self._clock() - self._started,
            targets=tuple(rows),
        )

    # ──────────────────────────────────────────
    # Change notification
    # ──────────────────────────────────────────

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def refresh(self) -> None:
        """Push a fresh snapshot to every listener (presence updater, etc.)."""
        if not self._listeners:
            return
        status = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                log.warning("Status listener %r failed: %s", listener, e)
