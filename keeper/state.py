"""
keeper/state.py
Per-guild connection/playback state and the registry that owns it.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from .config import TargetServer


@dataclass
class ConnectionState:
    """Runtime state for one guild."""
    target: TargetServer
    connection: Optional[Any] = None    # live voice session, or None
    playback: Optional[Any] = None      # live audio dispatch, or None
    is_connected: bool = False
    is_audio_playing: bool = False

    def retire_playback(self) -> bool:
        """End the current dispatch (if any) and clear playback fields."""
        dispatch = self.playback
        self.playback = None
        self.is_audio_playing = False
        if dispatch is None:
            return False
        dispatch.end()
        return True

    def mark_disconnected(self) -> None:
        self.connection = None
        self.playback = None
        self.is_connected = False
        self.is_audio_playing = False


class GuildConnectionRegistry:
    """
    guild_id -> ConnectionState.

    Entries are replaced wholesale on each connect outcome and only ever
    removed all together by clear(). All access happens on the event loop.
    """

    def __init__(self):
        self._states: dict[int, ConnectionState] = {}

    def get(self, guild_id: int) -> Optional[ConnectionState]:
        return self._states.get(guild_id)

    def set(self, guild_id: int, state: ConnectionState) -> None:
        self._states[guild_id] = state

    def clear(self) -> None:
        self._states.clear()

    def items(self):
        return list(self._states.items())

    def __iter__(self) -> Iterator[ConnectionState]:
        return iter(list(self._states.values()))

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._states
