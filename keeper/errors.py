"""
keeper/errors.py
Exception types raised by the voice keeper core.
"""

from __future__ import annotations


class KeeperError(Exception):
    """Base class for every error the core raises."""


class ConfigurationError(KeeperError):
    pass


# ──────────────────────────────────────────────
# Connect-time (caught by the lifecycle manager, never surfaced)
# ──────────────────────────────────────────────

class ConnectFailure(KeeperError):
    pass


class GuildNotFound(ConnectFailure):
    def __init__(self, guild_id: int):
        super().__init__(f"Guild {guild_id} not found or bot not in server")
        self.guild_id = guild_id


class ChannelNotFound(ConnectFailure):
    def __init__(self, channel_id: int, server_name: str):
        super().__init__(f"Channel {channel_id} not found in {server_name}")
        self.channel_id = channel_id


class ChannelNotVoiceCapable(ConnectFailure):
    def __init__(self, channel_id: int, server_name: str):
        super().__init__(f"Channel {channel_id} is not a voice channel in {server_name}")
        self.channel_id = channel_id


class GatewaySessionFailure(ConnectFailure):
    pass


# ──────────────────────────────────────────────
# Playback / command validation (reported to the command issuer)
# ──────────────────────────────────────────────

class PlaybackError(KeeperError):
    pass


class UnknownServerIndex(PlaybackError):
    def __init__(self, index: object, total: int):
        super().__init__(f"Server {index} not found. Use 1-{total}.")
        self.index = index
        self.total = total


class NotConnected(PlaybackError):
    def __init__(self, server_name: str, prefix: str = "!"):
        super().__init__(f"Not connected to {server_name}. Use {prefix}join first.")
        self.server_name = server_name


class InvalidSource(PlaybackError):
    def __init__(self, url: str):
        super().__init__("Invalid YouTube URL")
        self.url = url


class StreamFailure(PlaybackError):
    pass


class MetadataUnavailable(KeeperError):
    """Title lookup failed. Never fatal to playback."""
