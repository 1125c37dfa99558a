"""
keeper/config.py
Environment-driven settings and the static list of target voice channels.
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

log = logging.getLogger("voicekeeper.config")

DISCORD_TOKEN   = os.getenv("DISCORD_TOKEN", "")
COMMAND_PREFIX  = os.getenv("COMMAND_PREFIX", "!")
PORT            = int(os.getenv("PORT", "3000"))
LOG_LEVEL       = os.getenv("LOG_LEVEL", "INFO").upper()

STREAMING_LABEL = os.getenv("STREAMING_LABEL", "I Got U")
STREAMING_URL   = os.getenv("STREAMING_URL", "https://twitch.tv/discord")

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")  # Path to ffmpeg binary, or "ffmpeg" to use PATH

# Keep-alive pinging (hosted platforms spin down idle web services)
RENDER              = bool(os.getenv("RENDER"))
KEEP_ALIVE_URL      = os.getenv("KEEP_ALIVE_URL") or os.getenv("RENDER_EXTERNAL_URL") or ""
KEEP_ALIVE_INTERVAL = int(os.getenv("KEEP_ALIVE_INTERVAL", str(4 * 60)))

# Timing (seconds)
CONNECT_RETRY_DELAY = 15.0
RECONNECT_DELAY     = 10.0
CONNECT_PACING      = 1.0
STATUS_INTERVAL     = 30.0
AUTO_CONNECT_DELAY  = 3.0


@dataclass(frozen=True, eq=False)
class TargetServer:
    """A guild + voice channel the bot keeps itself connected to.

    Compared by identity: configuration may list the same guild twice and
    each entry stays its own target.
    """
    guild_id: int
    channel_id: int
    name: str


DEFAULT_TARGETS = (
    {"guild_id": 1468028186796491006, "channel_id": 1468046908860928224, "name": "Server 1"},
    {"guild_id": 1468028186796491006, "channel_id": 1468046908860928224, "name": "Server 2"},
)


def _parse_target(entry: object, position: int) -> TargetServer:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Target #{position} must be an object, got {type(entry).__name__}")
    try:
        guild_id   = int(entry["guild_id"])
        channel_id = int(entry["channel_id"])
    except KeyError as e:
        raise ConfigurationError(f"Target #{position} is missing {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Target #{position} has a non-numeric id: {e}") from e
    name = str(entry.get("name") or f"Server {position}")
    return TargetServer(guild_id=guild_id, channel_id=channel_id, name=name)


def load_targets(raw: Optional[str] = None) -> list[TargetServer]:
    """
    Build the target list from a JSON array (defaults to $TARGET_SERVERS).
    Falls back to the built-in targets when nothing is configured.
    """
    if raw is None:
        raw = os.getenv("TARGET_SERVERS", "")

    if raw.strip():
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"TARGET_SERVERS is not valid JSON: {e}") from e
        if not isinstance(entries, list) or not entries:
            raise ConfigurationError("TARGET_SERVERS must be a non-empty JSON list")
    else:
        entries = list(DEFAULT_TARGETS)

    targets = [_parse_target(entry, i) for i, entry in enumerate(entries, 1)]

    seen: dict[int, str] = {}
    for target in targets:
        if target.guild_id in seen:
            log.warning("Targets %s and %s share guild %s — they will share one connection.",
                        seen[target.guild_id], target.name, target.guild_id)
        else:
            seen[target.guild_id] = target.name
    return targets
