"""
main.py
Entry point for the multi-server voice keeper bot.
Starts the status web server, the optional keep-alive pinger and the
Discord bot on one event loop.
"""

from __future__ import annotations
import asyncio
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import discord
from aiohttp import web
from discord.ext import commands

from bot.gateway import DiscordGateway
from keeper.config import (
    COMMAND_PREFIX,
    DISCORD_TOKEN,
    KEEP_ALIVE_INTERVAL,
    KEEP_ALIVE_URL,
    LOG_LEVEL,
    PORT,
    RENDER,
    load_targets,
)
from keeper.errors import ConfigurationError
from keeper.service import VoiceKeeper
from media.youtube import YouTubeSource
from web.keepalive import keep_alive_task, ping_url
from web.server import start_web_server

# ──────────────────────────────────────────────
# Logging setup
# ──────────────────────────────────────────────
Path("logs").mkdir(exist_ok=True)

log_formatter = logging.Formatter(
    "[%(asctime)s] [%(levelname)-8s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

root_logger = logging.getLogger()
root_logger.setLevel(LOG_LEVEL)

# Console handler
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(log_formatter)
root_logger.addHandler(console_handler)

# Rotating file handler
file_handler = logging.handlers.RotatingFileHandler(
    "logs/voice_keeper.log",
    maxBytes=5_000_000,   # 5 MB
    backupCount=3,
    encoding="utf-8",
)
file_handler.setFormatter(log_formatter)
root_logger.addHandler(file_handler)

log = logging.getLogger("voicekeeper.main")

# ──────────────────────────────────────────────
# Bot subclass
# ──────────────────────────────────────────────

class VoiceKeeperBot(commands.Bot):
    def __init__(self, keeper_targets):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.voice_states    = True
        super().__init__(command_prefix=COMMAND_PREFIX, intents=intents, help_command=None)

        self.gateway = DiscordGateway(self)
        self.keeper  = VoiceKeeper(keeper_targets, self.gateway, YouTubeSource())

    async def setup_hook(self) -> None:
        """Called once after login, before the gateway connects."""
        for ext in ("bot.commands", "bot.events"):
            await self._load_ext(ext)
        log.info("Setup complete.")

    async def _load_ext(self, module: str) -> None:
        """Load a cog from its module, with error logging."""
        try:
            await self.load_extension(module)
            log.info("Loaded extension: %s", module)
        except Exception as e:
            log.exception("Failed to load extension %s: %s", module, e)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        await self.process_commands(message)

    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, (commands.CommandNotFound, commands.CheckFailure)):
            return
        if ctx.cog is not None and ctx.cog.has_error_handler():
            return
        log.error("Command error in %s: %s", ctx.command, error)

    async def on_error(self, event_method: str, *args, **kwargs) -> None:
        log.exception("Unhandled error in event %s", event_method)

    async def close(self) -> None:
        log.info("Shutting down bot...")
        self.keeper.shutdown()
        await super().close()


def _log_async_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Loop-level handler: isolated background failures are logged, never fatal."""
    exc = context.get("exception")
    if exc is not None:
        log.error("Unhandled async error: %s", context.get("message", ""), exc_info=exc)
    else:
        log.error("Unhandled async error: %s", context.get("message", context))


# ──────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────

async def run(bot: VoiceKeeperBot) -> None:
    asyncio.get_running_loop().set_exception_handler(_log_async_exception)

    runner: Optional[web.AppRunner] = await start_web_server(bot.keeper, PORT)

    keep_alive: Optional[asyncio.Task] = None
    if RENDER or KEEP_ALIVE_URL:
        keep_alive = asyncio.create_task(keep_alive_task(ping_url(KEEP_ALIVE_URL, PORT), KEEP_ALIVE_INTERVAL))

    log.info("Starting multi-server Discord bot (discord.py %s)...", discord.__version__)
    try:
        async with bot:
            await bot.start(DISCORD_TOKEN)
    finally:
        if keep_alive:
            keep_alive.cancel()
            await asyncio.gather(keep_alive, return_exceptions=True)
        await runner.cleanup()


def main() -> None:
    if not DISCORD_TOKEN:
        log.error("DISCORD_TOKEN is not set in .env — cannot start.")
        sys.exit(1)

    try:
        targets = load_targets()
    except ConfigurationError as e:
        log.error("Invalid target configuration: %s", e)
        sys.exit(1)

    bot = VoiceKeeperBot(targets)

    try:
        asyncio.run(run(bot))
    except KeyboardInterrupt:
        log.info("Bot interrupted by user.")
    except discord.LoginFailure as e:
        log.error("Discord login failed: %s", e)
        log.error("Make sure DISCORD_TOKEN is valid, the bot is invited to every target "
                  "server, and it has voice permissions there.")
        sys.exit(1)
    except Exception as e:
        log.exception("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
