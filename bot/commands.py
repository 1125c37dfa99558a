"""
bot/commands.py
Prefixed text commands: join, leave, play, stop, status, help.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import discord
from discord.ext import commands

from keeper.config import COMMAND_PREFIX
from keeper.errors import NotConnected, PlaybackError, UnknownServerIndex

if TYPE_CHECKING:
    from keeper.service import VoiceKeeper

log = logging.getLogger("voicekeeper.commands")

P = COMMAND_PREFIX


def parse_server_number(raw: Optional[str]) -> Optional[int]:
    """'2' -> 2; anything that isn't an integer -> None."""
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


class KeeperCommands(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.keeper: VoiceKeeper = bot.keeper

    async def cog_check(self, ctx: commands.Context) -> bool:
        # Guild text channels only; DMs are ignored.
        return ctx.guild is not None

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CheckFailure):
            return
        original = getattr(error, "original", error)
        log.error("Error handling command %s: %s", ctx.command, original)
        await ctx.send("❌ An error occurred while processing your command.")

    def _resolve(self, raw: Optional[str]) -> Optional[int]:
        """Validate a 1-based server number; None when invalid."""
        number = parse_server_number(raw)
        try:
            self.keeper.resolve_target(number)
        except UnknownServerIndex:
            return None
        return number

    def _invalid_number(self) -> str:
        return f"❌ Invalid server number. Use 1-{len(self.keeper.targets)}"

    # ──────────────────────────────────────────────
    # join / leave
    # ──────────────────────────────────────────────

    @commands.command(name="join")
    async def join(self, ctx: commands.Context) -> None:
        """Connect to every configured voice channel."""
        loading = await ctx.send("🔄 Connecting to all servers...")
        await self.keeper.connect_all()
        status = self.keeper.get_status()
        await loading.edit(content=f"✅ Connected to {status.connected_count}/{status.total_count} servers")

    @commands.command(name="leave")
    async def leave(self, ctx: commands.Context) -> None:
        await self.keeper.disconnect_all()
        await ctx.send("✅ Disconnected from all servers")

    # ──────────────────────────────────────────────
    # play / stop
    # ──────────────────────────────────────────────

    @commands.command(name="play")
    async def play(self, ctx: commands.Context, server: Optional[str] = None, url: Optional[str] = None) -> None:
        if server is None or url is None:
            await ctx.send(f"❌ Usage: `{P}play [server] [youtube-url]`\nExample: `{P}play 1 https://youtube.com/...`")
            return

        number = self._resolve(server)
        if number is None:
            await ctx.send(self._invalid_number())
            return

        target  = self.keeper.resolve_target(number)
        loading = await ctx.send(f"⏳ Loading audio in Server {number}...")
        try:
            title = await self.keeper.play(number, url)
        except NotConnected as e:
            log.error("Play error: %s", e)
            await loading.edit(content=f"❌ {e}")
            return
        except PlaybackError as e:
            log.error("Play error: %s", e)
            await loading.edit(content=f"❌ Failed to play audio in {target.name}: {e}")
            return
        await loading.edit(content=f"🎵 Now playing in Server {number}: **{title}**")

    @commands.command(name="stop")
    async def stop(self, ctx: commands.Context, server: Optional[str] = None) -> None:
        if server is None:
            await ctx.send(f"❌ Usage: `{P}stop [server]`\nExample: `{P}stop 1`")
            return

        number = self._resolve(server)
        if number is None:
            await ctx.send(self._invalid_number())
            return

        if self.keeper.stop(number):
            await ctx.send(f"⏹️ Stopped audio in Server {number}")
        else:
            await ctx.send(f"❌ No audio playing in Server {number}")

    # ──────────────────────────────────────────────
    # status / help
    # ──────────────────────────────────────────────

    @commands.command(name="status")
    async def status(self, ctx: commands.Context) -> None:
        await ctx.send(embed=build_status_embed(self.keeper))

    @commands.command(name="help")
    async def help(self, ctx: commands.Context) -> None:
        await ctx.send(embed=build_help_embed(len(self.keeper.targets)))


def build_status_embed(keeper: VoiceKeeper) -> discord.Embed:
    status = keeper.get_status()
    embed = discord.Embed(
        title="🤖 Multi-Server Bot Status",
        description=f"Connected to **{status.connected_count}/{status.total_count}** servers",
        colour=0x00FF00 if status.connected_count > 0 else 0xFF0000,
        timestamp=datetime.now(timezone.utc),
    )
    for row in status.targets:
        embed.add_field(
            name=f"Server {row.index}: {row.target.name}",
            value=(
                f"{'✅ Connected' if row.is_connected else '❌ Disconnected'}\n"
                f"{'🎵 Audio Playing' if row.is_audio_playing else '🔇 No Audio'}\n"
                f"Channel: <#{row.target.channel_id}>"
            ),
            inline=True,
        )
    embed.set_footer(text="Bot auto-joins multiple servers • All bots are deafened")
    return embed


def build_help_embed(total: int) -> discord.Embed:
    embed = discord.Embed(
        title="🎵 Multi-Server Bot Commands",
        description=f"Prefix: `{P}`\nBot is configured to auto-join {total} servers",
        colour=0x0099FF,
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name=f"{P}join",                 value="Connect to all servers", inline=True)
    embed.add_field(name=f"{P}leave",                value="Disconnect from all servers", inline=True)
    embed.add_field(name=f"{P}play [server] [url]",  value=f"Play YouTube audio in specific server (1-{total})", inline=True)
    embed.add_field(name=f"{P}stop [server]",        value=f"Stop audio in specific server (1-{total})", inline=True)
    embed.add_field(name=f"{P}status",               value="Check bot status for all servers", inline=True)
    embed.add_field(name=f"{P}help",                 value="Show this help message", inline=True)
    embed.set_footer(text=f"Currently targeting {total} servers")
    return embed


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(KeeperCommands(bot))
