"""
bot/events.py
Discord event handlers: on_ready auto-connect, voice state tracking, and
the streaming presence that mirrors the keeper's status.
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord.ext import commands, tasks

from keeper.config import AUTO_CONNECT_DELAY, COMMAND_PREFIX, STATUS_INTERVAL, STREAMING_URL
from keeper.status import ProcessStatus

if TYPE_CHECKING:
    from keeper.service import VoiceKeeper

log = logging.getLogger("voicekeeper.events")


class KeeperEvents(commands.Cog):
    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.keeper: VoiceKeeper = bot.keeper
        self._auto_connect: Optional[asyncio.Task] = None
        self._presence_tasks: set[asyncio.Task] = set()
        self._last_label: Optional[str] = None
        self.keeper.status.subscribe(self._on_status_change)

    def cog_unload(self) -> None:
        self.presence_loop.cancel()
        if self._auto_connect:
            self._auto_connect.cancel()

    # ────────────────────────────────────────
    # on_ready
    # ────────────────────────────────────────

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        log.info("Bot ready: %s (ID: %s)", self.bot.user, self.bot.user.id)
        log.info("Targeting %d servers:", len(self.keeper.targets))
        for i, target in enumerate(self.keeper.targets, 1):
            log.info("   %d. %s - Guild: %s, Channel: %s", i, target.name, target.guild_id, target.channel_id)
        log.info("Prefix: %s", COMMAND_PREFIX)

        if not self.presence_loop.is_running():
            self.presence_loop.start()

        # on_ready fires again after a session resume; only auto-join once.
        if self._auto_connect is None:
            self._auto_connect = asyncio.create_task(self._auto_connect_all())

    async def _auto_connect_all(self) -> None:
        await asyncio.sleep(AUTO_CONNECT_DELAY)
        log.info("Attempting auto-connect to all servers...")
        await self.keeper.connect_all()

    # ────────────────────────────────────────
    # Voice state: detect being kicked / dropped
    # ────────────────────────────────────────

    @commands.Cog.listener()
    async def on_voice_state_update(self, member: discord.Member,
                                    before: discord.VoiceState, after: discord.VoiceState) -> None:
        if self.bot.user is None or member.id != self.bot.user.id:
            return
        if before.channel is not None and after.channel is None:
            self.bot.gateway.notify_disconnected(member.guild.id)

    # ────────────────────────────────────────
    # Presence
    # ────────────────────────────────────────

    @tasks.loop(seconds=STATUS_INTERVAL)
    async def presence_loop(self) -> None:
        """Periodic refresh in case a state-change push was missed."""
        await self.set_presence(self.keeper.get_status().streaming_label)

    @presence_loop.before_loop
    async def before_presence(self) -> None:
        await self.bot.wait_until_ready()

    def _on_status_change(self, status: ProcessStatus) -> None:
        if not self.bot.is_ready() or status.streaming_label == self._last_label:
            return
        task = asyncio.create_task(self.set_presence(status.streaming_label))
        self._presence_tasks.add(task)
        task.add_done_callback(self._presence_tasks.discard)

    async def set_presence(self, label: str) -> None:
        if self.bot.user is None:
            return
        try:
            await self.bot.change_presence(activity=discord.Streaming(name=label, url=STREAMING_URL))
            self._last_label = label
            log.info("Updated status: %s", label)
        except Exception as e:
            log.warning("Failed to update status: %s", e)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(KeeperEvents(bot))
