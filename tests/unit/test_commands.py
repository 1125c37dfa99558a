"""
Unit tests for the command and event cogs, driven against a real VoiceKeeper
wired to the fake gateway.
"""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from discord.ext import commands

from bot.commands import KeeperCommands, build_help_embed, build_status_embed, parse_server_number
from bot.events import KeeperEvents
from keeper.config import STATUS_INTERVAL, STREAMING_URL
from tests.conftest import GUILD_A, drain

URL = "https://youtu.be/dQw4w9WgXcQ"


@pytest.fixture
def ctx():
    loading = MagicMock()
    loading.edit = AsyncMock()
    context = MagicMock()
    context.send = AsyncMock(return_value=loading)
    context.loading = loading
    return context


@pytest.fixture
def cog(keeper):
    return KeeperCommands(SimpleNamespace(keeper=keeper))


def sent(ctx):
    return ctx.send.await_args.args[0]


def edited(ctx):
    return ctx.loading.edit.await_args.kwargs["content"]


@pytest.mark.unit
@pytest.mark.parametrize("raw, expected", [
    ("1", 1),
    (" 2 ", 2),
    ("-1", -1),
    ("abc", None),
    ("1.5", None),
    (None, None),
])
def test_parse_server_number(raw, expected):
    assert parse_server_number(raw) == expected


class TestCommands:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_join_reports_connected_count(self, cog, ctx):
        await cog.join.callback(cog, ctx)

        assert sent(ctx) == "🔄 Connecting to all servers..."
        assert edited(ctx) == "✅ Connected to 2/2 servers"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_leave(self, cog, ctx, keeper):
        await keeper.connect_all()

        await cog.leave.callback(cog, ctx)

        assert sent(ctx) == "✅ Disconnected from all servers"
        assert keeper.get_status().connected_count == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_play_usage(self, cog, ctx):
        await cog.play.callback(cog, ctx, "1")

        assert sent(ctx).startswith("❌ Usage: `!play [server] [youtube-url]`")

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("server", ["0", "3", "abc"])
    async def test_play_invalid_server_number(self, cog, ctx, server):
        await cog.play.callback(cog, ctx, server, URL)

        assert sent(ctx) == "❌ Invalid server number. Use 1-2"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_play_reports_title(self, cog, ctx, keeper, source):
        source.titles[URL] = "Never Gonna Give You Up"
        await keeper.connect_all()

        await cog.play.callback(cog, ctx, "1", URL)

        assert sent(ctx) == "⏳ Loading audio in Server 1..."
        assert edited(ctx) == "🎵 Now playing in Server 1: **Never Gonna Give You Up**"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_play_when_not_connected_reports_bare_message(self, cog, ctx):
        await cog.play.callback(cog, ctx, "1", URL)

        assert edited(ctx) == "❌ Not connected to Server A. Use !join first."

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stream_failure_names_the_server(self, cog, ctx, keeper, source):
        source.fail_open = True
        await keeper.connect_all()

        await cog.play.callback(cog, ctx, "1", URL)

        content = edited(ctx)
        assert content.startswith("❌ Failed to play audio in Server A:")
        assert "video unavailable" in content

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_play_rejects_non_youtube(self, cog, ctx, keeper):
        await keeper.connect_all()

        await cog.play.callback(cog, ctx, "2", "https://example.com/song")

        assert "Invalid YouTube URL" in edited(ctx)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stop(self, cog, ctx, keeper):
        await keeper.connect_all()

        await cog.stop.callback(cog, ctx, "1")
        assert sent(ctx) == "❌ No audio playing in Server 1"

        await keeper.play(1, URL)
        await cog.stop.callback(cog, ctx, "1")
        assert sent(ctx) == "⏹️ Stopped audio in Server 1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stop_usage(self, cog, ctx):
        await cog.stop.callback(cog, ctx)

        assert sent(ctx).startswith("❌ Usage: `!stop [server]`")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_error_reply(self, cog, ctx):
        error = commands.CommandInvokeError(RuntimeError("boom"))

        await cog.cog_command_error(ctx, error)

        assert sent(ctx) == "❌ An error occurred while processing your command."


class TestEmbeds:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_status_embed(self, keeper, target_a):
        await keeper.lifecycle.connect(target_a)

        embed = build_status_embed(keeper)

        assert embed.description == "Connected to **1/2** servers"
        assert embed.colour.value == 0x00FF00
        assert [f.name for f in embed.fields] == ["Server 1: Server A", "Server 2: Server B"]
        assert embed.fields[0].value.startswith("✅ Connected")
        assert embed.fields[1].value.startswith("❌ Disconnected")

    @pytest.mark.unit
    def test_status_embed_offline_is_red(self, keeper):
        assert build_status_embed(keeper).colour.value == 0xFF0000

    @pytest.mark.unit
    def test_help_embed(self):
        embed = build_help_embed(2)

        assert "auto-join 2 servers" in embed.description
        assert len(embed.fields) == 6
        assert "(1-2)" in embed.fields[2].value


# ──────────────────────────────────────────────
# Event cog
# ──────────────────────────────────────────────

@pytest.fixture
def bot(keeper):
    bot = MagicMock()
    bot.keeper = keeper
    bot.user.id = 5
    bot.is_ready.return_value = True
    bot.change_presence = AsyncMock()
    return bot


def voice_state(channel):
    return SimpleNamespace(channel=channel)


class TestEvents:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_own_disconnect_is_forwarded(self, bot):
        events = KeeperEvents(bot)
        member = SimpleNamespace(id=5, guild=SimpleNamespace(id=GUILD_A))

        await events.on_voice_state_update(member, voice_state(object()), voice_state(None))

        bot.gateway.notify_disconnected.assert_called_once_with(GUILD_A)

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("member_id, before, after", [
        (6, object(), None),        # someone else left
        (5, None, object()),        # we joined
        (5, object(), object()),    # we moved
    ])
    async def test_other_voice_updates_are_ignored(self, bot, member_id, before, after):
        events = KeeperEvents(bot)
        member = SimpleNamespace(id=member_id, guild=SimpleNamespace(id=GUILD_A))

        await events.on_voice_state_update(member, voice_state(before), voice_state(after))

        bot.gateway.notify_disconnected.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_presence_streams_label(self, bot):
        events = KeeperEvents(bot)

        await events.set_presence("I Got U")

        activity = bot.change_presence.await_args.kwargs["activity"]
        assert isinstance(activity, discord.Streaming)
        assert activity.name == "I Got U"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_presence_failure_is_logged(self, bot, caplog):
        bot.change_presence.side_effect = RuntimeError("rate limited")
        events = KeeperEvents(bot)

        with caplog.at_level(logging.WARNING, logger="voicekeeper.events"):
            await events.set_presence("I Got U")

        assert "Failed to update status" in caplog.text

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_status_change_pushes_presence_once(self, bot, keeper, target_a, target_b):
        KeeperEvents(bot)

        await keeper.lifecycle.connect(target_a)
        await drain()
        await keeper.lifecycle.connect(target_b)
        await drain()

        bot.change_presence.assert_awaited_once()

    @pytest.mark.unit
    def test_presence_loop_runs_every_status_interval(self, bot):
        events = KeeperEvents(bot)

        assert events.presence_loop.seconds == STATUS_INTERVAL == 30.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_presence_loop_pushes_current_label(self, bot, keeper, target_a):
        events = KeeperEvents(bot)
        await keeper.lifecycle.connect(target_a)
        await drain()
        bot.change_presence.reset_mock()

        await events.presence_loop()

        activity = bot.change_presence.await_args.kwargs["activity"]
        assert activity.name == keeper.get_status().streaming_label
        assert activity.url == STREAMING_URL
