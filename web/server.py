"""
web/server.py
Small aiohttp status server: human page at '/', JSON at '/health' and '/ping'.
Reads VoiceKeeper.get_status() only.
"""

from __future__ import annotations
import logging
import platform
import time
from datetime import datetime, timezone
from html import escape

import discord
from aiohttp import web

from keeper.config import COMMAND_PREFIX
from keeper.service import VoiceKeeper
from keeper.status import ProcessStatus, format_uptime

log = logging.getLogger("voicekeeper.web")

KEEPER = web.AppKey("keeper", VoiceKeeper)

_STYLE = """
  body { font-family: Arial, sans-serif; max-width: 900px; margin: 40px auto; padding: 20px;
         background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; text-align: center; }
  .status, .server-card, .command { background: rgba(255,255,255,0.1); border-radius: 10px; padding: 15px; }
  .status { margin: 20px 0; }
  .servers, .commands { display: grid; gap: 15px; margin: 20px 0;
                        grid-template-columns: repeat(auto-fit, minmax(250px, 1fr)); }
  .server-card { text-align: left; }
  code { background: rgba(0,0,0,0.3); padding: 2px 6px; border-radius: 4px; word-break: break-all; }
  .dot { display: inline-block; width: 10px; height: 10px; border-radius: 50%; margin-right: 8px; }
  .online { background: #4ade80; }
  .offline { background: #f87171; }
"""

_COMMANDS = (
    ("join", "Connect to all voice channels"),
    ("leave", "Leave all voice channels"),
    ("play [server] [url]", "Play audio in a specific server"),
    ("stop [server]", "Stop audio in a specific server"),
    ("status", "Check bot status"),
    ("help", "Show help message"),
)


def _dot(online: bool) -> str:
    return f'<span class="dot {"online" if online else "offline"}"></span>'


def render_status_page(status: ProcessStatus) -> str:
    cards = []
    for row in status.targets:
        t = row.target
        cards.append(
            '<div class="server-card">'
            f"<h3>{escape(t.name)}</h3>"
            f"<p>{_dot(row.is_connected)} {'Connected' if row.is_connected else 'Disconnected'}</p>"
            f"<p><strong>Server ID:</strong><br><code>{t.guild_id}</code></p>"
            f"<p><strong>Voice Channel ID:</strong><br><code>{t.channel_id}</code></p>"
            + ("<p>🎵 Audio Playing</p>" if row.is_audio_playing else "")
            + "</div>"
        )
    commands = "".join(
        f'<div class="command"><h3>{escape(COMMAND_PREFIX + name)}</h3><p>{escape(text)}</p></div>'
        for name, text in _COMMANDS
    )
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Multi-Server Discord Voice Bot</title>
  <style>{_STYLE}</style>
</head>
<body>
  <h1>🎵 Multi-Server Discord Voice Bot</h1>
  <div class="status">
    <p>🤖 Bot Status: {_dot(status.connected_count > 0)} Connected to {status.connected_count}/{status.total_count} servers</p>
    <p>🎮 Streaming Status: {escape(status.streaming_label)}</p>
    <p>⏰ Uptime: {format_uptime(status.uptime_seconds)}</p>
    <p>📊 Python {platform.python_version()} | discord.py {discord.__version__}</p>
  </div>
  <h2>🎯 Target Servers</h2>
  <div class="servers">{"".join(cards)}</div>
  <h2>🎵 Commands</h2>
  <div class="commands">{commands}</div>
</body>
</html>
"""


# ──────────────────────────────────────────────
# Handlers
# ──────────────────────────────────────────────

async def index(request: web.Request) -> web.Response:
    status = request.app[KEEPER].get_status()
    return web.Response(text=render_status_page(status), content_type="text/html")


async def health(request: web.Request) -> web.Response:
    status = request.app[KEEPER].get_status()
    return web.json_response({
        "status": "healthy",
        "servers_connected": status.connected_count,
        "total_servers": status.total_count,
        "bot_status": status.streaming_label,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "python_version": platform.python_version(),
        "discordpy_version": discord.__version__,
    })


async def ping(request: web.Request) -> web.Response:
    status = request.app[KEEPER].get_status()
    return web.json_response({
        "ping": "pong",
        "time": int(time.time() * 1000),
        "uptime": status.uptime_seconds,
    })


def create_app(keeper: VoiceKeeper) -> web.Application:
    app = web.Application()
    app[KEEPER] = keeper
    app.add_routes([
        web.get("/", index),
        web.get("/health", health),
        web.get("/ping", ping),
    ])
    return app


async def start_web_server(keeper: VoiceKeeper, port: int, host: str = "0.0.0.0") -> web.AppRunner:
    """Start serving in the background. Caller owns runner.cleanup()."""
    runner = web.AppRunner(create_app(keeper))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("Web server running on port %d", port)
    return runner
