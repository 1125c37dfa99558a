"""
web/keepalive.py
Self-ping loop so hosted platforms don't spin the service down for inactivity.
"""

from __future__ import annotations
import asyncio
import logging

import aiohttp

log = logging.getLogger("voicekeeper.keepalive")


def ping_url(base_url: str, port: int) -> str:
    base = (base_url or f"http://localhost:{port}").rstrip("/")
    return f"{base}/ping"


async def ping_once(session: aiohttp.ClientSession, url: str) -> int:
    async with session.get(url, timeout=aiohttp.ClientTimeout(total=30)) as resp:
        return resp.status


async def keep_alive_task(url: str, interval: float) -> None:
    """Ping `url` every `interval` seconds until cancelled. Failures are logged only."""
    log.info("Keep-alive task started. Pinging: %s every %ss", url, interval)
    async with aiohttp.ClientSession() as session:
        while True:
            try:
                await asyncio.sleep(interval)
                status = await ping_once(session, url)
                if status == 200:
                    log.info("Keep-alive ping: %d", status)
                else:
                    log.warning("Keep-alive ping returned status: %d", status)
            except asyncio.CancelledError:
                log.info("Keep-alive task cancelled")
                raise
            except Exception as e:
                log.warning("Keep-alive ping failed: %s", e)
