"""
media/youtube.py
YouTube audio source backed by yt-dlp.
Resolves a watch URL to its best audio-only stream and wraps it in an
FFmpeg PCM source ready for a voice client.
"""

from __future__ import annotations
import asyncio
import logging
import re
from typing import Any, Optional

import discord
import yt_dlp

from keeper.config import FFMPEG_PATH
from keeper.errors import MetadataUnavailable, StreamFailure

log = logging.getLogger("voicekeeper.youtube")

YDL_OPTIONS = {
    "format": "bestaudio/best",
    "noplaylist": True,
    "quiet": True,
    "no_warnings": True,
    "logtostderr": False,
    "source_address": "0.0.0.0",
}

# Streamed input: let FFmpeg reconnect if the CDN drops us mid-track.
FFMPEG_BEFORE_OPTIONS = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
FFMPEG_OPTIONS        = "-vn"

_VIDEO_ID = r"[A-Za-z0-9_-]{11}"
_URL_PATTERNS = [
    re.compile(rf"^(?:https?://)?(?:www\.|m\.|music\.|gaming\.)?youtube\.com/watch\?(?:.*&)?v=({_VIDEO_ID})(?:[&#].*)?$"),
    re.compile(rf"^(?:https?://)?(?:www\.|m\.|music\.)?youtube\.com/(?:embed|v|shorts|live)/({_VIDEO_ID})(?:[?#/].*)?$"),
    re.compile(rf"^(?:https?://)?(?:www\.)?youtube-nocookie\.com/embed/({_VIDEO_ID})(?:[?#].*)?$"),
    re.compile(rf"^(?:https?://)?youtu\.be/({_VIDEO_ID})(?:[?#].*)?$"),
]


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video id of a YouTube URL, or None."""
    url = (url or "").strip()
    for pattern in _URL_PATTERNS:
        m = pattern.match(url)
        if m:
            return m.group(1)
    return None


class YouTubeSource:
    """Audio source client: URL check, stream opening, title lookup."""

    def __init__(self, ffmpeg_path: str = FFMPEG_PATH):
        self.ffmpeg_path = ffmpeg_path
        self._info: dict[str, dict[str, Any]] = {}   # url -> info from the last open

    def is_acceptable_url(self, url: str) -> bool:
        return extract_video_id(url) is not None

    # ──────────────────────────────────────────
    # yt-dlp (blocking; always run in a worker thread)
    # ──────────────────────────────────────────

    @staticmethod
    def _extract(url: str) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(YDL_OPTIONS) as ydl:
            info = ydl.extract_info(url, download=False)
        if info and "entries" in info:
            entries = [e for e in info["entries"] if e]
            info = entries[0] if entries else None
        if not info:
            raise StreamFailure(f"No video information returned for {url}")
        return info

    async def open_audio_stream(self, url: str) -> discord.AudioSource:
        try:
            info = await asyncio.to_thread(self._extract, url)
        except yt_dlp.utils.DownloadError as e:
            raise StreamFailure(str(e)) from e

        stream_url = info.get("url")
        if not stream_url:
            raise StreamFailure("yt-dlp did not return an audio stream URL")

        self._info[url] = info
        log.debug("Resolved audio stream for %s (%s)", info.get("title", "?"), info.get("format_id", "?"))
        return discord.FFmpegPCMAudio(
            stream_url,
            executable=self.ffmpeg_path,
            before_options=FFMPEG_BEFORE_OPTIONS,
            options=FFMPEG_OPTIONS,
        )

    async def fetch_metadata(self, url: str) -> dict[str, Any]:
        """Best-effort {'title': ...} for `url`. Raises MetadataUnavailable."""
        info = self._info.pop(url, None)
        if info is None:
            try:
                info = await asyncio.to_thread(self._extract, url)
            except Exception as e:
                raise MetadataUnavailable(str(e)) from e
        title = info.get("title")
        if not title:
            raise MetadataUnavailable(f"No title for {url}")
        return {"title": title}
