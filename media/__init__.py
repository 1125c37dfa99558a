"""Media package __init__.py"""
from .youtube import YouTubeSource, extract_video_id

__all__ = ["YouTubeSource", "extract_video_id"]
