"""Web package __init__.py"""
from .server import create_app, start_web_server
from .keepalive import keep_alive_task, ping_url

__all__ = ["create_app", "start_web_server", "keep_alive_task", "ping_url"]
