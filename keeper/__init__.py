"""Keeper package __init__.py"""
from .config import TargetServer, load_targets
from .service import VoiceKeeper
from .status import ProcessStatus, format_uptime

__all__ = ["TargetServer", "load_targets", "VoiceKeeper", "ProcessStatus", "format_uptime"]
