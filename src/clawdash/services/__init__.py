"""
clawdash Services Package

Settings, onboarding flows, voice replies, diagnostics and chat.
"""

from .chat import ChatService
from .diagnostics import Diagnostics
from .settings import DashboardSettings, SettingsStore, write_yaml_config
from .telegram_setup import Onboarding
from .voice import enable_voice_replies

__all__ = [
    "ChatService",
    "DashboardSettings",
    "Diagnostics",
    "Onboarding",
    "SettingsStore",
    "enable_voice_replies",
    "write_yaml_config",
]
