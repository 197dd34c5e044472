"""
clawdash Config Package

Configuration loading, env-file management, and models.
"""

from .models import (
    DashboardConfig,
    PathsConfig,
    GatewayProcessConfig,
    TelegramConfig,
    ChatConfig,
    ServerConfig,
    LoggingConfig,
)
from .loader import load_config, get_config, set_config, setup_logging
from .manager import EnvFile

__all__ = [
    "DashboardConfig",
    "PathsConfig",
    "GatewayProcessConfig",
    "TelegramConfig",
    "ChatConfig",
    "ServerConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "set_config",
    "setup_logging",
    "EnvFile",
]
