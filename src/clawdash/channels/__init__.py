"""
clawdash Channels Package

Channel reachability checks and credential stores.
"""

from .allowlist import Allowlist
from .telegram import (
    BotCheck,
    TelegramClient,
    UpdatesCheck,
    validate_token,
    validate_user_id,
)

__all__ = [
    "Allowlist",
    "BotCheck",
    "TelegramClient",
    "UpdatesCheck",
    "validate_token",
    "validate_user_id",
]
