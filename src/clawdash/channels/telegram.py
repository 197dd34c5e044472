"""
Telegram reachability checks using aiogram 3.x

Short-lived Bot instances validate a token, look for pending updates and
drain the update queue before a fresh start. Network failures are
reported in the result objects; only malformed input raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.utils.token import TokenValidationError, validate_token as aiogram_validate_token

from ..config.models import TelegramConfig
from ..errors import InvalidInputError

logger = logging.getLogger("clawdash.channels.telegram")

_USER_ID = re.compile(r"^\d+$")


def validate_token(token: Optional[str]) -> str:
    """Return the stripped token or raise InvalidInputError."""
    token = (token or "").strip()
    if not token or ":" not in token:
        raise InvalidInputError("Invalid Telegram bot token (expected 123456:ABC...)")
    try:
        aiogram_validate_token(token)
    except TokenValidationError as e:
        raise InvalidInputError(f"Invalid Telegram bot token: {e}") from e
    return token


def validate_user_id(user_id: Any) -> str:
    """Telegram user ids are plain digits."""
    uid = str(user_id if user_id is not None else "").strip()
    if not _USER_ID.match(uid):
        raise InvalidInputError("Invalid Telegram user ID (digits only)")
    return uid


@dataclass
class BotCheck:
    ok: bool
    username: Optional[str] = None
    first_name: Optional[str] = None
    bot_id: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Optional[dict]:
        if not self.ok:
            return None
        return {"username": self.username, "firstName": self.first_name, "id": self.bot_id}


@dataclass
class UpdatesCheck:
    ok: bool
    count: int = 0
    last_update: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class TelegramClient:
    def __init__(self, config: Optional[TelegramConfig] = None):
        self.config = config or TelegramConfig()

    @staticmethod
    def _timeout(seconds: float) -> int:
        return max(1, int(round(seconds)))

    async def _call(self, token: str, method: str, timeout: float, **kwargs):
        bot = Bot(token=token)
        try:
            fn = getattr(bot, method)
            return await asyncio.wait_for(
                fn(request_timeout=self._timeout(timeout), **kwargs),
                timeout=timeout + 1,
            )
        finally:
            await bot.session.close()

    async def get_bot_info(self, token: str) -> BotCheck:
        """getMe: proves the token is accepted by Telegram."""
        try:
            me = await self._call(token, "get_me", self.config.request_timeout)
        except (TelegramAPIError, TokenValidationError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Telegram getMe failed: {e}")
            return BotCheck(ok=False, error=str(e) or type(e).__name__)
        return BotCheck(ok=True, username=me.username, first_name=me.first_name, bot_id=me.id)

    async def pending_updates(self, token: str, limit: int = 1) -> UpdatesCheck:
        """getUpdates without consuming them (no offset)."""
        try:
            updates = await self._call(
                token, "get_updates", self.config.request_timeout, limit=limit, timeout=0
            )
        except (TelegramAPIError, TokenValidationError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Telegram getUpdates failed: {e}")
            return UpdatesCheck(ok=False, error=str(e) or type(e).__name__)

        last: Dict[str, Any] = {}
        if updates:
            upd = updates[-1]
            last["updateId"] = upd.update_id
            message = upd.message
            if message is not None:
                last["text"] = (message.text or "")[:80]
                if message.from_user is not None:
                    last["fromId"] = message.from_user.id
                    last["fromUsername"] = message.from_user.username
        return UpdatesCheck(ok=True, count=len(updates), last_update=last)

    async def drain_pending(self, token: str) -> bool:
        """Acknowledge everything queued so a fresh gateway starts clean."""
        try:
            await self._call(token, "get_updates", self.config.drain_timeout, offset=-1, timeout=0)
        except (TelegramAPIError, TokenValidationError, OSError, asyncio.TimeoutError) as e:
            logger.info(f"Could not drain Telegram updates: {e}")
            return False
        return True
