"""
Telegram allowlist store — `credentials/telegram-allowFrom.json`.

Append-only list of user ids the gateway accepts DMs from.
"""

import logging
from pathlib import Path
from typing import List

from ..utils import read_json, write_json

logger = logging.getLogger("clawdash.channels.allowlist")

ALLOWLIST_VERSION = 1


class Allowlist:
    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> List[str]:
        data = read_json(self.path, {})
        raw = data.get("allowFrom") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            return []
        return [str(v) for v in raw]

    def __contains__(self, user_id: str) -> bool:
        return str(user_id) in self.read()

    def add(self, user_id: str) -> bool:
        """Append ``user_id``. Returns False when it was already present."""
        users = self.read()
        if str(user_id) in users:
            return False
        users.append(str(user_id))
        write_json(self.path, {"version": ALLOWLIST_VERSION, "allowFrom": users})
        logger.info(f"Allowlisted Telegram user {user_id} in {self.path}")
        return True
