"""
Env File Manager

Reads and writes KEY=VALUE credential files (a profile's `.env`) with
python-dotenv, so quoting and comments follow the same rules the gateway uses.
"""

from pathlib import Path
from typing import Dict, Iterable, Optional

from dotenv import dotenv_values, set_key


class EnvFile:
    def __init__(self, env_path: Path):
        self.env_path = Path(env_path)

    def get_all(self) -> Dict[str, str]:
        """Return all values; a missing file reads as empty."""
        if not self.env_path.exists():
            return {}
        return {k: v for k, v in dotenv_values(self.env_path).items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        return self.get_all().get(key)

    def first(self, keys: Iterable[str]) -> str:
        """Return the first non-empty value among ``keys``."""
        values = self.get_all()
        for key in keys:
            if values.get(key):
                return values[key]
        return ""

    def set(self, key: str, value: str):
        """Write a value, creating the file if needed. Other keys are kept."""
        if not self.env_path.exists():
            self.env_path.parent.mkdir(parents=True, exist_ok=True)
            self.env_path.touch()
        set_key(str(self.env_path), key, value, quote_mode="never")

    def update(self, values: Dict[str, str]):
        for key, value in values.items():
            self.set(key, value)
