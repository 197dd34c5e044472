"""
Dashboard settings store — `dashboard-data/settings.json`.

Holds the keys the user typed into the dashboard. A missing or corrupt
file reads as defaults; saves merge into what is already there.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..utils import read_json, write_json

logger = logging.getLogger("clawdash.services.settings")


class DashboardSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    openai_api_key: str = Field("", alias="openaiApiKey")
    openai_oauth_enabled: bool = Field(False, alias="openaiOAuthEnabled")
    anthropic_api_key: str = Field("", alias="anthropicApiKey")
    telegram_bot_token: str = Field("", alias="telegramBotToken")
    ftp_host: str = Field("", alias="ftpHost")
    ftp_user: str = Field("", alias="ftpUser")
    email_user: str = Field("", alias="emailUser")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SettingsStore:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> DashboardSettings:
        raw = read_json(self.path, {})
        if not isinstance(raw, dict):
            return DashboardSettings()
        try:
            return DashboardSettings.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid settings file {self.path}: {e.error_count()} errors")
            return DashboardSettings()

    def save(self, updates: Dict[str, Any]) -> DashboardSettings:
        """Merge ``updates`` (camelCase keys) into the stored settings."""
        merged = {**self.load().to_dict(), **updates}
        settings = DashboardSettings.model_validate(merged)
        write_json(self.path, settings.to_dict())
        return settings


def write_yaml_config(settings: DashboardSettings, path: Path, backup_dir: Path) -> Optional[Path]:
    """Regenerate the legacy gateway YAML config from the dashboard settings.

    The previous file is copied to ``backup_dir`` first; its path is returned.
    """
    backup = None
    if path.exists():
        stamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
        backup_dir.mkdir(parents=True, exist_ok=True)
        backup = backup_dir / f"default-{stamp}.yaml"
        shutil.copyfile(path, backup)

    data: Dict[str, Any] = {"gateway": {"mode": "local", "port": 5000, "host": "127.0.0.1"}}
    if settings.openai_api_key:
        data["openai"] = {"api_key": settings.openai_api_key}
    if settings.anthropic_api_key:
        data["anthropic"] = {"api_key": settings.anthropic_api_key}
    if settings.telegram_bot_token:
        data["telegram"] = {"bot_token": settings.telegram_bot_token}
    if settings.ftp_host or settings.ftp_user:
        data["ftp"] = {k: v for k, v in (("host", settings.ftp_host), ("user", settings.ftp_user)) if v}
    if settings.email_user:
        data["email"] = {"user": settings.email_user}

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write("# clawdash generated config\n")
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    logger.info(f"Wrote {path}")
    return backup
