"""
Telegram / gateway diagnostics.

Read-only: inspects every config location, the token stores, the Bot API
and recent gateway logs, and turns what it finds into suggestions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..channels.telegram import TelegramClient
from ..config.manager import EnvFile
from ..config.models import DashboardConfig
from ..gateway.probe import GatewayProbe
from ..gateway.reconciler import read_document
from ..gateway.runner import CommandRunner
from ..profiles.paths import ProfileContext
from ..utils import mask_key, read_json, tail_lines
from .settings import SettingsStore

logger = logging.getLogger("clawdash.services.diagnostics")

LOCATION_LABELS = ["OPENCLAW_STATE_DIR", "~/.openclaw", "profile configDir"]


def telegram_summary(document: Dict[str, Any]) -> Dict[str, Any]:
    channels = document.get("channels") if isinstance(document.get("channels"), dict) else {}
    telegram = channels.get("telegram") if isinstance(channels.get("telegram"), dict) else {}
    plugins = document.get("plugins") if isinstance(document.get("plugins"), dict) else {}
    entries = plugins.get("entries") if isinstance(plugins.get("entries"), dict) else {}
    plugin = entries.get("telegram") if isinstance(entries.get("telegram"), dict) else {}
    token = telegram.get("botToken") or ""
    return {
        "enabled": bool(telegram.get("enabled")),
        "dmPolicy": telegram.get("dmPolicy"),
        "hasToken": bool(token),
        "tokenPreview": mask_key(token) if token else "none",
        "pluginEnabled": bool(plugin.get("enabled")),
        "allChannels": sorted(channels),
        "allPlugins": sorted(entries),
    }


class Diagnostics:
    def __init__(
        self,
        config: DashboardConfig,
        runner: CommandRunner,
        probe: GatewayProbe,
        telegram: TelegramClient,
        settings: SettingsStore,
    ):
        self.config = config
        self.runner = runner
        self.probe = probe
        self.telegram = telegram
        self.settings = settings

    def _symlink_info(self) -> Dict[str, Any]:
        path = self.config.paths.home_path / ".openclaw"
        if not os.path.lexists(path):
            return {"exists": False}
        info: Dict[str, Any] = {"exists": True, "isSymlink": path.is_symlink()}
        if info["isSymlink"]:
            info["target"] = os.readlink(path)
        return info

    def _log_sources(self, ctx: ProfileContext) -> List[Path]:
        paths = self.config.paths
        candidates = [
            paths.gateway_log_file,
            paths.state_path / "logs" / "gateway.log",
            paths.home_path / ".openclaw" / "logs" / "gateway.log",
            paths.home_path / ".clawdbot" / "logs" / "gateway.log",
            ctx.paths.config_dir / "logs" / "gateway.log",
        ]
        unique: List[Path] = []
        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved not in unique:
                unique.append(resolved)
        return unique

    def recent_logs(self, ctx: ProfileContext, lines: int = 12) -> str:
        chunks: List[str] = []
        for source in self._log_sources(ctx):
            tail = tail_lines(source, lines)
            if tail:
                chunks.append(f"── {source} ──")
                chunks.extend(tail)
        return "\n".join(chunks) if chunks else "No gateway logs found"

    async def telegram_diagnostics(self, ctx: ProfileContext) -> Dict[str, Any]:
        """Where the telegram config lives and what each copy says."""
        configs = []
        for label, path in zip(LOCATION_LABELS, ctx.config_locations):
            exists = path.exists()
            configs.append({
                "label": label,
                "path": str(path),
                "exists": exists,
                "telegram": telegram_summary(read_document(path)) if exists else None,
            })

        state = await self.probe.probe(ctx.env_vars)
        status = await self.runner.run_cli("channels", "status", timeout=10, profile_env=ctx.env_vars)
        return {
            "ok": True,
            "configs": configs,
            "readPath": str(ctx.read_path),
            "symlink": self._symlink_info(),
            "gateway": state.to_dict(),
            "channelsStatus": status.output or status.error,
            "envVars": ctx.env_vars,
        }

    def _find_token(self, ctx: ProfileContext, locations: Dict[str, bool]) -> Optional[str]:
        found = ""

        token = self.settings.load().telegram_bot_token
        locations["settings"] = bool(token)
        found = found or token

        token = EnvFile(ctx.paths.env_path).first(["TELEGRAM_BOT_TOKEN", "TELEGRAM_TOKEN"])
        locations["env"] = bool(token)
        found = found or token

        legacy = telegram_summary(read_document(ctx.paths.config_json))
        locations["configJson"] = legacy["hasToken"]
        if legacy["hasToken"]:
            doc = read_document(ctx.paths.config_json)
            found = found or doc["channels"]["telegram"]["botToken"]

        cred = read_json(ctx.paths.credentials_dir / "telegram.json", {})
        locations["credentials"] = isinstance(cred, dict) and bool(cred.get("botToken"))

        authoritative = read_document(ctx.read_path)
        summary = telegram_summary(authoritative)
        locations["openclawJson"] = summary["hasToken"]
        locations["telegramEnabled"] = summary["enabled"]
        locations["pluginEnabled"] = summary["pluginEnabled"]
        if summary["hasToken"]:
            found = found or authoritative["channels"]["telegram"]["botToken"]
        return found or None

    async def diagnose(self, ctx: ProfileContext) -> Dict[str, Any]:
        """Full health check with human-readable suggestions."""
        state = await self.probe.probe(ctx.env_vars)
        locations: Dict[str, bool] = {}
        token = self._find_token(ctx, locations)

        results: Dict[str, Any] = {
            "ok": True,
            "gateway": state.to_dict(),
            "tokenLocations": locations,
            "botInfo": None,
            "botError": None,
            "pendingUpdates": None,
            "lastUpdate": None,
            "configSummary": dict(telegram_summary(read_document(ctx.read_path)), configPath=str(ctx.read_path)),
            "recentLogs": self.recent_logs(ctx),
            "suggestions": [],
        }

        critical = []
        if not locations["telegramEnabled"]:
            critical.append("Telegram is DISABLED in the config the gateway reads.")
        if not locations["pluginEnabled"]:
            critical.append("The Telegram PLUGIN is disabled in the config the gateway reads.")
        if critical:
            results["criticalIssue"] = " ".join(critical)

        if token:
            bot = await self.telegram.get_bot_info(token)
            results["botInfo"] = bot.to_dict()
            results["botError"] = bot.error
            updates = await self.telegram.pending_updates(token, limit=3)
            if updates.ok:
                results["pendingUpdates"] = updates.count
                results["lastUpdate"] = updates.last_update or None
        else:
            results["botError"] = "No token found in any config location"

        results["suggestions"] = self._suggest(results, state.running, token)
        return results

    @staticmethod
    def _suggest(results: Dict[str, Any], running: bool, token: Optional[str]) -> List[str]:
        tips: List[str] = []
        locations = results["tokenLocations"]
        bot_error = results.get("botError") or ""
        pending = results.get("pendingUpdates") or 0

        if results.get("criticalIssue"):
            tips.append("CRITICAL: " + results["criticalIssue"])
        if not running:
            tips.append("Gateway is NOT running. Restart it from the dashboard.")
        if "Unauthorized" in bot_error:
            tips.append("Telegram says the bot token is INVALID. Copy the full token from BotFather again.")
        elif token and bot_error:
            tips.append("Could not reach the Telegram API. Check your internet connection.")
        if not locations.get("openclawJson"):
            tips.append("Token missing from openclaw.json, the file the gateway reads.")
        if pending > 0:
            tips.append(
                f"There are {pending} unprocessed Telegram messages; the gateway is not polling. It may need a restart."
            )
        if running and results.get("botInfo") and pending == 0 and locations.get("openclawJson"):
            tips.append("Everything looks configured. Send another message in Telegram and wait 10-15 seconds.")
        return tips
