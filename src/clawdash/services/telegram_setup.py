"""
Onboarding flows — provider keys, Telegram token, DM lock and pairing.

Each flow writes to every place the gateway (or an older gateway
version) might read the value from and reports per-target success,
so a partial write is visible to the caller instead of silently lost.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

from ..channels.allowlist import Allowlist
from ..channels.telegram import validate_token, validate_user_id
from ..config.manager import EnvFile
from ..config.models import DashboardConfig
from ..errors import InvalidInputError
from ..gateway.reconciler import (
    ChannelPatch,
    GatewayPatch,
    apply_desired_state,
    read_document,
    telegram_patch,
)
from ..gateway.runner import CommandRunner
from ..profiles.paths import ProfileContext
from ..utils import now_iso, read_json, write_json
from .settings import SettingsStore, write_yaml_config

logger = logging.getLogger("clawdash.services.telegram_setup")

PROVIDER_MODELS = {
    "openai": "openai/gpt-4o",
    "anthropic": "anthropic/claude-sonnet-4-5-20250929",
}
PROVIDER_SETTINGS_KEYS = {"openai": "openaiApiKey", "anthropic": "anthropicApiKey"}
PROVIDER_ENV_KEYS = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}

_PAIR_REJECT_MARKERS = ("unknown command", "not found")


def _has_channel(document: Dict[str, Any], name: str) -> bool:
    channels = document.get("channels")
    return isinstance(channels, dict) and isinstance(channels.get(name), dict)


class Onboarding:
    def __init__(self, config: DashboardConfig, runner: CommandRunner, settings: SettingsStore):
        self.config = config
        self.runner = runner
        self.settings = settings

    def _write_yaml(self) -> bool:
        paths = self.config.paths
        try:
            write_yaml_config(self.settings.load(), paths.yaml_config, paths.data_dir / "config-backups")
            return True
        except OSError as e:
            logger.warning(f"Could not write YAML config: {e}")
            return False

    # ─── Provider keys ───────────────────────────────────────────

    async def save_provider_key(self, ctx: ProfileContext, provider: str, key: str) -> Dict[str, Any]:
        provider = (provider or "").strip().lower()
        key = (key or "").strip()
        if not provider or not key:
            raise InvalidInputError("Provider and key required")
        if provider == "telegram":
            return await self.save_telegram_token(ctx, key)
        if provider not in PROVIDER_MODELS:
            raise InvalidInputError(f"Unknown provider: {provider}")

        self.settings.save({PROVIDER_SETTINGS_KEYS[provider]: key})
        logger.info(f"API key saved for {provider}")

        env_written = False
        if ctx.paths.config_dir.exists():
            try:
                EnvFile(ctx.paths.env_path).set(PROVIDER_ENV_KEYS[provider], key)
                env_written = True
            except OSError as e:
                logger.warning(f"Could not write profile .env: {e}")

        # Only the shared locations; the profile file is left to the gateway CLI
        model_patch = GatewayPatch(mode_local=True, primary_model=PROVIDER_MODELS[provider])
        reconciled = await asyncio.to_thread(
            apply_desired_state, ctx.config_locations[:2], model_patch, False
        )
        return {
            "ok": True,
            "provider": provider,
            "env": env_written,
            "config": reconciled.to_dict(),
            "yamlConfig": self._write_yaml(),
        }

    # ─── Telegram token ──────────────────────────────────────────

    def _update_legacy_config(self, ctx: ProfileContext, token: str) -> bool:
        path = ctx.paths.config_json
        if not path.exists():
            return False
        doc = read_document(path)
        channels = doc.setdefault("channels", {})
        telegram = channels.setdefault("telegram", {})
        telegram["botToken"] = token
        telegram["enabled"] = True
        entries = doc.setdefault("plugins", {}).setdefault("entries", {})
        entries.setdefault("telegram", {})["enabled"] = True
        try:
            write_json(path, doc)
        except OSError as e:
            logger.warning(f"Could not update {path}: {e}")
            return False
        return True

    def _write_credentials(self, ctx: ProfileContext, token: str) -> bool:
        try:
            write_json(
                ctx.paths.credentials_dir / "telegram.json",
                {"botToken": token, "enabled": True, "updatedAt": now_iso()},
            )
            return True
        except OSError as e:
            logger.warning(f"Could not write telegram credentials: {e}")
            return False

    async def save_telegram_token(self, ctx: ProfileContext, token: str) -> Dict[str, Any]:
        """Write the bot token to every location the gateway may read it from."""
        token = validate_token(token)
        results: Dict[str, bool] = {}

        added = await self.runner.run_cli(
            "channels", "add", "--channel", "telegram", "--token", token,
            timeout=15,
            profile_env=ctx.env_vars,
        )
        results["cliAdd"] = added.ok
        if not added.ok:
            logger.info(f"`channels add` output: {added.output[:200] or added.error}")

        self.settings.save({"telegramBotToken": token})
        results["settings"] = True

        results["env"] = False
        if ctx.paths.config_dir.exists():
            try:
                EnvFile(ctx.paths.env_path).update({"TELEGRAM_BOT_TOKEN": token, "TELEGRAM_TOKEN": token})
                results["env"] = True
            except OSError as e:
                logger.warning(f"Could not write profile .env: {e}")

        results["configJson"] = self._update_legacy_config(ctx, token)

        reconciled = await asyncio.to_thread(
            apply_desired_state,
            ctx.config_locations,
            telegram_patch(token=token, preserve_policy=True),
        )
        results["openclawJson"] = reconciled.any_written
        results["yamlConfig"] = self._write_yaml()
        results["credentials"] = self._write_credentials(ctx, token)

        return {
            "ok": True,
            "results": results,
            "config": reconciled.to_dict(),
            "note": "Token saved. Activate Telegram to restart the gateway.",
        }

    # ─── DM lock ─────────────────────────────────────────────────

    async def lock(self, ctx: ProfileContext, user_id: Any) -> Dict[str, Any]:
        """Restrict DMs to one user in every existing telegram config."""
        uid = validate_user_id(user_id)
        Allowlist(ctx.allowlist_path).add(uid)

        targets = [p for p in ctx.existing_locations if _has_channel(read_document(p), "telegram")]
        patch = GatewayPatch(
            channels=[
                ChannelPatch(name="telegram", lock_user=uid, enabled=False, group_policy=None, plugin=False)
            ],
            mode_local=False,
            drop_voice=False,
        )
        reconciled = await asyncio.to_thread(apply_desired_state, targets, patch, False)
        return {
            "ok": True,
            "userId": uid,
            "config": reconciled.to_dict(),
            "note": f"Bot locked. Only Telegram user ID {uid} can chat with it.",
        }

    # ─── Pairing ─────────────────────────────────────────────────

    def _direct_approval(self, ctx: ProfileContext, code: str) -> bool:
        if not code.isdigit():
            return False
        stores = [
            Allowlist(ctx.allowlist_path),
            Allowlist(self.config.paths.home_path / ".openclaw" / "credentials" / "telegram-allowFrom.json"),
        ]
        approved = False
        for store in stores:
            try:
                store.add(code)
                approved = True
            except OSError as e:
                logger.warning(f"Could not update {store.path}: {e}")
        return approved

    async def pair(self, ctx: ProfileContext, code: Any) -> Dict[str, Any]:
        code = str(code or "").strip()
        if not code:
            raise InvalidInputError("Pairing code required")

        attempts = [
            ("pairing", "approve", "telegram", code),
            ("channels", "login", "--channel", "telegram", "--code", code),
            ("channels", "approve", "--channel", "telegram", "--code", code),
        ]
        last_output = ""
        for args in attempts:
            result = await self.runner.run_cli(*args, timeout=15, profile_env=ctx.env_vars)
            text = (result.output or result.stderr).lower()
            last_output = result.output or result.stderr
            logger.info(f"pairing {' '.join(args[:2])}: ok={result.ok}")
            if result.ok and result.output and not any(m in text for m in _PAIR_REJECT_MARKERS):
                return {"ok": True, "message": "Pairing approved! You can now chat with your bot.", "output": result.output}

        if self._direct_approval(ctx, code):
            return {"ok": True, "message": "User approved via allowlist.", "output": f"Added {code} to allowFrom"}
        return {
            "ok": False,
            "error": "Pairing failed. The code may have expired; send /start again in Telegram to get a new code.",
            "output": last_output,
        }

    async def pairing_status(self, ctx: ProfileContext) -> Dict[str, Any]:
        pending = await self.runner.run_cli("pairing", "list", "telegram", timeout=10, profile_env=ctx.env_vars)
        approved = Allowlist(ctx.allowlist_path).read()

        devices: List[Any] = []
        device_dir = self.config.paths.home_path / ".openclaw" / "devices"
        if device_dir.is_dir():
            for entry in sorted(device_dir.glob("*.json")):
                data = read_json(entry, None)
                if data is not None:
                    devices.append(data)

        return {
            "ok": True,
            "pending": pending.output,
            "approvedUsers": approved,
            "pairedDevices": devices,
            "hasPaired": bool(approved or devices),
        }

