"""
Dashboard chat — direct model APIs with the gateway CLI as fallback.

Routing order for a message: OpenAI (if a key is configured), then
Anthropic, then `openclaw chat` when the gateway is running.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import anthropic
from openai import AsyncOpenAI, OpenAIError

from ..config.manager import EnvFile
from ..config.models import ChatConfig, DashboardConfig
from ..errors import InvalidInputError
from ..gateway.probe import GatewayProbe
from ..gateway.runner import CommandRunner
from ..profiles.paths import ProfileContext
from ..utils import now_iso, read_json, write_json
from .settings import SettingsStore

logger = logging.getLogger("clawdash.services.chat")

WARNING_PREFIX = "⚠"


# ─── Providers ───────────────────────────────────────────────────

class ChatProvider:
    """Base class for a one-shot chat completion backend."""
    provider_name: str = "base"

    async def complete(self, messages: List[Dict[str, str]], system: str) -> str:
        raise NotImplementedError


class OpenAIChat(ChatProvider):
    provider_name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model_id = model

    async def complete(self, messages: List[Dict[str, str]], system: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_id,
            messages=[{"role": "system", "content": system}, *messages],
        )
        return (response.choices[0].message.content or "").strip()


class AnthropicChat(ChatProvider):
    provider_name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514"):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model_id = model

    async def complete(self, messages: List[Dict[str, str]], system: str) -> str:
        response = await self.client.messages.create(
            max_tokens=4096,
            system=system,
            messages=messages,
            model=self.model_id,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()


# ─── Service ─────────────────────────────────────────────────────

class ChatService:
    def __init__(
        self,
        config: DashboardConfig,
        runner: CommandRunner,
        probe: GatewayProbe,
        settings: SettingsStore,
    ):
        self.config = config
        self.chat: ChatConfig = config.chat
        self.runner = runner
        self.probe = probe
        self.settings = settings

    @property
    def history_path(self) -> Path:
        return self.config.paths.data_dir / "chat-history.json"

    @property
    def setup_marker(self) -> Path:
        return self.config.paths.data_dir / ".setup-complete"

    # ─── Keys ────────────────────────────────────────────────────

    def _keys(self, ctx: ProfileContext) -> Dict[str, str]:
        settings = self.settings.load()
        env = EnvFile(ctx.paths.env_path).get_all()
        return {
            "openai": settings.openai_api_key or env.get("OPENAI_API_KEY", ""),
            "anthropic": settings.anthropic_api_key or env.get("ANTHROPIC_API_KEY", ""),
            "telegram": settings.telegram_bot_token
            or env.get("TELEGRAM_BOT_TOKEN", "")
            or env.get("TELEGRAM_TOKEN", ""),
        }

    def _has_oauth(self) -> bool:
        if self.settings.load().openai_oauth_enabled:
            return True
        auth = read_json(self.config.paths.home_path / ".codex" / "auth.json", {})
        return isinstance(auth, dict) and bool(auth.get("access_token") or auth.get("token"))

    def _has_telegram(self, ctx: ProfileContext, keys: Dict[str, str]) -> bool:
        if keys["telegram"]:
            return True
        legacy = read_json(ctx.paths.config_json, {})
        channels = legacy.get("channels") if isinstance(legacy, dict) else None
        telegram = channels.get("telegram") if isinstance(channels, dict) else None
        return isinstance(telegram, dict) and bool(telegram.get("botToken"))

    # ─── Status ──────────────────────────────────────────────────

    def is_first_run(self) -> bool:
        return not self.setup_marker.exists()

    def complete_setup(self) -> None:
        self.setup_marker.parent.mkdir(parents=True, exist_ok=True)
        self.setup_marker.write_text(now_iso())

    async def status(self, ctx: ProfileContext) -> Dict[str, Any]:
        state = await self.probe.probe(ctx.env_vars)
        keys = self._keys(ctx)
        has_openai = bool(keys["openai"])
        has_anthropic = bool(keys["anthropic"])
        has_oauth = self._has_oauth()
        has_telegram = self._has_telegram(ctx, keys)

        if state.running and (has_openai or has_oauth or has_anthropic):
            method = "gateway"
        elif has_openai:
            method = "openai-direct"
        elif has_anthropic:
            method = "anthropic-direct"
        elif has_oauth:
            method = "oauth"
        else:
            method = "none"
        ready = method != "none"

        if not ready:
            step = "need-api-key"
        elif not state.running:
            step = "start-gateway"
        elif not has_telegram:
            step = "add-telegram"
        else:
            step = "complete"

        return {
            "chatReady": ready,
            "chatMethod": method,
            "gateway": {"running": state.running, "statusText": state.status_text},
            "keys": {
                "openai": has_openai,
                "anthropic": has_anthropic,
                "oauth": has_oauth,
                "telegram": has_telegram,
            },
            "onboardingStep": step,
            "activeProfile": ctx.profile_id,
            "firstRun": self.is_first_run(),
        }

    # ─── Send ────────────────────────────────────────────────────

    def system_prompt(self, ctx: ProfileContext) -> str:
        soul = ctx.find_soul()
        if soul is not None:
            try:
                text = soul.read_text(encoding="utf-8").strip()
            except OSError:
                text = ""
            if text:
                return text
        return self.chat.default_system_prompt

    def build_messages(self, message: str, history: Optional[List[Any]]) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        for item in (history or [])[-self.chat.context_messages:]:
            if not isinstance(item, dict) or not item.get("role") or not item.get("content"):
                continue
            content = str(item["content"]).strip()
            # Dashboard warnings are not part of the conversation
            if not content or content.startswith(WARNING_PREFIX):
                continue
            role = "user" if item["role"] == "user" else "assistant"
            messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": message})
        return messages

    def providers(self, ctx: ProfileContext, model: Optional[str] = None) -> List[ChatProvider]:
        keys = self._keys(ctx)
        chain: List[ChatProvider] = []
        if keys["openai"]:
            chain.append(OpenAIChat(keys["openai"], model or self.chat.openai_model))
        if keys["anthropic"]:
            chain.append(AnthropicChat(keys["anthropic"], model or self.chat.anthropic_model))
        return chain

    async def send(
        self,
        ctx: ProfileContext,
        message: Any,
        history: Optional[List[Any]] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not isinstance(message, str) or not message.strip():
            raise InvalidInputError("No message provided")
        text = message.strip()
        messages = self.build_messages(text, history)
        system = self.system_prompt(ctx)

        providers = self.providers(ctx, model)
        if providers:
            # First configured provider answers; errors are reported, not retried
            provider = providers[0]
            try:
                reply = await provider.complete(messages, system)
            except (OpenAIError, anthropic.AnthropicError) as e:
                logger.error(f"{provider.provider_name} chat failed: {e}")
                return {"ok": False, "error": f"{provider.provider_name} request failed: {e}"}
            self.save_exchange(text, reply)
            return {"ok": True, "reply": reply, "method": provider.provider_name}

        state = await self.probe.probe(ctx.env_vars)
        if state.running:
            result = await self.runner.run_cli(
                "chat", "--no-interactive",
                timeout=30,
                profile_env=ctx.env_vars,
                input=text,
            )
            if result.ok and result.output:
                self.save_exchange(text, result.output)
                return {"ok": True, "reply": result.output, "method": "gateway-cli"}

        return {"ok": False, "error": "No API keys configured. Add one to start chatting."}

    # ─── History ─────────────────────────────────────────────────

    def history(self, limit: int = 100) -> List[Dict[str, Any]]:
        data = read_json(self.history_path, [])
        return data[-limit:] if isinstance(data, list) else []

    def clear_history(self) -> None:
        write_json(self.history_path, [])

    def save_exchange(self, user: str, reply: str) -> None:
        entries = self.history(self.chat.history_limit)
        ts = now_iso()
        entries.append({"role": "user", "content": user, "ts": ts})
        entries.append({"role": "assistant", "content": reply, "ts": ts})
        try:
            write_json(self.history_path, entries[-self.chat.history_limit:])
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not save chat history: {e}")
