"""
Dashboard HTTP Routes — REST API endpoints.

Provides: health check, gateway status/restart, profiles, chat,
provider keys, and the Telegram onboarding flows.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from ..channels.telegram import validate_token, validate_user_id
from ..services.voice import enable_voice_replies
from ..version import get_version
from .startup import DashboardServices

router = APIRouter()


def get_services(request: Request) -> DashboardServices:
    return request.app.state.services


# ─── Request Bodies ──────────────────────────────────────────────

class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ActivateBody(_Body):
    fresh_install: bool = Field(False, alias="freshInstall")
    user_id: Any = Field(None, alias="userId")
    token: Optional[str] = None


class LockBody(_Body):
    user_id: Any = Field(None, alias="userId")


class PairBody(_Body):
    code: Any = None


class SaveKeyBody(_Body):
    provider: str = ""
    key: str = ""


class SendBody(_Body):
    message: Any = None
    history: Optional[List[Any]] = None
    model: Optional[str] = None


# ─── Core Endpoints ──────────────────────────────────────────────

@router.get("/api/ping")
async def ping():
    return {"ok": True, "service": "clawdash", "version": get_version()}


@router.get("/api/gateway/status")
async def gateway_status(services: DashboardServices = Depends(get_services)):
    ctx = services.context()
    state = await services.probe.probe(ctx.env_vars)
    return {
        **state.to_dict(),
        "phase": services.lifecycle.phase.value,
        "busy": services.lifecycle.busy,
    }


@router.post("/api/gateway/restart")
@router.post("/api/chat/gateway-restart")
async def gateway_restart(services: DashboardServices = Depends(get_services)):
    return await services.lifecycle.restart(services.context())


# ─── Profiles ────────────────────────────────────────────────────

@router.get("/api/profiles")
async def list_profiles(services: DashboardServices = Depends(get_services)):
    return {"profiles": [p.to_dict() for p in services.profiles.list()]}


@router.post("/api/profiles/{profile_id}/activate")
async def activate_profile(profile_id: str, services: DashboardServices = Depends(get_services)):
    profile = services.profiles.activate(profile_id)
    return {"ok": True, "profile": profile.to_dict()}


# ─── Chat ────────────────────────────────────────────────────────

@router.get("/api/chat/first-run")
async def first_run(services: DashboardServices = Depends(get_services)):
    return {"firstRun": services.chat.is_first_run()}


@router.post("/api/chat/complete-setup")
async def complete_setup(services: DashboardServices = Depends(get_services)):
    services.chat.complete_setup()
    return {"ok": True}


@router.get("/api/chat/status")
async def chat_status(services: DashboardServices = Depends(get_services)):
    return await services.chat.status(services.context())


@router.post("/api/chat/send")
async def chat_send(body: SendBody, services: DashboardServices = Depends(get_services)):
    return await services.chat.send(services.context(), body.message, body.history, body.model)


@router.get("/api/chat/history")
async def chat_history(services: DashboardServices = Depends(get_services)):
    return {"messages": services.chat.history()}


@router.delete("/api/chat/history")
async def clear_chat_history(services: DashboardServices = Depends(get_services)):
    services.chat.clear_history()
    return {"ok": True}


@router.post("/api/chat/save-key")
async def save_key(body: SaveKeyBody, services: DashboardServices = Depends(get_services)):
    return await services.onboarding.save_provider_key(services.context(), body.provider, body.key)


# ─── Telegram ────────────────────────────────────────────────────

@router.post("/api/chat/telegram-activate")
async def telegram_activate(body: ActivateBody, services: DashboardServices = Depends(get_services)):
    ctx = services.context()
    token = validate_token(body.token) if body.token else (services.settings.load().telegram_bot_token or None)
    user_id = None
    if body.user_id not in (None, ""):
        user_id = validate_user_id(body.user_id)
    result = await services.lifecycle.activate(
        ctx,
        token=token,
        user_id=user_id,
        fresh_install=body.fresh_install,
    )
    return result.to_dict()


@router.post("/api/chat/telegram-lock")
async def telegram_lock(body: LockBody, services: DashboardServices = Depends(get_services)):
    return await services.onboarding.lock(services.context(), body.user_id)


@router.post("/api/chat/telegram-pair")
async def telegram_pair(body: PairBody, services: DashboardServices = Depends(get_services)):
    return await services.onboarding.pair(services.context(), body.code)


@router.get("/api/chat/telegram-pairing-status")
async def telegram_pairing_status(services: DashboardServices = Depends(get_services)):
    return await services.onboarding.pairing_status(services.context())


@router.post("/api/chat/enable-voice-replies")
async def voice_replies(services: DashboardServices = Depends(get_services)):
    return await enable_voice_replies(services.context())


@router.get("/api/chat/telegram-diagnostics")
async def telegram_diagnostics(services: DashboardServices = Depends(get_services)):
    return await services.diagnostics.telegram_diagnostics(services.context())


@router.post("/api/chat/telegram-diagnose")
async def telegram_diagnose(services: DashboardServices = Depends(get_services)):
    return await services.diagnostics.diagnose(services.context())
