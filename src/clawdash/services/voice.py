"""
Voice replies — transcribe inbound voice and answer with voice notes.

Turns on audio transcription and TTS in existing gateway configs without
touching anything already set, and tells the agent (via its soul file) to
reply to voice with voice.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict

from ..gateway.reconciler import AUDIO_DEFAULTS, TTS_DEFAULTS, GatewayPatch, apply_desired_state
from ..profiles.paths import ProfileContext

logger = logging.getLogger("clawdash.services.voice")

VOICE_INSTRUCTION = "When the user sends a voice message, always reply with a voice note."
_ALREADY_PRESENT = ("voice note", "voice message", "reply with a voice")


def add_voice_instruction(soul: Path) -> bool:
    """Append the instruction unless the soul already talks about voice replies."""
    content = soul.read_text(encoding="utf-8") if soul.exists() else ""
    if any(marker in content for marker in _ALREADY_PRESENT):
        return False
    soul.parent.mkdir(parents=True, exist_ok=True)
    separator = "" if not content or content.endswith("\n") else "\n"
    soul.write_text(f"{content}{separator}\n{VOICE_INSTRUCTION}\n", encoding="utf-8")
    return True


async def enable_voice_replies(ctx: ProfileContext) -> Dict[str, Any]:
    soul = ctx.find_soul() or ctx.paths.workspace / "soul.md"
    try:
        soul_updated = add_voice_instruction(soul)
    except OSError as e:
        logger.warning(f"Could not update soul file {soul}: {e}")
        soul_updated = False

    patch = GatewayPatch(audio=AUDIO_DEFAULTS, tts=TTS_DEFAULTS, mode_local=False, fill_only=True)
    reconciled = await asyncio.to_thread(apply_desired_state, ctx.config_locations, patch, False)
    logger.info(f"Voice replies enabled ({len(reconciled.written)} config files)")
    return {
        "ok": True,
        "soul": str(soul),
        "soulUpdated": soul_updated,
        "config": reconciled.to_dict(),
        "note": "Voice replies enabled! Your bot will now transcribe voice messages and respond with voice notes.",
    }
