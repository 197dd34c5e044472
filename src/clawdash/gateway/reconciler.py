"""
Config Reconciler — fan-out writes of desired gateway state.

The gateway may read its config from any of several candidate files
(see profiles.paths). A patch is applied to every candidate so that
whichever one the gateway picks agrees with what the dashboard enabled.

Merge rules:
  - missing sub-objects are created, unrelated keys are left alone
  - `gateway.mode` is forced to "local" when a channel is enabled
  - the deprecated top-level `voice` key is removed
  - a corrupt file is backed up as `<name>.corrupt` and rebuilt from the skeleton
Per-file failures are recorded and never abort the batch.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ReconcileError
from ..profiles.paths import resolve_read_path
from ..utils import dump_json, write_json

logger = logging.getLogger("clawdash.gateway.reconciler")

SKELETON: Dict[str, Any] = {
    "channels": {},
    "plugins": {"entries": {}},
    "agents": {"defaults": {"model": {"primary": "openai/gpt-4o"}}},
}

AUDIO_DEFAULTS: Dict[str, Any] = {
    "enabled": True,
    "maxBytes": 20971520,
    "models": [{"provider": "openai", "model": "gpt-4o-mini-transcribe"}],
}

TTS_DEFAULTS: Dict[str, Any] = {"auto": "inbound", "provider": "edge"}

OPEN_POLICY = "open"
ALLOWLIST_POLICY = "allowlist"
WILDCARD = "*"


# ─── Patch Types ─────────────────────────────────────────────────

@dataclass
class ChannelPatch:
    """Desired state of one `channels.<name>` entry."""
    name: str
    token: Optional[str] = None
    token_key: str = "botToken"
    enabled: bool = True
    lock_user: Optional[str] = None
    preserve_policy: bool = False
    group_policy: Optional[str] = ALLOWLIST_POLICY
    extra: Dict[str, Any] = field(default_factory=dict)
    plugin: bool = True


@dataclass
class GatewayPatch:
    """A desired-state fragment for the gateway config document.

    With ``fill_only`` only missing or disabled values are set; an existing
    DM lock is never replaced.
    """
    channels: List[ChannelPatch] = field(default_factory=list)
    audio: Optional[Dict[str, Any]] = None
    tts: Optional[Dict[str, Any]] = None
    primary_model: Optional[str] = None
    mode_local: bool = True
    drop_voice: bool = True
    fill_only: bool = False


def telegram_patch(
    token: Optional[str] = None,
    lock_user: Optional[str] = None,
    voice: bool = False,
    preserve_policy: bool = False,
    fill_only: bool = False,
    **extra: Any,
) -> GatewayPatch:
    channel = ChannelPatch(
        name="telegram",
        token=token,
        lock_user=lock_user,
        preserve_policy=preserve_policy,
        extra=extra,
    )
    return GatewayPatch(
        channels=[channel],
        audio=AUDIO_DEFAULTS if voice else None,
        tts=TTS_DEFAULTS if voice else None,
        fill_only=fill_only,
    )


# ─── Results ─────────────────────────────────────────────────────

@dataclass
class LocationResult:
    path: Path
    ok: bool = False
    created: bool = False
    changed: bool = False
    recovered: bool = False
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "ok": self.ok,
            "created": self.created,
            "changed": self.changed,
            "recovered": self.recovered,
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class ReconcileResult:
    results: List[LocationResult] = field(default_factory=list)
    authoritative: Optional[Path] = None

    @property
    def any_written(self) -> bool:
        return any(r.ok for r in self.results)

    @property
    def written(self) -> List[Path]:
        return [r.path for r in self.results if r.ok]

    @property
    def failed(self) -> List[LocationResult]:
        return [r for r in self.results if not r.ok and not r.skipped]

    @property
    def recovered(self) -> List[LocationResult]:
        return [r for r in self.results if r.recovered]

    @property
    def authoritative_ok(self) -> bool:
        return any(r.ok and r.path == self.authoritative for r in self.results)

    def raise_if_none_written(self) -> None:
        if not self.any_written:
            errors = "; ".join(f"{r.path}: {r.error}" for r in self.failed) or "no candidate location"
            raise ReconcileError(f"Could not write gateway config ({errors})", result=self)

    def to_dict(self) -> dict:
        return {
            "anyWritten": self.any_written,
            "authoritative": str(self.authoritative) if self.authoritative else None,
            "authoritativeOk": self.authoritative_ok,
            "locations": [r.to_dict() for r in self.results],
        }


# ─── Merge ───────────────────────────────────────────────────────

def _section(parent: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = parent.get(key)
    if not isinstance(value, dict):
        value = {}
        parent[key] = value
    return value


def _put(target: Dict[str, Any], key: str, value: Any, fill_only: bool) -> None:
    if fill_only and target.get(key) not in (None, "", [], {}):
        return
    target[key] = copy.deepcopy(value)


def _apply_policy(entry: Dict[str, Any], ch: ChannelPatch, fill_only: bool) -> None:
    if ch.lock_user:
        policy, allow = ALLOWLIST_POLICY, [ch.lock_user]
    else:
        policy, allow = OPEN_POLICY, [WILDCARD]

    if fill_only or ch.preserve_policy:
        if not entry.get("dmPolicy"):
            entry["dmPolicy"] = policy
        if not isinstance(entry.get("allowFrom"), list):
            if entry["dmPolicy"] == policy:
                entry["allowFrom"] = allow
            elif entry["dmPolicy"] == OPEN_POLICY:
                entry["allowFrom"] = [WILDCARD]
        return

    # Lock is a replacement, never an append
    entry["dmPolicy"] = policy
    entry["allowFrom"] = allow


def apply_patch(document: Dict[str, Any], patch: GatewayPatch) -> Dict[str, Any]:
    """Return a new document with ``patch`` merged in. Pure."""
    doc = copy.deepcopy(document) if isinstance(document, dict) else copy.deepcopy(SKELETON)
    fill = patch.fill_only

    if patch.mode_local or any(ch.enabled for ch in patch.channels):
        _section(doc, "gateway")["mode"] = "local"

    for ch in patch.channels:
        entry = _section(_section(doc, "channels"), ch.name)
        if ch.token:
            _put(entry, ch.token_key, ch.token, fill)
        if ch.enabled:
            entry["enabled"] = True
        _apply_policy(entry, ch, fill)
        if ch.group_policy:
            _put(entry, "groupPolicy", ch.group_policy, fill)
        for key, value in ch.extra.items():
            _put(entry, key, value, fill)
        if ch.plugin:
            plugin = _section(_section(_section(doc, "plugins"), "entries"), ch.name)
            plugin["enabled"] = True

    if patch.audio is not None:
        media = _section(_section(doc, "tools"), "media")
        current = media.get("audio")
        if not fill or not (isinstance(current, dict) and current.get("enabled")):
            media["audio"] = copy.deepcopy(patch.audio)

    if patch.tts is not None:
        _put(_section(doc, "messages"), "tts", patch.tts, fill)

    if patch.primary_model:
        model = _section(_section(_section(doc, "agents"), "defaults"), "model")
        _put(model, "primary", patch.primary_model, fill)

    if patch.drop_voice:
        doc.pop("voice", None)

    return doc


# ─── Fan-out ─────────────────────────────────────────────────────

def _load_document(path: Path, result: LocationResult) -> Dict[str, Any]:
    raw = path.read_bytes()
    try:
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("top level is not an object")
        return data
    except ValueError as e:
        backup = path.with_name(path.name + ".corrupt")
        backup.write_bytes(raw)
        logger.warning(f"Corrupt config at {path} ({e}); saved as {backup.name}, rebuilding")
        result.recovered = True
        result.error = f"invalid JSON: {e}"
        return copy.deepcopy(SKELETON)


def apply_desired_state(
    locations: Sequence[Path],
    patch: GatewayPatch,
    create_missing: bool = True,
) -> ReconcileResult:
    """Apply ``patch`` to every location; never raises for per-file problems."""
    outcome = ReconcileResult()

    for path in locations:
        result = LocationResult(path=Path(path))
        outcome.results.append(result)
        try:
            exists = path.exists()
            if not exists and not create_missing:
                result.skipped = True
                continue

            before = None
            if exists:
                document = _load_document(path, result)
                if not result.recovered:
                    before = dump_json(document)
            else:
                document = copy.deepcopy(SKELETON)
                result.created = True

            merged = apply_patch(document, patch)
            if dump_json(merged) != before:
                write_json(path, merged)
                result.changed = True
            result.ok = True
        except OSError as e:
            result.ok = False
            result.error = str(e)
            logger.warning(f"Could not reconcile {path}: {e}")

    outcome.authoritative = resolve_read_path(list(locations))
    written = len(outcome.written)
    logger.info(f"Reconciled gateway config: {written}/{len(outcome.results)} locations")
    return outcome


def read_document(path: Optional[Path]) -> Dict[str, Any]:
    """Read a config document for inspection; anything unreadable is empty."""
    if path is None:
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}
