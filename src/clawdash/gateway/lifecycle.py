"""
Lifecycle Controller — bring the managed gateway to a known running state.

A telegram activation walks these phases in order, recording one step
per phase:

    stop -> [clean] -> config -> start -> connecting

Phase rules:
  - stopping never fails hard: the graceful stop is followed by SIGKILL of
    anything on the gateway ports or matching the gateway command line
  - cleaning is best effort and only runs for a fresh install
  - `start` is marked done only when the probe reports the gateway running;
    otherwise the run ends failed and no later step is recorded
The step log is always returned. Runs are serialized by a single-slot lock.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..channels.allowlist import Allowlist
from ..channels.telegram import TelegramClient
from ..config.models import DashboardConfig
from ..errors import ReconcileError
from ..profiles.paths import ProfileContext
from ..utils import tail_lines
from .probe import GatewayProbe, GatewayState
from .reconciler import (
    ALLOWLIST_POLICY,
    WILDCARD,
    GatewayPatch,
    ReconcileResult,
    apply_desired_state,
    read_document,
    telegram_patch,
)
from .runner import CommandRunner

logger = logging.getLogger("clawdash.gateway.lifecycle")

LAUNCH_AGENT_LABEL = "ai.openclaw.gateway"


class Phase(str, Enum):
    IDLE = "idle"
    STOPPING = "stopping"
    CLEANING = "cleaning"
    RECONFIGURING = "reconfiguring"
    STARTING = "starting"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Step:
    step: str
    status: str = "running"
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"step": self.step, "status": self.status}
        if self.detail:
            data["detail"] = self.detail
        return data


@dataclass
class StartResult:
    ok: bool
    state: GatewayState
    log: List[str] = field(default_factory=list)
    pid: Optional[int] = None


@dataclass
class CleanupEntry:
    path: str
    removed: bool
    error: Optional[str] = None


@dataclass
class LifecycleResult:
    ok: bool
    phase: Phase
    steps: List[Step] = field(default_factory=list)
    gateway_running: bool = False
    telegram_connected: bool = False
    bot_info: Optional[Dict[str, Any]] = None
    pairing_info: Optional[Dict[str, Any]] = None
    start_log: List[str] = field(default_factory=list)
    cleanup: List[CleanupEntry] = field(default_factory=list)
    reconcile: Optional[ReconcileResult] = None
    error: Optional[str] = None

    def step(self, name: str) -> Optional[Step]:
        return next((s for s in self.steps if s.step == name), None)

    def to_dict(self) -> dict:
        data = {
            "ok": self.ok,
            "phase": self.phase.value,
            "gatewayRunning": self.gateway_running,
            "telegramConnected": self.telegram_connected,
            "botInfo": self.bot_info,
            "pairingInfo": self.pairing_info,
            "steps": [s.to_dict() for s in self.steps],
            "startLog": self.start_log,
        }
        if self.cleanup:
            data["cleanup"] = [vars(c) for c in self.cleanup]
        if self.reconcile is not None:
            data["config"] = self.reconcile.to_dict()
        if self.error:
            data["error"] = self.error
        return data


def pairing_info(document: Dict[str, Any]) -> Dict[str, Any]:
    """Summarize the DM lock of a gateway config document."""
    channels = document.get("channels") if isinstance(document.get("channels"), dict) else {}
    telegram = channels.get("telegram") if isinstance(channels.get("telegram"), dict) else {}
    mode = telegram.get("dmPolicy") or "open"
    allow_from = telegram.get("allowFrom") if isinstance(telegram.get("allowFrom"), list) else []
    locked = mode == ALLOWLIST_POLICY and bool(allow_from) and WILDCARD not in allow_from
    if mode == ALLOWLIST_POLICY:
        note = "Your bot is locked. Only approved users can chat with it."
    else:
        note = "Your bot is live. Send any message in Telegram and your AI will reply!"
    return {"mode": mode, "locked": locked, "allowFrom": allow_from, "note": note}


class LifecycleController:
    def __init__(
        self,
        config: DashboardConfig,
        runner: CommandRunner,
        probe: Optional[GatewayProbe] = None,
        telegram: Optional[TelegramClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.gw = config.gateway
        self.runner = runner
        self.probe = probe or GatewayProbe(runner, config.gateway)
        self.telegram = telegram or TelegramClient(config.telegram)
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.phase = Phase.IDLE

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def _settle(self, seconds: float):
        if seconds > 0:
            await self._sleep(seconds)

    # ─── Stop ────────────────────────────────────────────────────

    async def hard_kill(self) -> List[int]:
        """SIGKILL whatever holds the gateway ports or matches its command line."""
        killed: List[int] = []
        for port in self.gw.ports:
            killed += self.runner.kill_pids(await self.runner.pids_on_port(port), signal.SIGKILL)
        strays = await self.runner.pids_matching(self.gw.process_pattern)
        killed += self.runner.kill_pids(strays, signal.SIGKILL)
        if killed:
            logger.info(f"Hard-killed gateway processes: {killed}")
        return killed

    async def stop(self, ctx: ProfileContext) -> List[str]:
        """Graceful stop then hard kill. Never raises for process errors."""
        log: List[str] = []
        result = await self.runner.run_cli(
            "gateway", "stop",
            timeout=self.gw.command_timeout,
            profile_env=ctx.env_vars,
        )
        log.append("gateway stop: " + ("ok" if result.ok else (result.error or "failed")))
        await self._settle(self.gw.stop_settle)
        killed = await self.hard_kill()
        if killed:
            log.append(f"killed PIDs: {', '.join(str(p) for p in killed)}")
        await self._settle(self.gw.kill_settle)
        return log

    # ─── Clean ───────────────────────────────────────────────────

    def _state_roots(self, ctx: ProfileContext) -> List[Path]:
        roots: List[Path] = []
        for candidate in [p.parent for p in ctx.config_locations] + [ctx.paths.config_dir]:
            if candidate not in roots:
                roots.append(candidate)
        return roots

    async def clean(self, ctx: ProfileContext, token: Optional[str] = None) -> List[CleanupEntry]:
        """Remove runtime state directories and drain queued channel updates."""
        report: List[CleanupEntry] = []
        for root in self._state_roots(ctx):
            for name in self.gw.clean_subdirs:
                target = root / name
                if not target.exists():
                    continue
                try:
                    await asyncio.to_thread(shutil.rmtree, target)
                    report.append(CleanupEntry(str(target), True))
                except OSError as e:
                    logger.warning(f"Could not remove {target}: {e}")
                    report.append(CleanupEntry(str(target), False, str(e)))
        if token:
            drained = await self.telegram.drain_pending(token)
            report.append(CleanupEntry("telegram:pending-updates", drained))
        return report

    # ─── Reconfigure ─────────────────────────────────────────────

    def existing_token(self, ctx: ProfileContext) -> Optional[str]:
        telegram = read_document(ctx.read_path).get("channels", {})
        if isinstance(telegram, dict):
            telegram = telegram.get("telegram")
        if isinstance(telegram, dict) and telegram.get("botToken"):
            return str(telegram["botToken"])
        return None

    async def reconfigure(
        self,
        ctx: ProfileContext,
        token: Optional[str],
        user_id: Optional[str] = None,
    ) -> ReconcileResult:
        if token:
            added = await self.runner.run_cli(
                "channels", "add", "--channel", "telegram", "--token", token,
                timeout=15,
                profile_env=ctx.env_vars,
            )
            if not added.ok:
                logger.info(f"`channels add` did not succeed: {added.error}")

        patch = telegram_patch(token=token, lock_user=user_id, voice=True)
        return await asyncio.to_thread(apply_desired_state, ctx.config_locations, patch)

    # ─── Start ───────────────────────────────────────────────────

    async def _remove_launch_agent(self, log: List[str]):
        if sys.platform != "darwin":
            return
        await self.runner.run(
            ["launchctl", "bootout", f"gui/{os.getuid()}/{LAUNCH_AGENT_LABEL}"],
            timeout=10,
        )
        plist = self.config.paths.home_path / "Library" / "LaunchAgents" / f"{LAUNCH_AGENT_LABEL}.plist"
        try:
            plist.unlink()
            log.append("cleaned stale LaunchAgent")
        except FileNotFoundError:
            pass
        except OSError as e:
            log.append(f"launchagent cleanup: {e}")

    async def full_start(self, ctx: ProfileContext) -> StartResult:
        """Spawn the gateway detached, wait, and probe."""
        log: List[str] = []

        fixed = await asyncio.to_thread(
            apply_desired_state,
            ctx.config_locations,
            GatewayPatch(mode_local=True, drop_voice=False),
            False,
        )
        for r in fixed.results:
            if r.changed:
                log.append(f"set gateway.mode=local in {r.path.name}")

        await self._remove_launch_agent(log)

        holders = await self.runner.pids_on_port(self.gw.ws_port)
        if self.runner.kill_pids(holders, signal.SIGTERM):
            await self._settle(self.gw.kill_settle)
        log.append(f"cleared port {self.gw.ws_port}")

        self.phase = Phase.STARTING
        argv = self.runner.cli_argv("gateway", "--port", str(self.gw.ws_port))
        spawned = self.runner.spawn_detached(
            argv,
            log_path=self.config.paths.gateway_log_file,
            pid_file=self.config.paths.gateway_pid_file,
            env=self.runner.build_env(ctx.env_vars),
        )
        if spawned.ok:
            log.append(f"started gateway PID={spawned.pid}")
        else:
            log.append(f"start err: {spawned.error}")

        self.phase = Phase.VERIFYING
        await self._settle(self.gw.start_settle)
        state = await self.probe.probe(ctx.env_vars)
        log.append("gateway running" if state.running else "gateway not detected after start")
        return StartResult(ok=state.running, state=state, log=log, pid=spawned.pid)

    # ─── Connect ─────────────────────────────────────────────────

    async def _connect(self, ctx: ProfileContext, token: Optional[str], result: LifecycleResult):
        await self._settle(self.gw.connect_settle)
        if token:
            bot = await self.telegram.get_bot_info(token)
            result.bot_info = bot.to_dict()
            updates = await self.telegram.pending_updates(token, limit=1)
            result.telegram_connected = updates.ok
        result.pairing_info = pairing_info(read_document(ctx.read_path))

    # ─── Entry points ────────────────────────────────────────────

    async def activate(
        self,
        ctx: ProfileContext,
        token: Optional[str] = None,
        user_id: Optional[str] = None,
        fresh_install: bool = False,
    ) -> LifecycleResult:
        """Stop, optionally clean, reconfigure telegram, start, verify."""
        async with self._lock:
            result = LifecycleResult(ok=False, phase=Phase.IDLE)
            try:
                return await self._activate(result, ctx, token, user_id, fresh_install)
            except OSError as e:
                for step in result.steps:
                    if step.status == "running":
                        step.status = "failed"
                        step.detail = str(e)
                return self._fail(result, f"{type(e).__name__}: {e}")
            finally:
                if self.phase not in (Phase.DONE, Phase.FAILED):
                    self.phase = Phase.FAILED
                logger.info(f"Telegram activation finished: {self.phase.value}")

    async def _activate(
        self,
        result: LifecycleResult,
        ctx: ProfileContext,
        token: Optional[str],
        user_id: Optional[str],
        fresh_install: bool,
    ) -> LifecycleResult:
        token = token or self.existing_token(ctx)

        self.phase = Phase.STOPPING
        step = Step("stop")
        result.steps.append(step)
        result.start_log += await self.stop(ctx)
        step.status = "done"

        if fresh_install:
            self.phase = Phase.CLEANING
            step = Step("clean")
            result.steps.append(step)
            result.cleanup = await self.clean(ctx, token)
            step.status = "done"

        self.phase = Phase.RECONFIGURING
        step = Step("config")
        result.steps.append(step)
        try:
            result.reconcile = await self.reconfigure(ctx, token, user_id)
            result.reconcile.raise_if_none_written()
            notes = []
            if not result.reconcile.authoritative_ok:
                notes.append("authoritative config location was not written")
            if user_id:
                try:
                    Allowlist(ctx.allowlist_path).add(user_id)
                except OSError as e:
                    logger.warning(f"Could not update Telegram allowlist: {e}")
                    notes.append(f"allowlist not updated: {e}")
            step.detail = "; ".join(notes) or None
            step.status = "done"
        except ReconcileError as e:
            step.status = "failed"
            step.detail = str(e)
            return self._fail(result, str(e))

        step = Step("start")
        result.steps.append(step)
        started = await self.full_start(ctx)
        result.start_log += started.log
        result.gateway_running = started.ok
        if not started.ok:
            step.status = "failed"
            return self._fail(result, "Gateway failed to start")
        step.status = "done"

        # Fill in anything the gateway's own startup may have dropped, keeping the lock
        await asyncio.to_thread(
            apply_desired_state,
            ctx.config_locations,
            telegram_patch(token=token, lock_user=user_id, voice=True, fill_only=True),
            False,
        )

        step = Step("connecting")
        result.steps.append(step)
        await self._connect(ctx, token, result)
        step.status = "done"

        self.phase = Phase.DONE
        result.phase = Phase.DONE
        result.ok = True
        return result

    def _fail(self, result: LifecycleResult, error: str) -> LifecycleResult:
        self.phase = Phase.FAILED
        result.phase = Phase.FAILED
        result.ok = False
        result.error = error
        logger.warning(f"Lifecycle run failed: {error}")
        return result

    async def restart(self, ctx: ProfileContext) -> Dict[str, Any]:
        """Stop, hard kill, start, and report what happened."""
        async with self._lock:
            self.phase = Phase.STOPPING
            log = await self.stop(ctx)
            ports_free = {
                str(port): not await asyncio.to_thread(self.runner.port_listening, port)
                for port in self.gw.ports
            }
            log.append("ports free: " + ", ".join(f"{p}={free}" for p, free in ports_free.items()))

            started = await self.full_start(ctx)
            log += started.log
            final = await self.probe.probe(ctx.env_vars)
            self.phase = Phase.DONE if final.running else Phase.FAILED
            return {
                "ok": final.running,
                "gateway": final.to_dict(),
                "portsFree": ports_free,
                "log": log,
                "gatewayLog": tail_lines(self.config.paths.gateway_log_file, 10),
            }
