"""
Process Probe — is the managed gateway running?

The answer is the OR of three independent signals: something listens on
the websocket port, something listens on the legacy port, or the CLI's
`gateway status` text says so. Signals are gathered concurrently, a
failing signal counts as false, and ``probe`` itself never raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..config.models import GatewayProcessConfig
from .runner import CommandResult, CommandRunner

logger = logging.getLogger("clawdash.gateway.probe")

RUNNING_PATTERN = re.compile(
    r"Runtime:\s*running|listening on ws://127\.0\.0\.1:18789|gateway\s+running",
    re.IGNORECASE,
)


@dataclass
class GatewayState:
    running: bool = False
    signals: Dict[int, bool] = field(default_factory=dict)
    status_text: str = ""
    looks_running: bool = False

    def to_dict(self) -> dict:
        data = {
            "running": self.running,
            "looksRunning": self.looks_running,
            "statusText": self.status_text,
            "signals": {str(p): up for p, up in self.signals.items()},
        }
        # Flat keys the frontend reads
        for port, up in self.signals.items():
            data["ws18789" if port == 18789 else f"port{port}"] = up
        return data


def status_says_running(text: str) -> bool:
    return bool(text and RUNNING_PATTERN.search(text))


class GatewayProbe:
    def __init__(self, runner: CommandRunner, config: GatewayProcessConfig):
        self.runner = runner
        self.config = config

    async def _port_signal(self, port: int) -> bool:
        return await asyncio.to_thread(self.runner.port_listening, port)

    async def probe(self, profile_env: Optional[Mapping[str, str]] = None) -> GatewayState:
        ports = self.config.ports
        results = await asyncio.gather(
            *(self._port_signal(p) for p in ports),
            self.runner.run_cli(
                "gateway", "status",
                timeout=self.config.status_timeout,
                profile_env=profile_env,
            ),
            return_exceptions=True,
        )

        signals: Dict[int, bool] = {}
        for port, outcome in zip(ports, results[:-1]):
            if isinstance(outcome, BaseException):
                logger.debug(f"Port check {port} failed: {outcome}")
                signals[port] = False
            else:
                signals[port] = bool(outcome)

        status = results[-1]
        if isinstance(status, CommandResult):
            text = status.text.strip()
            status_text = status.output or status.error or ""
        else:
            logger.debug(f"Status command failed: {status}")
            text = ""
            status_text = str(status)
        looks_running = status_says_running(text)

        state = GatewayState(
            running=any(signals.values()) or looks_running,
            signals=signals,
            status_text=status_text,
            looks_running=looks_running,
        )
        logger.debug(f"Gateway probe: running={state.running} signals={signals}")
        return state
