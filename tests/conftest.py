"""
tests/conftest.py
Shared fixtures for clawdash tests.
Provides isolated root/home/state directories, a zero-wait config and
fake process and Telegram backends.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Dict, List

import pytest

from clawdash.channels.telegram import BotCheck, UpdatesCheck
from clawdash.config.models import DashboardConfig, GatewayProcessConfig, PathsConfig
from clawdash.gateway.runner import CommandResult, CommandRunner, SpawnResult
from clawdash.profiles.paths import ProfileContext


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep every test away from the real home directory and dashboard root."""
    home = tmp_path / "home"
    root = tmp_path / "root"
    home.mkdir()
    root.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("CLAWDASH_ROOT", str(root))
    for var in ("QUICKCLAW_ROOT", "OPENCLAW_STATE_DIR", "CLAWDASH_CONFIG_PATH", "DASHBOARD_PORT", "HOST"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config(isolated_env) -> DashboardConfig:
    paths = PathsConfig(root=str(isolated_env / "root"), home=str(isolated_env / "home"))
    gateway = GatewayProcessConfig(
        stop_settle=0,
        kill_settle=0,
        start_settle=0,
        connect_settle=0,
    )
    return DashboardConfig(paths=paths, gateway=gateway)


@pytest.fixture
def ctx(config) -> ProfileContext:
    return ProfileContext.build("default", config.paths)


def write_config(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    return path


def read_config(path: Path) -> dict:
    return json.loads(path.read_text())


# ─── Fakes ─────────────────────────────────────────────────────────


class FakeRunner(CommandRunner):
    """CommandRunner that records calls and simulates gateway processes.

    ``listening`` holds the ports with a live listener; a successful spawn
    opens the gateway port unless ``start_succeeds`` is False.
    """

    def __init__(self, paths: PathsConfig, listening=None, start_succeeds: bool = True):
        super().__init__(paths, base_env={"PATH": "/usr/bin"})
        self.listening = set(listening or [])
        self.start_succeeds = start_succeeds
        self.responses: Dict[str, CommandResult] = {}
        self.calls: List[List[str]] = []
        self.events: List[str] = []
        self.spawned: List[List[str]] = []
        self.killed: List[int] = []
        self.strays: List[int] = []
        self._next_pid = 4000

    def respond(self, fragment: str, result: CommandResult):
        self.responses[fragment] = result

    async def run(self, argv, timeout=15.0, env=None, cwd=None, input=None):
        await asyncio.sleep(0)
        self.calls.append(list(argv))
        joined = " ".join(argv)
        if "gateway stop" in joined:
            self.events.append("stop")
        for fragment, result in self.responses.items():
            if fragment in joined:
                if isinstance(result, Exception):
                    raise result
                return result
        return CommandResult(ok=True)

    def spawn_detached(self, argv, log_path, pid_file=None, env=None):
        self.events.append("spawn")
        self.spawned.append(list(argv))
        self._next_pid += 1
        if self.start_succeeds:
            self.listening.add(18789)
        if pid_file is not None:
            pid_file.parent.mkdir(parents=True, exist_ok=True)
            pid_file.write_text(str(self._next_pid))
        return SpawnResult(ok=True, pid=self._next_pid)

    def port_listening(self, port, host="127.0.0.1", timeout=0.5):
        return port in self.listening

    async def pids_on_port(self, port):
        return [9000 + port] if port in self.listening else []

    async def pids_matching(self, pattern):
        return list(self.strays)

    def kill_pids(self, pids, sig=9):
        killed = []
        for pid in pids:
            killed.append(pid)
            self.killed.append(pid)
            if pid >= 9000:
                self.listening.discard(pid - 9000)
        self.strays = [p for p in self.strays if p not in killed]
        return killed


class FakeTelegram:
    def __init__(self, connected: bool = True):
        self.connected = connected
        self.drained: List[str] = []
        self.checked: List[str] = []

    async def get_bot_info(self, token):
        self.checked.append(token)
        return BotCheck(ok=True, username="testbot", first_name="Test", bot_id=42)

    async def pending_updates(self, token, limit=1):
        if not self.connected:
            return UpdatesCheck(ok=False, error="Unauthorized")
        return UpdatesCheck(ok=True, count=0)

    async def drain_pending(self, token):
        self.drained.append(token)
        return True


@pytest.fixture
def runner(config) -> FakeRunner:
    return FakeRunner(config.paths)


@pytest.fixture
def telegram() -> FakeTelegram:
    return FakeTelegram()
