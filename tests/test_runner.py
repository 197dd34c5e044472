"""
Tests for bounded command execution and the process probe.
"""

import os
import socket
import sys
import time

import pytest

from clawdash.gateway.probe import GatewayProbe, status_says_running
from clawdash.gateway.runner import CommandResult, CommandRunner


@pytest.fixture
def real_runner(config):
    return CommandRunner(config.paths)


# ─── CommandRunner ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_captures_stdout(real_runner):
    result = await real_runner.run([sys.executable, "-c", "print('hi')"])
    assert result.ok
    assert result.stdout == "hi"
    assert result.returncode == 0


@pytest.mark.asyncio
async def test_run_reports_nonzero_exit(real_runner):
    result = await real_runner.run([sys.executable, "-c", "import sys; sys.exit(3)"])
    assert not result.ok
    assert result.returncode == 3
    assert result.error == "exit code 3"


@pytest.mark.asyncio
async def test_run_missing_binary_does_not_raise(real_runner):
    result = await real_runner.run(["clawdash-no-such-binary-xyz"])
    assert not result.ok
    assert result.error


@pytest.mark.asyncio
async def test_run_times_out(real_runner):
    started = time.monotonic()
    result = await real_runner.run([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.3)
    assert not result.ok
    assert "timed out" in result.error
    assert time.monotonic() - started < 5


@pytest.mark.asyncio
async def test_timeout_keeps_partial_output(real_runner):
    script = (
        "import sys, time\n"
        "print('starting', flush=True)\n"
        "print('warming up', file=sys.stderr, flush=True)\n"
        "time.sleep(10)\n"
    )
    result = await real_runner.run([sys.executable, "-c", script], timeout=2)
    assert not result.ok
    assert "timed out" in result.error
    assert result.stdout == "starting"
    assert result.stderr == "warming up"


@pytest.mark.asyncio
async def test_run_feeds_stdin(real_runner):
    script = "import sys; print(sys.stdin.read().upper())"
    result = await real_runner.run([sys.executable, "-c", script], input="hey")
    assert result.stdout == "HEY"


def test_env_precedence(config):
    runner = CommandRunner(config.paths, base_env={"A": "base", "B": "base", "PATH": "/bin"})
    env = runner.build_env({"B": "profile", "C": "profile"}, {"C": "override"})
    assert env["A"] == "base"
    assert env["B"] == "profile"
    assert env["C"] == "override"
    assert env["PATH"] == "/bin"


def test_local_cli_is_preferred(config):
    runner = CommandRunner(config.paths)
    assert runner.cli_argv("gateway", "status") == ["npx", "openclaw", "gateway", "status"]

    cli = config.paths.local_cli
    cli.parent.mkdir(parents=True)
    cli.write_text("#!/bin/sh\n")
    assert runner.cli_argv("gateway", "status") == [str(cli), "gateway", "status"]
    assert runner.build_env()["PATH"].startswith(str(cli.parent))


def test_command_result_output_drops_cli_noise():
    result = CommandResult(ok=True, stdout="🦞 OpenClaw\nRuntime: running\n(node:1) ExperimentalWarning: x")
    assert result.output == "Runtime: running"


def test_spawn_detached_writes_pid_and_log(real_runner, tmp_path):
    log_path = tmp_path / "logs" / "gateway.log"
    pid_file = tmp_path / ".pids" / "gateway.pid"

    spawned = real_runner.spawn_detached([sys.executable, "-c", "print('started')"], log_path, pid_file)

    assert spawned.ok
    assert pid_file.read_text() == str(spawned.pid)
    deadline = time.monotonic() + 10
    while "started" not in log_path.read_text() and time.monotonic() < deadline:
        time.sleep(0.05)
    assert "started" in log_path.read_text()


def test_spawn_failure_is_reported(real_runner, tmp_path):
    spawned = real_runner.spawn_detached(["clawdash-no-such-binary-xyz"], tmp_path / "gw.log")
    assert not spawned.ok
    assert spawned.error


def test_port_listening():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        assert CommandRunner.port_listening(port)
    assert not CommandRunner.port_listening(port)


def test_kill_pids_skips_self_and_missing(real_runner):
    assert real_runner.kill_pids([os.getpid()], 0) == []
    assert real_runner.kill_pids([99999999], 0) == []


# ─── GatewayProbe ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_probe_nothing_running(config, runner):
    state = await GatewayProbe(runner, config.gateway).probe()
    assert not state.running
    assert state.signals == {18789: False, 5000: False}


@pytest.mark.asyncio
async def test_probe_status_text_counts(config, runner):
    runner.respond("gateway status", CommandResult(ok=True, stdout="Runtime: running (pid 77)"))
    state = await GatewayProbe(runner, config.gateway).probe()
    assert state.running
    assert state.looks_running
    assert state.status_text == "Runtime: running (pid 77)"


@pytest.mark.asyncio
async def test_probe_legacy_port_counts(config, runner):
    runner.listening.add(5000)
    state = await GatewayProbe(runner, config.gateway).probe()
    assert state.running
    data = state.to_dict()
    assert data["port5000"] is True
    assert data["ws18789"] is False


@pytest.mark.asyncio
async def test_probe_failing_signals_count_as_false(config, runner, monkeypatch):
    runner.respond("gateway status", RuntimeError("status exploded"))

    def broken_port_check(port, host="127.0.0.1", timeout=0.5):
        raise OSError("no sockets today")

    monkeypatch.setattr(runner, "port_listening", broken_port_check)

    state = await GatewayProbe(runner, config.gateway).probe()

    assert not state.running
    assert state.signals == {18789: False, 5000: False}
    assert "status exploded" in state.status_text


def test_status_text_patterns():
    assert status_says_running("Gateway running on port 18789")
    assert status_says_running("listening on ws://127.0.0.1:18789")
    assert not status_says_running("Runtime: stopped")
    assert not status_says_running("")
