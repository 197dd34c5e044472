"""
Command Runner — bounded subprocess execution for the managed gateway.

Every call has a timeout and reports failure as data: ``run`` never raises.
Environment precedence for gateway calls: caller overrides > profile
variables > base process environment.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..config.models import PathsConfig
from ..utils import clean_cli_output, ensure_dir

logger = logging.getLogger("clawdash.gateway.runner")


@dataclass
class CommandResult:
    ok: bool
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    error: Optional[str] = None

    @property
    def output(self) -> str:
        """stdout with CLI noise removed."""
        return clean_cli_output(self.stdout)

    @property
    def text(self) -> str:
        """stdout and stderr together, for pattern matching."""
        return f"{self.stdout}\n{self.stderr}"

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "output": self.output,
            "stderr": clean_cli_output(self.stderr),
            "error": self.error,
        }


async def _feed(stream, data: Optional[str]):
    if stream is None:
        return
    try:
        if data is not None:
            stream.write(data.encode())
            await stream.drain()
    except (BrokenPipeError, ConnectionResetError):
        pass
    finally:
        stream.close()


async def _drain(stream, buf: bytearray):
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        buf.extend(chunk)


def _decode(buf: bytearray) -> str:
    return bytes(buf).decode(errors="replace").strip()


@dataclass
class SpawnResult:
    ok: bool
    pid: Optional[int] = None
    error: Optional[str] = None


class CommandRunner:
    def __init__(self, paths: PathsConfig, base_env: Optional[Mapping[str, str]] = None):
        self.paths = paths
        self._base_env = dict(base_env) if base_env is not None else None

    # ─── Environment ─────────────────────────────────────────────

    def cli_argv(self, *args: str) -> List[str]:
        """argv for the gateway CLI: the bundled binary when installed, else npx."""
        local = self.paths.local_cli
        if local.exists():
            return [str(local), *args]
        return ["npx", "openclaw", *args]

    def build_env(
        self,
        profile_env: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        env = dict(self._base_env if self._base_env is not None else os.environ)
        bin_dir = self.paths.local_cli.parent
        if bin_dir.exists():
            env["PATH"] = f"{bin_dir}{os.pathsep}{env.get('PATH', '')}"
        if profile_env:
            env.update(profile_env)
        if overrides:
            env.update(overrides)
        return env

    def _cwd(self) -> Optional[str]:
        install = self.paths.install_dir
        return str(install) if install.is_dir() else None

    # ─── Bounded execution ───────────────────────────────────────

    async def run(
        self,
        argv: Sequence[str],
        timeout: float = 15.0,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run ``argv`` to completion or until ``timeout``; never raises."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
                env=dict(env) if env is not None else None,
                cwd=cwd,
            )
        except (OSError, ValueError) as e:
            logger.debug(f"Could not start {argv[0]}: {e}")
            return CommandResult(ok=False, error=str(e))

        out_buf, err_buf = bytearray(), bytearray()
        collect = asyncio.gather(
            _feed(proc.stdin, input),
            _drain(proc.stdout, out_buf),
            _drain(proc.stderr, err_buf),
            proc.wait(),
        )
        try:
            await asyncio.wait_for(collect, timeout=timeout)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            logger.warning(f"Command timed out after {timeout}s: {' '.join(argv)}")
            return CommandResult(
                ok=False,
                stdout=_decode(out_buf),
                stderr=_decode(err_buf),
                returncode=proc.returncode,
                error=f"timed out after {timeout}s",
            )

        out = _decode(out_buf)
        err = _decode(err_buf)
        if proc.returncode != 0:
            return CommandResult(
                ok=False,
                stdout=out,
                stderr=err,
                returncode=proc.returncode,
                error=err or f"exit code {proc.returncode}",
            )
        return CommandResult(ok=True, stdout=out, stderr=err, returncode=0)

    async def run_cli(
        self,
        *args: str,
        timeout: float = 30.0,
        profile_env: Optional[Mapping[str, str]] = None,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run a gateway CLI subcommand with the profile environment applied."""
        return await self.run(
            self.cli_argv(*args),
            timeout=timeout,
            env=self.build_env(profile_env, env),
            cwd=self._cwd(),
            input=input,
        )

    # ─── Detached processes ──────────────────────────────────────

    def spawn_detached(
        self,
        argv: Sequence[str],
        log_path: Path,
        pid_file: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> SpawnResult:
        """Start ``argv`` in its own session, output appended to ``log_path``."""
        ensure_dir(log_path.parent)
        try:
            with open(log_path, "a") as log:
                process = subprocess.Popen(
                    list(argv),
                    stdout=log,
                    stderr=log,
                    stdin=subprocess.DEVNULL,
                    cwd=self._cwd(),
                    env=dict(env) if env is not None else None,
                    start_new_session=True,
                )
        except OSError as e:
            logger.error(f"Failed to spawn {argv[0]}: {e}")
            return SpawnResult(ok=False, error=str(e))

        if pid_file is not None:
            try:
                ensure_dir(pid_file.parent)
                pid_file.write_text(str(process.pid))
            except OSError as e:
                logger.warning(f"Could not write pid file {pid_file}: {e}")
        logger.info(f"Spawned {argv[0]} (PID: {process.pid})")
        return SpawnResult(ok=True, pid=process.pid)

    # ─── Ports and signals ───────────────────────────────────────

    @staticmethod
    def port_listening(port: int, host: str = "127.0.0.1", timeout: float = 0.5) -> bool:
        """Synchronous local check: does anything accept connections on ``port``?"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(timeout)
            try:
                return s.connect_ex((host, port)) == 0
            except OSError:
                return False

    @staticmethod
    def _parse_pids(text: str) -> List[int]:
        pids = []
        for token in text.split():
            if token.isdigit():
                pids.append(int(token))
        return pids

    async def pids_on_port(self, port: int) -> List[int]:
        result = await self.run(["lsof", "-ti", f"tcp:{port}"], timeout=5)
        return self._parse_pids(result.stdout)

    async def pids_matching(self, pattern: str) -> List[int]:
        result = await self.run(["pgrep", "-f", pattern], timeout=5)
        return self._parse_pids(result.stdout)

    def kill_pids(self, pids: Iterable[int], sig: int = signal.SIGKILL) -> List[int]:
        """Signal each pid except our own. Returns the pids that were signalled."""
        me = os.getpid()
        killed = []
        for pid in pids:
            if pid == me:
                continue
            try:
                os.kill(pid, sig)
                killed.append(pid)
            except (ProcessLookupError, PermissionError) as e:
                logger.debug(f"Could not signal {pid}: {e}")
        return killed
