"""
Configuration Models — Full config hierarchy for clawdash.

Layers: env vars > clawdash.json / clawdash.yaml > defaults.
Settle intervals and timeouts are plain values so tests can zero them.
"""

import os
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field


# ─── Paths ───────────────────────────────────────────────────────

class PathsConfig(BaseModel):
    """Filesystem layout of the dashboard and of the managed gateway."""
    root: str = Field(default_factory=os.getcwd, description="Dashboard root directory")
    home: str = Field(default_factory=lambda: os.path.expanduser("~"), description="User home")
    state_dir: str = Field("", description="Gateway state dir; derived from root when empty")

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser()

    @property
    def home_path(self) -> Path:
        return Path(self.home).expanduser()

    @property
    def state_path(self) -> Path:
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        legacy = self.root_path / "openclaw-home"
        if legacy.exists():
            return legacy
        return self.root_path / "openclaw-state"

    @property
    def data_dir(self) -> Path:
        return self.root_path / "dashboard-data"

    @property
    def pid_dir(self) -> Path:
        return self.root_path / ".pids"

    @property
    def log_dir(self) -> Path:
        return self.root_path / "logs"

    @property
    def install_dir(self) -> Path:
        return self.root_path / "openclaw"

    @property
    def local_cli(self) -> Path:
        return self.install_dir / "node_modules" / ".bin" / "openclaw"

    @property
    def yaml_config(self) -> Path:
        return self.install_dir / "config" / "default.yaml"

    @property
    def gateway_pid_file(self) -> Path:
        return self.pid_dir / "gateway.pid"

    @property
    def gateway_log_file(self) -> Path:
        return self.log_dir / "gateway.log"


# ─── Gateway Process ─────────────────────────────────────────────

class GatewayProcessConfig(BaseModel):
    """How the managed gateway is probed, stopped and started."""
    ws_port: int = Field(18789, description="Port the gateway listens on (websocket)")
    legacy_port: int = Field(5000, description="Port of the older HTTP gateway")
    status_timeout: float = Field(15.0, description="Timeout for `gateway status` (s)")
    command_timeout: float = Field(30.0, description="Timeout for stop/channel commands (s)")
    stop_settle: float = Field(1.5, description="Wait after the stop command (s)")
    kill_settle: float = Field(2.0, description="Wait after hard kill / port release (s)")
    start_settle: float = Field(5.0, description="Wait between spawn and verification (s)")
    connect_settle: float = Field(5.0, description="Wait before channel reachability checks (s)")
    process_pattern: str = Field("openclaw.*gateway", description="pgrep pattern for strays")
    clean_subdirs: List[str] = Field(
        default_factory=lambda: ["telegram", "devices", "completions", "cron", "media"],
        description="Runtime state removed on a fresh install",
    )

    @property
    def ports(self) -> List[int]:
        return [self.ws_port, self.legacy_port]


# ─── Telegram ────────────────────────────────────────────────────

class TelegramConfig(BaseModel):
    """Bot API call timeouts."""
    drain_timeout: float = Field(5.0, description="Timeout for draining updates (s)")
    request_timeout: float = Field(8.0, description="Timeout for getMe/getUpdates (s)")


# ─── Chat ────────────────────────────────────────────────────────

class ChatConfig(BaseModel):
    """Direct chat fallback settings."""
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-sonnet-4-20250514"
    history_limit: int = Field(200, description="Messages kept on disk")
    context_messages: int = Field(20, description="History messages sent with each request")
    default_system_prompt: str = (
        "You are a helpful AI assistant running via OpenClaw. Be friendly and concise."
    )


# ─── Server ──────────────────────────────────────────────────────

class ServerConfig(BaseModel):
    """Dashboard HTTP server."""
    host: str = Field("127.0.0.1", description="Host to bind to")
    port: int = Field(3000, description="Port to listen on")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


# ─── Logging Config ──────────────────────────────────────────────

class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field("INFO", description="Log level")
    format: str = Field(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        description="Log format string",
    )


# ─── Root Config ─────────────────────────────────────────────────

class DashboardConfig(BaseModel):
    """Root configuration object."""
    paths: PathsConfig = Field(default_factory=PathsConfig)
    gateway: GatewayProcessConfig = Field(default_factory=GatewayProcessConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
