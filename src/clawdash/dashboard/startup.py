"""
Dashboard Startup — wiring of all core services.

Creates and wires: CommandRunner, GatewayProbe, TelegramClient,
ProfileStore, SettingsStore, LifecycleController, Onboarding,
Diagnostics and ChatService.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from ..channels.telegram import TelegramClient
from ..config.models import DashboardConfig
from ..gateway.lifecycle import LifecycleController
from ..gateway.probe import GatewayProbe
from ..gateway.runner import CommandRunner
from ..profiles.paths import ProfileContext
from ..profiles.store import ProfileStore
from ..services.chat import ChatService
from ..services.diagnostics import Diagnostics
from ..services.settings import SettingsStore
from ..services.telegram_setup import Onboarding
from ..utils import ensure_dir
from ..version import get_version

logger = logging.getLogger("clawdash.dashboard")


@dataclass
class DashboardServices:
    config: DashboardConfig
    runner: CommandRunner
    probe: GatewayProbe
    telegram: TelegramClient
    profiles: ProfileStore
    settings: SettingsStore
    lifecycle: LifecycleController
    onboarding: Onboarding
    diagnostics: Diagnostics
    chat: ChatService

    def context(self) -> ProfileContext:
        """Derived paths for the currently active profile."""
        return ProfileContext.build(self.profiles.active().id, self.config.paths)


def build_services(
    config: DashboardConfig,
    runner: Optional[CommandRunner] = None,
    telegram: Optional[TelegramClient] = None,
) -> DashboardServices:
    runner = runner or CommandRunner(config.paths)
    probe = GatewayProbe(runner, config.gateway)
    telegram = telegram or TelegramClient(config.telegram)
    data_dir = config.paths.data_dir
    profiles = ProfileStore(data_dir / "profiles.json", default_port=config.server.port)
    settings = SettingsStore(data_dir / "settings.json")

    return DashboardServices(
        config=config,
        runner=runner,
        probe=probe,
        telegram=telegram,
        profiles=profiles,
        settings=settings,
        lifecycle=LifecycleController(config, runner, probe=probe, telegram=telegram),
        onboarding=Onboarding(config, runner, settings),
        diagnostics=Diagnostics(config, runner, probe, telegram, settings),
        chat=ChatService(config, runner, probe, settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the dashboard's own directories and log where everything lives."""
    services: DashboardServices = app.state.services
    paths = services.config.paths
    for directory in (paths.data_dir, paths.pid_dir, paths.log_dir):
        ensure_dir(directory)

    ctx = services.context()
    logger.info(f"🦀 clawdash v{get_version()} starting")
    logger.info(f"   root:          {paths.root_path}")
    logger.info(f"   state dir:     {paths.state_path}")
    logger.info(f"   profile:       {ctx.profile_id} ({ctx.paths.config_dir})")
    logger.info(f"   gateway reads: {ctx.read_path}")
    yield
    logger.info("Dashboard shutting down")
