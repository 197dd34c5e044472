"""
clawdash Gateway Package

Supervision of the external OpenClaw gateway: command runner, probe,
config reconciler and lifecycle controller.
"""

from .lifecycle import LifecycleController, LifecycleResult, Phase, Step
from .probe import GatewayProbe, GatewayState
from .reconciler import (
    ChannelPatch,
    GatewayPatch,
    ReconcileResult,
    apply_desired_state,
    apply_patch,
    telegram_patch,
)
from .runner import CommandResult, CommandRunner, SpawnResult

__all__ = [
    "ChannelPatch",
    "CommandResult",
    "CommandRunner",
    "GatewayPatch",
    "GatewayProbe",
    "GatewayState",
    "LifecycleController",
    "LifecycleResult",
    "Phase",
    "ReconcileResult",
    "SpawnResult",
    "Step",
    "apply_desired_state",
    "apply_patch",
    "telegram_patch",
]
