"""clawdash — local dashboard for an OpenClaw gateway."""

from .version import __version__

__all__ = ["__version__"]
