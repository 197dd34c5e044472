"""
clawdash Version

Single source of the package version reported by the dashboard API and CLI.
"""

__version__ = "0.1.0"


def get_version() -> str:
    """Return the current version string."""
    return __version__
