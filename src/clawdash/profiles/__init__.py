"""
clawdash Profiles Package

Profile storage and the per-profile config locator.
"""

from .models import DEFAULT_PROFILE_ID, Profile
from .paths import (
    ProfileContext,
    ProfilePaths,
    locate_config_paths,
    profile_env_vars,
    profile_paths,
    profile_suffix,
    resolve_read_path,
)
from .store import ProfileStore

__all__ = [
    "DEFAULT_PROFILE_ID",
    "Profile",
    "ProfileContext",
    "ProfilePaths",
    "ProfileStore",
    "locate_config_paths",
    "profile_env_vars",
    "profile_paths",
    "profile_suffix",
    "resolve_read_path",
]
