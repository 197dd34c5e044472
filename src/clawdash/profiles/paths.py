"""
Config Store Locator

Maps a profile id plus the fixed environment (root, state dir, home) to
the directories and candidate `openclaw.json` documents the gateway may
read. Everything here is derived and never persisted; nothing raises.

Read path: first existing candidate wins, falling back to the state-dir
document. Writes fan out to every candidate (see gateway.reconciler).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..config.models import PathsConfig
from ..utils import read_json
from .models import DEFAULT_PROFILE_ID

CONFIG_FILENAME = "openclaw.json"
LEGACY_CONFIG_FILENAME = "clawdbot.json"
RESERVED_PREFIX = "p-"


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False


def _first_existing(candidates: Sequence[Path], fallback: Path) -> Path:
    for candidate in candidates:
        if _exists(candidate):
            return candidate
    return fallback


def profile_suffix(profile_id: str) -> str:
    """`p-1234` -> `-1234`; the default profile has no suffix."""
    if profile_id == DEFAULT_PROFILE_ID:
        return ""
    bare = profile_id[len(RESERVED_PREFIX):] if profile_id.startswith(RESERVED_PREFIX) else profile_id
    return f"-{bare}"


@dataclass
class ProfilePaths:
    """Directories derived for one profile."""
    profile_id: str
    config_dir: Path
    workspace: Path

    @property
    def env_path(self) -> Path:
        return self.config_dir / ".env"

    @property
    def config_json(self) -> Path:
        """Legacy per-profile document."""
        return self.config_dir / LEGACY_CONFIG_FILENAME

    @property
    def openclaw_json(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    @property
    def credentials_dir(self) -> Path:
        return self.config_dir / "credentials"


def profile_paths(profile_id: str, env: PathsConfig) -> ProfilePaths:
    state = env.state_path
    home = env.home_path
    openclaw_home = home / ".openclaw"
    clawdbot_home = home / ".clawdbot"

    if profile_id == DEFAULT_PROFILE_ID:
        config_dir = _first_existing([state, openclaw_home, clawdbot_home], state)
        workspace = _first_existing([state / "workspace", home / "clawd"], env.root_path)
        return ProfilePaths(profile_id, config_dir, workspace)

    suffix = profile_suffix(profile_id)
    config_dir = _first_existing(
        [Path(f"{state}{suffix}"), Path(f"{openclaw_home}{suffix}")],
        Path(f"{clawdbot_home}{suffix}"),
    )
    workspace = Path(f"{state / 'workspace'}{suffix}")
    return ProfilePaths(profile_id, config_dir, workspace)


def profile_env_vars(profile_id: str, env: PathsConfig) -> Dict[str, str]:
    """Variables that point the gateway CLI at this profile's state."""
    paths = profile_paths(profile_id, env)
    config_dir = str(paths.config_dir)
    return {
        "CLAWDBOT_CONFIG_DIR": config_dir,
        "OPENCLAW_CONFIG_DIR": config_dir,
        "OPENCLAW_STATE_DIR": str(env.state_path),
        "OPENCLAW_CONFIG_PATH": str(paths.openclaw_json),
    }


def locate_config_paths(profile_id: str, env: PathsConfig) -> List[Path]:
    """
    Ordered, de-duplicated candidate locations of the gateway config.

    [state dir, ~/.openclaw, profile config dir] — returned whether or not
    the files exist.
    """
    candidates = [
        env.state_path / CONFIG_FILENAME,
        env.home_path / ".openclaw" / CONFIG_FILENAME,
        profile_paths(profile_id, env).openclaw_json,
    ]
    seen = set()
    ordered: List[Path] = []
    for path in candidates:
        key = str(path)
        if key not in seen:
            seen.add(key)
            ordered.append(path)
    return ordered


def resolve_read_path(locations: Sequence[Path]) -> Optional[Path]:
    """The document the gateway actually reads: first existing candidate."""
    if not locations:
        return None
    return _first_existing(locations, locations[0])


@dataclass
class ProfileContext:
    """Everything derived for the active profile, passed explicitly to operations."""
    profile_id: str
    env: PathsConfig
    paths: ProfilePaths
    env_vars: Dict[str, str] = field(default_factory=dict)
    config_locations: List[Path] = field(default_factory=list)

    @classmethod
    def build(cls, profile_id: str, env: PathsConfig) -> "ProfileContext":
        return cls(
            profile_id=profile_id,
            env=env,
            paths=profile_paths(profile_id, env),
            env_vars=profile_env_vars(profile_id, env),
            config_locations=locate_config_paths(profile_id, env),
        )

    @property
    def read_path(self) -> Path:
        return resolve_read_path(self.config_locations)

    @property
    def existing_locations(self) -> List[Path]:
        return [p for p in self.config_locations if _exists(p)]

    @property
    def allowlist_path(self) -> Path:
        return self.paths.credentials_dir / "telegram-allowFrom.json"

    def find_soul(self) -> Optional[Path]:
        """Soul file: `soulFile` from clawdbot.json, then the usual names."""
        legacy = read_json(self.paths.config_json, {})
        candidates: List[Path] = []
        if isinstance(legacy, dict) and legacy.get("soulFile"):
            candidates.append(Path(str(legacy["soulFile"])).expanduser())
        candidates += [
            self.paths.workspace / "soul.md",
            self.paths.workspace / "SOUL.md",
            self.paths.config_dir / "soul.md",
        ]
        for candidate in candidates:
            if _exists(candidate):
                return candidate
        return None
