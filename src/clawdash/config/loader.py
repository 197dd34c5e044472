"""
Configuration Loader — Priority-based config resolution.

Loading priority (highest wins):
  1. Environment variables (CLAWDASH_ROOT / QUICKCLAW_ROOT, OPENCLAW_STATE_DIR,
     DASHBOARD_PORT, HOST, CLAWDASH_LOG_LEVEL)
  2. Config file: explicit path, CLAWDASH_CONFIG_PATH, or
     <root>/dashboard-data/clawdash.{json,yaml}
  3. Built-in defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .models import DashboardConfig, LoggingConfig

logger = logging.getLogger("clawdash.config.loader")

_DEFAULT_CONFIG_NAMES = ["clawdash.json", "clawdash.yaml", "clawdash.yml"]

_current: Optional[DashboardConfig] = None


def _env_root() -> Optional[str]:
    return os.getenv("CLAWDASH_ROOT") or os.getenv("QUICKCLAW_ROOT")


def _resolve_config_path(explicit_path: Optional[str] = None) -> Optional[Path]:
    """
    Resolve configuration file path using priority chain:
    1. Explicit path argument
    2. CLAWDASH_CONFIG_PATH env var
    3. Default names under <root>/dashboard-data
    """
    if explicit_path:
        p = Path(explicit_path).expanduser()
        if p.exists():
            return p
        logger.warning(f"Explicit config path not found: {explicit_path}")

    env_path = os.getenv("CLAWDASH_CONFIG_PATH")
    if env_path:
        p = Path(env_path).expanduser()
        if p.exists():
            return p
        logger.warning(f"CLAWDASH_CONFIG_PATH not found: {env_path}")

    data_dir = Path(_env_root() or os.getcwd()).expanduser() / "dashboard-data"
    for name in _DEFAULT_CONFIG_NAMES:
        p = data_dir / name
        if p.exists():
            logger.info(f"Found config at default location: {p}")
            return p

    return None


def _load_file_config(path: Path) -> dict:
    """Load config data from a JSON or YAML file."""
    try:
        with open(path, "r") as f:
            if path.suffix in [".yaml", ".yml"]:
                import yaml
                data = yaml.safe_load(f) or {}
            elif path.suffix == ".json":
                data = json.load(f)
            else:
                logger.warning(f"Unsupported config format: {path.suffix}")
                return {}
    except Exception as e:
        logger.error(f"Failed to load config from {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Config file {path} is not a mapping, ignoring it")
        return {}
    return data


def _env_overrides() -> dict:
    overrides: dict = {}
    root = _env_root()
    if root:
        overrides.setdefault("paths", {})["root"] = root
    if os.getenv("OPENCLAW_STATE_DIR"):
        overrides.setdefault("paths", {})["state_dir"] = os.environ["OPENCLAW_STATE_DIR"]
    if os.getenv("HOME"):
        overrides.setdefault("paths", {})["home"] = os.environ["HOME"]
    port = os.getenv("DASHBOARD_PORT")
    if port:
        try:
            overrides.setdefault("server", {})["port"] = int(port)
        except ValueError:
            logger.warning(f"Ignoring non-numeric DASHBOARD_PORT: {port}")
    if os.getenv("HOST"):
        overrides.setdefault("server", {})["host"] = os.environ["HOST"]
    if os.getenv("CLAWDASH_LOG_LEVEL"):
        overrides.setdefault("logging", {})["level"] = os.environ["CLAWDASH_LOG_LEVEL"]
    return overrides


def load_config(config_path: Optional[str] = None) -> DashboardConfig:
    """
    Load configuration with priority: env vars > config file > defaults.
    """
    load_dotenv()

    config_data: dict = {}
    resolved_path = _resolve_config_path(config_path)
    if resolved_path:
        config_data = _load_file_config(resolved_path)
        logger.info(f"Loaded config from: {resolved_path}")
    else:
        logger.debug("No config file found, using defaults + env vars")

    # Env vars win over file values, section by section
    for section, values in _env_overrides().items():
        base = config_data.get(section)
        config_data[section] = {**base, **values} if isinstance(base, dict) else values

    return DashboardConfig(**config_data)


def get_config() -> DashboardConfig:
    """Return the process-wide config, loading it on first use."""
    global _current
    if _current is None:
        _current = load_config()
    return _current


def set_config(config: Optional[DashboardConfig]) -> None:
    """Replace (or with ``None``, reset) the process-wide config."""
    global _current
    _current = config


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure the root logger once from a LoggingConfig."""
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.format)
    logging.getLogger("clawdash").setLevel(level)
