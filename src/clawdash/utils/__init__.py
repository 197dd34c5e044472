"""
Common utility functions used across clawdash modules.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

logger = logging.getLogger("clawdash.utils")

# Lines the openclaw CLI prints that carry no information for the user
_CLI_NOISE = ("ExperimentalWarning", "🦞", "(Use `node", "OpenAI-compatible")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if it doesn't exist. Returns the path."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def read_json(path: Path, fallback: Any = None) -> Any:
    """Read a JSON file, returning ``fallback`` when it is missing or malformed."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return fallback
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return fallback


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_json(path: Path, data: Any) -> None:
    """Write JSON atomically (tmp file + replace), creating parent dirs."""
    ensure_dir(path.parent)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    tmp.write_text(dump_json(data), encoding="utf-8")
    tmp.replace(path)


def tail_lines(path: Path, count: int = 10) -> List[str]:
    """Return the last ``count`` non-empty lines of a text file."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-count:] if count > 0 else []


def mask_key(key: str) -> str:
    """Mask a secret for display: first 6 and last 4 characters."""
    if not key:
        return ""
    if len(key) < 8:
        return "••••••••"
    return f"{key[:6]}••••{key[-4:]}"


def clean_cli_output(text: str) -> str:
    """Drop runtime warnings and banner lines from openclaw CLI output."""
    if not text:
        return ""
    kept = [line for line in text.splitlines() if not any(n in line for n in _CLI_NOISE)]
    return "\n".join(kept).strip()
