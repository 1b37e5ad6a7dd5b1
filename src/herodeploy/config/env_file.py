"""Reading and updating the persisted ``KEY=value`` configuration file."""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values

from herodeploy.lib.errors import ConfigError
from herodeploy.lib.fileio import atomic_write_text
from herodeploy.lib.logging_config import get_logger

logger = get_logger(__name__)

ENV_FILE_MODE = 0o600

_ASSIGNMENT_PATTERN = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")


def read_env_file(path: Path) -> dict[str, str] | None:
    """Parse an env file into a dictionary.

    Keys with no value (``KEY`` or ``KEY=``) are dropped so they behave as
    unset.

    Args:
        path: Env file location

    Returns:
        Parsed values, or None when the file does not exist

    Raises:
        ConfigError: If the file exists but cannot be read
    """
    if not path.exists():
        return None

    try:
        raw = dotenv_values(path, interpolate=False)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(str(path), f"Failed to read env file: {exc}") from exc

    return {key: value for key, value in raw.items() if value}


def update_env_file(path: Path, updates: Mapping[str, str]) -> None:
    """Set keys in an env file, creating it when missing.

    Existing assignments are replaced in place, preserving comments and
    ordering; new keys are appended. The file is replaced atomically.

    Args:
        path: Env file location
        updates: Keys and values to write

    Raises:
        ConfigError: If the file cannot be read or written
    """
    if not updates:
        return

    try:
        lines = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
    except OSError as exc:
        raise ConfigError(str(path), f"Failed to read env file: {exc}") from exc

    pending = dict(updates)
    for index, line in enumerate(lines):
        match = _ASSIGNMENT_PATTERN.match(line)
        if match and match.group(1) in pending:
            key = match.group(1)
            lines[index] = f"{key}={pending.pop(key)}"

    if pending and lines and lines[-1].strip():
        lines.append("")
    lines.extend(f"{key}={value}" for key, value in pending.items())

    try:
        atomic_write_text(path, "\n".join(lines) + "\n", mode=ENV_FILE_MODE)
    except OSError as exc:
        raise ConfigError(str(path), f"Failed to write env file: {exc}") from exc

    logger.debug(f"Updated {', '.join(updates)} in {path}")
