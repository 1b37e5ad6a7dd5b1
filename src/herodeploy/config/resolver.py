"""Environment resolution for a single herodeploy run.

Merges the persisted env file, the process environment and built-in defaults
into one immutable ``RunConfiguration``. Secrets that are still missing after
the merge are generated and written back to the env file before the snapshot
is returned, so a retried run reuses them instead of rotating credentials.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from herodeploy.config.defaults import (
    BOOL_FIELDS,
    DEFAULT_RUN_CONFIG,
    ENV_VAR_MAP,
    INT_FIELDS,
    SECRET_ENCODINGS,
)
from herodeploy.config.env_file import read_env_file, update_env_file
from herodeploy.config.secret_store import resolve_secret
from herodeploy.lib.errors import ConfigError
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import RunConfiguration

logger = get_logger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def _parse_value(field_name: str, value: str) -> Any:
    """Parse a raw string value to the type of ``field_name``.

    Raises:
        ConfigError: If the value cannot be parsed
    """
    env_key = ENV_VAR_MAP[field_name]
    if field_name in BOOL_FIELDS:
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(env_key, f"Expected true/false, got '{value}'")
    if field_name in INT_FIELDS:
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigError(env_key, f"Expected an integer, got '{value}'") from exc
    return value.strip()


def _lookup(
    field_name: str,
    persisted: Mapping[str, str],
    environ: Mapping[str, str],
) -> str | None:
    """Return the raw value for a field: env file first, then process env."""
    env_key = ENV_VAR_MAP[field_name]
    for source in (persisted, environ):
        value = source.get(env_key)
        if value:
            return value
    return None


def resolve(
    defaults: Mapping[str, Any] | None = None,
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
    persist_secrets: bool = True,
) -> RunConfiguration:
    """Resolve the configuration snapshot for this run.

    Configuration priority (highest to lowest):
    1. Persisted env file values
    2. Process environment variables
    3. Built-in defaults

    Args:
        defaults: Built-in defaults (DEFAULT_RUN_CONFIG when None)
        env_file: Optional persisted env file
        environ: Process environment mapping (empty when None)
        persist_secrets: Write generated secrets back to ``env_file``

    Returns:
        A new, frozen RunConfiguration

    Raises:
        ConfigError: If a value is invalid or generated secrets cannot be saved
        SecretGenerationError: If a missing secret cannot be generated
    """
    defaults = DEFAULT_RUN_CONFIG if defaults is None else defaults
    environ = environ or {}

    persisted: Mapping[str, str] = {}
    if env_file is not None:
        loaded = read_env_file(env_file)
        if loaded is None:
            logger.warning(f"{env_file} not found, using defaults")
        else:
            logger.info(f"Loading configuration from {env_file}")
            persisted = loaded

    resolved: dict[str, Any] = {}
    for field_name in ENV_VAR_MAP:
        raw = _lookup(field_name, persisted, environ)
        if raw is not None:
            resolved[field_name] = _parse_value(field_name, raw)
        elif field_name in defaults:
            resolved[field_name] = defaults[field_name]

    generated: dict[str, str] = {}
    for secret_name in SECRET_ENCODINGS:
        existing = resolved.get(secret_name)
        value = resolve_secret(secret_name, existing)
        if value != existing:
            generated[ENV_VAR_MAP[secret_name]] = value
        resolved[secret_name] = value

    try:
        config = RunConfiguration(**resolved)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "configuration"
        raise ConfigError(ENV_VAR_MAP.get(field, field), first["msg"]) from exc

    if generated and persist_secrets and env_file is not None:
        update_env_file(env_file, generated)
        logger.info(f"Saved generated secrets to {env_file}")

    return config
