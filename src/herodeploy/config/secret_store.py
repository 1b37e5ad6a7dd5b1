"""Generation of missing credentials.

Generated values are returned to the caller, which is responsible for
persisting them so later runs see them as existing values.
"""

import base64
import secrets

from herodeploy.config.defaults import SECRET_BYTES, SECRET_ENCODINGS
from herodeploy.lib.errors import SecretGenerationError
from herodeploy.lib.logging_config import get_logger

logger = get_logger(__name__)


def generate_secret(encoding: str = "base64", nbytes: int = SECRET_BYTES) -> str:
    """Generate ``nbytes`` of randomness encoded as base64 or hex.

    Raises:
        ValueError: If the encoding is unknown
    """
    if encoding == "hex":
        return secrets.token_hex(nbytes)
    if encoding == "base64":
        return base64.b64encode(secrets.token_bytes(nbytes)).decode("ascii")
    raise ValueError(f"Unknown secret encoding: {encoding}")


def resolve_secret(name: str, existing_value: str | None) -> str:
    """Return ``existing_value`` if set, otherwise a freshly generated secret.

    Args:
        name: Secret field name (selects the encoding)
        existing_value: Value already present in configuration

    Returns:
        The existing value unchanged, or a new random value

    Raises:
        SecretGenerationError: If random generation fails
    """
    if existing_value:
        return existing_value

    encoding = SECRET_ENCODINGS.get(name, "base64")
    try:
        value = generate_secret(encoding)
    except (OSError, NotImplementedError, ValueError) as exc:
        raise SecretGenerationError(name, str(exc)) from exc

    logger.warning(f"Generated random {name}")
    return value
