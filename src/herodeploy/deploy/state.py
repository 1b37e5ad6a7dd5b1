"""Deployment record helpers.

The record is informational: it is displayed by ``status`` and never read
back into pipeline decisions.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from herodeploy.lib.errors import DeploymentError
from herodeploy.lib.fileio import atomic_write_text
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import RunConfiguration
from herodeploy.models.deployment_state import DeploymentRecord
from herodeploy.models.infrastructure import InfrastructureOutputs

logger = get_logger(__name__)

SERVICES = {
    "gateway": "nginx, ssl, load_balancing, monitoring",
    "database": "postgresql, postgrest, redis",
    "storage": "ipfs, ipfs_cluster",
    "app": "react_frontend, auth_service, websocket_service",
}


def build_deployment_record(
    cfg: RunConfiguration,
    outputs: InfrastructureOutputs,
    access_url: str,
    role_filter: str | None = None,
) -> DeploymentRecord:
    """Create a record for a deployment that just succeeded."""
    return DeploymentRecord(
        deployed_at=datetime.now(timezone.utc),
        configuration=cfg.public_summary(),
        addresses={
            "public_ip": outputs.public_ip,
            "wireguard_ip": outputs.wireguard_ip,
            "mycelium_ip": outputs.mycelium_ip,
        },
        access_url=access_url,
        role_filter=role_filter,
        services=dict(SERVICES) if role_filter is None else {role_filter: SERVICES[role_filter]},
    )


def save_deployment_record(path: Path, record: DeploymentRecord) -> None:
    """Persist a deployment record atomically."""
    try:
        payload = json.dumps(record.model_dump(mode="json"), indent=2, sort_keys=True)
        atomic_write_text(path, payload + "\n")
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to write deployment record to {path}: {exc}",
        ) from exc
    logger.info(f"Deployment configuration saved to {path}")


def load_deployment_record(path: Path) -> DeploymentRecord | None:
    """Load the last deployment record, or None when there is none."""
    if not path.exists():
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to read deployment record at {path}: {exc}",
        ) from exc

    if not content.strip():
        return None

    try:
        return DeploymentRecord.model_validate_json(content)
    except ValidationError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Invalid deployment record format in {path}: {exc}",
        ) from exc
