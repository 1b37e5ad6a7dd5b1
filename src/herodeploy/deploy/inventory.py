"""Ansible inventory generation from infrastructure outputs.

The inventory is a cache of ``(InfrastructureOutputs, RunConfiguration)``:
it carries no hidden state, is never edited by hand, and regenerating it is
always safe. Rendering is deterministic, so identical inputs produce
byte-identical files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from herodeploy.config.defaults import HERO_BACKEND_PORT, UI_COLAB_PORT
from herodeploy.lib.errors import ConfigError, MissingOutputError
from herodeploy.lib.fileio import atomic_write_text
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import MainNetwork, RunConfiguration
from herodeploy.models.infrastructure import (
    OUTPUT_MYCELIUM_IP,
    OUTPUT_PUBLIC_IP,
    OUTPUT_WIREGUARD_IP,
    InfrastructureOutputs,
)
from herodeploy.models.inventory import Inventory, InventoryHost

logger = get_logger(__name__)

HOST_NAME = "hero"
INVENTORY_HEADER = (
    "# Hero App Ansible inventory\n"
    "# Generated by herodeploy from infrastructure outputs; do not edit.\n"
)


def _connection_address(
    outputs: InfrastructureOutputs, main_network: MainNetwork
) -> str:
    """Pick the single address used to connect, per the main network."""
    if main_network == MainNetwork.WIREGUARD:
        return outputs.wireguard_ip
    if main_network == MainNetwork.MYCELIUM:
        if not outputs.mycelium_ip:
            raise MissingOutputError([OUTPUT_MYCELIUM_IP])
        return outputs.mycelium_ip
    return outputs.public_ip


def inventory_variables(cfg: RunConfiguration) -> dict[str, Any]:
    """Group variables derived from the run configuration (secrets excluded)."""
    variables: dict[str, Any] = {
        "network_mode": cfg.network_mode,
        "main_network": cfg.main_network.value,
        "gateway_type": cfg.gateway_type,
        "enable_ssl": cfg.enable_ssl,
        "ssl_staging": cfg.ssl_staging,
        "enable_monitoring": cfg.enable_monitoring,
        "cpu": cfg.cpu,
        "memory": cfg.memory,
        "hero_backend_port": HERO_BACKEND_PORT,
        "ui_colab_port": UI_COLAB_PORT,
    }
    if cfg.domain_name:
        variables["domain_name"] = cfg.domain_name
    if cfg.effective_ssl_email:
        variables["ssl_email"] = cfg.effective_ssl_email
    return variables


def generate(outputs: InfrastructureOutputs, cfg: RunConfiguration) -> Inventory:
    """Build the inventory for the provisioned VM.

    Args:
        outputs: Addresses from the infrastructure driver
        cfg: Run configuration snapshot

    Returns:
        Inventory with the single combined host carrying every role

    Raises:
        MissingOutputError: If a required address is absent
    """
    missing = []
    if not outputs.public_ip:
        missing.append(OUTPUT_PUBLIC_IP)
    if not outputs.wireguard_ip:
        missing.append(OUTPUT_WIREGUARD_IP)
    if missing:
        raise MissingOutputError(missing)

    address = _connection_address(outputs, cfg.main_network)
    logger.info(f"Using {cfg.main_network.value} address {address} for Ansible")

    host = InventoryHost(
        name=HOST_NAME,
        ansible_host=address,
        public_ip=outputs.public_ip,
        wireguard_ip=outputs.wireguard_ip,
        mycelium_ip=outputs.mycelium_ip,
    )
    return Inventory(
        main_network=cfg.main_network,
        hosts={host.name: host},
        variables=inventory_variables(cfg),
    )


def render(inventory: Inventory) -> str:
    """Render an inventory as deterministic YAML text."""
    body = yaml.safe_dump(
        inventory.to_ansible(),
        default_flow_style=False,
        sort_keys=True,
        allow_unicode=True,
    )
    return INVENTORY_HEADER + body


def load_inventory(path: Path) -> Inventory | None:
    """Read an inventory file back into a model.

    Returns:
        The parsed Inventory, or None when the file is missing or unreadable
        (both are recovered by regenerating)
    """
    if not path.exists():
        return None
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return Inventory.from_ansible(data)
    except (OSError, yaml.YAMLError, ValueError, KeyError, TypeError) as exc:
        logger.warning(f"Ignoring unreadable inventory {path}: {exc}")
        return None


def write_inventory(path: Path, inventory: Inventory) -> None:
    """Atomically write a rendered inventory.

    Raises:
        ConfigError: If the file cannot be written
    """
    try:
        atomic_write_text(path, render(inventory), mode=0o600)
    except OSError as exc:
        raise ConfigError(str(path), f"Failed to write inventory: {exc}") from exc
    logger.info(f"Ansible inventory generated: {path}")


def ensure_inventory(
    path: Path, outputs: InfrastructureOutputs, cfg: RunConfiguration
) -> tuple[Inventory, bool]:
    """Probe the inventory file and regenerate it when missing or stale.

    The file is current when its content equals the rendering of the
    latest outputs and configuration.

    Returns:
        The current inventory and whether the file was (re)written
    """
    inventory = generate(outputs, cfg)
    expected = render(inventory)

    try:
        current = path.read_text(encoding="utf-8") if path.exists() else None
    except OSError:
        current = None

    if current == expected:
        logger.info(f"Inventory {path} is up to date")
        return inventory, False

    if current is None:
        logger.info(f"Inventory {path} not found, generating")
    else:
        logger.info(f"Inventory {path} is stale, regenerating")
    write_inventory(path, inventory)
    return inventory, True
