"""Configuration driver wrapping Ansible.

Variables passed to a playbook run are merged in this order (later wins):
run configuration base values < SSL values (only when SSL is active) <
explicit per-call overrides.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from herodeploy.config.defaults import SECRET_ENCODINGS
from herodeploy.deploy.process import CommandRunner, run_command
from herodeploy.lib.errors import (
    ConfigError,
    ConfigurationApplyError,
    ConnectivityError,
)
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import RunConfiguration
from herodeploy.models.inventory import ROLES, Inventory

logger = get_logger(__name__)

# Variables each role-scoped run receives
ROLE_VARIABLES: dict[str, tuple[str, ...]] = {
    "gateway": ("network_mode", "gateway_type", "enable_ssl"),
    "database": ("postgres_password", "redis_password", "jwt_secret"),
    "storage": ("network_mode",),
    "app": ("network_mode", "enable_ssl", "domain_name"),
}

_PING_LINE = re.compile(
    r"^(?P<host>\S+) \| (?P<status>SUCCESS|UNREACHABLE!|FAILED!)"
    r"(?: \| rc=\d+)?(?: =>|:) (?P<detail>.*)$"
)
_RECAP_LINE = re.compile(
    r"^(?P<host>\S+)\s*:\s*ok=\d+\s+changed=\d+\s+unreachable=(?P<unreachable>\d+)"
    r"\s+failed=(?P<failed>\d+)"
)


@dataclass
class PingResult:
    """Reachability of a single host."""

    host: str
    reachable: bool
    detail: str = ""


def build_extra_vars(
    cfg: RunConfiguration,
    overrides: Mapping[str, Any] | None = None,
    role: str | None = None,
) -> dict[str, Any]:
    """Merge playbook variables for a run.

    Args:
        cfg: Run configuration snapshot
        overrides: Explicit per-call values (highest precedence)
        role: Restrict base values to those the role consumes

    Returns:
        Merged variables
    """
    base: dict[str, Any] = {
        "network_mode": cfg.network_mode,
        "gateway_type": cfg.gateway_type,
        "enable_ssl": cfg.enable_ssl,
        "enable_monitoring": cfg.enable_monitoring,
        "postgres_password": cfg.postgres_password,
        "redis_password": cfg.redis_password,
        "jwt_secret": cfg.jwt_secret,
    }
    if cfg.domain_name:
        base["domain_name"] = cfg.domain_name

    if role is not None:
        allowed = ROLE_VARIABLES.get(role, ())
        base = {key: value for key, value in base.items() if key in allowed}

    merged = dict(base)
    if cfg.ssl_active and role in (None, "gateway", "app"):
        merged.update(
            {
                "domain_name": cfg.domain_name,
                "ssl_email": cfg.effective_ssl_email,
                "ssl_staging": cfg.ssl_staging,
            }
        )
    if overrides:
        merged.update(overrides)
    return merged


class BaseConfigurationDriver(ABC):
    """Abstract interface to the configuration-management system."""

    @abstractmethod
    def ping(self, inventory: Inventory) -> dict[str, PingResult]:
        """Check reachability of every inventory host.

        Raises:
            ConnectivityError: If any host is unreachable.
        """

    @abstractmethod
    def apply(
        self,
        inventory: Inventory,
        extra_vars: Mapping[str, Any],
        host_filter: str | None = None,
    ) -> None:
        """Run the playbook, optionally restricted to one role.

        Raises:
            ConfigurationApplyError: Naming the failing host and role.
        """

    def install_requirements(self) -> None:  # noqa: B027
        """Install external roles the playbook depends on (none by default)."""


def validate_host_filter(host_filter: str | None) -> None:
    """Reject role filters that are not logical roles."""
    if host_filter is not None and host_filter not in ROLES:
        raise ConfigError(
            "role",
            f"Unknown role '{host_filter}'. Use one of: {', '.join(ROLES)}",
        )


class AnsibleDriver(BaseConfigurationDriver):
    """Run ansible and ansible-playbook against the generated inventory."""

    def __init__(
        self,
        platform_dir: Path,
        inventory_path: Path,
        playbook: str = "site.yml",
        runner: CommandRunner = run_command,
        verbose: bool = True,
    ) -> None:
        """Initialize the driver.

        Args:
            platform_dir: Directory holding the playbook and roles
            inventory_path: Generated inventory file
            playbook: Playbook file name inside ``platform_dir``
            runner: Command runner (injectable for tests)
            verbose: Pass ``-v`` to ansible-playbook
        """
        self._platform_dir = platform_dir
        self._inventory_path = inventory_path
        self._playbook = playbook
        self._run = runner
        self._verbose = verbose

    def ping(self, inventory: Inventory) -> dict[str, PingResult]:
        logger.info("Testing Ansible connectivity...")
        result = self._run(
            ["ansible", "all", "-i", str(self._inventory_path), "-m", "ping", "--one-line"],
            cwd=self._platform_dir,
        )

        results: dict[str, PingResult] = {}
        for line in result.stdout.splitlines():
            match = _PING_LINE.match(line.strip())
            if match:
                host = match.group("host")
                results[host] = PingResult(
                    host=host,
                    reachable=match.group("status") == "SUCCESS",
                    detail=match.group("detail").strip(),
                )

        for host in inventory.hosts:
            if host not in results:
                detail = result.output or "no response"
                results[host] = PingResult(host=host, reachable=False, detail=detail)

        unreachable = {
            host: outcome.detail for host, outcome in results.items() if not outcome.reachable
        }
        if unreachable:
            raise ConnectivityError(unreachable)

        logger.info(f"All {len(results)} host(s) reachable")
        return results

    def apply(
        self,
        inventory: Inventory,
        extra_vars: Mapping[str, Any],
        host_filter: str | None = None,
    ) -> None:
        validate_host_filter(host_filter)
        targets = inventory.hosts_for(host_filter)
        if not targets:
            raise ConfigurationApplyError(
                f"No hosts carry role '{host_filter}'", role=host_filter
            )

        args = [
            "ansible-playbook",
            "-i",
            str(self._inventory_path),
            self._playbook,
            "--extra-vars",
            json.dumps(dict(extra_vars), sort_keys=True),
        ]
        if host_filter:
            args.extend(["--limit", host_filter])
        if self._verbose:
            args.append("-v")

        scope = host_filter or "all roles"
        logger.info(
            f"Executing Ansible playbook for {scope} on "
            f"{', '.join(host.name for host in targets)}..."
        )
        secrets = [str(extra_vars[key]) for key in SECRET_ENCODINGS if extra_vars.get(key)]
        result = self._run(args, cwd=self._platform_dir, stream=True, redact=secrets)
        if result.ok:
            logger.info(f"Services deployed for {scope}")
            return

        failed_host = _failed_host_from_recap(result.output)
        where = f" on {failed_host}" if failed_host else ""
        raise ConfigurationApplyError(
            f"Playbook failed for {scope}{where} (exit {result.returncode})",
            host=failed_host,
            role=host_filter,
        )

    def install_requirements(self) -> None:
        """Install Ansible roles and collections listed in the platform dir."""
        roles_file = self._platform_dir / "requirements.yml"
        collections_file = self._platform_dir / "requirements-collections.yml"

        if roles_file.exists():
            result = self._run(
                ["ansible-galaxy", "install", "-r", roles_file.name, "--force"],
                cwd=self._platform_dir,
                stream=True,
            )
            if not result.ok:
                raise ConfigurationApplyError(
                    f"Failed to install Ansible roles: {result.output}"
                )
            logger.info("Ansible roles installed")
        else:
            logger.debug("No requirements.yml found, skipping role installation")

        if collections_file.exists():
            result = self._run(
                [
                    "ansible-galaxy",
                    "collection",
                    "install",
                    "-r",
                    collections_file.name,
                    "--force",
                ],
                cwd=self._platform_dir,
                stream=True,
            )
            if not result.ok:
                raise ConfigurationApplyError(
                    f"Failed to install Ansible collections: {result.output}"
                )
            logger.info("Ansible collections installed")


def _failed_host_from_recap(output: str) -> str | None:
    """Return the first host with failures in the PLAY RECAP section."""
    for line in output.splitlines():
        match = _RECAP_LINE.match(line.strip())
        if match and (int(match.group("failed")) or int(match.group("unreachable"))):
            return match.group("host")
    return None
