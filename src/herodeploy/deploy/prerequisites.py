"""Prerequisite checks run before a pipeline touches any collaborator."""

from __future__ import annotations

import shutil
from collections.abc import Callable, Iterable, Mapping

from herodeploy.config.defaults import MNEMONIC_ENV
from herodeploy.lib.errors import PrerequisiteMissingError
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import ProjectPaths

logger = get_logger(__name__)

NEED_INFRASTRUCTURE = "infrastructure"
NEED_NETWORK = "network"
NEED_CONFIGURATION = "configuration"
ALL_NEEDS = (NEED_INFRASTRUCTURE, NEED_NETWORK, NEED_CONFIGURATION)

_ANSIBLE_INSTALL_HINT = (
    "Install Ansible: sudo apt install ansible | brew install ansible | "
    "pip install ansible"
)


def check_prerequisites(
    paths: ProjectPaths,
    environ: Mapping[str, str],
    needs: Iterable[str] = ALL_NEEDS,
    which: Callable[[str], str | None] = shutil.which,
) -> None:
    """Verify tools, credentials and files required by the requested stages.

    Args:
        paths: Project file locations
        environ: Process environment mapping
        needs: Stage groups about to run
        which: Executable lookup (injectable for tests)

    Raises:
        PrerequisiteMissingError: For the first missing requirement
    """
    needs = set(needs)
    logger.info("Checking prerequisites...")

    if NEED_INFRASTRUCTURE in needs:
        if not (which("tofu") or which("terraform")):
            raise PrerequisiteMissingError(
                requirement="tofu",
                message="Neither OpenTofu nor Terraform is installed",
                remediation="Install OpenTofu: https://opentofu.org/docs/intro/install/",
            )
        if not environ.get(MNEMONIC_ENV):
            raise PrerequisiteMissingError(
                requirement=MNEMONIC_ENV,
                message=f"{MNEMONIC_ENV} environment variable is required",
                remediation=f'export {MNEMONIC_ENV}="your twelve word mnemonic"',
            )
        if not paths.credentials_file.exists():
            raise PrerequisiteMissingError(
                requirement="credentials",
                message=f"Credentials file not found: {paths.credentials_file}",
                remediation="cp infrastructure/credentials.auto.tfvars.example "
                "infrastructure/credentials.auto.tfvars and set your node IDs",
            )

    if NEED_NETWORK in needs and not which("wg-quick"):
        raise PrerequisiteMissingError(
            requirement="wg-quick",
            message="wg-quick is required but not found",
            remediation="Install WireGuard: sudo apt install wireguard",
        )

    if NEED_CONFIGURATION in needs:
        for tool in ("ansible", "ansible-playbook"):
            if not which(tool):
                raise PrerequisiteMissingError(
                    requirement=tool,
                    message=f"{tool} is not installed",
                    remediation=_ANSIBLE_INSTALL_HINT,
                )
        if not paths.playbook_file.exists():
            raise PrerequisiteMissingError(
                requirement="playbook",
                message=f"Playbook not found: {paths.playbook_file}",
                remediation="Run herodeploy from the project root or pass "
                "--project-dir",
            )

    logger.info("Prerequisites check passed")
