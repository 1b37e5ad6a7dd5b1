"""Infrastructure driver wrapping the OpenTofu/Terraform provisioning backend."""

from __future__ import annotations

import json
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

from herodeploy.config.defaults import PLAN_FILE
from herodeploy.deploy.process import CommandResult, CommandRunner, run_command
from herodeploy.lib.errors import (
    ApplyError,
    DestroyError,
    MissingOutputError,
    PlanError,
    PrerequisiteMissingError,
)
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.infrastructure import (
    OUTPUT_MYCELIUM_IP,
    OUTPUT_PUBLIC_IP,
    OUTPUT_WG_CONFIG,
    OUTPUT_WIREGUARD_IP,
    REQUIRED_OUTPUTS,
    InfrastructureOutputs,
    PlanHandle,
)

logger = get_logger(__name__)

BACKEND_BINARIES = ("tofu", "terraform")
STATE_FILES = ("terraform.tfstate", "terraform.tfstate.backup")


class BaseInfrastructureDriver(ABC):
    """Abstract interface to the provisioning backend.

    ``apply`` and ``destroy`` are the only operations with real-world effect;
    the rest are read-only queries.
    """

    @abstractmethod
    def state_exists(self) -> bool:
        """Return True if a prior apply left durable state."""

    @abstractmethod
    def plan(self) -> PlanHandle:
        """Create a provisioning plan.

        Raises:
            PlanError: If the backend rejects the configuration.
        """

    @abstractmethod
    def apply(self, plan: PlanHandle) -> InfrastructureOutputs:
        """Apply a plan and return the fresh outputs.

        Raises:
            ApplyError: On partial or full provisioning failure. The plan
                artifact is discarded so a retry starts clean.
        """

    @abstractmethod
    def output(self, key: str) -> str | None:
        """Read a single output, returning None when it does not exist."""

    @abstractmethod
    def destroy(self) -> None:
        """Tear down all resources, best effort.

        Raises:
            DestroyError: Listing the resources that were not removed.
        """

    def outputs(self) -> InfrastructureOutputs:
        """Read every output the pipeline consumes.

        Raises:
            MissingOutputError: If a required output is absent or empty.
        """
        raw = {
            key: self.output(key)
            for key in (
                OUTPUT_PUBLIC_IP,
                OUTPUT_WIREGUARD_IP,
                OUTPUT_MYCELIUM_IP,
                OUTPUT_WG_CONFIG,
            )
        }
        missing = [key for key in REQUIRED_OUTPUTS if not raw.get(key)]
        if missing:
            raise MissingOutputError(missing)
        return InfrastructureOutputs.from_raw(raw)


class TofuDriver(BaseInfrastructureDriver):
    """Drive OpenTofu (or Terraform as a fallback) in the infrastructure directory.

    Example:
        >>> driver = TofuDriver(Path("infrastructure"))
        >>> outputs = driver.apply(driver.plan())
        >>> outputs.public_ip
        '185.206.122.150'
    """

    def __init__(
        self,
        working_dir: Path,
        binary: str | None = None,
        runner: CommandRunner = run_command,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        """Initialize the driver.

        Args:
            working_dir: Directory containing the tofu root module
            binary: Explicit backend executable; autodetected when None
            runner: Command runner (injectable for tests)
            which: Executable lookup (injectable for tests)
        """
        self._working_dir = working_dir
        self._binary = binary
        self._run = runner
        self._which = which

    @property
    def plan_path(self) -> Path:
        return self._working_dir / PLAN_FILE

    @property
    def binary(self) -> str:
        """Backend executable, preferring OpenTofu over Terraform.

        Raises:
            PrerequisiteMissingError: If neither is installed
        """
        if self._binary is None:
            for candidate in BACKEND_BINARIES:
                if self._which(candidate):
                    self._binary = candidate
                    break
            else:
                raise PrerequisiteMissingError(
                    requirement="tofu",
                    message="Neither OpenTofu nor Terraform is installed",
                    remediation="Install OpenTofu: "
                    "https://opentofu.org/docs/intro/install/",
                )
            logger.info(f"Using {self._binary}")
        return self._binary

    def _tofu(self, *args: str, stream: bool = False) -> CommandResult:
        return self._run([self.binary, *args], cwd=self._working_dir, stream=stream)

    def state_exists(self) -> bool:
        return any((self._working_dir / name).exists() for name in STATE_FILES)

    def init(self) -> None:
        """Initialize the working directory unless already initialized.

        Raises:
            PlanError: If initialization fails
        """
        initialized = (self._working_dir / ".terraform").is_dir() and (
            self._working_dir / ".terraform.lock.hcl"
        ).exists()
        if initialized:
            logger.info(f"{self.binary} already initialized")
            return

        logger.info(f"Initializing {self.binary}...")
        result = self._tofu("init", "-input=false", stream=True)
        if not result.ok:
            raise PlanError(f"{self.binary} init failed: {result.output}")

    def plan(self) -> PlanHandle:
        self.init()
        self._discard_plan()

        logger.info("Planning infrastructure deployment...")
        result = self._tofu("plan", "-input=false", f"-out={PLAN_FILE}", stream=True)
        if not result.ok:
            self._discard_plan()
            raise PlanError(f"Infrastructure planning failed: {result.output}")

        return PlanHandle(path=self.plan_path, summary=self._plan_summary())

    def apply(self, plan: PlanHandle) -> InfrastructureOutputs:
        logger.info("Applying infrastructure deployment...")
        result = self._tofu(
            "apply", "-input=false", "-auto-approve", str(plan.path), stream=True
        )
        self._discard_plan()
        if not result.ok:
            raise ApplyError(f"Infrastructure apply failed: {result.output}")

        return self.outputs()

    def output(self, key: str) -> str | None:
        result = self._tofu("output", "-json", key)
        if not result.ok:
            logger.debug(f"Output {key} not available: {result.output}")
            return None
        try:
            value = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None
        if value is None:
            return None
        text = value if isinstance(value, str) else json.dumps(value)
        return text.strip() or None

    def destroy(self) -> None:
        if not self.state_exists():
            logger.info("No infrastructure state found, nothing to destroy")
            return

        logger.info(f"Destroying infrastructure with {self.binary}...")
        result = self._tofu("destroy", "-input=false", "-auto-approve", stream=True)
        remaining = self._remaining_resources()
        if not result.ok or remaining:
            raise DestroyError(
                f"Infrastructure destruction incomplete: {result.output or 'resources remain'}",
                remaining=remaining,
            )

    def _remaining_resources(self) -> list[str]:
        """Resource addresses still tracked in state after a destroy."""
        if not self.state_exists():
            return []
        result = self._tofu("state", "list")
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def _plan_summary(self) -> list[str]:
        """Describe planned VMs from the saved plan (best effort)."""
        result = self._tofu("show", "-json", PLAN_FILE)
        if not result.ok:
            return []
        try:
            payload = json.loads(result.stdout)
            resources = payload["planned_values"]["root_module"]["resources"]
        except (json.JSONDecodeError, KeyError, TypeError):
            return []

        summary: list[str] = []
        for resource in resources:
            if resource.get("type") != "grid_deployment":
                continue
            values = resource.get("values", {})
            for vm in values.get("vms") or []:
                summary.append(
                    f"VM: {values.get('name')} on node {values.get('node')} "
                    f"({vm.get('cpu')} CPU, {vm.get('memory')}MB RAM)"
                )
        return summary

    def _discard_plan(self) -> None:
        if self.plan_path.exists():
            self.plan_path.unlink()
            logger.debug(f"Removed plan file {self.plan_path}")
