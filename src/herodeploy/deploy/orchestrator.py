"""Deployment pipeline sequencing.

The orchestrator owns the stage order and the confirmation gates; every
side effect goes through an injected driver. Stages run strictly in order
and stop at the first failure, so configuration is never applied to a host
that failed the reachability probe.

Pipeline states::

    INIT -> PREREQ_CHECKED -> SECRETS_RESOLVED -> INFRA_APPLIED
         -> INVENTORY_GENERATED -> TUNNEL_UP -> HOSTS_REACHABLE
         -> SERVICES_DEPLOYED -> VERIFIED -> DONE

Clean states::

    INIT -> CONFIRM_INTENT -> INFRA_DESTROYED -> ARTIFACTS_REMOVED -> DONE

Any stage may end in FAILED; a declined confirmation ends in CANCELLED.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from herodeploy.config.defaults import DEFAULT_REQUIRED_ENDPOINTS
from herodeploy.deploy.configuration import (
    BaseConfigurationDriver,
    PingResult,
    build_extra_vars,
    validate_host_filter,
)
from herodeploy.deploy.infrastructure import BaseInfrastructureDriver
from herodeploy.deploy.inventory import ensure_inventory
from herodeploy.deploy.network import BaseNetworkBootstrapper
from herodeploy.deploy.prerequisites import (
    ALL_NEEDS,
    NEED_CONFIGURATION,
    NEED_INFRASTRUCTURE,
    NEED_NETWORK,
)
from herodeploy.deploy.state import build_deployment_record, save_deployment_record
from herodeploy.deploy.verify import (
    HealthResult,
    Verifier,
    base_url,
    build_endpoints,
    summarize,
)
from herodeploy.lib.errors import (
    DestroyError,
    HeroDeployError,
    MissingOutputError,
    PipelineCancelled,
    PrerequisiteMissingError,
    TunnelError,
    VerificationFailure,
)
from herodeploy.lib.fileio import atomic_write_text, remove_path
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import ProjectPaths, RunConfiguration
from herodeploy.models.infrastructure import InfrastructureOutputs
from herodeploy.models.inventory import Inventory

logger = get_logger(__name__)

PrerequisiteCheck = Callable[[Iterable[str]], None]
Confirm = Callable[[str], bool]

# Files that let a retried destroy find the resources it left behind
STATE_ARTIFACTS = frozenset(
    {"terraform.tfstate", "terraform.tfstate.backup", ".terraform", ".terraform.lock.hcl"}
)


class Stage(str, Enum):
    """Pipeline and clean states."""

    INIT = "INIT"
    PREREQ_CHECKED = "PREREQ_CHECKED"
    SECRETS_RESOLVED = "SECRETS_RESOLVED"
    INFRA_APPLIED = "INFRA_APPLIED"
    INVENTORY_GENERATED = "INVENTORY_GENERATED"
    TUNNEL_UP = "TUNNEL_UP"
    HOSTS_REACHABLE = "HOSTS_REACHABLE"
    SERVICES_DEPLOYED = "SERVICES_DEPLOYED"
    VERIFIED = "VERIFIED"
    CONFIRM_INTENT = "CONFIRM_INTENT"
    INFRA_DESTROYED = "INFRA_DESTROYED"
    ARTIFACTS_REMOVED = "ARTIFACTS_REMOVED"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STAGES = frozenset({Stage.DONE, Stage.FAILED, Stage.CANCELLED})


@dataclass
class PipelineRun:
    """Progress record of one pipeline invocation.

    Attributes:
        name: Entry point that started the run (e.g. "deploy", "clean")
        stages: Stages reached, in order
        error: Error that ended the run, if any
        skipped: Stages passed without side effects (e.g. infra already applied)
    """

    name: str
    stages: list[Stage] = field(default_factory=lambda: [Stage.INIT])
    error: BaseException | None = None
    skipped: list[Stage] = field(default_factory=list)

    @property
    def state(self) -> Stage:
        return self.stages[-1]

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STAGES

    def advance(self, stage: Stage) -> None:
        if self.finished:
            raise RuntimeError(f"Run {self.name} already ended in {self.state.value}")
        logger.debug(f"{self.name}: {self.state.value} -> {stage.value}")
        self.stages.append(stage)

    def skip(self, stage: Stage) -> None:
        self.skipped.append(stage)
        self.advance(stage)

    def reached(self, stage: Stage) -> bool:
        return stage in self.stages


class Orchestrator:
    """Sequence the drivers through a deployment.

    Example:
        >>> orchestrator = Orchestrator(
        ...     cfg, paths, TofuDriver(...), WireGuardBootstrapper(), AnsibleDriver(...)
        ... )
        >>> run = orchestrator.deploy()
        >>> run.state
        <Stage.DONE: 'DONE'>
    """

    def __init__(
        self,
        cfg: RunConfiguration,
        paths: ProjectPaths,
        infrastructure: BaseInfrastructureDriver,
        network: BaseNetworkBootstrapper,
        configuration: BaseConfigurationDriver,
        verifier: Verifier | None = None,
        prerequisites: PrerequisiteCheck | None = None,
        confirm: Confirm | None = None,
        auto_confirm: bool = False,
        required_endpoints: tuple[str, ...] = DEFAULT_REQUIRED_ENDPOINTS,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            cfg: Resolved run configuration (secrets already filled in)
            paths: Project file locations
            infrastructure: Provisioning backend driver
            network: Tunnel bootstrapper
            configuration: Configuration-management driver
            verifier: Endpoint verifier (a default one when None)
            prerequisites: Check run before a pipeline touches any driver;
                receives the stage groups about to run
            confirm: Asks the operator a yes/no question. Without it every
                gate declines unless ``auto_confirm`` is set.
            auto_confirm: Pass every confirmation gate
            required_endpoints: Endpoints that must be healthy for success
        """
        self.cfg = cfg
        self.paths = paths
        self.infrastructure = infrastructure
        self.network = network
        self.configuration = configuration
        self.verifier = verifier or Verifier()
        self._prerequisites = prerequisites
        self._confirm = confirm
        self.auto_confirm = auto_confirm
        self.required_endpoints = required_endpoints
        self.last_run: PipelineRun | None = None
        self.health_results: list[HealthResult] = []

    # -- entry points ----------------------------------------------------

    def deploy(self, reprovision: bool = False, skip_verify: bool = False) -> PipelineRun:
        """Run the full pipeline.

        Args:
            reprovision: Plan and apply even when infrastructure state exists
            skip_verify: Stop after deploying services

        Returns:
            The completed run

        Raises:
            HeroDeployError: The first stage failure, or PipelineCancelled
        """
        with self._tracking("deploy") as run:
            self._check(run, ALL_NEEDS)
            run.advance(Stage.SECRETS_RESOLVED)
            outputs = self._apply_infrastructure(run, reprovision)
            inventory = self._generate_inventory(run, outputs)
            self._bring_up_tunnel(run, outputs)
            self._reach_hosts(run, inventory)
            self._deploy_services(run, inventory, outputs, role=None)
            if skip_verify:
                logger.info("Skipping verification")
            else:
                self._verify(run, outputs)
            run.advance(Stage.DONE)
        return run

    def provision(self, reprovision: bool = True) -> InfrastructureOutputs:
        """Provision the VM only."""
        with self._tracking("infrastructure") as run:
            self._check(run, (NEED_INFRASTRUCTURE,))
            run.advance(Stage.SECRETS_RESOLVED)
            outputs = self._apply_infrastructure(run, reprovision)
            run.advance(Stage.DONE)
        return outputs

    def prepare_inventory(self) -> tuple[Inventory, bool]:
        """Regenerate the inventory from current outputs.

        Returns:
            The inventory and whether the file was rewritten
        """
        with self._tracking("inventory") as run:
            outputs = self.infrastructure.outputs()
            inventory, wrote = ensure_inventory(self.paths.inventory_file, outputs, self.cfg)
            run.advance(Stage.INVENTORY_GENERATED)
            run.advance(Stage.DONE)
        return inventory, wrote

    def bring_up_network(self) -> None:
        """Establish the tunnel from current outputs."""
        with self._tracking("network") as run:
            self._check(run, (NEED_NETWORK,))
            outputs = self.infrastructure.outputs()
            self._bring_up_tunnel(run, outputs)
            run.advance(Stage.DONE)

    def deploy_services(
        self, role: str | None = None, assume_ready: bool = False
    ) -> PipelineRun:
        """Apply configuration, optionally for one role only.

        The inventory is always regenerated from current outputs. Unless
        ``assume_ready`` is set, the tunnel is brought up when it is down.
        Hosts are always probed before configuration is applied.
        """
        validate_host_filter(role)
        needs = (NEED_CONFIGURATION,) if assume_ready else (NEED_NETWORK, NEED_CONFIGURATION)
        with self._tracking(f"services:{role}" if role else "services") as run:
            self._check(run, needs)
            run.advance(Stage.SECRETS_RESOLVED)
            if assume_ready:
                outputs = self.infrastructure.outputs()
                run.skip(Stage.INFRA_APPLIED)
            else:
                outputs = self._existing_outputs()
                run.advance(Stage.INFRA_APPLIED)
            inventory = self._generate_inventory(run, outputs)
            if assume_ready:
                run.skip(Stage.TUNNEL_UP)
            elif self.network.is_up():
                logger.info("Tunnel already up")
                run.skip(Stage.TUNNEL_UP)
            else:
                self._bring_up_tunnel(run, outputs)
            self._reach_hosts(run, inventory)
            self._deploy_services(run, inventory, outputs, role=role)
            run.advance(Stage.DONE)
        return run

    def verify(self) -> list[HealthResult]:
        """Probe every service endpoint.

        Raises:
            VerificationFailure: If a required endpoint is unhealthy
        """
        with self._tracking("verify") as run:
            outputs = self.infrastructure.outputs()
            results = self._verify(run, outputs)
            run.advance(Stage.DONE)
        return results

    def health(self) -> list[HealthResult]:
        """Probe only the health endpoint.

        Raises:
            VerificationFailure: If the health endpoint is unhealthy
        """
        with self._tracking("health") as run:
            outputs = self.infrastructure.outputs()
            endpoints = [
                endpoint
                for endpoint in build_endpoints(self.cfg, outputs)
                if endpoint.name == "health"
            ]
            results = self.health_results = list(self.verifier.check(endpoints))
            healthy, failed = summarize(results, required=("health",))
            if not healthy:
                raise VerificationFailure(failed)
            run.advance(Stage.DONE)
        return results

    def clean(self) -> PipelineRun:
        """Destroy the infrastructure and remove generated files.

        When destroy fails the state files are kept so a retry can finish
        the job; everything else is still removed.
        """
        with self._tracking("clean") as run:
            self._gate(
                "This will destroy all deployed infrastructure and remove "
                "generated files. Are you sure?",
                stage="clean",
            )
            run.advance(Stage.CONFIRM_INTENT)

            try:
                self.infrastructure.destroy()
            except DestroyError as exc:
                if exc.remaining:
                    logger.error(f"Resources left behind: {', '.join(exc.remaining)}")
                self._remove_artifacts(keep=STATE_ARTIFACTS)
                raise
            run.advance(Stage.INFRA_DESTROYED)

            self._remove_artifacts()
            run.advance(Stage.ARTIFACTS_REMOVED)
            run.advance(Stage.DONE)
        return run

    def addresses(self) -> InfrastructureOutputs:
        """Return the VM addresses from the current outputs."""
        return self.infrastructure.outputs()

    def connectivity(self) -> dict[str, PingResult]:
        """Probe every inventory host.

        Raises:
            ConnectivityError: If any host is unreachable
        """
        with self._tracking("ping") as run:
            outputs = self.infrastructure.outputs()
            inventory = self._generate_inventory(run, outputs)
            results = self.configuration.ping(inventory)
            run.advance(Stage.HOSTS_REACHABLE)
            run.advance(Stage.DONE)
        return results

    # -- stages ----------------------------------------------------------

    @contextmanager
    def _tracking(self, name: str) -> Iterator[PipelineRun]:
        run = PipelineRun(name=name)
        self.last_run = run
        try:
            yield run
        except PipelineCancelled as exc:
            run.error = exc
            run.stages.append(Stage.CANCELLED)
            logger.warning(f"{name} cancelled at {exc.stage}")
            raise
        except (HeroDeployError, KeyboardInterrupt) as exc:
            failed_at = run.state.value
            run.error = exc
            run.stages.append(Stage.FAILED)
            logger.error(f"{name} failed after {failed_at}: {exc}")
            raise

    def _check(self, run: PipelineRun, needs: Iterable[str]) -> None:
        if self._prerequisites is not None:
            self._prerequisites(needs)
        run.advance(Stage.PREREQ_CHECKED)

    def _gate(self, question: str, stage: str) -> None:
        if self.auto_confirm:
            return
        if self._confirm is None or not self._confirm(question):
            raise PipelineCancelled(stage)

    def _existing_outputs(self) -> InfrastructureOutputs:
        if not self.infrastructure.state_exists():
            raise PrerequisiteMissingError(
                requirement="infrastructure",
                message="No infrastructure state found",
                remediation="Provision the VM first: herodeploy infrastructure",
            )
        return self.infrastructure.outputs()

    def _apply_infrastructure(
        self, run: PipelineRun, reprovision: bool
    ) -> InfrastructureOutputs:
        if not reprovision and self.infrastructure.state_exists():
            try:
                outputs = self.infrastructure.outputs()
            except MissingOutputError as exc:
                logger.info(f"Existing infrastructure is incomplete ({exc.message})")
            else:
                logger.info("Infrastructure already deployed, skipping apply")
                run.skip(Stage.INFRA_APPLIED)
                return outputs

        plan = self.infrastructure.plan()
        for line in plan.summary:
            logger.info(line)
        self._gate("Proceed with infrastructure deployment?", stage="infrastructure")

        outputs = self.infrastructure.apply(plan)
        if outputs.wg_config:
            atomic_write_text(self.paths.wireguard_config, outputs.wg_config, mode=0o600)
            logger.info(f"WireGuard config saved to {self.paths.wireguard_config}")
        logger.info(f"VM public IP: {outputs.public_ip}")
        run.advance(Stage.INFRA_APPLIED)
        return outputs

    def _generate_inventory(
        self, run: PipelineRun, outputs: InfrastructureOutputs
    ) -> Inventory:
        inventory, _ = ensure_inventory(self.paths.inventory_file, outputs, self.cfg)
        run.advance(Stage.INVENTORY_GENERATED)
        return inventory

    def _bring_up_tunnel(self, run: PipelineRun, outputs: InfrastructureOutputs) -> None:
        tunnel_config = outputs.wg_config
        if not tunnel_config and self.paths.wireguard_config.exists():
            tunnel_config = self.paths.wireguard_config.read_text(encoding="utf-8")
        if not tunnel_config:
            raise TunnelError("No WireGuard configuration in infrastructure outputs")
        self.network.bring_up(tunnel_config)
        run.advance(Stage.TUNNEL_UP)

    def _reach_hosts(self, run: PipelineRun, inventory: Inventory) -> None:
        self.configuration.ping(inventory)
        run.advance(Stage.HOSTS_REACHABLE)

    def _deploy_services(
        self,
        run: PipelineRun,
        inventory: Inventory,
        outputs: InfrastructureOutputs,
        role: str | None,
    ) -> None:
        extra_vars = build_extra_vars(self.cfg, role=role)
        self.configuration.install_requirements()
        self.configuration.apply(inventory, extra_vars, host_filter=role)
        record = build_deployment_record(
            self.cfg, outputs, base_url(self.cfg, outputs), role_filter=role
        )
        save_deployment_record(self.paths.deployment_record, record)
        run.advance(Stage.SERVICES_DEPLOYED)

    def _verify(
        self, run: PipelineRun, outputs: InfrastructureOutputs
    ) -> list[HealthResult]:
        results = self.health_results = list(
            self.verifier.check(build_endpoints(self.cfg, outputs))
        )
        healthy, failed = summarize(results, required=self.required_endpoints)
        optional = [r.name for r in results if not r.healthy and r.name not in failed]
        if optional:
            logger.warning(f"Optional endpoints unhealthy: {', '.join(optional)}")
        if not healthy:
            raise VerificationFailure(failed)
        run.advance(Stage.VERIFIED)
        return results

    def _remove_artifacts(self, keep: frozenset[str] = frozenset()) -> list[str]:
        removed = []
        for path in self.paths.generated_artifacts():
            if path.name in keep:
                logger.info(f"Keeping {path} for a later destroy")
                continue
            if remove_path(path):
                logger.info(f"Removed {path}")
                removed.append(str(path))
        return removed
