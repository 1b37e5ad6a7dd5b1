"""Unit tests for the deployment orchestrator using fake drivers."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest

from herodeploy.config.resolver import resolve
from herodeploy.deploy.configuration import BaseConfigurationDriver, PingResult
from herodeploy.deploy.infrastructure import BaseInfrastructureDriver, TofuDriver
from herodeploy.deploy.inventory import load_inventory
from herodeploy.deploy.network import BaseNetworkBootstrapper
from herodeploy.deploy.orchestrator import Orchestrator, Stage
from herodeploy.deploy.state import load_deployment_record
from herodeploy.deploy.verify import Endpoint, HealthResult, Verifier
from herodeploy.lib.errors import (
    ApplyError,
    ConfigError,
    ConnectivityError,
    DestroyError,
    PipelineCancelled,
    PrerequisiteMissingError,
    TunnelError,
    VerificationFailure,
)
from herodeploy.models.config import ProjectPaths, RunConfiguration
from herodeploy.models.infrastructure import InfrastructureOutputs, PlanHandle
from herodeploy.models.inventory import Inventory


class FakeInfrastructure(BaseInfrastructureDriver):
    """In-memory provisioning backend."""

    def __init__(
        self,
        events: list[str],
        outputs: InfrastructureOutputs,
        state: bool = False,
        missing: Iterable[str] = (),
    ) -> None:
        self.events = events
        self._outputs = outputs
        self.state = state
        self.missing = set(missing)
        self.apply_error: Exception | None = None
        self.destroy_error: Exception | None = None

    def state_exists(self) -> bool:
        return self.state

    def plan(self) -> PlanHandle:
        self.events.append("plan")
        return PlanHandle(path=Path("hero.tfplan"), summary=["VM: hero"])

    def apply(self, plan: PlanHandle) -> InfrastructureOutputs:
        self.events.append("apply")
        if self.apply_error:
            raise self.apply_error
        self.state = True
        self.missing.clear()
        return self.outputs()

    def output(self, key: str) -> str | None:
        if not self.state or key in self.missing:
            return None
        return {
            "vm_public_ip": self._outputs.public_ip,
            "vm_wireguard_ip": self._outputs.wireguard_ip,
            "vm_mycelium_ip": self._outputs.mycelium_ip,
            "wg_config": self._outputs.wg_config,
        }[key]

    def destroy(self) -> None:
        self.events.append("destroy")
        if self.destroy_error:
            raise self.destroy_error
        self.state = False


class FakeNetwork(BaseNetworkBootstrapper):
    """Tunnel stub recording bring-up calls."""

    def __init__(self, events: list[str], up: bool = False) -> None:
        self.events = events
        self.up = up
        self.configs: list[str] = []
        self.error: Exception | None = None

    def bring_up(self, tunnel_config: str) -> None:
        self.events.append("tunnel")
        if self.error:
            raise self.error
        self.configs.append(tunnel_config)
        self.up = True

    def teardown(self) -> None:
        self.up = False

    def is_up(self) -> bool:
        return self.up


class FakeConfiguration(BaseConfigurationDriver):
    """Configuration stub recording whether apply was attempted."""

    def __init__(self, events: list[str], unreachable: Mapping[str, str] | None = None) -> None:
        self.events = events
        self.unreachable = dict(unreachable or {})
        self.applied: list[tuple[dict[str, Any], str | None, list[str]]] = []

    def install_requirements(self) -> None:
        self.events.append("requirements")

    def ping(self, inventory: Inventory) -> dict[str, PingResult]:
        self.events.append("ping")
        if self.unreachable:
            raise ConnectivityError(self.unreachable)
        return {name: PingResult(name, True, "pong") for name in inventory.hosts}

    def apply(
        self,
        inventory: Inventory,
        extra_vars: Mapping[str, Any],
        host_filter: str | None = None,
    ) -> None:
        self.events.append("configure")
        touched = [host.name for host in inventory.hosts_for(host_filter)]
        self.applied.append((dict(extra_vars), host_filter, touched))


class FakeVerifier(Verifier):
    """Verifier answering from a fixed set of unhealthy endpoint names."""

    def __init__(self, events: list[str], unhealthy: Iterable[str] = ()) -> None:
        super().__init__(sleep=lambda _: None)
        self.events = events
        self.unhealthy = set(unhealthy)

    def check(self, endpoints: Iterable[Endpoint]) -> Iterator[HealthResult]:
        self.events.append("verify")
        for endpoint in endpoints:
            healthy = endpoint.name not in self.unhealthy
            yield HealthResult(endpoint.name, healthy, "HTTP 200" if healthy else "HTTP 502")


class Harness:
    """Orchestrator wired to fakes sharing one event log."""

    def __init__(
        self,
        paths: ProjectPaths,
        cfg: RunConfiguration,
        outputs: InfrastructureOutputs,
        state: bool = False,
        answers: Iterable[bool] = (),
        auto_confirm: bool = True,
    ) -> None:
        self.events: list[str] = []
        self.questions: list[str] = []
        self._answers = list(answers)
        self.infrastructure = FakeInfrastructure(self.events, outputs, state=state)
        self.network = FakeNetwork(self.events)
        self.configuration = FakeConfiguration(self.events)
        self.verifier = FakeVerifier(self.events)
        self.checked: list[tuple[str, ...]] = []
        self.orchestrator = Orchestrator(
            cfg,
            paths,
            infrastructure=self.infrastructure,
            network=self.network,
            configuration=self.configuration,
            verifier=self.verifier,
            prerequisites=lambda needs: self.checked.append(tuple(needs)),
            confirm=self._confirm,
            auto_confirm=auto_confirm,
        )

    def _confirm(self, question: str) -> bool:
        self.questions.append(question)
        return self._answers.pop(0) if self._answers else False


@pytest.fixture
def harness(
    project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
) -> Harness:
    return Harness(project, run_config, outputs)


class TestFullPipeline:
    """End-to-end runs of deploy."""

    def test_fresh_run_reaches_done(
        self, project: ProjectPaths, outputs: InfrastructureOutputs
    ) -> None:
        """A fresh run with no persisted config deploys and records addresses."""
        cfg = resolve(env_file=project.env_file, environ={})
        h = Harness(project, cfg, outputs)

        run = h.orchestrator.deploy()

        assert run.state == Stage.DONE
        assert run.stages == [
            Stage.INIT,
            Stage.PREREQ_CHECKED,
            Stage.SECRETS_RESOLVED,
            Stage.INFRA_APPLIED,
            Stage.INVENTORY_GENERATED,
            Stage.TUNNEL_UP,
            Stage.HOSTS_REACHABLE,
            Stage.SERVICES_DEPLOYED,
            Stage.VERIFIED,
            Stage.DONE,
        ]
        assert h.events == [
            "plan", "apply", "tunnel", "ping", "requirements", "configure", "verify"
        ]

        record = load_deployment_record(project.deployment_record)
        assert record is not None
        assert record.addresses["public_ip"] == "185.206.122.150"
        assert record.addresses["wireguard_ip"] == "10.1.3.2"
        assert record.configuration["enable_ssl"] is False
        assert project.inventory_file.exists()
        assert project.wireguard_config.read_text(encoding="utf-8") == outputs.wg_config

    def test_secrets_persisted_before_any_stage(
        self, project: ProjectPaths, outputs: InfrastructureOutputs
    ) -> None:
        """Generated secrets are on disk even when a later stage fails."""
        cfg = resolve(env_file=project.env_file, environ={})
        h = Harness(project, cfg, outputs)
        h.infrastructure.apply_error = ApplyError("node offline")

        with pytest.raises(ApplyError):
            h.orchestrator.deploy()

        retried = resolve(env_file=project.env_file, environ={})
        assert retried.postgres_password == cfg.postgres_password
        assert retried.jwt_secret == cfg.jwt_secret

    def test_domain_without_ssl_flag(
        self, project: ProjectPaths, outputs: InfrastructureOutputs
    ) -> None:
        """A domain alone does not enable SSL; the email still defaults."""
        project.env_file.write_text("DOMAIN_NAME=example.org\n", encoding="utf-8")
        cfg = resolve(env_file=project.env_file, environ={})
        h = Harness(project, cfg, outputs)

        h.orchestrator.deploy()

        extra_vars, _, _ = h.configuration.applied[0]
        assert "ssl_email" not in extra_vars
        assert "ssl_staging" not in extra_vars
        inventory = load_inventory(project.inventory_file)
        assert inventory is not None
        assert inventory.variables["enable_ssl"] is False
        assert inventory.variables["ssl_email"] == "admin@example.org"
        record = load_deployment_record(project.deployment_record)
        assert record is not None
        assert record.access_url == "http://185.206.122.150"

    def test_existing_infra_skips_apply_and_regenerates_inventory(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """Existing state is reused; a deleted inventory is regenerated."""
        h = Harness(project, run_config, outputs, state=True)
        assert not project.inventory_file.exists()

        run = h.orchestrator.deploy()

        assert "plan" not in h.events
        assert "apply" not in h.events
        assert Stage.INFRA_APPLIED in run.skipped
        assert project.inventory_file.exists()
        assert run.state == Stage.DONE

    def test_incomplete_outputs_reprovision(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """State with missing outputs is planned and applied again."""
        h = Harness(project, run_config, outputs, state=True)
        h.infrastructure.missing = {"vm_wireguard_ip"}

        h.orchestrator.deploy()

        assert h.events[:2] == ["plan", "apply"]

    def test_reprovision_forces_apply(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """--reprovision plans and applies even with existing state."""
        h = Harness(project, run_config, outputs, state=True)

        h.orchestrator.deploy(reprovision=True)

        assert h.events[:2] == ["plan", "apply"]

    def test_skip_verify(self, harness: Harness) -> None:
        """Verification can be skipped."""
        run = harness.orchestrator.deploy(skip_verify=True)

        assert "verify" not in harness.events
        assert Stage.VERIFIED not in run.stages
        assert run.state == Stage.DONE

    def test_prerequisites_checked_first(self, harness: Harness) -> None:
        """All stage groups are checked before any driver is called."""
        harness.orchestrator.deploy()

        assert harness.checked == [("infrastructure", "network", "configuration")]

    def test_prerequisite_failure_touches_nothing(self, harness: Harness) -> None:
        """A missing tool stops the run before provisioning."""

        def missing(needs: Iterable[str]) -> None:
            raise PrerequisiteMissingError("tofu", "not installed", "install it")

        harness.orchestrator._prerequisites = missing

        with pytest.raises(PrerequisiteMissingError):
            harness.orchestrator.deploy()

        assert harness.events == []
        assert harness.orchestrator.last_run.state == Stage.FAILED


class TestFailFast:
    """Every failure aborts the remaining stages."""

    def test_unreachable_host_never_configured(self, harness: Harness) -> None:
        """Configuration apply is never invoked when a host is unreachable."""
        harness.configuration.unreachable = {"hero": "Connection timed out"}

        with pytest.raises(ConnectivityError):
            harness.orchestrator.deploy()

        assert harness.configuration.applied == []
        run = harness.orchestrator.last_run
        assert run.state == Stage.FAILED
        assert Stage.HOSTS_REACHABLE not in run.stages
        assert not harness.orchestrator.paths.deployment_record.exists()

    def test_tunnel_failure_stops_before_ping(self, harness: Harness) -> None:
        """A tunnel error stops the pipeline before connectivity checks."""
        harness.network.error = TunnelError("wg-quick up failed")

        with pytest.raises(TunnelError):
            harness.orchestrator.deploy()

        assert "ping" not in harness.events
        assert harness.orchestrator.last_run.stages[-2] == Stage.INVENTORY_GENERATED

    def test_missing_tunnel_config(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """No WireGuard config in outputs or on disk is a tunnel error."""
        no_config = outputs.model_copy(update={"wg_config": None})
        h = Harness(project, run_config, no_config, state=True)

        with pytest.raises(TunnelError, match="No WireGuard configuration"):
            h.orchestrator.deploy()

    def test_unhealthy_required_endpoint(self, harness: Harness) -> None:
        """An unhealthy required endpoint fails verification."""
        harness.verifier.unhealthy = {"app"}

        with pytest.raises(VerificationFailure) as exc_info:
            harness.orchestrator.deploy()

        assert exc_info.value.failed == ["app"]
        assert harness.orchestrator.last_run.state == Stage.FAILED

    def test_unhealthy_optional_endpoint(self, harness: Harness) -> None:
        """Optional endpoints are informational only."""
        harness.verifier.unhealthy = {"grafana"}

        run = harness.orchestrator.deploy()

        assert run.state == Stage.DONE

    def test_interrupt_is_a_failure(self, harness: Harness) -> None:
        """An interrupt never leaves the run looking successful."""
        harness.network.error = KeyboardInterrupt()

        with pytest.raises(KeyboardInterrupt):
            harness.orchestrator.deploy()

        assert harness.orchestrator.last_run.state == Stage.FAILED


class TestConfirmation:
    """Tests for the confirmation gate before provisioning."""

    def test_declined_apply_cancels(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """Declining the plan cancels without applying."""
        h = Harness(project, run_config, outputs, answers=[False], auto_confirm=False)

        with pytest.raises(PipelineCancelled):
            h.orchestrator.deploy()

        assert h.events == ["plan"]
        assert h.orchestrator.last_run.state == Stage.CANCELLED

    def test_accepted_apply_proceeds(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """Accepting the plan continues the pipeline."""
        h = Harness(project, run_config, outputs, answers=[True], auto_confirm=False)

        run = h.orchestrator.deploy()

        assert len(h.questions) == 1
        assert run.state == Stage.DONE


class TestPartialRuns:
    """Tests for stage-only entry points."""

    def test_role_filter_touches_only_role(self, harness: Harness) -> None:
        """A database run applies to database hosts with database variables."""
        harness.infrastructure.state = True

        run = harness.orchestrator.deploy_services(role="database")

        extra_vars, host_filter, touched = harness.configuration.applied[0]
        assert host_filter == "database"
        assert touched == ["hero"]
        assert set(extra_vars) == {"postgres_password", "redis_password", "jwt_secret"}
        assert run.state == Stage.DONE
        record = load_deployment_record(harness.orchestrator.paths.deployment_record)
        assert record is not None
        assert record.role_filter == "database"

    def test_unknown_role(self, harness: Harness) -> None:
        """Unknown roles are rejected before anything runs."""
        with pytest.raises(ConfigError):
            harness.orchestrator.deploy_services(role="web")

        assert harness.events == []

    def test_services_without_state(self, harness: Harness) -> None:
        """Deploying services before provisioning is a prerequisite error."""
        with pytest.raises(PrerequisiteMissingError, match="infrastructure"):
            harness.orchestrator.deploy_services()

    def test_services_reuse_active_tunnel(self, harness: Harness) -> None:
        """An active tunnel is not brought up again."""
        harness.infrastructure.state = True
        harness.network.up = True

        harness.orchestrator.deploy_services()

        assert "tunnel" not in harness.events
        assert harness.events == ["ping", "requirements", "configure"]

    def test_assume_ready_still_regenerates_inventory(self, harness: Harness) -> None:
        """assume_ready skips tunnel probes but rewrites the inventory."""
        harness.infrastructure.state = True

        run = harness.orchestrator.deploy_services(assume_ready=True)

        assert "tunnel" not in harness.events
        assert harness.orchestrator.paths.inventory_file.exists()
        assert Stage.TUNNEL_UP in run.skipped
        assert harness.checked == [("configuration",)]

    def test_provision_only(self, harness: Harness) -> None:
        """The infrastructure entry point always plans and applies."""
        outputs = harness.orchestrator.provision()

        assert harness.events == ["plan", "apply"]
        assert outputs.public_ip == "185.206.122.150"

    def test_prepare_inventory(self, harness: Harness) -> None:
        """The inventory entry point reports whether it wrote the file."""
        harness.infrastructure.state = True

        _, first = harness.orchestrator.prepare_inventory()
        _, second = harness.orchestrator.prepare_inventory()

        assert (first, second) == (True, False)

    def test_bring_up_network(self, harness: Harness) -> None:
        """The network entry point brings the tunnel up from outputs."""
        harness.infrastructure.state = True

        harness.orchestrator.bring_up_network()

        assert harness.network.configs == ["[Interface]\nPrivateKey = abc\n"]

    def test_health_only_probes_health(self, harness: Harness) -> None:
        """The health entry point checks a single endpoint."""
        harness.infrastructure.state = True

        results = harness.orchestrator.health()

        assert [r.name for r in results] == ["health"]

    def test_verify_reports_all_endpoints(self, harness: Harness) -> None:
        """The verify entry point returns every probe result."""
        harness.infrastructure.state = True

        results = harness.orchestrator.verify()

        assert {"app", "api", "files", "health"} <= {r.name for r in results}
        assert harness.orchestrator.health_results == results

    def test_connectivity(self, harness: Harness) -> None:
        """The ping entry point regenerates the inventory and probes hosts."""
        harness.infrastructure.state = True

        results = harness.orchestrator.connectivity()

        assert results["hero"].reachable is True


class TestClean:
    """Tests for destroy and artifact removal."""

    def _populate(self, paths: ProjectPaths) -> None:
        infra = paths.infrastructure_dir
        (infra / "terraform.tfstate").write_text("{}", encoding="utf-8")
        (infra / ".terraform").mkdir()
        (infra / ".terraform" / "providers").write_text("x", encoding="utf-8")
        paths.inventory_file.write_text("hero: {}\n", encoding="utf-8")
        paths.wireguard_config.write_text("[Interface]\n", encoding="utf-8")

    def test_declined_destroy_is_cancelled(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """Declining never enters INFRA_DESTROYED and keeps every file."""
        h = Harness(project, run_config, outputs, state=True, answers=[False], auto_confirm=False)
        self._populate(project)

        with pytest.raises(PipelineCancelled) as exc_info:
            h.orchestrator.clean()

        assert exc_info.value.exit_code == 10
        assert "destroy" not in h.events
        run = h.orchestrator.last_run
        assert run.state == Stage.CANCELLED
        assert Stage.INFRA_DESTROYED not in run.stages
        assert project.inventory_file.exists()

    def test_clean_removes_artifacts(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """A confirmed clean destroys and removes generated files only."""
        h = Harness(project, run_config, outputs, state=True, answers=[True], auto_confirm=False)
        self._populate(project)
        project.env_file.write_text("CPU=2\n", encoding="utf-8")

        run = h.orchestrator.clean()

        assert run.stages == [
            Stage.INIT,
            Stage.CONFIRM_INTENT,
            Stage.INFRA_DESTROYED,
            Stage.ARTIFACTS_REMOVED,
            Stage.DONE,
        ]
        assert not project.inventory_file.exists()
        assert not project.wireguard_config.exists()
        assert not (project.infrastructure_dir / ".terraform").exists()
        assert project.env_file.exists()
        assert project.credentials_file.exists()

    def test_clean_with_nothing_to_remove(self, harness: Harness) -> None:
        """Missing artifacts are tolerated."""
        run = harness.orchestrator.clean()

        assert run.state == Stage.DONE

    def test_failed_destroy_keeps_state(
        self, project: ProjectPaths, run_config: RunConfiguration, outputs: InfrastructureOutputs
    ) -> None:
        """State files survive a failed destroy so a retry can finish."""
        h = Harness(project, run_config, outputs, state=True)
        h.infrastructure.destroy_error = DestroyError("timeout", remaining=["grid_deployment.vm"])
        self._populate(project)

        with pytest.raises(DestroyError):
            h.orchestrator.clean()

        assert (project.infrastructure_dir / "terraform.tfstate").exists()
        assert (project.infrastructure_dir / ".terraform").exists()
        assert not project.inventory_file.exists()
        assert h.orchestrator.last_run.state == Stage.FAILED

    def test_clean_twice_with_tofu(
        self, project: ProjectPaths, run_config: RunConfiguration, fake_runner
    ) -> None:
        """A second clean with nothing deployed succeeds without running destroy."""
        events: list[str] = []
        orchestrator = Orchestrator(
            run_config,
            project,
            infrastructure=TofuDriver(
                project.infrastructure_dir,
                runner=fake_runner,
                which=lambda name: f"/usr/bin/{name}" if name == "tofu" else None,
            ),
            network=FakeNetwork(events),
            configuration=FakeConfiguration(events),
            auto_confirm=True,
        )
        self._populate(project)

        first = orchestrator.clean()
        fake_runner.on(
            "tofu", "destroy", returncode=1, stderr="Required plugins are not installed"
        )
        second = orchestrator.clean()

        assert first.state == Stage.DONE
        assert second.state == Stage.DONE
        assert [c[:2] for c in fake_runner.calls].count(["tofu", "destroy"]) == 1
        assert not (project.infrastructure_dir / "terraform.tfstate").exists()
