"""Shared state and error handling for herodeploy CLI commands."""

from __future__ import annotations

import functools
import os
import sys
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click

from herodeploy.config.resolver import resolve
from herodeploy.deploy.configuration import AnsibleDriver
from herodeploy.deploy.infrastructure import TofuDriver
from herodeploy.deploy.network import WireGuardBootstrapper
from herodeploy.deploy.orchestrator import Orchestrator
from herodeploy.deploy.prerequisites import check_prerequisites
from herodeploy.deploy.verify import Verifier
from herodeploy.lib.errors import (
    EXIT_INTERRUPTED,
    ConfigError,
    DeploymentError,
    HeroDeployError,
    PipelineCancelled,
)
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import ProjectPaths, RunConfiguration

logger = get_logger(__name__)


@dataclass
class CliContext:
    """Options shared by every command, stored on ``click.Context.obj``."""

    paths: ProjectPaths
    env_file: Path
    verbose: bool = False
    quiet: bool = False
    _config: RunConfiguration | None = field(default=None, repr=False)

    def config(self, persist_secrets: bool = True) -> RunConfiguration:
        """Resolve the run configuration once per invocation."""
        if self._config is None:
            self._config = resolve(
                env_file=self.env_file,
                environ=os.environ,
                persist_secrets=persist_secrets,
            )
        return self._config

    def orchestrator(
        self, auto_confirm: bool = False, persist_secrets: bool = True
    ) -> Orchestrator:
        return create_orchestrator(
            self.config(persist_secrets=persist_secrets),
            self.paths,
            auto_confirm=auto_confirm,
            verbose=self.verbose,
        )

    def echo(self, message: str = "", **kwargs: Any) -> None:
        """Print progress output unless --quiet was given."""
        if not self.quiet:
            click.secho(message, **kwargs)


def create_orchestrator(
    cfg: RunConfiguration,
    paths: ProjectPaths,
    auto_confirm: bool = False,
    verbose: bool = False,
) -> Orchestrator:
    """Wire the concrete drivers into an orchestrator.

    Args:
        cfg: Resolved run configuration
        paths: Project file locations
        auto_confirm: Skip interactive confirmation gates
        verbose: Run ansible-playbook with -v

    Returns:
        Orchestrator backed by OpenTofu, WireGuard and Ansible
    """
    return Orchestrator(
        cfg,
        paths,
        infrastructure=TofuDriver(paths.infrastructure_dir),
        network=WireGuardBootstrapper(),
        configuration=AnsibleDriver(
            paths.platform_dir, paths.inventory_file, verbose=verbose
        ),
        verifier=Verifier(),
        prerequisites=functools.partial(check_prerequisites, paths, os.environ),
        confirm=lambda question: click.confirm(question, default=False),
        auto_confirm=auto_confirm,
    )


pass_cli_context = click.make_pass_decorator(CliContext)


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in commands.

    Catches herodeploy errors, prints the failing stage and the remediation
    command, and exits with the error's exit code.

    Exit codes:
        2: Configuration error
        3: Missing prerequisite
        4: Infrastructure error (plan, apply, destroy, missing output)
        5: Tunnel error
        6: Connectivity error
        7: Configuration apply error
        8: Verification failure
        10: Cancelled by operator
        130: Interrupted
    """
    try:
        yield
    except PipelineCancelled as e:
        logger.warning(f"Cancelled: {e}")
        click.secho("Deployment cancelled", fg="yellow", err=True)
        sys.exit(e.exit_code)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.field}: {e.message}", err=True)
        sys.exit(e.exit_code)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        if e.remediation:
            click.echo(f"  Next step: {e.remediation}", err=True)
        sys.exit(e.exit_code)
    except HeroDeployError as e:
        logger.error(f"Error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.secho("\nInterrupted", fg="red", err=True)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
