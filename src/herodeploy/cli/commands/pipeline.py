"""CLI commands that run the deployment pipeline or one of its stages.

Implements 'herodeploy deploy', 'redeploy', 'infrastructure', 'inventory',
'network', 'services', 'verify', 'health' and 'clean'.
"""

from __future__ import annotations

import click

from herodeploy.cli.context import CliContext, handle_deployment_errors, pass_cli_context
from herodeploy.deploy.verify import HealthResult, base_url
from herodeploy.lib.logging_config import get_logger
from herodeploy.models.config import RunConfiguration
from herodeploy.models.infrastructure import InfrastructureOutputs
from herodeploy.models.inventory import ROLES

logger = get_logger(__name__)

_yes_option = click.option(
    "--yes",
    "-y",
    "auto_confirm",
    is_flag=True,
    help="Skip confirmation prompts",
)


@click.command()
@_yes_option
@click.option(
    "--reprovision",
    is_flag=True,
    help="Plan and apply infrastructure even if it already exists",
)
@click.option(
    "--skip-verify",
    is_flag=True,
    help="Do not probe service endpoints after deploying",
)
@pass_cli_context
def deploy(
    cli_ctx: CliContext, auto_confirm: bool, reprovision: bool, skip_verify: bool
) -> None:
    """Provision the VM, configure every service and verify the result.

    Existing infrastructure is reused unless --reprovision is given, so a
    failed run can simply be repeated.

    Example:

        herodeploy deploy

        herodeploy deploy --yes --skip-verify
    """
    with handle_deployment_errors():
        cfg = cli_ctx.config()
        _display_configuration(cli_ctx, cfg)
        orchestrator = cli_ctx.orchestrator(auto_confirm=auto_confirm)
        orchestrator.deploy(reprovision=reprovision, skip_verify=skip_verify)
        _display_access_info(cli_ctx, cfg, orchestrator.addresses())


@click.command()
@_yes_option
@pass_cli_context
def redeploy(cli_ctx: CliContext, auto_confirm: bool) -> None:
    """Destroy everything, then deploy from scratch."""
    with handle_deployment_errors():
        cfg = cli_ctx.config()
        orchestrator = cli_ctx.orchestrator(auto_confirm=auto_confirm)
        orchestrator.clean()
        cli_ctx.echo("✓ Previous deployment removed", fg="green")
        orchestrator.deploy(reprovision=True)
        _display_access_info(cli_ctx, cfg, orchestrator.addresses())


@click.command()
@_yes_option
@pass_cli_context
def infrastructure(cli_ctx: CliContext, auto_confirm: bool) -> None:
    """Plan and apply the VM infrastructure only."""
    with handle_deployment_errors():
        outputs = cli_ctx.orchestrator(auto_confirm=auto_confirm).provision()
        cli_ctx.echo("✓ Infrastructure deployed", fg="green")
        _display_addresses(cli_ctx, outputs)


@click.command()
@pass_cli_context
def inventory(cli_ctx: CliContext) -> None:
    """Regenerate the Ansible inventory from infrastructure outputs."""
    with handle_deployment_errors():
        _, wrote = cli_ctx.orchestrator().prepare_inventory()
        path = cli_ctx.paths.inventory_file
        if wrote:
            cli_ctx.echo(f"✓ Inventory written to {path}", fg="green")
        else:
            cli_ctx.echo(f"Inventory {path} is up to date")


@click.command()
@pass_cli_context
def network(cli_ctx: CliContext) -> None:
    """Bring up the WireGuard tunnel to the VM."""
    with handle_deployment_errors():
        cli_ctx.orchestrator().bring_up_network()
        cli_ctx.echo("✓ WireGuard tunnel is up", fg="green")


@click.command()
@click.option(
    "--role",
    type=click.Choice(ROLES),
    default=None,
    help="Deploy only the services of one role",
)
@click.option(
    "--assume-ready",
    is_flag=True,
    help="Skip infrastructure and tunnel checks",
)
@pass_cli_context
def services(cli_ctx: CliContext, role: str | None, assume_ready: bool) -> None:
    """Configure services on the VM with Ansible.

    Example:

        herodeploy services

        herodeploy services --role database
    """
    with handle_deployment_errors():
        cli_ctx.orchestrator().deploy_services(role=role, assume_ready=assume_ready)
        scope = f"{role} services" if role else "All services"
        cli_ctx.echo(f"✓ {scope} deployed", fg="green")


@click.command()
@pass_cli_context
def verify(cli_ctx: CliContext) -> None:
    """Probe every service endpoint."""
    with handle_deployment_errors():
        orchestrator = cli_ctx.orchestrator(persist_secrets=False)
        try:
            results = orchestrator.verify()
        finally:
            _display_results(cli_ctx, orchestrator.health_results)
        cli_ctx.echo(f"✓ {len(results)} endpoint(s) checked", fg="green")


@click.command()
@pass_cli_context
def health(cli_ctx: CliContext) -> None:
    """Probe the health endpoint."""
    with handle_deployment_errors():
        orchestrator = cli_ctx.orchestrator(persist_secrets=False)
        try:
            orchestrator.health()
        finally:
            _display_results(cli_ctx, orchestrator.health_results)


@click.command()
@_yes_option
@pass_cli_context
def clean(cli_ctx: CliContext, auto_confirm: bool) -> None:
    """Destroy the infrastructure and remove generated files.

    Source code and the .env file are preserved.
    """
    with handle_deployment_errors():
        cli_ctx.orchestrator(auto_confirm=auto_confirm, persist_secrets=False).clean()
        cli_ctx.echo("✓ Cleanup completed", fg="green")


def _display_results(cli_ctx: CliContext, results: list[HealthResult]) -> None:
    for result in results:
        if result.healthy:
            cli_ctx.echo(f"  ✓ {result.name}: {result.detail}", fg="green")
        else:
            cli_ctx.echo(f"  ✗ {result.name}: {result.detail}", fg="red")


def _display_configuration(cli_ctx: CliContext, cfg: RunConfiguration) -> None:
    cli_ctx.echo()
    cli_ctx.echo("Deployment Configuration:", bold=True)
    cli_ctx.echo(f"  Network mode:  {cfg.network_mode}")
    cli_ctx.echo(f"  Main network:  {cfg.main_network.value}")
    cli_ctx.echo(f"  Gateway type:  {cfg.gateway_type}")
    cli_ctx.echo(f"  SSL:           {'enabled' if cfg.ssl_active else 'disabled'}")
    if cfg.domain_name:
        cli_ctx.echo(f"  Domain:        {cfg.domain_name}")
    cli_ctx.echo(f"  Monitoring:    {'enabled' if cfg.enable_monitoring else 'disabled'}")
    cli_ctx.echo(f"  VM resources:  {cfg.cpu} CPU, {cfg.memory}MB RAM")
    cli_ctx.echo()


def _display_addresses(cli_ctx: CliContext, outputs: InfrastructureOutputs) -> None:
    cli_ctx.echo(f"  Public IP:     {outputs.public_ip}")
    cli_ctx.echo(f"  WireGuard IP:  {outputs.wireguard_ip}")
    if outputs.mycelium_ip:
        cli_ctx.echo(f"  Mycelium IP:   {outputs.mycelium_ip}")


def _display_access_info(
    cli_ctx: CliContext, cfg: RunConfiguration, outputs: InfrastructureOutputs
) -> None:
    url = base_url(cfg, outputs)
    cli_ctx.echo()
    cli_ctx.echo("✓ Hero App deployed", fg="green", bold=True)
    cli_ctx.echo(f"  Application:   {url}")
    if cfg.ssl_active:
        cli_ctx.echo(f"  API:           https://api.{cfg.domain_name}")
        cli_ctx.echo(f"  Files:         https://files.{cfg.domain_name}")
        if not cfg.dns_records_set:
            cli_ctx.echo(
                "  DNS records not confirmed yet: run herodeploy set-dns",
                fg="yellow",
            )
    else:
        cli_ctx.echo(f"  API:           {url}/api")
        cli_ctx.echo(f"  Files:         {url}/ipfs")
    if cfg.enable_monitoring:
        cli_ctx.echo(f"  Grafana:       http://{outputs.public_ip}/grafana")
    _display_addresses(cli_ctx, outputs)
