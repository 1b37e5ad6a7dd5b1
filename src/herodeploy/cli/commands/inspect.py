"""CLI commands that inspect a deployment without changing the VM.

Implements 'herodeploy address', 'ping', 'set-dns' and 'status'.
"""

from __future__ import annotations

import sys

import click

from herodeploy.cli.context import CliContext, handle_deployment_errors, pass_cli_context
from herodeploy.config.defaults import ENV_VAR_MAP
from herodeploy.config.env_file import update_env_file
from herodeploy.deploy.dns import RECORD_TTL, check_dns, dns_records
from herodeploy.deploy.state import load_deployment_record
from herodeploy.lib.errors import ConfigError
from herodeploy.lib.logging_config import get_logger

logger = get_logger(__name__)


@click.command()
@pass_cli_context
def address(cli_ctx: CliContext) -> None:
    """Show the VM addresses from the infrastructure outputs."""
    with handle_deployment_errors():
        outputs = cli_ctx.orchestrator(persist_secrets=False).addresses()
        click.echo(f"Public IPv4:    {outputs.public_ip}")
        click.echo(f"WireGuard IP:   {outputs.wireguard_ip}")
        click.echo(f"Mycelium IP:    {outputs.mycelium_ip or 'not available'}")


@click.command()
@pass_cli_context
def ping(cli_ctx: CliContext) -> None:
    """Test Ansible connectivity to every inventory host."""
    with handle_deployment_errors():
        results = cli_ctx.orchestrator(persist_secrets=False).connectivity()
        for host, result in sorted(results.items()):
            cli_ctx.echo(f"  ✓ {host}: {result.detail or 'pong'}", fg="green")


@click.command(name="set-dns")
@pass_cli_context
def set_dns(cli_ctx: CliContext) -> None:
    """Show the DNS records the domain needs and check that they resolve.

    When every record resolves to the VM, DNS_RECORDS_SET=true is saved to
    the env file.
    """
    with handle_deployment_errors():
        cfg = cli_ctx.config(persist_secrets=False)
        if not cfg.domain_name:
            raise ConfigError(
                "DOMAIN_NAME", "A domain is required to configure DNS records"
            )

        outputs = cli_ctx.orchestrator(persist_secrets=False).addresses()
        records = dns_records(cfg.domain_name, outputs.public_ip)

        click.secho("DNS Configuration Required for Hero App", bold=True)
        click.echo(f"  Domain:      {cfg.domain_name}")
        click.echo(f"  Gateway IP:  {outputs.public_ip}")
        click.echo()
        click.echo(f"  {'Type':<6} {'Name':<32} {'Value':<16} TTL")
        for record in records:
            click.echo(f"  {record.type:<6} {record.name:<32} {record.value:<16} {record.ttl}")
        click.echo()
        click.secho(
            f"Note: DNS propagation can take 5-30 minutes (TTL {RECORD_TTL}s)",
            fg="yellow",
        )
        click.echo()

        checks = check_dns(records)
        for check in checks:
            if check.ok:
                click.secho(f"  ✓ {check.record.name} -> {check.resolved}", fg="green")
            elif check.resolved is None:
                click.secho(f"  ✗ {check.record.name} does not resolve", fg="red")
            else:
                click.secho(
                    f"  ✗ {check.record.name} -> {check.resolved} "
                    f"(expected {check.record.value})",
                    fg="red",
                )

        if not all(check.ok for check in checks):
            click.secho(
                "Some DNS records are not configured correctly. "
                "Create them and rerun: herodeploy set-dns",
                fg="red",
                err=True,
            )
            sys.exit(1)

        update_env_file(cli_ctx.env_file, {ENV_VAR_MAP["dns_records_set"]: "true"})
        click.secho("✓ All DNS records are correctly configured", fg="green")


@click.command()
@pass_cli_context
def status(cli_ctx: CliContext) -> None:
    """Show the last recorded deployment."""
    with handle_deployment_errors():
        record = load_deployment_record(cli_ctx.paths.deployment_record)
        if record is None:
            click.echo("No deployment recorded. Run: herodeploy deploy")
            return

        click.secho("Last Deployment:", bold=True)
        click.echo(f"  Deployed at:  {record.deployed_at.isoformat()}")
        click.echo(f"  Access URL:   {record.access_url}")
        click.echo(f"  Scope:        {record.role_filter or 'all roles'}")
        for name, value in record.addresses.items():
            click.echo(f"  {name}: {value or 'n/a'}")
        if record.services:
            click.secho("Services:", bold=True)
            for role, names in record.services.items():
                click.echo(f"  {role}: {names}")
