"""Entry point for the herodeploy command line."""

from __future__ import annotations

from pathlib import Path

import click

from herodeploy import __version__
from herodeploy.cli.commands.inspect import address, ping, set_dns, status
from herodeploy.cli.commands.pipeline import (
    clean,
    deploy,
    health,
    infrastructure,
    inventory,
    network,
    redeploy,
    services,
    verify,
)
from herodeploy.cli.context import CliContext
from herodeploy.lib.logging_config import setup_logging
from herodeploy.models.config import ProjectPaths


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="herodeploy")
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root containing infrastructure/ and platform/",
)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Env file to read and update (default: <project-dir>/.env)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors")
@click.pass_context
def cli(
    ctx: click.Context,
    project_dir: Path,
    env_file: Path | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy the Hero App to a single VM.

    Provisions the VM with OpenTofu, connects to it over WireGuard and
    configures the services with Ansible.

    Example:

        herodeploy deploy

        herodeploy services --role app
    """
    setup_logging(verbose=verbose, quiet=quiet)

    paths = ProjectPaths(root=project_dir.resolve())
    ctx.obj = CliContext(
        paths=paths,
        env_file=env_file or paths.env_file,
        verbose=verbose,
        quiet=quiet,
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


for command in (
    deploy,
    redeploy,
    infrastructure,
    inventory,
    network,
    services,
    verify,
    health,
    clean,
    address,
    ping,
    set_dns,
    status,
):
    cli.add_command(command)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
