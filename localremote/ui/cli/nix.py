"""
CLI commands for the Nix / Home Manager bootstrap.
"""

from __future__ import annotations

import json
import sys

import click

from localremote.ui.cli.helpers import get_runner, load_config_or_exit, print_planned, resolve_project_root


@click.group()
def nix() -> None:
    """Nix: install Nix and switch Home Manager."""


@nix.command()
@click.option("--skip-docker", is_flag=True, help="Don't install Docker.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(ctx: click.Context, skip_docker: bool, as_json: bool) -> None:
    """Install Nix, enable flakes, install Docker, switch Home Manager."""
    from localremote.core import context
    from localremote.core.engine.runner import CommandError
    from localremote.core.services.nix import NixError, bootstrap
    from localremote.installers.base import InstallContext
    from localremote.installers.registry import default_registry

    runner = get_runner(ctx)
    install_ctx = InstallContext.create(load_config_or_exit(ctx), runner)
    registry = default_registry()

    def _docker():
        return registry.execute("docker", "install", install_ctx)

    try:
        result = bootstrap(
            runner,
            resolve_project_root(),
            context.home_dir(),
            install_docker=None if skip_docker else _docker,
        )
    except (NixError, CommandError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho("✅ Nix setup complete", fg="green", bold=True)
    click.echo(f"   Nix: {'installed' if result.nix_installed else 'already installed'}")
    click.echo(f"   Flakes: {'enabled' if result.flakes_enabled else 'already enabled'}")
    if result.docker:
        click.echo(f"   Docker: {result.docker}")
    click.echo(f"   Home Manager: {result.flake_config}{' (switched)' if result.home_manager_switched else ''}")
    print_planned(runner)
    click.echo("\n   Next: local-remote post-install, then log out and back in.")


@nix.command("flake-config")
def flake_config() -> None:
    """Print the Home Manager flake configuration for this machine."""
    from localremote.core.services.nix import detect_flake_config

    click.echo(detect_flake_config())


@nix.command("user-config")
@click.pass_context
def user_config(ctx: click.Context) -> None:
    """Generate home-manager/user-config.nix; prints the Nix system."""
    from localremote.core import context
    from localremote.core.services.nix import NixError, generate_user_config

    try:
        system_id = generate_user_config(get_runner(ctx), resolve_project_root(), context.home_dir())
    except NixError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    click.echo(system_id)
