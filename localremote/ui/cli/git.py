"""
CLI commands for global git configuration.

Thin wrappers over ``localremote.core.services.git_config``.
"""

from __future__ import annotations

import json
import sys

import click

from localremote.ui.cli.helpers import get_runner, load_config_or_exit, print_health, print_planned


@click.group()
def git() -> None:
    """Git: identity, defaults and the delta pager."""


@git.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def configure(ctx: click.Context, as_json: bool) -> None:
    """Apply git settings from config.yml to ~/.gitconfig."""
    from localremote.core.services.git_config import GitConfigError, configure_git

    runner = get_runner(ctx)
    try:
        result = configure_git(load_config_or_exit(ctx), runner)
    except GitConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho("✅ Git configured", fg="green", bold=True)
    for key, value in result.settings:
        click.echo(f"   {key} = {value}")
    for warning in result.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow")
    print_planned(runner)


@git.command("verify")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify_cmd(ctx: click.Context, as_json: bool) -> None:
    """Check the global git configuration."""
    from localremote.core.services.git_config import verify_git_config

    report = verify_git_config(get_runner(ctx))
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_health(report, title="Git configuration")
    if not report.ok:
        sys.exit(1)
