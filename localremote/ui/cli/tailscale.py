"""
CLI commands for Tailscale.
"""

from __future__ import annotations

import json
import sys

import click

from localremote.ui.cli.helpers import (
    confirm_callable,
    get_runner,
    load_config_or_exit,
    print_health,
    print_planned,
)


@click.group()
def tailscale() -> None:
    """Tailscale: daemon, authentication and status."""


@tailscale.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.pass_context
def setup(ctx: click.Context, yes: bool) -> None:
    """Start tailscaled and run `tailscale up` with the configured flags."""
    from localremote.core import context
    from localremote.core.engine.runner import CommandError
    from localremote.core.services.tailscale import TailscaleError, setup_tailscale

    runner = get_runner(ctx)
    config = load_config_or_exit(ctx)
    try:
        result = setup_tailscale(runner, config.tailscale, context.home_dir(), confirm=confirm_callable(yes))
    except (TailscaleError, CommandError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if result.skipped:
        click.secho(f"⊘ Tailscale setup skipped: {result.reason}", fg="yellow")
        return
    click.secho("✅ Tailscale configured", fg="green", bold=True)
    click.echo(f"   Command: {result.to_dict()['command']}")
    print_planned(runner)


@tailscale.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show daemon and authentication status."""
    from localremote.core import context
    from localremote.core.services.tailscale import TailscaleError, detect_binaries, status_text, verify_tailscale

    runner = get_runner(ctx)
    home = context.home_dir()
    report = verify_tailscale(runner, home)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.ok else 1)

    print_health(report, title="Tailscale")
    try:
        text = status_text(runner, detect_binaries(runner, home).tailscale)
    except TailscaleError:
        text = ""
    if text:
        click.echo()
        click.echo(text)
    if not report.ok:
        sys.exit(1)
