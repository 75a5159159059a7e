"""
CLI commands for zsh and the generated shell config.
"""

from __future__ import annotations

import json
import sys

import click

from localremote.ui.cli.helpers import get_runner, load_config_or_exit, print_health, print_planned


@click.group()
def zsh() -> None:
    """Zsh: oh-my-zsh, theme and plugins."""


@zsh.command()
@click.option("--install-omz", is_flag=True, help="Install oh-my-zsh first if missing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def configure(ctx: click.Context, install_omz: bool, as_json: bool) -> None:
    """Apply theme and plugins to ~/.zshrc."""
    from localremote.core import context
    from localremote.core.engine.runner import CommandError
    from localremote.core.services.zsh_config import ZshConfigError, configure_zsh

    runner = get_runner(ctx)
    try:
        result = configure_zsh(load_config_or_exit(ctx), runner, context.home_dir(), install_omz=install_omz)
    except (ZshConfigError, CommandError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.omz_installed:
        click.secho("✅ oh-my-zsh installed", fg="green")
    if result.zshrc_changed:
        click.secho("✅ ~/.zshrc updated", fg="green", bold=True)
        if result.backup:
            click.echo(f"   Backup: {result.backup}")
    else:
        click.secho("✅ ~/.zshrc already configured", fg="green")
    print_planned(runner)


@zsh.command("verify")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify_cmd(ctx: click.Context, as_json: bool) -> None:
    """Check zsh, oh-my-zsh and ~/.zshrc."""
    from localremote.core import context
    from localremote.core.services.zsh_config import verify_zsh_config

    report = verify_zsh_config(load_config_or_exit(ctx), get_runner(ctx), context.home_dir())
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_health(report, title="Zsh configuration")
    if not report.ok:
        sys.exit(1)


@click.group()
def shell() -> None:
    """Shell config: ~/.zsh_custom_config and its fragments."""


@shell.command()
@click.pass_context
def generate(ctx: click.Context) -> None:
    """Write ~/.zsh_custom_config (sources ~/.config/shell/*.sh)."""
    from localremote.core import context
    from localremote.core.services.shell_config import generate_shell_config, list_fragments

    runner = get_runner(ctx)
    home = context.home_dir()
    path = generate_shell_config(runner, home)

    click.secho(f"✅ {path}", fg="green", bold=True)
    for fragment in list_fragments(home):
        click.echo(f"   • {fragment.name}")
    print_planned(runner)
