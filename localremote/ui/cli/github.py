"""
CLI commands for GitHub authentication and SSH keys.

Thin wrappers over ``localremote.core.services.github``.
"""

from __future__ import annotations

import json
import os
import sys

import click

from localremote.ui.cli.helpers import get_runner, load_config_or_exit, print_health, print_planned


def _email(ctx: click.Context) -> str:
    from localremote.core.services import system

    config = load_config_or_exit(ctx)
    return config.user.email or f"{system.current_user()}@{system.hostname()}"


def _fail(e: Exception) -> None:
    click.secho(f"❌ {e}", fg="red")
    sys.exit(1)


@click.group()
def github() -> None:
    """GitHub: gh authentication and SSH keys."""


@github.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(ctx: click.Context, as_json: bool) -> None:
    """Authenticate gh with $GITHUB_PAT and register this machine's SSH key."""
    from localremote.core import context
    from localremote.core.engine.runner import CommandError
    from localremote.core.services.github import GitHubSetupError, setup_github, verify_github

    runner = get_runner(ctx)
    home = context.home_dir()
    try:
        result = setup_github(runner, home, os.environ.get("GITHUB_PAT"), _email(ctx))
    except (GitHubSetupError, CommandError) as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho("✅ GitHub setup complete", fg="green", bold=True)
    click.echo(f"   SSH key: {result.key_path}{' (generated)' if result.key_generated else ''}")
    click.echo(f"   Uploaded: {'yes' if result.key_uploaded else 'already registered'}")
    for message in result.messages:
        click.echo(f"   {message}")
    print_planned(runner)
    if not runner.dry_run:
        print_health(verify_github(runner, home), title="GitHub")


@github.command("import-keys")
@click.argument("username", required=False)
@click.pass_context
def import_keys(ctx: click.Context, username: str | None) -> None:
    """Allow USERNAME's GitHub keys to SSH in (default: the gh user)."""
    from localremote.core import context
    from localremote.core.services.github import GitHubSetupError, import_github_keys

    runner = get_runner(ctx)
    try:
        added = import_github_keys(runner, context.home_dir(), username)
    except GitHubSetupError as e:
        _fail(e)

    click.secho(f"✅ Imported {added} new key(s)", fg="green", bold=True)
    print_planned(runner)


@github.command("setup-ssh")
@click.pass_context
def setup_ssh(ctx: click.Context) -> None:
    """Create an SSH key for git and register it with GitHub."""
    from localremote.core import context
    from localremote.core.engine.runner import CommandError
    from localremote.core.services.github import setup_git_ssh

    runner = get_runner(ctx)
    try:
        result = setup_git_ssh(runner, context.home_dir(), _email(ctx))
    except CommandError as e:
        _fail(e)

    click.secho(f"✅ SSH key: {result.key_path}", fg="green", bold=True)
    for message in result.messages:
        click.echo(f"   {message}")
    print_planned(runner)
