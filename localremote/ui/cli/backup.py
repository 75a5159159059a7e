"""
CLI commands for configuration backup and rollback.

Thin wrappers over ``localremote.core.services.backup``.
"""

from __future__ import annotations

import json
import sys

import click

from localremote.ui.cli.helpers import get_runner, load_config_or_exit, print_planned


def _manager(ctx: click.Context):
    from localremote.core.services.backup import manager_for

    return manager_for(load_config_or_exit(ctx), get_runner(ctx))


@click.group()
def backup() -> None:
    """Backup & restore of dotfiles and shell configuration."""


@backup.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def create(ctx: click.Context, as_json: bool) -> None:
    """Back up the configured paths now."""
    manager = _manager(ctx)
    backup_id = manager.create_backup()

    if as_json:
        click.echo(json.dumps({"id": backup_id, "dry_run": manager.runner.dry_run}, indent=2))
        return

    if backup_id is None:
        click.secho("⚠️  Nothing to back up (none of the configured paths exist)", fg="yellow")
        return
    click.secho(f"✅ Backup created: {backup_id}", fg="green", bold=True)
    print_planned(manager.runner)


@backup.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_backups_cmd(ctx: click.Context, as_json: bool) -> None:
    """List backups, newest first."""
    backups = _manager(ctx).list_backups()

    if as_json:
        click.echo(json.dumps({"backups": [b.to_dict() for b in backups]}, indent=2))
        return

    if not backups:
        click.secho("No backups found.", fg="yellow")
        return

    click.secho(f"📦 Backups ({len(backups)}):", fg="cyan", bold=True)
    for b in backups:
        latest = "  ← latest" if b.latest else ""
        click.echo(f"   {b.id}  ({b.file_count} files){latest}")


@backup.command()
@click.argument("backup_id", required=False)
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def restore(ctx: click.Context, backup_id: str | None, yes: bool) -> None:
    """Restore BACKUP_ID (default: latest), overwriting current files."""
    from localremote.core.services.backup import BackupError

    manager = _manager(ctx)
    if not yes and not manager.runner.dry_run:
        click.confirm(f"Restore {backup_id or 'the latest backup'} over current files?", abort=True)

    try:
        restored = manager.restore_backup(backup_id)
    except BackupError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Restored {len(restored)} path(s)", fg="green", bold=True)
    for rel in restored:
        click.echo(f"   • {rel}")
    print_planned(manager.runner)


@backup.command()
@click.argument("backup_id", required=False)
@click.pass_context
def diff(ctx: click.Context, backup_id: str | None) -> None:
    """Show what changed since BACKUP_ID (default: latest)."""
    from localremote.core.services.backup import BackupError

    try:
        blocks = _manager(ctx).diff_backup(backup_id)
    except BackupError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if not blocks:
        click.secho("✅ No differences", fg="green")
        return
    for block in blocks:
        click.echo(block)
