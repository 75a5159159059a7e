"""
CLI commands for cloud-init user-data.

Thin wrappers over ``localremote.core.services.cloud_init``.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from localremote.ui.cli.helpers import get_runner, load_config_or_exit, resolve_project_root


@click.group("cloud-init")
def cloud_init() -> None:
    """Cloud-init: user-data for a new server."""


@cloud_init.command()
@click.option("--validate", "validate_only", is_flag=True, help="Validate an existing file instead.")
@click.option("--secrets", "secrets_path", type=click.Path(), default=None, help="secrets.env (default: next to config.yml).")
@click.option("--output", "-o", "output_path", type=click.Path(), default=None, help="Output file (default: cloud-init.yaml).")
@click.option("--template", "template_path", type=click.Path(exists=True), default=None, help="Custom template.")
@click.pass_context
def generate(
    ctx: click.Context,
    validate_only: bool,
    secrets_path: str | None,
    output_path: str | None,
    template_path: str | None,
) -> None:
    """Render cloud-init.yaml from secrets.env.

    Examples:

        local-remote cloud-init generate

        local-remote --dry-run cloud-init generate

        local-remote cloud-init generate --validate
    """
    from localremote.core.config.loader import SECRETS_FILE
    from localremote.core.services.cloud_init import OUTPUT_FILE, CloudInitError, generate as render, validate_file

    root = resolve_project_root()
    output = Path(output_path) if output_path else root / OUTPUT_FILE

    if validate_only:
        try:
            problems = validate_file(output)
        except CloudInitError as e:
            click.secho(f"❌ {e}", fg="red")
            sys.exit(1)
        if problems:
            click.secho(f"❌ {output} is invalid:", fg="red", bold=True)
            for problem in problems:
                click.echo(f"   • {problem}")
            sys.exit(1)
        click.secho(f"✅ {output} is valid", fg="green", bold=True)
        return

    runner = get_runner(ctx)
    try:
        result = render(
            runner,
            Path(secrets_path) if secrets_path else root / SECRETS_FILE,
            output,
            config=load_config_or_exit(ctx),
            template_path=Path(template_path) if template_path else None,
        )
    except CloudInitError as e:
        click.secho(f"❌ {e}", fg="red")
        for problem in e.problems:
            click.echo(f"   • {problem}")
        sys.exit(1)

    if not result.written:
        click.secho(f"[DRY-RUN] Would generate: {output}", fg="yellow", err=True)
        click.echo(result.content, nl=False)
        return

    summary = result.to_dict()
    click.secho("✅ Cloud-init configuration generated", fg="green", bold=True)
    click.echo(f"   Output: {output}")
    click.echo(f"   Hostname: {summary['hostname']}")
    click.echo(f"   Username: {summary['username']}")
    click.echo(f"   Tailscale: {summary['tailscale']}")
