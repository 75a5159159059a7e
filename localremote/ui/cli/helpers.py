"""
Shared plumbing for CLI commands: config, runner, and health output.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import ServerConfig
from localremote.core.observability.health import HealthReport

_STATUS_MARKS = {"pass": ("✓", "green"), "warn": ("⚠", "yellow"), "fail": ("✗", "red")}


def resolve_project_root() -> Path:
    """Directory holding config.yml, as registered by the root group."""
    from localremote.core import context

    return context.get_project_root() or Path.cwd()


def load_config_or_exit(ctx: click.Context) -> ServerConfig:
    from localremote.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def get_runner(ctx: click.Context) -> CommandRunner:
    """The process-wide runner (created by the root group)."""
    return ctx.obj["runner"]


def confirm_callable(yes: bool):
    """None (proceed) with --yes, otherwise an interactive y/N prompt."""
    if yes:
        return None
    return lambda question: click.confirm(question, default=False)


def print_health(report: HealthReport, title: str = "Health checks") -> None:
    click.secho(f"\n🩺 {title}", fg="cyan", bold=True)
    for check in report.checks:
        mark, color = _STATUS_MARKS.get(check.status, ("?", "white"))
        click.secho(f"   {mark} ", fg=color, nl=False)
        click.echo(f"{check.component}: {check.message}")
    summary = f"   {len(report.passed)} passed, {len(report.warnings)} warnings, {len(report.failed)} failed"
    click.secho(summary, fg="green" if report.ok else "red")


def print_planned(runner: CommandRunner) -> None:
    """List what a dry run would have done."""
    if not runner.dry_run:
        return
    click.echo()
    for line in runner.planned:
        click.secho(f"   {line}", fg="yellow")
    click.secho(runner.summary(), fg="yellow", bold=True)
