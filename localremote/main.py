"""
local-remote: CLI entrypoint.

Usage:
    local-remote --help
    local-remote install-all -y
    local-remote --dry-run update-all
    local-remote install lazygit delta
    local-remote config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from localremote.core.observability.logging_config import configure_logging, console_level

from localremote import __version__


@click.group()
@click.version_option(version=__version__, prog_name="local-remote")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config.yml (default: auto-detect).",
)
@click.option("--dry-run", "-n", is_flag=True, help="Show what would change without changing it.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    dry_run: bool,
) -> None:
    """local-remote: provision and verify an Ubuntu development server."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    from localremote.core.config.loader import config_root, find_config_file
    from localremote.core.context import set_project_root as _set_ctx_root
    from localremote.core.engine.runner import CommandRunner, dry_run_from_env

    _cfg = ctx.obj["config_path"] or find_config_file()
    _set_ctx_root(config_root(_cfg))

    ctx.obj["dry_run"] = dry_run or dry_run_from_env()
    if "runner" not in ctx.obj:
        ctx.obj["runner"] = CommandRunner(
            dry_run=ctx.obj["dry_run"],
            sudo_password=os.environ.get("SUDO_PASSWORD", ""),
        )
    else:
        ctx.obj["dry_run"] = ctx.obj["runner"].dry_run

    configure_logging(console_level(debug=debug, verbose=verbose, quiet=quiet))


# ── Single-package actions ──────────────────────────────────────


def _install_context(ctx: click.Context):
    from localremote.installers.base import InstallContext
    from localremote.ui.cli.helpers import get_runner, load_config_or_exit

    return InstallContext.create(load_config_or_exit(ctx), get_runner(ctx))


def _run_action(ctx: click.Context, action: str, names: tuple[str, ...], as_json: bool, mock: bool) -> None:
    from localremote.core import context
    from localremote.core.engine.executor import ExecutionReport, generate_operation_id, write_history
    from localremote.core.persistence.history import HistoryWriter
    from localremote.installers.registry import default_registry
    from localremote.ui.cli.helpers import print_planned

    registry = default_registry(mock_mode=mock)
    install_ctx = _install_context(ctx)
    targets = list(names) or registry.list_installers()

    report = ExecutionReport(operation_id=generate_operation_id(), operation=action, dry_run=install_ctx.dry_run)
    for name in targets:
        receipt = report.add(registry.execute(name, action, install_ctx))
        if receipt.changed:
            report.updated.append(name)

    if action in ("install", "update") and not mock:
        write_history(report, HistoryWriter(context.history_path()))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.all_ok else 1)

    _print_receipts(report.receipts)
    print_planned(install_ctx.runner)
    if not report.all_ok:
        click.echo()
        sys.exit(1)


def _print_receipts(receipts) -> None:
    marks = {"ok": ("✓", "green"), "failed": ("✗", "red"), "skipped": ("⊘", "yellow")}
    for r in receipts:
        mark, colour = marks[r.status]
        click.secho(f"   {mark} {r.installer}", fg=colour, nl=False)
        detail = " ".join(part for part in (r.detail, r.version_change if r.changed else "") if part)
        click.echo(f"  {detail}" if detail else "")


_json_option = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
_mock_option = click.option("--mock", is_flag=True, help="Use mock installers (no real changes).")


@cli.command()
@click.argument("packages", nargs=-1)
@_json_option
@_mock_option
@click.pass_context
def install(ctx: click.Context, packages: tuple[str, ...], as_json: bool, mock: bool) -> None:
    """Install packages (default: all). Already-current packages are skipped."""
    _run_action(ctx, "install", packages, as_json, mock)


@cli.command()
@click.argument("packages", nargs=-1)
@_json_option
@_mock_option
@click.pass_context
def update(ctx: click.Context, packages: tuple[str, ...], as_json: bool, mock: bool) -> None:
    """Update packages (default: all) to their desired versions."""
    _run_action(ctx, "update", packages, as_json, mock)


@cli.command()
@click.argument("packages", nargs=-1)
@_json_option
@_mock_option
@click.pass_context
def verify(ctx: click.Context, packages: tuple[str, ...], as_json: bool, mock: bool) -> None:
    """Run health checks for packages (default: all)."""
    _run_action(ctx, "verify", packages, as_json, mock)


@cli.command()
@click.argument("package")
@click.pass_context
def version(ctx: click.Context, package: str) -> None:
    """Print the installed version of PACKAGE."""
    from localremote.installers.registry import default_registry

    receipt = default_registry().execute(package, "version", _install_context(ctx))
    if receipt.ok:
        click.echo(receipt.output)
        return
    click.secho(f"❌ {receipt.detail}", fg="red")
    sys.exit(1)


@cli.command()
@_json_option
@click.pass_context
def packages(ctx: click.Context, as_json: bool) -> None:
    """List known packages with desired and recorded versions."""
    from localremote.core import context
    from localremote.core.persistence.lock_file import load_lock
    from localremote.installers.registry import default_registry
    from localremote.ui.cli.helpers import load_config_or_exit

    config = load_config_or_exit(ctx)
    lock = load_lock(context.lock_path())
    rows = [
        {
            "name": name,
            "enabled": config.is_enabled(name),
            "desired": config.desired_version(name),
            "recorded": lock.get(name),
        }
        for name in default_registry().list_installers()
    ]

    if as_json:
        click.echo(json.dumps({"packages": rows}, indent=2))
        return

    click.secho(f"📦 Packages ({len(rows)}):", fg="cyan", bold=True)
    for row in rows:
        state = "" if row["enabled"] else "  (disabled)"
        recorded = row["recorded"] or "-"
        click.echo(f"   {row['name']:<12} desired={row['desired']:<8} recorded={recorded}{state}")


# ── Provisioning runs ───────────────────────────────────────────


def _print_report(report, runner) -> None:
    from localremote.ui.cli.helpers import print_health, print_planned

    _print_receipts(report.receipts)
    if report.health is not None:
        print_health(report.health)
    if report.updated:
        click.echo()
        click.secho(f"⬆️  Updated: {', '.join(report.updated)}", fg="cyan")
    if report.errors:
        click.echo()
        click.secho(f"❌ {len(report.errors)} error(s):", fg="red", bold=True)
        for err in report.errors:
            click.echo(f"   • {err}")
    print_planned(runner)
    if report.log_file:
        click.echo(f"\n   Log file: {report.log_file}")
    click.echo(f"   Duration: {report.duration_ms / 1000:.1f}s")


def _run_log(runner, prefix: str) -> str | None:
    from localremote.core import context
    from localremote.core.observability.logging_config import attach_run_log

    if runner.dry_run:
        return None
    return str(attach_run_log(context.log_dir(), prefix))


@cli.command("install-all")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@_json_option
@click.pass_context
def install_all_cmd(ctx: click.Context, yes: bool, as_json: bool) -> None:
    """Install all packages and configuration from scratch."""
    from localremote.core import context
    from localremote.core.engine.executor import RunOptions, install_all
    from localremote.core.persistence.history import HistoryWriter
    from localremote.installers.registry import default_registry
    from localremote.ui.cli.helpers import confirm_callable

    install_ctx = _install_context(ctx)
    options = RunOptions(
        confirm=None if as_json else confirm_callable(yes),
        github_pat=os.environ.get("GITHUB_PAT") or None,
    )
    report = install_all(
        default_registry(),
        install_ctx,
        options=options,
        history=HistoryWriter(context.history_path()),
        log_file=_run_log(install_ctx.runner, "install"),
    )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.all_ok else 1)

    _print_report(report, install_ctx.runner)
    if not report.all_ok:
        sys.exit(1)
    click.secho("\n✅ Installation completed", fg="green", bold=True)
    click.echo("   Log out and back in for shell and group changes to take effect.")


@cli.command("update-all")
@click.option("--verify-only", is_flag=True, help="Only run health checks.")
@_json_option
@click.pass_context
def update_all_cmd(ctx: click.Context, verify_only: bool, as_json: bool) -> None:
    """Update all packages, refresh configuration, and verify."""
    from localremote.core import context
    from localremote.core.engine.executor import update_all
    from localremote.core.persistence.history import HistoryWriter
    from localremote.installers.registry import default_registry

    install_ctx = _install_context(ctx)
    report = update_all(
        default_registry(),
        install_ctx,
        verify_only=verify_only,
        history=None if verify_only else HistoryWriter(context.history_path()),
        log_file=None if verify_only else _run_log(install_ctx.runner, "update"),
    )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.all_ok else 1)

    _print_report(report, install_ctx.runner)
    if not report.all_ok:
        sys.exit(1)
    click.secho("\n✅ Update completed" if not verify_only else "\n✅ Verification passed", fg="green", bold=True)


@cli.command()
@click.option("--limit", "-n", default=10, type=int, help="Number of entries.")
@_json_option
def history(limit: int, as_json: bool) -> None:
    """Show recent provisioning runs."""
    from localremote.core import context
    from localremote.core.persistence.history import HistoryWriter

    entries = HistoryWriter(context.history_path()).read_recent(limit)
    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return
    if not entries:
        click.secho("No runs recorded yet.", fg="yellow")
        return
    colors = {"ok": "green", "partial": "yellow", "failed": "red"}
    for e in entries:
        dry = " [dry-run]" if e.dry_run else ""
        click.echo(f"   {e.timestamp[:19]}  {e.operation:<11} ", nl=False)
        click.secho(f"{e.status:<8}", fg=colors.get(e.status, "white"), nl=False)
        click.echo(f" {e.steps_succeeded}/{e.steps_total} ok{dry}")


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Server configuration commands."""


@config.command("check")
@_json_option
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate config.yml."""
    from localremote.core.config.check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   File: {result.config_path}")
        click.echo(f"   APT packages: {len(result.config.apt.packages)}")
        click.echo(f"   Package overrides: {len(result.config.packages)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)


@config.command("show")
@_json_option
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Print the effective configuration (defaults applied)."""
    import yaml

    from localremote.ui.cli.helpers import load_config_or_exit

    data = load_config_or_exit(ctx).model_dump(mode="json")
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    click.echo(yaml.safe_dump(data, sort_keys=False), nl=False)


# ── Environment ─────────────────────────────────────────────────


@cli.command("verify-env")
@_json_option
@click.pass_context
def verify_env(ctx: click.Context, as_json: bool) -> None:
    """Verify the Nix-managed shell environment."""
    from localremote.core.services.environment import verify_environment
    from localremote.ui.cli.helpers import get_runner, print_health

    report = verify_environment(get_runner(ctx))
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.ok else 1)

    print_health(report, title="Environment verification")
    if not report.ok:
        sys.exit(1)


@cli.command("post-install")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts.")
@click.pass_context
def post_install_cmd(ctx: click.Context, yes: bool) -> None:
    """Make the Nix zsh the login shell and set up Tailscale."""
    from localremote.core import context
    from localremote.core.services.post_install import PostInstallError, post_install
    from localremote.core.services.tailscale import TailscaleError
    from localremote.ui.cli.helpers import confirm_callable, get_runner, load_config_or_exit, print_planned

    runner = get_runner(ctx)
    try:
        result = post_install(runner, load_config_or_exit(ctx), context.home_dir(), confirm=confirm_callable(yes))
    except (PostInstallError, TailscaleError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    click.secho("✅ Post-install configuration complete", fg="green", bold=True)
    click.echo(f"   Shell: {result.zsh_path}{' (changed)' if result.changed_shell else ''}")
    if result.tailscale and result.tailscale.skipped:
        click.echo(f"   Tailscale: skipped ({result.tailscale.reason})")
    for message in result.messages:
        click.echo(f"   {message}")
    print_planned(runner)


# ── Cache ───────────────────────────────────────────────────────


@cli.group()
def cache() -> None:
    """GitHub API response cache."""


@cache.command("clear")
def cache_clear() -> None:
    """Remove cached latest-release lookups."""
    from localremote.core import context
    from localremote.core.services.version import GitHubReleases

    removed = GitHubReleases(context.get_cache_dir() / "github-api").clear_cache()
    click.secho(f"✅ Removed {removed} cached entr{'y' if removed == 1 else 'ies'}", fg="green")


# ── Register sub-groups ─────────────────────────────────────────

from localremote.ui.cli.backup import backup  # noqa: E402
from localremote.ui.cli.cloud_init import cloud_init  # noqa: E402
from localremote.ui.cli.git import git  # noqa: E402
from localremote.ui.cli.github import github  # noqa: E402
from localremote.ui.cli.nix import nix  # noqa: E402
from localremote.ui.cli.shell import shell, zsh  # noqa: E402
from localremote.ui.cli.tailscale import tailscale  # noqa: E402

cli.add_command(backup)
cli.add_command(git)
cli.add_command(zsh)
cli.add_command(shell)
cli.add_command(github)
cli.add_command(tailscale)
cli.add_command(cloud_init)
cli.add_command(nix)


def main() -> None:
    """Entry point for ``python -m localremote.main``."""
    cli()


if __name__ == "__main__":
    main()
