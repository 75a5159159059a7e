"""
Engine executor: install-all / update-all orchestration.

A provisioning run is a fixed sequence of steps.  Installer steps go
through the registry (which never raises); configuration steps are
wrapped here so that an exception becomes a failure receipt.  Errors
are collected, never abort later steps, and are summarised at the end.

Flow:
    backup → installers → git/zsh/shell config → tailscale → github
           → verify everything → append history
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from localremote.core.models.action import Receipt, utc_now
from localremote.core.observability.health import HealthReport
from localremote.core.persistence.history import HistoryEntry, HistoryWriter
from localremote.core.services import system
from localremote.installers.base import InstallContext
from localremote.installers.registry import BINARIES, UPDATABLE, InstallerRegistry

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    """Result of a provisioning run."""

    operation_id: str = ""
    operation: str = ""
    dry_run: bool = False
    receipts: list[Receipt] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    health: HealthReport | None = None
    log_file: str | None = None
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def errors(self) -> list[str]:
        return [f"[{r.installer}] {r.error}" for r in self.receipts if r.failed]

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def add(self, receipt: Receipt) -> Receipt:
        self.receipts.append(receipt)
        status_marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
        logger.info("%s %s:%s → %s", status_marker, receipt.installer, receipt.action, receipt.status)
        return receipt

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "operation": self.operation,
            "dry_run": self.dry_run,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "updated": self.updated,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
            "log_file": self.log_file,
            "health": self.health.to_dict() if self.health else None,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


@dataclass
class RunOptions:
    """Switches for install-all / update-all."""

    confirm: Callable[[str], bool] | None = None   # None = don't ask
    github_pat: str | None = None
    skip_tailscale: bool = field(default_factory=system.is_cloud_init)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


def run_step(name: str, action: str, func: Callable[[], str | None]) -> Receipt:
    """Run a configuration step, turning exceptions into a failure receipt."""
    started_at, start = utc_now(), time.monotonic()
    try:
        output = func()
    except Exception as e:
        logger.error("%s %s failed: %s", name, action, e)
        receipt = Receipt.failure(installer=name, action=action, error=str(e))
    else:
        receipt = Receipt.success(installer=name, action=action, output=output or "")
    return receipt.finish(started_at, start)


def skip_step(name: str, action: str, reason: str) -> Receipt:
    logger.info("Skipping %s: %s", name, reason)
    return Receipt.skip(installer=name, action=action, reason=reason)


# ── Steps ───────────────────────────────────────────────────────


def _backup_step(ctx: InstallContext) -> Receipt:
    from localremote.core.services.backup import manager_for

    def _backup() -> str:
        backup_id = manager_for(ctx.config, ctx.runner, home=ctx.home).backup_before_changes()
        return f"backup {backup_id}" if backup_id else "recent backup exists"

    return run_step("backup", "create", _backup)


def _config_steps(ctx: InstallContext, install_omz: bool) -> list[Receipt]:
    from localremote.core.services.git_config import configure_git
    from localremote.core.services.shell_config import generate_shell_config
    from localremote.core.services.zsh_config import configure_zsh

    def _git() -> str:
        result = configure_git(ctx.config, ctx.runner)
        return f"{len(result.settings)} settings"

    def _zsh() -> str:
        result = configure_zsh(ctx.config, ctx.runner, ctx.home, install_omz=install_omz)
        return "updated .zshrc" if result.zshrc_changed else ".zshrc unchanged"

    def _shell() -> str:
        return str(generate_shell_config(ctx.runner, ctx.home))

    return [
        run_step("git", "configure", _git),
        run_step("zsh", "configure", _zsh),
        run_step("shell-config", "generate", _shell),
    ]


def _tailscale_step(ctx: InstallContext, options: RunOptions) -> Receipt:
    if options.skip_tailscale:
        return skip_step("tailscale", "setup", "cloud-init run; authenticate after first login")
    if ctx.runner.which("tailscale") is None and not (ctx.home / ".nix-profile/bin/tailscale").is_file():
        return skip_step("tailscale", "setup", "tailscale is not installed")

    from localremote.core.services.tailscale import setup_tailscale

    def _setup() -> str:
        result = setup_tailscale(ctx.runner, ctx.config.tailscale, ctx.home, confirm=options.confirm)
        return result.reason or ("authenticated" if result.authenticated else "configured")

    return run_step("tailscale", "setup", _setup)


def _github_step(ctx: InstallContext, pat: str) -> Receipt:
    from localremote.core.services.github import setup_github

    def _setup() -> str:
        email = ctx.config.user.email or f"{system.current_user()}@{system.hostname()}"
        result = setup_github(ctx.runner, ctx.home, pat, email)
        return "key uploaded" if result.key_uploaded else "key already registered"

    return run_step("github", "setup", _setup)


def verify_all(registry: InstallerRegistry, ctx: InstallContext) -> tuple[list[Receipt], HealthReport]:
    """Verify every registered installer into one health report."""
    report = HealthReport()
    receipts = []
    for name in registry.list_installers():
        receipt = registry.execute(name, "verify", ctx)
        receipts.append(receipt)
        checks = receipt.metadata.get("checks")
        if checks:
            for check in checks:
                report.add(check["component"], check["status"], check.get("message", ""))
        elif receipt.failed:
            report.add_fail(name, receipt.error or "verification failed")
    return receipts, report


def _finish(report: ExecutionReport, started: float, history: HistoryWriter | None) -> ExecutionReport:
    report.duration_ms = int((time.monotonic() - started) * 1000)
    if history is not None:
        write_history(report, history)
    if report.errors:
        logger.warning("%s completed with %d error(s)", report.operation, len(report.errors))
    else:
        logger.info("%s completed successfully", report.operation)
    return report


# ── Runs ────────────────────────────────────────────────────────


def install_all(
    registry: InstallerRegistry,
    ctx: InstallContext,
    options: RunOptions | None = None,
    history: HistoryWriter | None = None,
    log_file: str | None = None,
) -> ExecutionReport:
    """Install every package and apply every configuration, from scratch."""
    options = options or RunOptions()
    started = time.monotonic()
    report = ExecutionReport(
        operation_id=generate_operation_id(), operation="install-all", dry_run=ctx.dry_run,
        log_file=log_file,
    )

    if not ctx.dry_run:
        report.add(_backup_step(ctx))

    for name in ("apt", "docker", "github-cli", *BINARIES):
        if name in registry.list_installers():
            receipt = report.add(registry.execute(name, "install", ctx))
            if receipt.changed:
                report.updated.append(name)

    for receipt in _config_steps(ctx, install_omz=True):
        report.add(receipt)
    report.add(_tailscale_step(ctx, options))
    if options.github_pat:
        report.add(_github_step(ctx, options.github_pat))

    _, report.health = verify_all(registry, ctx)
    return _finish(report, started, history)


def update_all(
    registry: InstallerRegistry,
    ctx: InstallContext,
    verify_only: bool = False,
    history: HistoryWriter | None = None,
    log_file: str | None = None,
) -> ExecutionReport:
    """Upgrade installed packages, refresh configuration, verify."""
    started = time.monotonic()
    report = ExecutionReport(
        operation_id=generate_operation_id(),
        operation="verify-all" if verify_only else "update-all",
        dry_run=ctx.dry_run,
        log_file=log_file,
    )

    if not verify_only:
        report.add(_backup_step(ctx))
        for name in UPDATABLE:
            if name not in registry.list_installers():
                continue
            receipt = report.add(registry.execute(name, "update", ctx))
            if receipt.changed:
                report.updated.append(name)

        for receipt in _config_steps(ctx, install_omz=False):
            report.add(receipt)

    receipts, report.health = verify_all(registry, ctx)
    if verify_only:
        for receipt in receipts:
            report.add(receipt)
    return _finish(report, started, history)


def write_history(report: ExecutionReport, history: HistoryWriter) -> None:
    """Append the run to the history ledger."""
    entry = HistoryEntry(
        operation_id=report.operation_id,
        operation=report.operation,
        dry_run=report.dry_run,
        status=report.status,
        steps_total=report.total,
        steps_succeeded=report.succeeded,
        steps_failed=report.failed,
        duration_ms=report.duration_ms,
        updated=report.updated,
        errors=report.errors,
        context={"log_file": report.log_file} if report.log_file else {},
    )
    history.write(entry)
