"""
Tailscale: daemon setup and authentication.

Flow: detect binaries (Nix profile first) → make sure tailscaled runs
under systemd → ``tailscale up`` with the configured flags → verify.
Inside a Docker container there is no systemd, so setup is skipped.
"""

from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import TailscaleSettings
from localremote.core.observability.health import HealthReport
from localremote.core.services import system

logger = logging.getLogger(__name__)

LOGGED_OUT_MARKERS = ("Logged out", "not logged in", "NeedsLogin")


class TailscaleError(Exception):
    """Raised when Tailscale cannot be set up."""


@dataclass
class TailscaleBinaries:
    tailscale: str
    tailscaled: str
    nix_managed: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class TailscaleResult:
    skipped: bool = False
    reason: str = ""
    daemon_started: bool = False
    authenticated: bool = False
    command: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "reason": self.reason,
            "daemon_started": self.daemon_started,
            "authenticated": self.authenticated,
            "command": shlex.join(self.command) if self.command else "",
        }


# ── Binaries ────────────────────────────────────────────────────


def detect_binaries(runner: CommandRunner, home: Path) -> TailscaleBinaries:
    """Locate tailscale/tailscaled, preferring the Nix profile.

    Raises:
        TailscaleError: tailscale or tailscaled cannot be found.
    """
    nix_bin = home / ".nix-profile" / "bin"
    nix_tailscale = nix_bin / "tailscale"

    if nix_tailscale.is_file():
        binaries = TailscaleBinaries(str(nix_tailscale), str(nix_bin / "tailscaled"), nix_managed=True)
        on_path = runner.which("tailscale")
        if on_path and on_path != binaries.tailscale:
            binaries.warnings.append(
                f"'tailscale' on PATH is {on_path}, using {binaries.tailscale}; put {nix_bin} first in PATH"
            )
    else:
        on_path = runner.which("tailscale")
        if on_path is None:
            raise TailscaleError("tailscale not found (install it with Home Manager first)")
        binaries = TailscaleBinaries(on_path, runner.which("tailscaled") or "")
        binaries.warnings.append(f"Using system tailscale at {on_path} instead of the Nix-managed one")

    if not binaries.tailscaled or not Path(binaries.tailscaled).is_file():
        raise TailscaleError("tailscaled daemon binary not found")

    for warning in binaries.warnings:
        logger.warning(warning)
    return binaries


def build_up_command(tailscale_bin: str, settings: TailscaleSettings) -> list[str]:
    cmd = [tailscale_bin, "up"]
    if settings.ssh_enabled:
        cmd.append("--ssh")
    if settings.advertise_exit_node:
        cmd.append("--advertise-exit-node")
    if settings.additional_flags:
        cmd.extend(shlex.split(settings.additional_flags))
    return cmd


# ── Status ──────────────────────────────────────────────────────


def parse_logged_in(status_output: str) -> bool:
    """False when ``tailscale status`` output says the node needs login."""
    return not any(marker in status_output for marker in LOGGED_OUT_MARKERS)


def is_authenticated(runner: CommandRunner, tailscale_bin: str = "tailscale") -> bool:
    result = runner.probe([tailscale_bin, "status"])
    return result.ok and parse_logged_in(result.stdout + result.stderr)


def status_text(runner: CommandRunner, tailscale_bin: str = "tailscale", lines: int = 5) -> str:
    result = runner.probe([tailscale_bin, "status"])
    return "\n".join((result.stdout or result.stderr).splitlines()[:lines])


def daemon_running(runner: CommandRunner) -> bool:
    return runner.probe(["systemctl", "is-active", "--quiet", "tailscaled"]).ok


def ensure_daemon(runner: CommandRunner, tailscaled_bin: str) -> bool:
    """Start tailscaled, installing its systemd unit when needed.

    Returns:
        False when the daemon was already running.
    """
    if daemon_running(runner):
        logger.info("tailscaled already running")
        return False

    unit = runner.probe(["systemctl", "list-unit-files", "tailscaled.service"])
    if unit.ok and "tailscaled.service" in unit.stdout:
        runner.systemctl("start", "tailscaled")
    else:
        runner.sudo([tailscaled_bin, "install-systemd"])
        runner.systemctl("enable", "--now", "tailscaled")

    if not runner.dry_run:
        time.sleep(2)
        if not daemon_running(runner):
            raise TailscaleError("tailscaled failed to start (see: sudo journalctl -u tailscaled -n 50)")
    logger.info("tailscaled started")
    return True


# ── Setup / verify ──────────────────────────────────────────────


def setup_tailscale(
    runner: CommandRunner,
    settings: TailscaleSettings,
    home: Path,
    confirm: Callable[[str], bool] | None = None,
) -> TailscaleResult:
    """Bring this machine onto the tailnet.

    ``confirm`` is asked before ``tailscale up`` (which may trigger a
    browser login); None means proceed without asking.
    """
    if system.is_docker():
        logger.info("Running inside Docker, skipping Tailscale setup")
        return TailscaleResult(skipped=True, reason="running inside Docker")

    binaries = detect_binaries(runner, home)
    result = TailscaleResult()
    result.daemon_started = ensure_daemon(runner, binaries.tailscaled)
    result.command = build_up_command(binaries.tailscale, settings)

    already = is_authenticated(runner, binaries.tailscale)
    question = (
        "Re-apply Tailscale configuration? This may trigger re-authentication."
        if already
        else "Authenticate with Tailscale now?"
    )
    if confirm is not None and not confirm(question):
        result.skipped = True
        result.reason = "cancelled"
        result.authenticated = already
        return result

    # interactive: tailscale prints the login URL
    runner.sudo(result.command, timeout=900)
    result.authenticated = runner.dry_run or is_authenticated(runner, binaries.tailscale)
    logger.info("Tailscale configured: %s", shlex.join(result.command))
    return result


def verify_tailscale(runner: CommandRunner, home: Path, report: HealthReport | None = None) -> HealthReport:
    report = report or HealthReport()
    if system.is_docker():
        report.add_pass("tailscale", "skipped inside Docker")
        return report

    try:
        binaries = detect_binaries(runner, home)
    except TailscaleError as e:
        report.add_fail("tailscale", str(e))
        return report
    report.add_pass("tailscale", binaries.tailscale)

    if daemon_running(runner):
        report.add_pass("tailscaled", "running")
    else:
        report.add_fail("tailscaled", "daemon is not running")

    if is_authenticated(runner, binaries.tailscale):
        report.add_pass("tailscale:auth", "authenticated")
    else:
        report.add_warn("tailscale:auth", "not authenticated (run: local-remote tailscale setup)")
    return report
