"""
Health checks: pass / warn / fail verification results.

Installers and configuration services add checks to a shared
HealthReport; the CLI prints it and exits non-zero when anything failed.
Warnings never fail a run (e.g. "log out and back in for the docker
group to apply").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from localremote.core.services import system
from localremote.core.services.version import extract_version

if TYPE_CHECKING:
    from localremote.core.engine.runner import CommandRunner

logger = logging.getLogger(__name__)

CheckStatus = Literal["pass", "warn", "fail"]


@dataclass
class HealthCheck:
    """One verification result."""

    component: str
    status: CheckStatus
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "status": self.status,
            "message": self.message,
        }


@dataclass
class HealthReport:
    """Aggregate of health checks."""

    timestamp: str = ""
    checks: list[HealthCheck] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def add(self, component: str, status: CheckStatus, message: str = "") -> HealthCheck:
        check = HealthCheck(component=component, status=status, message=message)
        self.checks.append(check)
        log = logger.warning if status == "fail" else logger.debug
        log("health %s %s: %s", status, component, message)
        return check

    def add_pass(self, component: str, message: str = "") -> HealthCheck:
        return self.add(component, "pass", message)

    def add_warn(self, component: str, message: str = "") -> HealthCheck:
        return self.add(component, "warn", message)

    def add_fail(self, component: str, message: str = "") -> HealthCheck:
        return self.add(component, "fail", message)

    def merge(self, other: HealthReport) -> None:
        self.checks.extend(other.checks)

    @property
    def passed(self) -> list[HealthCheck]:
        return [c for c in self.checks if c.status == "pass"]

    @property
    def warnings(self) -> list[HealthCheck]:
        return [c for c in self.checks if c.status == "warn"]

    @property
    def failed(self) -> list[HealthCheck]:
        return [c for c in self.checks if c.status == "fail"]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def status(self) -> str:
        if self.failed:
            return "unhealthy"
        if self.warnings:
            return "degraded"
        return "healthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "passed": len(self.passed),
            "warnings": len(self.warnings),
            "failed": len(self.failed),
            "checks": [c.to_dict() for c in self.checks],
        }


# ── Common probes ───────────────────────────────────────────────


def check_command(report: HealthReport, runner: CommandRunner, cmd: str, name: str | None = None) -> bool:
    """Pass if ``cmd`` is on PATH."""
    name = name or cmd
    path = runner.which(cmd)
    if path:
        report.add_pass(name, f"{cmd} found at {path}")
        return True
    report.add_fail(name, f"{cmd} not found")
    return False


def check_command_version(
    report: HealthReport,
    runner: CommandRunner,
    cmd: str,
    name: str | None = None,
    version_args: tuple[str, ...] = ("--version",),
) -> str | None:
    """Pass with the version if ``cmd`` runs; warn if the version is unparsable."""
    name = name or cmd
    if not runner.which(cmd):
        report.add_fail(name, f"{cmd} not found")
        return None

    result = runner.probe([cmd, *version_args])
    version = extract_version(result.stdout + "\n" + result.stderr)
    if version:
        report.add_pass(name, f"{cmd} {version}")
        return version
    report.add_warn(name, f"{cmd} installed but version could not be determined")
    return None


def check_path(report: HealthReport, path: Path, name: str | None = None, *, directory: bool = False) -> bool:
    """Pass if ``path`` exists as a file (or a directory with ``directory=True``)."""
    name = name or path.name
    present = path.is_dir() if directory else path.is_file()
    if present:
        report.add_pass(name, f"{path} exists")
        return True
    report.add_fail(name, f"{path} not found")
    return False


def check_service_running(report: HealthReport, runner: CommandRunner, service: str) -> bool:
    """Pass if systemd reports the unit active; warn without systemd."""
    name = f"service:{service}"
    if not runner.which("systemctl"):
        report.add_warn(name, "systemctl not available")
        return False
    result = runner.probe(["systemctl", "is-active", "--quiet", service])
    if result.ok:
        report.add_pass(name, f"{service} is running")
        return True
    report.add_fail(name, f"{service} is not running")
    return False


def check_user_in_group(report: HealthReport, group: str, user: str | None = None) -> bool:
    """Pass if the user is in ``group``; warn otherwise (needs a re-login)."""
    user = user or system.current_user()
    name = f"group:{group}"
    if group in system.user_groups(user):
        report.add_pass(name, f"{user} is in the {group} group")
        return True
    report.add_warn(name, f"{user} is not in the {group} group (log out and back in after adding)")
    return False
