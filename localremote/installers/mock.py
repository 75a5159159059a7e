"""
Mock installer: in-memory test double for the installer contract.

Holds its "installed" version in memory, so the full install / update /
verify / version lifecycle can be exercised without touching the host.
"""

from __future__ import annotations

from localremote.core.observability.health import HealthReport
from localremote.installers.base import InstallContext, Installer, InstallerError


class MockInstaller(Installer):
    """Configurable fake package.

    ``desired=None`` behaves like an apt-managed package (no target version).
    """

    name = "mock"

    def __init__(
        self,
        ctx: InstallContext,
        installed: str | None = None,
        desired: str | None = "1.0.0",
        fail_install: str | None = None,
        healthy: bool = True,
    ):
        super().__init__(ctx)
        self.installed = installed
        self.desired = desired
        self.fail_install = fail_install
        self.healthy = healthy
        self.calls: list[str] = []

    def is_installed(self) -> bool:
        return self.installed is not None

    def get_installed_version(self) -> str | None:
        return self.installed or None

    def get_desired_version(self) -> str | None:
        return self.desired

    def do_install(self, version: str | None) -> None:
        self.calls.append(f"install:{version}")
        if self.fail_install:
            raise InstallerError(self.fail_install)
        self.runner.run(["mock-install", version or "default"])
        if not self.ctx.dry_run:
            self.installed = version or "1.0.0"

    def do_update(self, version: str | None) -> None:
        self.calls.append(f"update:{version}")
        self.do_install(version)

    def verify(self, report: HealthReport) -> None:
        if not self.is_installed():
            report.add_fail(self.name, "mock not installed")
        elif self.healthy:
            report.add_pass(self.name, f"mock {self.installed}")
        else:
            report.add_fail(self.name, "mock is broken")
