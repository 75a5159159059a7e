"""
apt installers: the base package set and single apt-managed tools.

apt decides versions itself, so these installers have no desired
version: ``install`` only fills in what is missing and ``update`` lets
apt upgrade in place.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from localremote.core.engine.runner import CommandRunner
from localremote.core.observability.health import HealthReport, check_command_version
from localremote.core.services import system
from localremote.core.services.version import extract_version
from localremote.installers.base import Installer

logger = logging.getLogger(__name__)


def dpkg_installed(runner: CommandRunner, package: str) -> bool:
    """Whether dpkg reports ``package`` as installed."""
    result = runner.probe(["dpkg-query", "-W", "-f=${Status}", package])
    return result.ok and "install ok installed" in result.stdout


def dpkg_version(runner: CommandRunner, package: str) -> str | None:
    result = runner.probe(["dpkg-query", "-W", "-f=${Version}", package])
    if not result.ok:
        return None
    return extract_version(result.stdout) or None


class AptInstaller(Installer):
    """The configured base package list (curl, git, zsh, jq, ...)."""

    name = "apt"
    lock_method = "apt"

    @property
    def packages(self) -> list[str]:
        return self.config.apt.packages

    def missing_packages(self) -> list[str]:
        return [p for p in self.packages if not dpkg_installed(self.runner, p)]

    def is_installed(self) -> bool:
        return not self.missing_packages()

    def get_installed_version(self) -> str | None:
        return None

    def current_version(self) -> str | None:
        if not self.is_installed():
            return None
        return f"{len(self.packages)} packages"

    def do_install(self, version: str | None) -> None:
        missing = self.missing_packages()
        if not missing:
            return
        logger.info("Installing apt packages: %s", " ".join(missing))
        self.runner.apt("update", "-qq")
        self.runner.apt("install", "-y", "-qq", *missing)

    def do_update(self, version: str | None) -> None:
        self.runner.apt("update", "-qq")
        self.runner.apt("upgrade", "-y", "-qq")

    def verify(self, report: HealthReport) -> None:
        for package in self.packages:
            if dpkg_installed(self.runner, package):
                report.add_pass(f"apt:{package}", f"{package} installed")
            else:
                report.add_fail(f"apt:{package}", f"{package} not installed")


class AptPackageInstaller(Installer):
    """A single tool installed from the distribution's apt repositories."""

    lock_method = "apt"
    package: str = ""
    command: str = ""

    def is_installed(self) -> bool:
        return self.runner.which(self.command) is not None

    def get_installed_version(self) -> str | None:
        return dpkg_version(self.runner, self.package)

    def do_install(self, version: str | None) -> None:
        self.runner.apt("update", "-qq")
        self.runner.apt("install", "-y", "-qq", self.package)

    def do_update(self, version: str | None) -> None:
        self.runner.apt("update", "-qq")
        self.runner.apt("install", "--only-upgrade", "-y", "-qq", self.package)

    def verify(self, report: HealthReport) -> None:
        check_command_version(report, self.runner, self.command, name=self.name)


class BtopInstaller(AptPackageInstaller):
    name = "btop"
    package = "btop"
    command = "btop"


def add_apt_source(
    runner: CommandRunner,
    *,
    key_url: str,
    keyring: Path,
    list_file: Path,
    source_line: str,
    dearmor: bool = False,
) -> None:
    """Add a third-party apt repository with its signing key, then refresh.

    ``source_line`` may contain ``{arch}`` (dpkg architecture) and
    ``{keyring}`` placeholders.
    """
    runner.run(["install", "-m", "0755", "-d", str(keyring.parent)], sudo=True)

    with tempfile.TemporaryDirectory(prefix="lr-key-") as tmp:
        key_file = runner.download(key_url, Path(tmp) / "key")
        if dearmor:
            runner.run(["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring), str(key_file)], sudo=True)
            runner.run(["chmod", "a+r", str(keyring)], sudo=True)
        else:
            runner.install_file(key_file, keyring, mode=0o644, sudo=True)

    line = source_line.format(arch=system.get_arch(), keyring=keyring)
    runner.write_file(list_file, line + "\n", sudo=True)
    runner.apt("update", "-qq")
    logger.info("Added apt source %s", list_file)
