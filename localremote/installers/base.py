"""
Installer base: the idempotent installer contract.

Every package is managed by an Installer subclass implementing:

    is_installed()           is the package present?
    get_installed_version()  what version is present (None if unknown)?
    get_desired_version()    what version should be present (None if the
                             package manager decides, e.g. apt)?
    do_install(version)      install (or replace with) that version
    do_update(version)       upgrade in place (default: do_install)
    verify(report)           add health checks for the package
    shell_fragment()         optional ~/.config/shell/NN-name.sh content

``run(action)`` ties these together so that repeated invocations
converge on the same installed state:

    install / update → (maybe) install → lock → shell config → verify
    verify           → health checks only
    version          → installed version

To add a package:
    1. Subclass Installer (or GitHubReleaseInstaller / AptPackageInstaller)
    2. Implement the contract
    3. Register it in ``default_registry()``
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from localremote.core import context
from localremote.core.engine.runner import CommandRunner
from localremote.core.models.action import Receipt
from localremote.core.models.config import ServerConfig
from localremote.core.observability.health import HealthReport
from localremote.core.persistence.lock_file import update_lock
from localremote.core.services.version import GitHubReleases, needs_update

logger = logging.getLogger(__name__)


class InstallerError(Exception):
    """Raised by installers when a package cannot be installed."""


@dataclass
class InstallContext:
    """Everything an installer needs: config, runner, release lookup, paths."""

    config: ServerConfig
    runner: CommandRunner
    releases: GitHubReleases
    home: Path
    lock_path: Path

    @classmethod
    def create(cls, config: ServerConfig, runner: CommandRunner) -> InstallContext:
        """Context wired to the process-wide state and cache directories."""
        return cls(
            config=config,
            runner=runner,
            releases=GitHubReleases(context.get_cache_dir() / "github-api"),
            home=context.home_dir(),
            lock_path=context.lock_path(),
        )

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    @property
    def shell_dir(self) -> Path:
        """Directory of shell fragments sourced by ~/.zsh_custom_config."""
        return self.home / ".config" / "shell"

    @property
    def local_bin(self) -> Path:
        return self.home / ".local" / "bin"


class Installer(ABC):
    """Abstract base class for all package installers."""

    name: str = ""
    lock_method: str = ""
    shell_fragment_name: str | None = None  # e.g. "40-docker.sh"

    def __init__(self, ctx: InstallContext):
        self.ctx = ctx

    @property
    def runner(self) -> CommandRunner:
        return self.ctx.runner

    @property
    def config(self) -> ServerConfig:
        return self.ctx.config

    @property
    def enabled(self) -> bool:
        return self.config.is_enabled(self.name)

    # ── Contract ────────────────────────────────────────────────

    @abstractmethod
    def is_installed(self) -> bool:
        """Whether the package is present. Fast, read-only."""

    @abstractmethod
    def get_installed_version(self) -> str | None:
        """Installed version, or None if it cannot be determined."""

    def get_desired_version(self) -> str | None:
        """Target version, or None when the package manager decides."""
        return None

    @abstractmethod
    def do_install(self, version: str | None) -> None:
        """Install the package. Raises on failure."""

    def do_update(self, version: str | None) -> None:
        """Upgrade an installed package. Defaults to a fresh install."""
        self.do_install(version)

    @abstractmethod
    def verify(self, report: HealthReport) -> None:
        """Add health checks for this package to ``report``."""

    def shell_fragment(self) -> str | None:
        """Content of this package's shell fragment, if it has one."""
        return None

    def create_shell_config(self) -> Path | None:
        """Write the shell fragment to ~/.config/shell/. Idempotent."""
        content = self.shell_fragment()
        if content is None or not self.shell_fragment_name:
            return None
        path = self.ctx.shell_dir / self.shell_fragment_name
        if path.is_file() and path.read_text(encoding="utf-8") == content:
            return path
        self.runner.write_file(path, content)
        logger.info("Shell config written: %s", path)
        return path

    # ── Lifecycle ───────────────────────────────────────────────

    def current_version(self) -> str | None:
        """Installed version; ``unknown`` if present but unparsable; None if absent."""
        if not self.is_installed():
            return None
        return self.get_installed_version() or "unknown"

    def plan_change(self, action: str, current: str | None, desired: str | None) -> str | None:
        """Decide what ``action`` has to do: "install", "update" or None."""
        if current is None:
            return "install"
        if desired is None:
            return "update" if action == "update" else None
        return "update" if needs_update(current, desired) else None

    def skip_reason(self, current: str | None, desired: str | None) -> str:
        return f"up to date ({current})"

    def run(self, action: str) -> Receipt:
        """Execute an installer action. May raise; the registry wraps errors."""
        if not self.enabled:
            return Receipt.skip(self.name, action, reason="disabled in config")

        if action == "version":
            current = self.current_version()
            if current is None:
                return Receipt.failure(self.name, action, error=f"{self.name} is not installed")
            return Receipt.success(self.name, action, output=current, metadata={"version": current})

        if action == "verify":
            return self._verify_receipt(action, metadata={})

        if action not in ("install", "update"):
            return Receipt.failure(self.name, action, error=f"Unknown action: {action}")

        planned_before = len(self.runner.planned)
        current = self.current_version()
        desired = self.get_desired_version()
        change = self.plan_change(action, current, desired)
        metadata = {"from_version": current, "to_version": desired, "changed": False}

        if change is None:
            logger.info("%s is up to date (%s)", self.name, current)
            self.create_shell_config()
            return Receipt.skip(
                self.name, action, reason=self.skip_reason(current, desired), metadata=metadata
            )

        logger.info("%s: %s %s → %s", self.name, change, current or "-", desired or "latest")
        if change == "install":
            self.do_install(desired)
        else:
            self.do_update(desired)
        metadata["changed"] = True

        if self.ctx.dry_run:
            metadata["dry_run"] = True
            metadata["planned"] = self.runner.planned[planned_before:]
            self.create_shell_config()
            return Receipt.success(
                self.name, action, output=f"[dry-run] would {change} {self.name}", metadata=metadata
            )

        installed = self.get_installed_version() or desired
        metadata["to_version"] = installed
        if installed:
            update_lock(self.name, installed, self.ctx.lock_path, method=self.lock_method)
        self.create_shell_config()

        verb = "installed" if change == "install" else "updated"
        output = f"{verb} {self.name} {installed or ''}".strip()
        return self._verify_receipt(action, metadata=metadata, output=output)

    def _verify_receipt(self, action: str, metadata: dict, output: str = "") -> Receipt:
        report = HealthReport()
        self.verify(report)
        metadata["checks"] = [c.to_dict() for c in report.checks]
        if report.failed:
            reasons = "; ".join(c.message for c in report.failed)
            return Receipt.failure(
                self.name, action, error=f"verification failed: {reasons}", metadata=metadata
            )
        return Receipt.success(
            self.name, action, output=output or f"{self.name} verified", metadata=metadata
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
