"""
GitHub release installer: single binaries shipped as release assets.

Subclasses describe where the asset lives (``asset_url``) and, for
archives, which member is the executable (``archive_member``).  The base
class resolves ``latest`` through the GitHub API (cached), downloads,
extracts with ``tarfile`` and installs the binary with mode 0755 into
/usr/local/bin (sudo) or ~/.local/bin.
"""

from __future__ import annotations

import logging
import re
import tarfile
import tempfile
from abc import abstractmethod
from pathlib import Path

from localremote.core.observability.health import HealthReport
from localremote.core.services.version import extract_version, version_lt
from localremote.installers.base import Installer, InstallerError

logger = logging.getLogger(__name__)

SYSTEM_BIN = Path("/usr/local/bin")


class GitHubReleaseInstaller(Installer):
    """Installer for a binary published as a GitHub release asset."""

    lock_method = "github-release"
    repo: str = ""                     # owner/name
    binary: str = ""                   # executable name
    version_args: tuple[str, ...] = ("--version",)
    version_pattern: str | None = None  # regex with one group; default: first X.Y[.Z]
    user_local: bool = False           # ~/.local/bin instead of /usr/local/bin

    @abstractmethod
    def asset_url(self, version: str) -> str:
        """Download URL of the release asset for ``version``."""

    def archive_member(self, version: str) -> str | None:
        """Path of the executable inside the archive (None: raw binary)."""
        return self.binary

    @property
    def install_dir(self) -> Path:
        return self.ctx.local_bin if self.user_local else SYSTEM_BIN

    @property
    def install_path(self) -> Path:
        return self.install_dir / self.binary

    # ── Contract ────────────────────────────────────────────────

    def _executable(self) -> str | None:
        found = self.runner.which(self.binary)
        if found:
            return found
        if self.install_path.is_file():
            return str(self.install_path)
        return None

    def is_installed(self) -> bool:
        return self._executable() is not None

    def get_installed_version(self) -> str | None:
        exe = self._executable()
        if exe is None:
            return None
        result = self.runner.probe([exe, *self.version_args])
        output = result.stdout + "\n" + result.stderr
        if self.version_pattern:
            match = re.search(self.version_pattern, output)
            return match.group(1) if match else None
        return extract_version(output) or None

    def get_desired_version(self) -> str | None:
        """Pinned version, or the latest release; None when offline with no cache."""
        pinned = self.config.desired_version(self.name)
        version = self.ctx.releases.resolve_version(pinned, self.repo)
        if not version:
            logger.warning("Cannot resolve %s release of %s", pinned, self.repo)
        return version

    def plan_change(self, action: str, current: str | None, desired: str | None) -> str | None:
        if current is not None and desired is None:
            return None
        return super().plan_change(action, current, desired)

    def skip_reason(self, current: str | None, desired: str | None) -> str:
        if desired is None:
            return f"already installed ({current}), latest release unknown"
        return super().skip_reason(current, desired)

    def do_install(self, version: str | None) -> None:
        if not version:
            pinned = self.config.desired_version(self.name)
            raise InstallerError(f"Cannot resolve {pinned} release of {self.repo}")

        url = self.asset_url(version)
        sudo = not self.user_local
        with tempfile.TemporaryDirectory(prefix=f"lr-{self.name}-") as tmp:
            tmp_dir = Path(tmp)
            downloaded = self.runner.download(url, tmp_dir / url.rsplit("/", 1)[-1])
            if self.runner.dry_run:
                self.runner.install_file(tmp_dir / self.binary, self.install_path, sudo=sudo)
                return
            source = self._extract(downloaded, tmp_dir, version)
            self.runner.install_file(source, self.install_path, mode=0o755, sudo=sudo)

        logger.info("Installed %s %s to %s", self.name, version, self.install_path)

    def _extract(self, archive: Path, dest_dir: Path, version: str) -> Path:
        member_name = self.archive_member(version)
        if member_name is None:
            return archive

        if not tarfile.is_tarfile(archive):
            raise InstallerError(f"{archive.name} is not a tar archive")

        target = dest_dir / f"{self.binary}.extracted"
        with tarfile.open(archive) as tar:
            member = _find_member(tar, member_name, self.binary)
            if member is None:
                raise InstallerError(f"{member_name} not found in {archive.name}")
            src = tar.extractfile(member)
            if src is None:
                raise InstallerError(f"{member.name} in {archive.name} is not a regular file")
            with src, target.open("wb") as out:
                out.write(src.read())
        return target

    def verify(self, report: HealthReport) -> None:
        if not self.is_installed():
            report.add_fail(self.name, f"{self.binary} not found")
            return
        version = self.get_installed_version()
        if version:
            report.add_pass(self.name, f"{self.binary} {version}")
        else:
            report.add_warn(self.name, f"{self.binary} installed but version could not be determined")

        desired = self.config.desired_version(self.name)
        if version and desired != "latest" and version_lt(version, desired):
            report.add_warn(self.name, f"installed {version}, pinned {desired}")


def _find_member(tar: tarfile.TarFile, name: str, binary: str) -> tarfile.TarInfo | None:
    """Exact member path first, then any regular file named ``binary``."""
    for member in tar.getmembers():
        if member.isfile() and member.name.removeprefix("./") == name:
            return member
    for member in tar.getmembers():
        if member.isfile() and Path(member.name).name == binary:
            return member
    return None
