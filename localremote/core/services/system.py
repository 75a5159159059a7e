"""
System detection: read-only facts about the host.

Architecture naming differs per project (Debian says ``amd64``, most Go
release pipelines say ``x86_64``, Rust targets say ``aarch64``), so the
mappings live here in one place.
"""

from __future__ import annotations

import getpass
import grp
import logging
import os
import platform
import pwd
import socket
from pathlib import Path

logger = logging.getLogger(__name__)

# uname -m → Debian/dpkg architecture
_DEB_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armv7",
}

# uname -m → GitHub release asset naming (goreleaser style)
_GITHUB_ARCH = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

# uname -m → Rust target triple prefix
_RUST_ARCH = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


class UnsupportedArchitecture(Exception):
    """No release artifact exists for this machine architecture."""


def machine() -> str:
    """Raw machine architecture (``uname -m``)."""
    return platform.machine().lower()


def _lookup(table: dict[str, str], arch: str | None, kind: str) -> str:
    arch = (arch or machine()).lower()
    try:
        return table[arch]
    except KeyError:
        raise UnsupportedArchitecture(f"Unsupported architecture for {kind}: {arch}") from None


def get_arch(arch: str | None = None) -> str:
    """Debian architecture name: amd64, arm64, armv7."""
    return _lookup(_DEB_ARCH, arch, "dpkg")


def get_github_arch(arch: str | None = None) -> str:
    """Architecture as used by goreleaser-built assets: x86_64, arm64."""
    return _lookup(_GITHUB_ARCH, arch, "release assets")


def get_rust_arch(arch: str | None = None) -> str:
    """Architecture prefix of Rust target triples: x86_64, aarch64."""
    return _lookup(_RUST_ARCH, arch, "rust targets")


def read_os_release(path: Path = Path("/etc/os-release")) -> dict[str, str]:
    """Parse /etc/os-release into a dict (empty if unreadable)."""
    info: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return info
    for line in content.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        info[key.strip()] = value.strip().strip('"').strip("'")
    return info


def is_ubuntu(os_release: dict[str, str] | None = None) -> bool:
    info = read_os_release() if os_release is None else os_release
    return info.get("ID") == "ubuntu"


def os_description(os_release: dict[str, str] | None = None) -> str:
    info = read_os_release() if os_release is None else os_release
    return info.get("PRETTY_NAME") or f"{platform.system()} {platform.release()}"


def is_root() -> bool:
    return os.geteuid() == 0


def is_docker(
    dockerenv: Path = Path("/.dockerenv"),
    cgroup: Path = Path("/proc/1/cgroup"),
) -> bool:
    """Whether we are running inside a Docker container."""
    if dockerenv.exists():
        return True
    try:
        return "docker" in cgroup.read_text(encoding="utf-8")
    except OSError:
        return False


def is_cloud_init() -> bool:
    """``CLOUD_INIT=true`` marks a first-boot run from cloud-init."""
    return os.environ.get("CLOUD_INIT", "").lower() == "true"


def current_user() -> str:
    return os.environ.get("USER") or getpass.getuser()


def hostname() -> str:
    return socket.gethostname()


def user_groups(user: str | None = None) -> list[str]:
    """Group names the user belongs to (primary group included)."""
    user = user or current_user()
    names = {g.gr_name for g in grp.getgrall() if user in g.gr_mem}
    try:
        primary = pwd.getpwnam(user).pw_gid
        names.add(grp.getgrgid(primary).gr_name)
    except KeyError:
        pass
    return sorted(names)


def login_shell(user: str | None = None) -> str:
    """The user's login shell from the passwd database."""
    try:
        return pwd.getpwnam(user or current_user()).pw_shell
    except KeyError:
        return os.environ.get("SHELL", "")
