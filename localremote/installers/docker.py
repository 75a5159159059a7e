"""
Docker installer: Docker Engine from Docker's official apt repository.

Besides the packages, installation adds the user to the ``docker``
group and enables the daemons at boot (both configurable).  Group
membership only applies to new login sessions, so verification reports
it as a warning, never a failure.
"""

from __future__ import annotations

import logging
from pathlib import Path

from localremote.core.observability.health import (
    HealthReport,
    check_command_version,
    check_user_in_group,
)
from localremote.core.services import system
from localremote.installers.apt import add_apt_source, dpkg_version
from localremote.installers.base import Installer, InstallerError

logger = logging.getLogger(__name__)

DOCKER_KEY_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_KEYRING = Path("/etc/apt/keyrings/docker.gpg")
DOCKER_LIST = Path("/etc/apt/sources.list.d/docker.list")

DOCKER_PACKAGES = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
]
UPGRADE_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io"]

SHELL_FRAGMENT = """\
# Docker aliases (managed by local-remote)
alias d='docker'
alias dc='docker compose'
alias dps='docker ps --format "table {{.Names}}\\t{{.Status}}\\t{{.Ports}}"'
alias dimg='docker images'
alias dlogs='docker logs -f'
alias dexec='docker exec -it'
"""


class DockerInstaller(Installer):
    name = "docker"
    lock_method = "apt-repo"
    shell_fragment_name = "40-docker.sh"

    def is_installed(self) -> bool:
        return self.runner.which("docker") is not None

    def get_installed_version(self) -> str | None:
        return dpkg_version(self.runner, "docker-ce")

    def _add_repository(self) -> None:
        if DOCKER_LIST.is_file():
            logger.debug("Docker apt source already present")
            return
        codename = system.read_os_release().get("VERSION_CODENAME")
        if not codename:
            raise InstallerError("Cannot determine Ubuntu codename from /etc/os-release")
        add_apt_source(
            self.runner,
            key_url=DOCKER_KEY_URL,
            keyring=DOCKER_KEYRING,
            list_file=DOCKER_LIST,
            source_line=(
                "deb [arch={arch} signed-by={keyring}] "
                f"https://download.docker.com/linux/ubuntu {codename} stable"
            ),
            dearmor=True,
        )

    def do_install(self, version: str | None) -> None:
        self.runner.apt("update", "-qq")
        self.runner.apt("install", "-y", "-qq", "ca-certificates", "curl", "gnupg")
        self._add_repository()
        self.runner.apt("install", "-y", "-qq", *DOCKER_PACKAGES)
        self._post_install()

    def do_update(self, version: str | None) -> None:
        self.runner.apt("update", "-qq")
        self.runner.apt("install", "--only-upgrade", "-y", "-qq", *UPGRADE_PACKAGES)

    def _post_install(self) -> None:
        settings = self.config.docker
        user = system.current_user()

        if settings.add_to_group and user != "root":
            self.runner.run(["usermod", "-aG", "docker", user], sudo=True)
            logger.info("Added %s to the docker group (re-login required)", user)

        if settings.start_on_boot and not system.is_docker():
            self.runner.systemctl("enable", "docker")
            self.runner.systemctl("enable", "containerd")
            self.runner.systemctl("start", "docker")

    def shell_fragment(self) -> str | None:
        return SHELL_FRAGMENT

    def verify(self, report: HealthReport) -> None:
        check_command_version(report, self.runner, "docker", name="docker")
        if self.runner.which("docker") is None:
            return

        if self.config.docker.add_to_group:
            check_user_in_group(report, "docker")

        if system.is_docker():
            report.add_pass("service:docker", "running inside a container; service check skipped")
            return
        if self.runner.probe(["systemctl", "is-active", "--quiet", "docker"]).ok:
            report.add_pass("service:docker", "docker is running")
        else:
            report.add_warn("service:docker", "docker daemon is not running")
