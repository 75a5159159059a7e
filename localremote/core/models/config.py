"""
Server configuration model: loaded from config.yml.

Every section has defaults, so an empty (or missing) config file yields a
fully usable configuration: install everything at its latest version.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_APT_PACKAGES = [
    "curl", "wget", "git", "zsh", "tree", "jq", "htop", "unzip", "build-essential",
]

DEFAULT_BACKUP_PATHS = [
    "~/.config/shell",
    "~/.gitconfig",
    "~/.zshrc",
    "~/.zsh_custom_config",
]


class UserSettings(BaseModel):
    """Identity used for git and generated files."""

    name: str = ""
    email: str = ""


class AptSettings(BaseModel):
    packages: list[str] = Field(default_factory=lambda: list(DEFAULT_APT_PACKAGES))


class PackageSettings(BaseModel):
    """Per-package switch and version pin."""

    enabled: bool = True
    version: str = "latest"


class DockerSettings(BaseModel):
    enabled: bool = True
    add_to_group: bool = True
    start_on_boot: bool = True


class GitSettings(BaseModel):
    default_branch: str = "main"
    push_auto_setup_remote: bool = True
    pull_rebase: bool = True
    pager: str = "less"            # less, delta
    url_rewrite_github: bool = False


class ZshSettings(BaseModel):
    theme: str = "robbyrussell"
    plugins: list[str] = Field(default_factory=lambda: ["git"])


class TailscaleSettings(BaseModel):
    ssh_enabled: bool = True
    advertise_exit_node: bool = True
    ssh_check_mode: bool = False
    ssh_check_period: str = "12h"
    additional_flags: str = ""


class BackupSettings(BaseModel):
    paths: list[str] = Field(default_factory=lambda: list(DEFAULT_BACKUP_PATHS))
    max_backups: int = Field(default=5, ge=1)
    min_age_seconds: int = Field(default=3600, ge=0)

    def expanded_paths(self, home: Path) -> list[Path]:
        """Backup paths with ``~`` resolved against ``home``."""
        result = []
        for raw in self.paths:
            if raw == "~" or raw.startswith("~/"):
                result.append(home / raw[2:])
            else:
                result.append(Path(raw))
        return result


class ServerConfig(BaseModel):
    """Root configuration: what to install and how to configure it."""

    version: int = 1

    user: UserSettings = Field(default_factory=UserSettings)
    apt: AptSettings = Field(default_factory=AptSettings)
    packages: dict[str, PackageSettings] = Field(default_factory=dict)
    docker: DockerSettings = Field(default_factory=DockerSettings)
    git: GitSettings = Field(default_factory=GitSettings)
    zsh: ZshSettings = Field(default_factory=ZshSettings)
    tailscale: TailscaleSettings = Field(default_factory=TailscaleSettings)
    backup: BackupSettings = Field(default_factory=BackupSettings)

    def package(self, name: str) -> PackageSettings:
        """Settings for a package, defaults when not configured."""
        return self.packages.get(name) or PackageSettings()

    def is_enabled(self, name: str) -> bool:
        if name == "docker":
            return self.docker.enabled and self.package(name).enabled
        return self.package(name).enabled

    def desired_version(self, name: str) -> str:
        return self.package(name).version or "latest"
