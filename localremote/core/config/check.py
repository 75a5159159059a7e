"""
Config check: validate config.yml and report issues.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from localremote.core.config.loader import ConfigError, find_config_file, load_config
from localremote.core.models.config import ServerConfig
from localremote.core.services.version import extract_version

_PERIOD_RE = re.compile(r"^\d+[smhd]$")


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ServerConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "package_overrides": len(self.config.packages) if self.config else 0,
            "apt_packages": len(self.config.apt.packages) if self.config else 0,
        }


def check_config(config_path: Path | None = None, known_installers: list[str] | None = None) -> ConfigCheckResult:
    """Validate the server configuration and report issues.

    Args:
        config_path: Optional explicit path to config.yml.
        known_installers: Installer names packages may refer to
            (default: the built-in registry).

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            result.errors.append("No config.yml found.")
            return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    if known_installers is None:
        from localremote.installers.registry import default_registry

        known_installers = default_registry().list_installers()

    # Identity
    if not config.user.name:
        result.warnings.append("user.name is not set; git will use the login name.")
    if not config.user.email:
        result.warnings.append("user.email is not set; git will use user@hostname.")

    # apt
    if not config.apt.packages:
        result.warnings.append("apt.packages is empty; no base packages will be installed.")
    dupes = {p for p in config.apt.packages if config.apt.packages.count(p) > 1}
    if dupes:
        result.errors.append(f"Duplicate apt packages: {', '.join(sorted(dupes))}")

    # Package pins
    for name, settings in sorted(config.packages.items()):
        if name not in known_installers:
            result.warnings.append(f"Unknown package '{name}' (known: {', '.join(known_installers)})")
        version = settings.version
        if version and version != "latest" and not extract_version(version):
            result.errors.append(f"Package '{name}': version '{version}' is not 'latest' or X.Y[.Z]")

    # Tailscale
    if config.tailscale.ssh_check_mode and not _PERIOD_RE.match(config.tailscale.ssh_check_period):
        result.warnings.append(
            f"tailscale.ssh_check_period '{config.tailscale.ssh_check_period}' should look like 12h"
        )

    result.valid = len(result.errors) == 0
    return result
