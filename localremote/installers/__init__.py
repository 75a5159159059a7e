"""Installers: one idempotent installer per managed package.

Public re-exports for convenient access.
"""

from localremote.installers.base import InstallContext, Installer, InstallerError
from localremote.installers.mock import MockInstaller
from localremote.installers.registry import InstallerRegistry, default_registry

__all__ = [
    "InstallContext",
    "Installer",
    "InstallerError",
    "InstallerRegistry",
    "MockInstaller",
    "default_registry",
]
