"""
Domain models: Pydantic types for local-remote.

    from localremote.core.models import Receipt, ServerConfig, LockFile
"""

from localremote.core.models.action import InstallerAction, Receipt
from localremote.core.models.config import (
    AptSettings,
    BackupSettings,
    DockerSettings,
    GitSettings,
    PackageSettings,
    ServerConfig,
    TailscaleSettings,
    UserSettings,
    ZshSettings,
)
from localremote.core.models.lock import LockFile, PackageLock

__all__ = [
    "AptSettings",
    "BackupSettings",
    "DockerSettings",
    "GitSettings",
    "InstallerAction",
    "LockFile",
    "PackageLock",
    "PackageSettings",
    "Receipt",
    "ServerConfig",
    "TailscaleSettings",
    "UserSettings",
    "ZshSettings",
]
