"""
Installer registry: central dispatch for installer actions.

The registry knows every installer by name, in install order, and
runs actions through them.  It never raises: unknown installers and
exceptions escaping an installer become failure receipts, so one broken
package never stops the others.
"""

from __future__ import annotations

import logging
import time

from localremote.core.engine.runner import CommandError
from localremote.core.models.action import Receipt, utc_now
from localremote.installers.base import InstallContext, Installer, InstallerError
from localremote.installers.mock import MockInstaller

logger = logging.getLogger(__name__)


class InstallerRegistry:
    """Central registry and dispatcher for installers.

    Features:
        - Register installer classes by name (registration order = install order)
        - Mock mode: every package reports itself installed and current,
          nothing touches the system
        - Execute actions and time them
    """

    def __init__(self, mock_mode: bool = False):
        self._installers: dict[str, type[Installer]] = {}
        self._mock_mode = mock_mode

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool) -> None:
        self._mock_mode = enabled

    def register(self, installer_cls: type[Installer]) -> None:
        name = installer_cls.name
        if not name:
            raise ValueError(f"{installer_cls.__name__} has no name")
        if name in self._installers:
            logger.warning("Overwriting existing installer: %s", name)
        self._installers[name] = installer_cls
        logger.debug("Registered installer: %s", name)

    def unregister(self, name: str) -> None:
        self._installers.pop(name, None)

    def get(self, name: str) -> type[Installer] | None:
        return self._installers.get(name)

    def list_installers(self) -> list[str]:
        """All installer names, in install order."""
        return list(self._installers.keys())

    def create(self, name: str, ctx: InstallContext) -> Installer | None:
        cls = self._installers.get(name)
        return cls(ctx) if cls else None

    def execute(self, name: str, action: str, ctx: InstallContext) -> Receipt:
        """Run ``action`` through the named installer. Never raises."""
        started_at, start = utc_now(), time.monotonic()

        if name not in self._installers:
            receipt = Receipt.failure(
                installer=name,
                action=action,
                error=f"No installer registered for '{name}'",
            )
        elif self._mock_mode:
            mock = MockInstaller(ctx, installed="1.0.0", desired="1.0.0")
            mock.name = name
            receipt = mock.run(action)
            receipt.metadata["mock"] = True
        else:
            receipt = self._execute(name, action, ctx)

        return receipt.finish(started_at, start)

    def _execute(self, name: str, action: str, ctx: InstallContext) -> Receipt:
        installer = self._installers[name](ctx)
        try:
            return installer.run(action)
        except (CommandError, InstallerError) as e:
            logger.error("%s %s failed: %s", name, action, e)
            return Receipt.failure(installer=name, action=action, error=str(e))
        except Exception as e:
            logger.exception("Installer %s raised during %s", name, action)
            return Receipt.failure(installer=name, action=action, error=f"Unexpected error: {e}")


def default_registry(mock_mode: bool = False) -> InstallerRegistry:
    """Registry with every built-in installer, in install order."""
    from localremote.installers.apt import AptInstaller, BtopInstaller
    from localremote.installers.binaries import (
        DeltaInstaller,
        LazydockerInstaller,
        LazygitInstaller,
        StarshipInstaller,
        YqInstaller,
        ZellijInstaller,
        ZoxideInstaller,
    )
    from localremote.installers.docker import DockerInstaller
    from localremote.installers.github_cli import GitHubCliInstaller

    registry = InstallerRegistry(mock_mode=mock_mode)
    for cls in (
        AptInstaller,
        DockerInstaller,
        GitHubCliInstaller,
        YqInstaller,
        LazygitInstaller,
        LazydockerInstaller,
        StarshipInstaller,
        DeltaInstaller,
        ZellijInstaller,
        ZoxideInstaller,
        BtopInstaller,
    ):
        registry.register(cls)
    return registry


# Installers updated by update-all; "apt" upgrades the whole base set
UPDATABLE = (
    "apt", "yq", "github-cli", "lazygit", "lazydocker", "starship",
    "delta", "zellij", "zoxide", "btop",
)

# Release binaries installed by install-all after apt/docker/github-cli
BINARIES = (
    "yq", "lazygit", "lazydocker", "starship", "delta", "zellij", "zoxide", "btop",
)
