"""
Post-install: make the Nix zsh the login shell, then set up Tailscale.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import ServerConfig
from localremote.core.services import system
from localremote.core.services.tailscale import TailscaleResult, setup_tailscale

logger = logging.getLogger(__name__)

ETC_SHELLS = Path("/etc/shells")


class PostInstallError(Exception):
    """Raised when the login shell cannot be switched."""


@dataclass
class PostInstallResult:
    zsh_path: str = ""
    registered_shell: bool = False
    changed_shell: bool = False
    tailscale: TailscaleResult | None = None
    messages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "zsh_path": self.zsh_path,
            "registered_shell": self.registered_shell,
            "changed_shell": self.changed_shell,
            "tailscale": self.tailscale.to_dict() if self.tailscale else None,
        }


def register_shell(runner: CommandRunner, shell: Path, shells_file: Path = ETC_SHELLS) -> bool:
    """Append ``shell`` to /etc/shells if missing."""
    registered = shells_file.read_text(encoding="utf-8").splitlines() if shells_file.is_file() else []
    if str(shell) in (line.strip() for line in registered):
        return False
    runner.append_file(shells_file, f"{shell}\n", sudo=True)
    logger.info("Added %s to %s", shell, shells_file)
    return True


def change_login_shell(runner: CommandRunner, shell: Path, current: str | None = None) -> bool:
    current = system.login_shell() if current is None else current
    if current == str(shell):
        logger.info("Default shell is already %s", shell)
        return False
    runner.sudo(["chsh", "-s", str(shell), system.current_user()])
    logger.info("Default shell changed to %s", shell)
    return True


def post_install(
    runner: CommandRunner,
    config: ServerConfig,
    home: Path,
    confirm: Callable[[str], bool] | None = None,
    shells_file: Path = ETC_SHELLS,
) -> PostInstallResult:
    """Switch to the Home Manager zsh and run Tailscale setup.

    Raises:
        PostInstallError: ~/.nix-profile/bin/zsh does not exist.
    """
    zsh = home / ".nix-profile" / "bin" / "zsh"
    if not zsh.is_file():
        raise PostInstallError(f"zsh not found at {zsh} (run: local-remote nix setup)")

    result = PostInstallResult(zsh_path=str(zsh))
    result.registered_shell = register_shell(runner, zsh, shells_file)
    result.changed_shell = change_login_shell(runner, zsh)
    result.tailscale = setup_tailscale(runner, config.tailscale, home, confirm=confirm)
    result.messages.append("Log out and back in for docker group membership and the new shell")
    return result
