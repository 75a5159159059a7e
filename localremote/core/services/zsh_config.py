"""
Zsh configuration: oh-my-zsh, theme/plugins, and the custom config hook.

``.zshrc`` stays owned by oh-my-zsh; we only rewrite its ``ZSH_THEME=``
and ``plugins=(...)`` lines and append one line sourcing
``~/.zsh_custom_config`` (see shell_config).
"""

from __future__ import annotations

import logging
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import ServerConfig
from localremote.core.observability.health import HealthReport, check_command, check_path
from localremote.core.services.backup import backup_file

logger = logging.getLogger(__name__)

OMZ_INSTALL_URL = "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"

SOURCE_MARKER = ".zsh_custom_config"
SOURCE_BLOCK = (
    "\n# Source custom shell config\n"
    "[[ -f ~/.zsh_custom_config ]] && source ~/.zsh_custom_config\n"
)

_THEME_RE = re.compile(r"^ZSH_THEME=.*$", re.MULTILINE)
_PLUGINS_RE = re.compile(r"^plugins=\([^)]*\)", re.MULTILINE)


class ZshConfigError(Exception):
    """Raised when zsh cannot be configured."""


@dataclass
class ZshResult:
    omz_installed: bool = False
    zshrc_changed: bool = False
    backup: str | None = None

    def to_dict(self) -> dict:
        return {
            "omz_installed": self.omz_installed,
            "zshrc_changed": self.zshrc_changed,
            "backup": self.backup,
        }


def apply_zshrc_settings(content: str, theme: str, plugins: list[str]) -> str:
    """Rewrite theme and plugin lines and ensure the custom config is sourced."""
    theme_line = f'ZSH_THEME="{theme}"'
    plugins_line = f"plugins=({' '.join(plugins)})"

    if _THEME_RE.search(content):
        content = _THEME_RE.sub(theme_line, content, count=1)
    else:
        content = f"{theme_line}\n{content}"

    if _PLUGINS_RE.search(content):
        content = _PLUGINS_RE.sub(plugins_line, content, count=1)
    else:
        content = f"{content.rstrip()}\n{plugins_line}\n"

    if SOURCE_MARKER not in content:
        content = content.rstrip("\n") + "\n" + SOURCE_BLOCK
    return content


def install_oh_my_zsh(runner: CommandRunner, home: Path) -> bool:
    """Install oh-my-zsh unattended. Returns False if already present."""
    if (home / ".oh-my-zsh").is_dir():
        logger.info("oh-my-zsh already installed")
        return False

    with tempfile.TemporaryDirectory(prefix="lr-omz-") as tmp:
        script = runner.download(OMZ_INSTALL_URL, Path(tmp) / "install.sh")
        # RUNZSH/CHSH: don't start zsh or change the login shell from the installer
        runner.run(
            ["sh", str(script), "--unattended"],
            env={"RUNZSH": "no", "CHSH": "no", "HOME": str(home)},
        )
    logger.info("Installed oh-my-zsh")
    return True


def configure_zsh(
    config: ServerConfig,
    runner: CommandRunner,
    home: Path,
    install_omz: bool = False,
) -> ZshResult:
    """Install oh-my-zsh (optionally) and apply theme/plugins to ~/.zshrc.

    Raises:
        ZshConfigError: ~/.zshrc does not exist (and is not about to).
    """
    result = ZshResult()
    if install_omz:
        result.omz_installed = install_oh_my_zsh(runner, home)

    zshrc = home / ".zshrc"
    if not zshrc.is_file():
        if runner.dry_run and result.omz_installed:
            runner.plan(f"configure {zshrc} (theme {config.zsh.theme})")
            return result
        raise ZshConfigError(f"{zshrc} not found (install oh-my-zsh first: --install-omz)")

    current = zshrc.read_text(encoding="utf-8")
    updated = apply_zshrc_settings(current, config.zsh.theme, config.zsh.plugins)
    if updated == current:
        logger.info(".zshrc already configured")
        return result

    backup = backup_file(zshrc, runner)
    result.backup = str(backup) if backup else None
    runner.write_file(zshrc, updated)
    result.zshrc_changed = True
    logger.info("Updated %s (theme=%s, plugins=%s)", zshrc, config.zsh.theme, config.zsh.plugins)
    return result


def verify_zsh_config(
    config: ServerConfig,
    runner: CommandRunner,
    home: Path,
    report: HealthReport | None = None,
) -> HealthReport:
    report = report or HealthReport()
    check_command(report, runner, "zsh")

    check_path(report, home / ".oh-my-zsh", "oh-my-zsh", directory=True)

    zshrc = home / ".zshrc"
    if not check_path(report, zshrc, "zshrc"):
        return report

    content = zshrc.read_text(encoding="utf-8")
    if f'ZSH_THEME="{config.zsh.theme}"' in content:
        report.add_pass("zsh:theme", config.zsh.theme)
    else:
        report.add_warn("zsh:theme", f"theme is not {config.zsh.theme}")

    if SOURCE_MARKER in content:
        report.add_pass("zsh:custom-config", "~/.zsh_custom_config is sourced")
    else:
        report.add_fail("zsh:custom-config", "~/.zsh_custom_config is not sourced from .zshrc")
    return report
