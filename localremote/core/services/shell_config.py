"""
Shell config: ~/.zsh_custom_config, the loader for shell fragments.

Installers drop numbered fragments into ~/.config/shell/ (``40-docker.sh``,
``70-starship.sh``, ...); the generated ~/.zsh_custom_config sources them
in lexical order.  .zshrc sources ~/.zsh_custom_config (see zsh_config).
"""

from __future__ import annotations

import logging
from pathlib import Path

from localremote.core.engine.runner import CommandRunner

logger = logging.getLogger(__name__)

CUSTOM_CONFIG = ".zsh_custom_config"

_TEMPLATE = """\
# Generated by local-remote. Do not edit: re-run `local-remote shell generate`.
# Put your own additions in ~/.config/shell/90-local.sh

# User-installed binaries (starship, zoxide, ...)
case ":$PATH:" in
  *":$HOME/.local/bin:"*) ;;
  *) export PATH="$HOME/.local/bin:$PATH" ;;
esac

if [ -d "$HOME/.config/shell" ]; then
  for _lr_fragment in "$HOME"/.config/shell/*.sh(N); do
    source "$_lr_fragment"
  done
  unset _lr_fragment
fi
"""


def render_custom_config() -> str:
    return _TEMPLATE


def list_fragments(home: Path) -> list[Path]:
    """Shell fragments in the order they will be sourced."""
    shell_dir = home / ".config" / "shell"
    if not shell_dir.is_dir():
        return []
    return sorted(p for p in shell_dir.glob("*.sh") if p.is_file())


def generate_shell_config(runner: CommandRunner, home: Path) -> Path:
    """Write ~/.zsh_custom_config (only when its content changes)."""
    runner.mkdir(home / ".config" / "shell")
    path = home / CUSTOM_CONFIG
    content = render_custom_config()
    if path.is_file() and path.read_text(encoding="utf-8") == content:
        logger.info("%s is up to date", path)
        return path
    runner.write_file(path, content)
    fragments = list_fragments(home)
    logger.info("Generated %s (%d fragments)", path, len(fragments))
    return path
