"""
Process context: where the configuration lives and where state goes.

Set ONCE at startup by the CLI (main.py) and by tests (conftest):

    - project root:  directory holding config.yml (templates, secrets.env)
    - state dir:     ~/.local-remote (backups, logs, lock file, history)
    - cache dir:     ~/.cache/local-remote (GitHub API responses)

Module-level singletons, not a class.  Unset values fall back to
environment variables and then to the home-directory defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


_project_root: Optional[Path] = None
_state_dir: Optional[Path] = None


def set_project_root(root: Path) -> None:
    """Register the project root for the current process."""
    global _project_root
    _project_root = root


def get_project_root() -> Optional[Path]:
    """Return the current project root, or None if not yet set."""
    return _project_root


def set_state_dir(path: Optional[Path]) -> None:
    """Override the state directory (None restores the default)."""
    global _state_dir
    _state_dir = path


def home_dir() -> Path:
    """The user's home directory, honouring $HOME."""
    return Path(os.environ.get("HOME") or Path.home())


def get_state_dir() -> Path:
    """State directory: explicit override > $LR_STATE_DIR > ~/.local-remote."""
    if _state_dir is not None:
        return _state_dir
    env = os.environ.get("LR_STATE_DIR")
    if env:
        return Path(env)
    return home_dir() / ".local-remote"


def get_cache_dir() -> Path:
    """Cache directory: $XDG_CACHE_HOME/local-remote or ~/.cache/local-remote."""
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else home_dir() / ".cache"
    return root / "local-remote"


def lock_path() -> Path:
    return get_state_dir() / "packages.lock"


def history_path() -> Path:
    return get_state_dir() / "history.ndjson"


def backup_root() -> Path:
    return get_state_dir() / "backups"


def log_dir() -> Path:
    return get_state_dir() / "logs"
