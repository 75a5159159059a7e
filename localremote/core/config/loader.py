"""
Configuration loader: reads config.yml into a ServerConfig.

The first provisioning run usually has no config at all, so a missing
config (when none was requested explicitly) yields the defaults.  An
explicit path that does not exist, unparsable YAML, or a schema
violation is always a ConfigError.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from localremote.core.models.config import ServerConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"
SECRETS_FILE = "secrets.env"


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for config.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to config.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> ServerConfig:
    """Load and validate the server configuration.

    Args:
        path: Explicit path to config.yml. If None, searches upward and
            falls back to defaults when nothing is found.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found; using defaults", CONFIG_FILE)
            return ServerConfig()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = ServerConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info("Loaded config from %s (%d package overrides)", path, len(config.packages))
    return config


def config_root(config_path: Path | None) -> Path:
    """Directory holding the config (templates and secrets sit next to it)."""
    if config_path is None:
        return Path.cwd()
    return config_path.parent.resolve()


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env style file (secrets.env) into a key/value dict.

    Handles:
    - KEY=value
    - KEY="value"
    - KEY='value'
    - export KEY=value
    - Comments (#)
    - Empty lines
    """
    result: dict[str, str] = {}
    if not path.is_file():
        return result

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return result

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]

        result[key] = value

    return result
