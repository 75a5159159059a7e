"""
Cloud-init: render the user-data document for a new server.

Values come from ``secrets.env`` (see core.config.loader.parse_env_file),
with the user identity falling back to ``config.yml``.  Only the known
template variables are substituted: the embedded shell scripts in the
template keep their own ``$VARS`` untouched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

import yaml

from localremote.core.config.loader import parse_env_file
from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import ServerConfig

logger = logging.getLogger(__name__)

TEMPLATE_VARS = (
    "USERNAME",
    "HOSTNAME",
    "SSH_PUBLIC_KEY",
    "USER_NAME",
    "USER_EMAIL",
    "REPO_URL",
    "REPO_BRANCH",
    "TAILSCALE_AUTH_KEY",
    "GITHUB_PAT",
    "GITHUB_USER",
)

REQUIRED_VARS = ("USERNAME", "HOSTNAME", "SSH_PUBLIC_KEY", "USER_NAME", "USER_EMAIL")

DEFAULTS = {
    "TAILSCALE_AUTH_KEY": "",
    "GITHUB_PAT": "",
    "GITHUB_USER": "",
    "REPO_URL": "https://github.com/tagpro/local-remote.git",
    "REPO_BRANCH": "main",
}

# Left in secrets.env.template; a real key never contains it
PLACEHOLDER_KEY_MARKER = "your-email"

OUTPUT_FILE = "cloud-init.yaml"

_NAMES = "|".join(TEMPLATE_VARS)
_VAR_RE = re.compile(rf"\$(?:\{{({_NAMES})\}}|({_NAMES})(?![A-Za-z0-9_]))")
_LEFTOVER_RE = re.compile(rf"\$\{{({_NAMES})\}}")


class CloudInitError(Exception):
    """Raised when secrets are incomplete or the rendered document is invalid."""

    def __init__(self, message: str, problems: list[str] | None = None):
        self.problems = problems or []
        super().__init__(message)


@dataclass
class GenerateResult:
    output: Path
    content: str
    written: bool = False
    values: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "output": str(self.output),
            "written": self.written,
            "hostname": self.values.get("HOSTNAME", ""),
            "username": self.values.get("USERNAME", ""),
            "tailscale": "configured" if self.values.get("TAILSCALE_AUTH_KEY") else "not configured",
        }


def load_template(path: Path | None = None) -> str:
    """The user-data template (bundled one unless ``path`` is given)."""
    if path is not None:
        return path.read_text(encoding="utf-8")
    return resources.files("localremote.data").joinpath("cloud-init.template.yaml").read_text(encoding="utf-8")


def collect_values(secrets: dict[str, str], config: ServerConfig | None = None) -> dict[str, str]:
    """Template values: secrets, then config.yml identity, then defaults."""
    values = dict(DEFAULTS)
    if config is not None:
        if config.user.name:
            values["USER_NAME"] = config.user.name
        if config.user.email:
            values["USER_EMAIL"] = config.user.email
    values.update({k: v for k, v in secrets.items() if k in TEMPLATE_VARS and v})
    return values


def validate_secrets(values: dict[str, str]) -> list[str]:
    """Problems with the template values (empty list = usable)."""
    errors = []
    for name in REQUIRED_VARS:
        value = values.get(name, "")
        if name == "SSH_PUBLIC_KEY":
            if not value or PLACEHOLDER_KEY_MARKER in value:
                errors.append("SSH_PUBLIC_KEY is required (and must be your actual key)")
        elif not value:
            errors.append(f"{name} is required")
    return errors


def render(template: str, values: dict[str, str]) -> str:
    """Substitute known variables in ``$VAR`` and ``${VAR}`` form only."""

    def _sub(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        return values.get(name, "")

    return _VAR_RE.sub(_sub, template)


def validate_user_data(content: str) -> list[str]:
    """Leftover template placeholders and YAML syntax errors."""
    problems = [f"unsubstituted variable ${{{name}}}" for name in sorted(set(_LEFTOVER_RE.findall(content)))]
    try:
        yaml.safe_load(content)
    except yaml.YAMLError as e:
        problems.append(f"YAML syntax error: {e}")
    return problems


def generate(
    runner: CommandRunner,
    secrets_path: Path,
    output: Path,
    config: ServerConfig | None = None,
    template_path: Path | None = None,
) -> GenerateResult:
    """Render user-data from secrets.env and write it (dry-run: don't write).

    Raises:
        CloudInitError: secrets file missing or incomplete, or the rendered
            document fails validation.
    """
    if not secrets_path.is_file():
        raise CloudInitError(
            f"Secrets file not found: {secrets_path} (copy secrets.env.template to secrets.env and fill it in)"
        )

    values = collect_values(parse_env_file(secrets_path), config)
    errors = validate_secrets(values)
    if errors:
        raise CloudInitError(f"{len(errors)} validation error(s) in {secrets_path}", errors)

    content = render(load_template(template_path), values)
    result = GenerateResult(output=output, content=content, values=values)

    if runner.dry_run:
        runner.plan(f"generate: {output}")
        return result

    problems = validate_user_data(content)
    if problems:
        raise CloudInitError("Generated user-data is invalid", problems)

    runner.write_file(output, content, mode=0o600)
    result.written = True
    logger.info("Generated %s", output)
    return result


def validate_file(path: Path) -> list[str]:
    """Validate an existing user-data file.

    Raises:
        CloudInitError: the file does not exist.
    """
    if not path.is_file():
        raise CloudInitError(f"File not found: {path}")
    return validate_user_data(path.read_text(encoding="utf-8"))
