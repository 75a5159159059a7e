"""
Git configuration: global identity, defaults and the delta pager.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import ServerConfig
from localremote.core.observability.health import HealthReport
from localremote.core.services import system

logger = logging.getLogger(__name__)

DELTA_SETTINGS = [
    ("core.pager", "delta"),
    ("interactive.diffFilter", "delta --color-only"),
    ("delta.navigate", "true"),
    ("delta.light", "false"),
    ("delta.line-numbers", "true"),
    ("merge.conflictstyle", "diff3"),
    ("diff.colorMoved", "default"),
]

GITHUB_SSH_REWRITE = ("url.git@github.com:.insteadOf", "https://github.com/")


class GitConfigError(Exception):
    """Raised when git cannot be configured."""


@dataclass
class GitConfigResult:
    settings: list[tuple[str, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "settings": {k: v for k, v in self.settings},
            "warnings": self.warnings,
        }


def build_git_settings(
    config: ServerConfig,
    delta_available: bool,
    user: str | None = None,
    host: str | None = None,
) -> GitConfigResult:
    """Compute the ``git config --global`` key/values for a configuration."""
    user = user or system.current_user()
    host = host or system.hostname()
    git = config.git
    result = GitConfigResult()

    result.settings.append(("user.name", config.user.name or user))
    result.settings.append(("user.email", config.user.email or f"{user}@{host}"))
    result.settings.append(("init.defaultBranch", git.default_branch))
    if git.push_auto_setup_remote:
        result.settings.append(("push.autoSetupRemote", "true"))
    result.settings.append(("pull.rebase", "true" if git.pull_rebase else "false"))

    if git.pager == "delta":
        if delta_available:
            result.settings.extend(DELTA_SETTINGS)
        else:
            result.warnings.append("git pager 'delta' requested but delta is not installed; using less")
            result.settings.append(("core.pager", "less"))
    elif git.pager:
        result.settings.append(("core.pager", git.pager))

    if git.url_rewrite_github:
        result.settings.append(GITHUB_SSH_REWRITE)

    return result


def configure_git(config: ServerConfig, runner: CommandRunner) -> GitConfigResult:
    """Apply the global git configuration."""
    if runner.which("git") is None:
        raise GitConfigError("git is not installed")

    result = build_git_settings(config, delta_available=runner.which("delta") is not None)
    for key, value in result.settings:
        runner.git_config("--global", key, value)
    for warning in result.warnings:
        logger.warning(warning)
    logger.info("Applied %d git settings", len(result.settings))
    return result


def _get(runner: CommandRunner, key: str) -> str:
    result = runner.probe(["git", "config", "--global", "--get", key])
    return result.stdout.strip() if result.ok else ""


def verify_git_config(runner: CommandRunner, report: HealthReport | None = None) -> HealthReport:
    report = report or HealthReport()
    if runner.which("git") is None:
        report.add_fail("git", "git not found")
        return report

    for key in ("user.name", "user.email"):
        value = _get(runner, key)
        if value:
            report.add_pass(f"git:{key}", value)
        else:
            report.add_fail(f"git:{key}", f"{key} is not set")

    branch = _get(runner, "init.defaultBranch")
    if branch:
        report.add_pass("git:init.defaultBranch", branch)
    else:
        report.add_warn("git:init.defaultBranch", "init.defaultBranch is not set")

    pager = _get(runner, "core.pager")
    if pager:
        report.add_pass("git:core.pager", pager)
    return report
