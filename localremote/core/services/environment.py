"""
Environment verification: is the Nix-managed shell environment in place?

Complements the per-installer ``verify`` actions: this checks what Home
Manager is expected to provide (tools resolved from ~/.nix-profile, PATH
order, login shell) plus Docker access and git defaults.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from localremote.core.engine.runner import CommandRunner
from localremote.core.observability.health import (
    HealthReport,
    check_command_version,
    check_user_in_group,
)
from localremote.core.services import system

logger = logging.getLogger(__name__)

NIX_PROFILE_BIN = ".nix-profile/bin"

CORE_TOOLS = (
    "git", "gh", "lazygit", "nvim", "tmux", "zellij", "tree", "fzf", "zoxide",
    "rg", "fd", "bat", "jq", "btop", "nmap", "delta", "starship", "lazydocker",
)


def path_priority_ok(path: str) -> bool | None:
    """Whether a Nix profile bin dir precedes /usr/bin in ``path``.

    None when no Nix profile is on the path at all.
    """
    entries = path.split(os.pathsep)
    nix_idx = next((i for i, p in enumerate(entries) if p.rstrip("/").endswith(NIX_PROFILE_BIN)), None)
    if nix_idx is None:
        return None
    usr_idx = next((i for i, p in enumerate(entries) if p.rstrip("/") == "/usr/bin"), None)
    return usr_idx is None or nix_idx < usr_idx


def _check_location(report: HealthReport, runner: CommandRunner, cmd: str, expected: str) -> None:
    found = runner.which(cmd)
    if found is None:
        report.add_fail(cmd, f"{cmd} not found")
    elif expected not in found:
        report.add_fail(cmd, f"{cmd} found at {found} (expected in {expected})")
    else:
        report.add_pass(cmd, found)


def _git_get(runner: CommandRunner, key: str) -> str:
    result = runner.probe(["git", "config", "--global", "--get", key])
    return result.stdout.strip() if result.ok else ""


def verify_environment(
    runner: CommandRunner,
    environ: Mapping[str, str] | None = None,
) -> HealthReport:
    """Check the interactive environment of the current user."""
    env = os.environ if environ is None else environ
    report = HealthReport()

    # Nix / Home Manager
    _check_location(report, runner, "nix", "/nix")
    check_command_version(report, runner, "nix", name="nix:version")
    _check_location(report, runner, "home-manager", ".nix-profile")

    priority = path_priority_ok(env.get("PATH", ""))
    if priority is None:
        report.add_fail("path", "Nix profile is not in PATH")
    elif priority:
        report.add_pass("path", "Nix paths have priority over system paths")
    else:
        report.add_fail("path", "System paths come before Nix paths")

    # Shell
    shell = env.get("SHELL", "") or system.login_shell()
    if "zsh" in shell:
        report.add_pass("shell", shell)
    else:
        report.add_fail("shell", f"Default shell is not zsh: {shell or 'unset'}")
    if env.get("ZSH"):
        report.add_pass("oh-my-zsh", env["ZSH"])
    else:
        report.add_fail("oh-my-zsh", "Oh-My-Zsh not detected ($ZSH unset)")

    for tool in CORE_TOOLS:
        _check_location(report, runner, tool, ".nix-profile")

    # Docker
    check_command_version(report, runner, "docker")
    check_user_in_group(report, "docker")
    if runner.probe(["docker", "ps"]).ok:
        report.add_pass("docker:daemon", "Docker daemon is reachable")
    else:
        report.add_fail("docker:daemon", "Cannot connect to Docker daemon (may need to log out/in)")

    # Environment variables
    if env.get("NIX_PROFILES"):
        report.add_pass("env:NIX_PROFILES", env["NIX_PROFILES"])
    else:
        report.add_fail("env:NIX_PROFILES", "NIX_PROFILES not set")

    # Prompt / navigation integrations
    for tool in ("zoxide", "starship"):
        if runner.which(tool) and runner.probe([tool, "--version"]).ok:
            report.add_pass(f"{tool}:run", f"{tool} runs")
        else:
            report.add_fail(f"{tool}:run", f"{tool} not working properly")

    # Git
    pager = _git_get(runner, "core.pager")
    if "delta" in pager:
        report.add_pass("git:pager", pager)
    else:
        report.add_fail("git:pager", "Git pager not set to delta")
    branch = _git_get(runner, "init.defaultBranch")
    if branch == "main":
        report.add_pass("git:default-branch", branch)
    else:
        report.add_fail("git:default-branch", "Git default branch not set to main")
    for key in ("user.name", "user.email"):
        value = _git_get(runner, key)
        if value:
            report.add_pass(f"git:{key}", value)
        else:
            report.add_fail(f"git:{key}", f"{key} not set")

    logger.info("Environment: %d passed, %d warnings, %d failed",
                len(report.passed), len(report.warnings), len(report.failed))
    return report
