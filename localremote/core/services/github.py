"""
GitHub integration: gh authentication and SSH keys.

Three flows:

    setup_github(pat)        authenticate gh with a PAT, create an ed25519
                             key and register it with GitHub (cloud-init)
    import_github_keys(user) allow a GitHub user's public keys to log in
    setup_git_ssh()          interactive-machine variant: key + upload +
                             ``ssh -T git@github.com`` check
"""

from __future__ import annotations

import logging
import time
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path

from localremote.core.engine.runner import CommandRunner
from localremote.core.observability.health import HealthReport
from localremote.core.services import system

logger = logging.getLogger(__name__)

KEYS_URL = "https://github.com/{user}.keys"


class GitHubSetupError(Exception):
    """Raised when GitHub authentication or key setup fails."""


@dataclass
class GitHubSetupResult:
    authenticated: bool = False
    key_path: str = ""
    key_generated: bool = False
    key_uploaded: bool = False
    messages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "authenticated": self.authenticated,
            "key_path": self.key_path,
            "key_generated": self.key_generated,
            "key_uploaded": self.key_uploaded,
            "messages": self.messages,
        }


def default_key_path(home: Path) -> Path:
    return home / ".ssh" / "id_ed25519"


# ── gh authentication ───────────────────────────────────────────


def gh_authenticated(runner: CommandRunner) -> bool:
    return runner.probe(["gh", "auth", "status"]).ok


def authenticate_with_pat(runner: CommandRunner, pat: str) -> None:
    """Log gh in with a personal access token (token passed on stdin)."""
    if not pat:
        raise GitHubSetupError("No GitHub personal access token provided")
    runner.run(["gh", "auth", "login", "--with-token"], input_text=pat.strip() + "\n")
    logger.info("Authenticated gh with personal access token")


def github_login(runner: CommandRunner) -> str | None:
    """Login of the authenticated gh user."""
    result = runner.probe(["gh", "api", "user", "--jq", ".login"])
    login = result.stdout.strip()
    return login if result.ok and login else None


# ── SSH keys ────────────────────────────────────────────────────


def ensure_ssh_key(runner: CommandRunner, key_path: Path, comment: str) -> bool:
    """Generate an ed25519 key without passphrase. Returns False if it exists."""
    if key_path.is_file():
        logger.info("SSH key already exists: %s", key_path)
        return False
    runner.mkdir(key_path.parent, mode=0o700)
    runner.run(["ssh-keygen", "-t", "ed25519", "-C", comment, "-f", str(key_path), "-N", ""])
    logger.info("Generated SSH key %s", key_path)
    return True


def _key_body(public_key: str) -> str:
    """``type base64`` part of a public key line (comment dropped)."""
    parts = public_key.split()
    return " ".join(parts[:2])


def key_registered(runner: CommandRunner, public_key: str) -> bool:
    """Whether the key is already listed in the GitHub account."""
    result = runner.probe(["gh", "ssh-key", "list"])
    if not result.ok:
        return False
    body = _key_body(public_key).split()[-1] if public_key.strip() else ""
    return bool(body) and body in result.stdout


def upload_ssh_key(runner: CommandRunner, pub_path: Path, title: str) -> bool:
    """Add the public key to GitHub unless it is already there."""
    if pub_path.is_file() and key_registered(runner, pub_path.read_text(encoding="utf-8")):
        logger.info("SSH key already registered with GitHub")
        return False
    runner.run(["gh", "ssh-key", "add", str(pub_path), "--title", title])
    logger.info("Uploaded SSH key to GitHub as %r", title)
    return True


def add_to_agent(runner: CommandRunner, key_path: Path) -> bool:
    """Add the key to a running ssh-agent (no-op without an agent)."""
    if runner.probe(["ssh-add", "-l"]).returncode == 2:
        logger.debug("No ssh-agent running")
        return False
    runner.run(["ssh-add", str(key_path)], check=False)
    return True


def merge_authorized_keys(existing: str, keys: list[str]) -> tuple[str, int]:
    """Append keys not already present. Returns (new content, added count)."""
    present = {_key_body(line) for line in existing.splitlines() if line.strip()}
    lines = existing if not existing or existing.endswith("\n") else existing + "\n"
    added = 0
    for key in keys:
        key = key.strip()
        if not key or key.startswith("#"):
            continue
        body = _key_body(key)
        if body in present:
            continue
        lines += key + "\n"
        present.add(body)
        added += 1
    return lines, added


def fetch_github_keys(username: str, timeout: int = 15) -> list[str]:
    """Public SSH keys of a GitHub user."""
    req = urllib.request.Request(KEYS_URL.format(user=username), headers={"User-Agent": "local-remote/1.0"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            text = resp.read().decode("utf-8")
    except Exception as e:
        raise GitHubSetupError(f"Cannot fetch keys for {username}: {e}") from e
    return [line for line in text.splitlines() if line.strip()]


def import_github_keys(
    runner: CommandRunner,
    home: Path,
    username: str | None = None,
) -> int:
    """Append a GitHub user's public keys to ~/.ssh/authorized_keys.

    The username defaults to the authenticated gh user.

    Returns:
        Number of keys added.
    """
    username = username or github_login(runner)
    if not username:
        raise GitHubSetupError("No GitHub username given and gh is not authenticated")

    keys = fetch_github_keys(username)
    if not keys:
        raise GitHubSetupError(f"GitHub user {username} has no public keys")

    ssh_dir = home / ".ssh"
    auth_keys = ssh_dir / "authorized_keys"
    existing = auth_keys.read_text(encoding="utf-8") if auth_keys.is_file() else ""
    content, added = merge_authorized_keys(existing, keys)

    if added:
        runner.mkdir(ssh_dir, mode=0o700)
        runner.write_file(auth_keys, content, mode=0o600)
    logger.info("Imported %d new key(s) for %s", added, username)
    return added


# ── Flows ───────────────────────────────────────────────────────


def setup_github(
    runner: CommandRunner,
    home: Path,
    pat: str | None,
    email: str,
) -> GitHubSetupResult:
    """Authenticate gh and register this machine's SSH key."""
    if runner.which("gh") is None:
        raise GitHubSetupError("gh is not installed (run: local-remote install github-cli)")

    result = GitHubSetupResult()
    if gh_authenticated(runner):
        result.messages.append("gh already authenticated")
    else:
        authenticate_with_pat(runner, pat or "")
    result.authenticated = True

    key_path = default_key_path(home)
    result.key_path = str(key_path)
    result.key_generated = ensure_ssh_key(runner, key_path, email)

    title = f"cloud-init-{system.hostname()}-{time.strftime('%Y%m%d')}"
    result.key_uploaded = upload_ssh_key(runner, key_path.with_suffix(".pub"), title)
    add_to_agent(runner, key_path)
    return result


def setup_git_ssh(runner: CommandRunner, home: Path, email: str) -> GitHubSetupResult:
    """Generate a key, register it when gh is logged in, and test the connection."""
    result = GitHubSetupResult()
    key_path = default_key_path(home)
    result.key_path = str(key_path)
    result.key_generated = ensure_ssh_key(runner, key_path, email)

    if runner.which("gh") and gh_authenticated(runner):
        result.authenticated = True
        result.key_uploaded = upload_ssh_key(
            runner, key_path.with_suffix(".pub"), f"local-remote@{system.hostname()}"
        )
    else:
        result.messages.append(
            f"gh not authenticated: add {key_path}.pub at https://github.com/settings/keys"
        )

    add_to_agent(runner, key_path)
    if not runner.dry_run:
        # ssh -T exits 1 even on success; GitHub greets authenticated users
        probe = runner.probe(
            ["ssh", "-T", "-o", "StrictHostKeyChecking=accept-new", "git@github.com"], timeout=20
        )
        if "successfully authenticated" in probe.stderr + probe.stdout:
            result.messages.append("SSH connection to GitHub works")
        else:
            result.messages.append("SSH connection to GitHub could not be confirmed")
    return result


def verify_github(runner: CommandRunner, home: Path, report: HealthReport | None = None) -> HealthReport:
    report = report or HealthReport()
    if runner.which("gh") is None:
        report.add_fail("gh-cli", "gh not found")
    else:
        report.add_pass("gh-cli", "gh found")
        login = github_login(runner)
        if login:
            report.add_pass("gh-auth", f"authenticated as {login}")
        else:
            report.add_fail("gh-auth", "gh is not authenticated")

    key = default_key_path(home)
    if key.is_file() and key.with_suffix(".pub").is_file():
        report.add_pass("ssh-key", str(key))
    else:
        report.add_warn("ssh-key", f"{key} not generated")
    return report
