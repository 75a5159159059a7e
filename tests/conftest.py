"""
Shared test fixtures: isolated home/state directories and a fake runner.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from localremote.core import context
from localremote.core.engine.runner import CommandResult, CommandRunner
from localremote.core.models.config import ServerConfig
from localremote.core.services import system, version
from localremote.core.services.version import GitHubReleases
from localremote.installers.base import InstallContext


class FakeRunner(CommandRunner):
    """CommandRunner that records commands instead of executing them.

    Responses are matched by command prefix (longest prefix wins, later
    registrations win ties).  Unmatched commands succeed with no output.
    """

    def __init__(self, dry_run: bool = False, root: bool = True):
        super().__init__(dry_run=dry_run)
        self.root = root
        self.commands: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.cwds: list[str | None] = []
        self.responses: list[tuple[tuple[str, ...], CommandResult]] = []
        self.executables: dict[str, str] = {}
        self.downloads: dict[str, bytes] = {}
        self.fetched: list[str] = []
        self.hooks: list[tuple[tuple[str, ...], Callable[[], None]]] = []

    def respond(self, prefix: list[str], stdout: str = "", stderr: str = "", returncode: int = 0) -> None:
        self.responses.append(
            (tuple(prefix), CommandResult(stdout=stdout, stderr=stderr, returncode=returncode))
        )

    def _execute(self, cmd, *, input_text=None, timeout=None, cwd=None, env=None):
        self.commands.append(list(cmd))
        self.inputs.append(input_text)
        self.cwds.append(cwd)
        try:
            return self._canned(cmd)
        finally:
            self._fire(cmd)

    def _canned(self, cmd: list[str]) -> CommandResult:
        best: tuple[tuple[str, ...], CommandResult] | None = None
        for prefix, result in self.responses:
            if tuple(cmd[: len(prefix)]) == prefix and (best is None or len(prefix) >= len(best[0])):
                best = (prefix, result)
        if best is None:
            return CommandResult(cmd=list(cmd))
        canned = best[1]
        return CommandResult(
            cmd=list(cmd),
            returncode=canned.returncode,
            stdout=canned.stdout,
            stderr=canned.stderr,
        )

    def which(self, name: str) -> str | None:
        return self.executables.get(name)

    def is_root(self) -> bool:
        return self.root

    def _fetch(self, url: str, dest: Path, timeout: int = 120) -> None:
        self.fetched.append(url)
        if url not in self.downloads:
            raise OSError(f"404 Not Found: {url}")
        dest.write_bytes(self.downloads[url])
        self._fire(["fetch", url])

    def after(self, prefix: list[str], callback: Callable[[], None]) -> None:
        """Call ``callback()`` after each command starting with ``prefix``.

        Downloads fire as ``["fetch", url]``.
        """
        self.hooks.append((tuple(prefix), callback))

    def _fire(self, cmd: list[str]) -> None:
        for prefix, callback in list(self.hooks):
            if tuple(cmd[: len(prefix)]) == prefix:
                callback()

    def ran(self, *prefix: str) -> list[list[str]]:
        """Recorded commands starting with ``prefix``."""
        return [c for c in self.commands if tuple(c[: len(prefix)]) == prefix]


def _offline(repo: str, timeout: int = 15) -> str:
    raise OSError("network disabled in tests")


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch) -> Path:
    """Point HOME, state and cache at tmp_path; no network, not in Docker."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USER", "dev")
    monkeypatch.setenv("LR_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    for var in (
        "DRY_RUN",
        "CLOUD_INIT",
        "GITHUB_PAT",
        "GITHUB_TOKEN",
        "SUDO_PASSWORD",
        "LR_LOG_LEVEL",
        "LR_LOG_FILE",
        "LR_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)

    monkeypatch.setattr(system, "is_docker", lambda *a, **kw: False)
    monkeypatch.setattr(system, "user_groups", lambda user=None: ["dev"])
    monkeypatch.setattr(system, "hostname", lambda: "devbox")
    monkeypatch.setattr(version, "_fetch_latest_tag", _offline)

    monkeypatch.setattr(context, "_project_root", None)
    context.set_state_dir(None)
    yield home
    context.set_state_dir(None)


@pytest.fixture
def home(isolated_env: Path) -> Path:
    return isolated_env


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def dry_runner() -> FakeRunner:
    return FakeRunner(dry_run=True)


@pytest.fixture
def install_ctx(fake_runner: FakeRunner, home: Path, tmp_path: Path) -> InstallContext:
    """InstallContext with default config, the fake runner and tmp paths."""
    return InstallContext(
        config=ServerConfig(),
        runner=fake_runner,
        releases=GitHubReleases(tmp_path / "cache" / "github-api"),
        home=home,
        lock_path=tmp_path / "state" / "packages.lock",
    )


def seed_release_cache(ctx: InstallContext, repo: str, version_: str) -> None:
    """Pretend the GitHub API reported ``version_`` as the latest release."""
    ctx.releases.cache_dir.mkdir(parents=True, exist_ok=True)
    (ctx.releases.cache_dir / f"{repo.replace('/', '_')}_latest.txt").write_text(version_ + "\n")
