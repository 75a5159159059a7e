"""
Tests for environment verification and post-install (login shell, Tailscale).
"""

from pathlib import Path

import pytest

from conftest import FakeRunner

from localremote.core.models.config import ServerConfig
from localremote.core.services import system, tailscale
from localremote.core.services.environment import CORE_TOOLS, path_priority_ok, verify_environment
from localremote.core.services.post_install import (
    PostInstallError,
    change_login_shell,
    post_install,
    register_shell,
)

NIX_BIN = "/home/dev/.nix-profile/bin"


def _nix_environment() -> FakeRunner:
    runner = FakeRunner()
    runner.executables["nix"] = "/nix/var/nix/profiles/default/bin/nix"
    runner.executables["home-manager"] = f"{NIX_BIN}/home-manager"
    runner.executables["docker"] = "/usr/bin/docker"
    for tool in CORE_TOOLS:
        runner.executables[tool] = f"{NIX_BIN}/{tool}"
    runner.respond(["nix", "--version"], stdout="nix (Nix) 2.18.1")
    runner.respond(["docker", "--version"], stdout="Docker version 24.0.7, build afdd53b")
    for key, value in {
        "core.pager": "delta",
        "init.defaultBranch": "main",
        "user.name": "Dev Person",
        "user.email": "dev@example.com",
    }.items():
        runner.respond(["git", "config", "--global", "--get", key], stdout=value + "\n")
    return runner


ENVIRON = {
    "PATH": f"{NIX_BIN}:/nix/var/nix/profiles/default/bin:/usr/bin:/bin",
    "SHELL": f"{NIX_BIN}/zsh",
    "ZSH": "/home/dev/.oh-my-zsh",
    "NIX_PROFILES": "/nix/var/nix/profiles/default /home/dev/.nix-profile",
}


class TestPathPriority:
    @pytest.mark.parametrize(
        "path,expected",
        [
            (f"{NIX_BIN}:/usr/bin", True),
            (f"/usr/bin:{NIX_BIN}/", False),
            (f"{NIX_BIN}", True),
            ("/usr/local/bin:/usr/bin", None),
        ],
    )
    def test_order(self, path, expected):
        assert path_priority_ok(path) is expected


class TestVerifyEnvironment:
    def test_complete(self):
        report = verify_environment(_nix_environment(), environ=ENVIRON)
        assert report.ok, [c.to_dict() for c in report.failed]
        # group membership needs a re-login, never a failure
        assert [c.component for c in report.warnings] == ["group:docker"]

    def test_system_tool_instead_of_nix(self):
        runner = _nix_environment()
        runner.executables["git"] = "/usr/bin/git"
        report = verify_environment(runner, environ=ENVIRON)
        assert [c.message for c in report.failed] == ["git found at /usr/bin/git (expected in .nix-profile)"]

    def test_bare_machine(self, monkeypatch):
        monkeypatch.setattr(system, "login_shell", lambda user=None: "/bin/bash")
        runner = FakeRunner()
        runner.respond(["docker", "ps"], returncode=1)
        runner.respond(["git", "config", "--global", "--get"], returncode=1)

        report = verify_environment(runner, environ={"PATH": "/usr/bin"})

        failed = {c.component: c.message for c in report.failed}
        assert failed["path"] == "Nix profile is not in PATH"
        assert failed["shell"] == "Default shell is not zsh: /bin/bash"
        assert failed["docker:daemon"].startswith("Cannot connect")
        assert failed["git:user.email"] == "user.email not set"
        assert "env:NIX_PROFILES" in failed

    def test_system_paths_first(self):
        environ = dict(ENVIRON, PATH=f"/usr/bin:{NIX_BIN}")
        report = verify_environment(_nix_environment(), environ=environ)
        assert [c.component for c in report.failed] == ["path"]


# ── post-install ────────────────────────────────────────────────


@pytest.fixture
def nix_zsh(home: Path) -> Path:
    bin_dir = home / ".nix-profile" / "bin"
    bin_dir.mkdir(parents=True)
    zsh = bin_dir / "zsh"
    zsh.write_text("")
    return zsh


class TestRegisterShell:
    def test_appends(self, tmp_path: Path):
        shells = tmp_path / "shells"
        shells.write_text("/bin/sh\n/bin/bash\n")
        runner = FakeRunner(root=False)
        assert register_shell(runner, Path("/home/dev/.nix-profile/bin/zsh"), shells)
        assert runner.commands == [["sudo", "tee", "-a", str(shells)]]
        assert runner.inputs == ["/home/dev/.nix-profile/bin/zsh\n"]

    def test_already_registered(self, tmp_path: Path):
        shells = tmp_path / "shells"
        shells.write_text("/bin/sh\n/home/dev/.nix-profile/bin/zsh\n")
        runner = FakeRunner()
        assert not register_shell(runner, Path("/home/dev/.nix-profile/bin/zsh"), shells)
        assert runner.commands == []


class TestChangeLoginShell:
    def test_changes(self):
        runner = FakeRunner()
        assert change_login_shell(runner, Path("/z/zsh"), current="/bin/bash")
        assert runner.commands == [["chsh", "-s", "/z/zsh", "dev"]]

    def test_unchanged(self):
        runner = FakeRunner()
        assert not change_login_shell(runner, Path("/z/zsh"), current="/z/zsh")
        assert runner.commands == []


class TestPostInstall:
    def test_requires_nix_zsh(self, home: Path, tmp_path: Path):
        with pytest.raises(PostInstallError, match="zsh not found"):
            post_install(FakeRunner(), ServerConfig(), home, shells_file=tmp_path / "shells")

    def test_full(self, home: Path, nix_zsh: Path, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(tailscale.time, "sleep", lambda seconds: None)
        monkeypatch.setattr(system, "login_shell", lambda user=None: "/bin/bash")
        (nix_zsh.parent / "tailscale").write_text("")
        (nix_zsh.parent / "tailscaled").write_text("")
        runner = FakeRunner()

        result = post_install(runner, ServerConfig(), home, shells_file=tmp_path / "shells")

        assert result.registered_shell
        assert result.changed_shell
        assert result.tailscale.authenticated
        data = result.to_dict()
        assert data["zsh_path"] == str(nix_zsh)
        assert data["tailscale"]["command"].endswith("up --ssh --advertise-exit-node")
        assert "Log out" in result.messages[0]

    def test_tailscale_missing_propagates(self, home: Path, nix_zsh: Path, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(system, "login_shell", lambda user=None: str(nix_zsh))
        with pytest.raises(tailscale.TailscaleError):
            post_install(FakeRunner(), ServerConfig(), home, shells_file=tmp_path / "shells")
