"""
Tests for installers: the lifecycle contract and each installer family.
"""

import dataclasses
import io
import tarfile
from pathlib import Path

import pytest

from conftest import FakeRunner, seed_release_cache

from localremote.core.engine.runner import CommandError
from localremote.core.models.config import ServerConfig
from localremote.core.observability.health import HealthReport
from localremote.core.persistence.lock_file import load_lock
from localremote.core.services import system
from localremote.installers import binaries, docker, github_cli, release
from localremote.installers.apt import AptInstaller, BtopInstaller
from localremote.installers.base import InstallerError
from localremote.installers.binaries import (
    DeltaInstaller,
    LazydockerInstaller,
    LazygitInstaller,
    YqInstaller,
    ZoxideInstaller,
)
from localremote.installers.docker import DOCKER_KEY_URL, DockerInstaller
from localremote.installers.github_cli import GH_KEY_URL, GitHubCliInstaller
from localremote.installers.mock import MockInstaller

STATUS = "-f=${Status}"
VERSION = "-f=${Version}"


def _tarball(members: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture(autouse=True)
def fixed_host(tmp_path: Path, monkeypatch):
    """x86_64 Ubuntu noble; /usr/local/bin and apt sources under tmp_path."""
    monkeypatch.setattr(binaries, "get_arch", lambda arch=None: "amd64")
    monkeypatch.setattr(binaries, "get_github_arch", lambda arch=None: "x86_64")
    monkeypatch.setattr(binaries, "get_rust_arch", lambda arch=None: "x86_64")
    monkeypatch.setattr(system, "get_arch", lambda arch=None: "amd64")
    monkeypatch.setattr(system, "read_os_release", lambda path=None: {"ID": "ubuntu", "VERSION_CODENAME": "noble"})
    monkeypatch.setattr(release, "SYSTEM_BIN", tmp_path / "usr-local-bin")
    monkeypatch.setattr(docker, "DOCKER_LIST", tmp_path / "apt" / "docker.list")
    monkeypatch.setattr(docker, "DOCKER_KEYRING", tmp_path / "keyrings" / "docker.gpg")
    monkeypatch.setattr(github_cli, "GH_LIST", tmp_path / "apt" / "github-cli.list")
    monkeypatch.setattr(github_cli, "GH_KEYRING", tmp_path / "keyrings" / "gh.gpg")


# ── Lifecycle contract ──────────────────────────────────────────


class TestInstallerLifecycle:
    def test_fresh_install(self, install_ctx, fake_runner):
        mock = MockInstaller(install_ctx, installed=None, desired="1.0.0")
        receipt = mock.run("install")

        assert receipt.ok
        assert receipt.output == "installed mock 1.0.0"
        assert receipt.metadata["from_version"] is None
        assert receipt.metadata["to_version"] == "1.0.0"
        assert receipt.changed
        assert fake_runner.ran("mock-install") == [["mock-install", "1.0.0"]]
        assert load_lock(install_ctx.lock_path).get("mock") == "1.0.0"

    def test_up_to_date_is_skipped(self, install_ctx, fake_runner):
        mock = MockInstaller(install_ctx, installed="1.0.0", desired="1.0.0")
        receipt = mock.run("install")

        assert receipt.status == "skipped"
        assert receipt.output == "up to date (1.0.0)"
        assert not receipt.changed
        assert mock.calls == []
        assert fake_runner.commands == []

    def test_repeat_install_converges(self, install_ctx):
        mock = MockInstaller(install_ctx, installed=None, desired="1.0.0")
        assert mock.run("install").changed
        assert not mock.run("install").changed
        assert mock.calls == ["install:1.0.0"]

    def test_update_to_newer(self, install_ctx):
        mock = MockInstaller(install_ctx, installed="1.0.0", desired="1.2.0")
        receipt = mock.run("update")
        assert receipt.ok
        assert receipt.output == "updated mock 1.2.0"
        assert mock.calls[0] == "update:1.2.0"

    def test_never_downgrades(self, install_ctx):
        mock = MockInstaller(install_ctx, installed="2.0.0", desired="1.0.0")
        assert mock.run("update").status == "skipped"
        assert mock.calls == []

    def test_package_manager_decides_on_update(self, install_ctx):
        mock = MockInstaller(install_ctx, installed="1.0.0", desired=None)
        assert mock.run("install").status == "skipped"
        assert mock.run("update").ok
        assert mock.calls[0] == "update:None"

    def test_dry_run(self, install_ctx):
        ctx = dataclasses.replace(install_ctx, runner=FakeRunner(dry_run=True))
        mock = MockInstaller(ctx, installed=None, desired="1.0.0")
        receipt = mock.run("install")

        assert receipt.ok
        assert receipt.output == "[dry-run] would install mock"
        assert receipt.metadata["dry_run"] is True
        assert receipt.metadata["planned"] == ["[DRY-RUN] Would execute: mock-install 1.0.0"]
        assert mock.installed is None
        assert not ctx.lock_path.exists()

    def test_install_failure_raises(self, install_ctx):
        mock = MockInstaller(install_ctx, installed=None, fail_install="mirror down")
        with pytest.raises(InstallerError, match="mirror down"):
            mock.run("install")

    def test_verification_failure(self, install_ctx):
        mock = MockInstaller(install_ctx, installed=None, healthy=False)
        receipt = mock.run("install")
        assert receipt.failed
        assert receipt.error == "verification failed: mock is broken"
        assert receipt.metadata["checks"][0]["status"] == "fail"

    def test_disabled(self, install_ctx):
        ctx = dataclasses.replace(
            install_ctx,
            config=ServerConfig.model_validate({"packages": {"mock": {"enabled": False}}}),
        )
        receipt = MockInstaller(ctx).run("install")
        assert receipt.status == "skipped"
        assert receipt.output == "disabled in config"

    def test_version_action(self, install_ctx):
        assert MockInstaller(install_ctx, installed="1.4.0").run("version").output == "1.4.0"
        missing = MockInstaller(install_ctx, installed=None).run("version")
        assert missing.failed
        assert missing.error == "mock is not installed"

    def test_verify_action(self, install_ctx):
        receipt = MockInstaller(install_ctx, installed="1.0.0").run("verify")
        assert receipt.ok
        assert receipt.output == "mock verified"
        assert receipt.metadata["checks"] == [
            {"component": "mock", "status": "pass", "message": "mock 1.0.0"}
        ]

    def test_unknown_action(self, install_ctx):
        receipt = MockInstaller(install_ctx).run("remove")
        assert receipt.failed
        assert "Unknown action" in receipt.error


# ── apt ─────────────────────────────────────────────────────────


class TestAptInstaller:
    def test_all_present_is_skipped(self, install_ctx, fake_runner):
        fake_runner.respond(["dpkg-query", "-W", STATUS], stdout="install ok installed")
        receipt = AptInstaller(install_ctx).run("install")
        assert receipt.status == "skipped"
        assert receipt.output == "up to date (9 packages)"
        assert fake_runner.ran("apt-get") == []

    def test_installs_only_missing(self, install_ctx, fake_runner):
        fake_runner.respond(["dpkg-query", "-W", STATUS], stdout="install ok installed")
        fake_runner.respond(["dpkg-query", "-W", STATUS, "jq"], returncode=1)
        fake_runner.after(
            ["apt-get", "install"],
            lambda: fake_runner.respond(["dpkg-query", "-W", STATUS, "jq"], stdout="install ok installed"),
        )

        receipt = AptInstaller(install_ctx).run("install")
        assert receipt.ok
        assert fake_runner.ran("apt-get") == [
            ["apt-get", "update", "-qq"],
            ["apt-get", "install", "-y", "-qq", "jq"],
        ]

    def test_update_upgrades(self, install_ctx, fake_runner):
        fake_runner.respond(["dpkg-query", "-W", STATUS], stdout="install ok installed")
        receipt = AptInstaller(install_ctx).run("update")
        assert receipt.ok
        assert ["apt-get", "upgrade", "-y", "-qq"] in fake_runner.commands

    def test_verify_reports_missing(self, install_ctx, fake_runner):
        fake_runner.respond(["dpkg-query", "-W", STATUS], stdout="install ok installed")
        fake_runner.respond(["dpkg-query", "-W", STATUS, "zsh"], returncode=1)
        report = HealthReport()
        AptInstaller(install_ctx).verify(report)
        assert [c.component for c in report.failed] == ["apt:zsh"]

    def test_dry_run_plans_apt(self, install_ctx):
        runner = FakeRunner(dry_run=True)
        runner.respond(["dpkg-query", "-W", STATUS], returncode=1)
        ctx = dataclasses.replace(install_ctx, runner=runner)
        receipt = AptInstaller(ctx).run("install")
        assert receipt.ok
        assert receipt.metadata["planned"][0] == "[DRY-RUN] Would execute: sudo apt-get update -qq"


class TestBtopInstaller:
    def test_install(self, install_ctx, fake_runner):
        fake_runner.respond(["dpkg-query", "-W", VERSION, "btop"], stdout="1.3.0-1")
        fake_runner.respond(["btop", "--version"], stdout="btop version: 1.3.0")
        fake_runner.after(["apt-get", "install"], lambda: fake_runner.executables.update(btop="/usr/bin/btop"))

        receipt = BtopInstaller(install_ctx).run("install")
        assert receipt.ok
        assert receipt.output == "installed btop 1.3.0"
        assert load_lock(install_ctx.lock_path).packages["btop"].method == "apt"

    def test_update_only_upgrades(self, install_ctx, fake_runner):
        fake_runner.executables["btop"] = "/usr/bin/btop"
        fake_runner.respond(["dpkg-query", "-W", VERSION, "btop"], stdout="1.3.0-1")
        BtopInstaller(install_ctx).run("update")
        assert ["apt-get", "install", "--only-upgrade", "-y", "-qq", "btop"] in fake_runner.commands

    def test_present_is_skipped(self, install_ctx, fake_runner):
        fake_runner.executables["btop"] = "/usr/bin/btop"
        fake_runner.respond(["dpkg-query", "-W", VERSION, "btop"], stdout="1.3.0-1")
        receipt = BtopInstaller(install_ctx).run("install")
        assert receipt.output == "up to date (1.3.0)"


# ── Docker / GitHub CLI ─────────────────────────────────────────


class TestDockerInstaller:
    def test_install(self, install_ctx, fake_runner, home: Path):
        fake_runner.downloads[DOCKER_KEY_URL] = b"-----BEGIN PGP-----"
        fake_runner.respond(["dpkg-query", "-W", VERSION, "docker-ce"], stdout="5:27.1.1-1~ubuntu.24.04~noble")
        fake_runner.respond(["docker", "--version"], stdout="Docker version 27.1.1, build 6312585")
        fake_runner.after(
            ["apt-get", "install", "-y", "-qq", "docker-ce"],
            lambda: fake_runner.executables.update(docker="/usr/bin/docker"),
        )

        receipt = DockerInstaller(install_ctx).run("install")

        assert receipt.ok, receipt.error
        assert receipt.output == "installed docker 27.1.1"
        assert any(c[0] == "gpg" and "--dearmor" in c for c in fake_runner.commands)
        assert fake_runner.ran("tee")
        source_line = fake_runner.inputs[fake_runner.commands.index(fake_runner.ran("tee")[0])]
        assert source_line.startswith("deb [arch=amd64 signed-by=")
        assert "noble stable" in source_line
        assert ["usermod", "-aG", "docker", "dev"] in fake_runner.commands
        assert ["systemctl", "enable", "docker"] in fake_runner.commands
        assert ["systemctl", "start", "docker"] in fake_runner.commands
        assert "alias dc='docker compose'" in (home / ".config" / "shell" / "40-docker.sh").read_text()

    def test_no_systemd_in_container(self, install_ctx, fake_runner, monkeypatch):
        monkeypatch.setattr(system, "is_docker", lambda *a, **kw: True)
        fake_runner.downloads[DOCKER_KEY_URL] = b"key"
        DockerInstaller(install_ctx).do_install(None)
        assert fake_runner.ran("systemctl") == []

    def test_missing_codename(self, install_ctx, monkeypatch):
        monkeypatch.setattr(system, "read_os_release", lambda path=None: {})
        with pytest.raises(InstallerError, match="codename"):
            DockerInstaller(install_ctx).do_install(None)

    def test_verify_group_and_service(self, install_ctx, fake_runner):
        fake_runner.executables["docker"] = "/usr/bin/docker"
        fake_runner.respond(["docker", "--version"], stdout="Docker version 27.1.1")
        fake_runner.respond(["systemctl", "is-active"], returncode=3)

        report = HealthReport()
        DockerInstaller(install_ctx).verify(report)
        by_component = {c.component: c.status for c in report.checks}
        assert by_component == {"docker": "pass", "group:docker": "warn", "service:docker": "warn"}
        assert report.ok

    def test_disabled_in_config(self, install_ctx):
        ctx = dataclasses.replace(install_ctx, config=ServerConfig.model_validate({"docker": {"enabled": False}}))
        assert DockerInstaller(ctx).run("install").status == "skipped"


class TestGitHubCliInstaller:
    def test_install_adds_repo(self, install_ctx, fake_runner):
        fake_runner.downloads[GH_KEY_URL] = b"key"
        fake_runner.respond(["dpkg-query", "-W", VERSION, "gh"], stdout="2.50.0")
        fake_runner.respond(["gh", "--version"], stdout="gh version 2.50.0 (2024-05-29)")
        fake_runner.respond(["gh", "auth", "status"], returncode=1)
        fake_runner.after(["apt-get", "install", "-y", "-qq", "gh"], lambda: fake_runner.executables.update(gh="/usr/bin/gh"))

        receipt = GitHubCliInstaller(install_ctx).run("install")

        assert receipt.ok
        assert receipt.output == "installed github-cli 2.50.0"
        assert fake_runner.fetched == [GH_KEY_URL]
        assert ["apt-get", "install", "-y", "-qq", "gh"] in fake_runner.commands
        checks = {c["component"]: c["status"] for c in receipt.metadata["checks"]}
        assert checks["gh-auth"] == "warn"


# ── GitHub release binaries ─────────────────────────────────────


ZOXIDE_URL = (
    "https://github.com/ajeetdsouza/zoxide/releases/download/v0.9.4/"
    "zoxide-0.9.4-x86_64-unknown-linux-musl.tar.gz"
)


class TestReleaseInstaller:
    def test_fresh_install_user_local(self, install_ctx, fake_runner, home: Path):
        seed_release_cache(install_ctx, "ajeetdsouza/zoxide", "0.9.4")
        fake_runner.downloads[ZOXIDE_URL] = _tarball({"zoxide": b"#!zoxide"})
        exe = home / ".local" / "bin" / "zoxide"
        fake_runner.respond([str(exe), "--version"], stdout="zoxide 0.9.4")

        receipt = ZoxideInstaller(install_ctx).run("install")

        assert receipt.ok, receipt.error
        assert receipt.output == "installed zoxide 0.9.4"
        assert exe.read_bytes() == b"#!zoxide"
        assert exe.stat().st_mode & 0o777 == 0o755
        assert load_lock(install_ctx.lock_path).get("zoxide") == "0.9.4"
        assert "zoxide init zsh" in (home / ".config" / "shell" / "60-zoxide.sh").read_text()

    def test_up_to_date(self, install_ctx, fake_runner, home: Path):
        seed_release_cache(install_ctx, "ajeetdsouza/zoxide", "0.9.4")
        exe = home / ".local" / "bin" / "zoxide"
        exe.parent.mkdir(parents=True)
        exe.write_text("x")
        fake_runner.respond([str(exe), "--version"], stdout="zoxide v0.9.4")

        receipt = ZoxideInstaller(install_ctx).run("install")
        assert receipt.status == "skipped"
        assert fake_runner.fetched == []
        assert (home / ".config" / "shell" / "60-zoxide.sh").is_file()

    def test_update_to_pin(self, install_ctx, fake_runner, home: Path):
        ctx = dataclasses.replace(
            install_ctx,
            config=ServerConfig.model_validate({"packages": {"zoxide": {"version": "0.9.4"}}}),
        )
        exe = home / ".local" / "bin" / "zoxide"
        exe.parent.mkdir(parents=True)
        exe.write_text("old")
        fake_runner.respond([str(exe), "--version"], stdout="zoxide 0.9.0")
        fake_runner.downloads[ZOXIDE_URL] = _tarball({"./zoxide": b"new"})
        fake_runner.after(["fetch"], lambda: fake_runner.respond([str(exe), "--version"], stdout="zoxide 0.9.4"))

        receipt = ZoxideInstaller(ctx).run("update")
        assert receipt.ok
        assert receipt.output == "updated zoxide 0.9.4"
        assert receipt.metadata["from_version"] == "0.9.0"
        assert exe.read_bytes() == b"new"

    def test_pin_below_installed_never_downgrades(self, install_ctx, fake_runner, home: Path):
        ctx = dataclasses.replace(
            install_ctx,
            config=ServerConfig.model_validate({"packages": {"zoxide": {"version": "0.8.0"}}}),
        )
        exe = home / ".local" / "bin" / "zoxide"
        exe.parent.mkdir(parents=True)
        exe.write_text("x")
        fake_runner.respond([str(exe), "--version"], stdout="zoxide 0.9.4")
        assert ZoxideInstaller(ctx).run("update").status == "skipped"

    def test_dry_run(self, install_ctx, home: Path):
        runner = FakeRunner(dry_run=True)
        ctx = dataclasses.replace(install_ctx, runner=runner)
        seed_release_cache(ctx, "ajeetdsouza/zoxide", "0.9.4")

        receipt = ZoxideInstaller(ctx).run("install")

        assert receipt.output == "[dry-run] would install zoxide"
        assert len(receipt.metadata["planned"]) == 2
        assert receipt.metadata["planned"][0].startswith(f"[DRY-RUN] Would download: {ZOXIDE_URL}")
        assert runner.fetched == []
        assert not (home / ".local" / "bin" / "zoxide").exists()
        assert not ctx.lock_path.exists()

    def test_unresolvable_latest(self, install_ctx):
        with pytest.raises(InstallerError, match="Cannot resolve latest release of ajeetdsouza/zoxide"):
            ZoxideInstaller(install_ctx).run("install")

    @pytest.mark.parametrize("action", ["install", "update"])
    def test_installed_and_offline_is_skipped(self, install_ctx, fake_runner, home: Path, action):
        exe = home / ".local" / "bin" / "zoxide"
        exe.parent.mkdir(parents=True)
        exe.write_text("x")
        fake_runner.respond([str(exe), "--version"], stdout="zoxide v0.9.2")

        receipt = ZoxideInstaller(install_ctx).run(action)

        assert receipt.status == "skipped"
        assert receipt.output == "already installed (0.9.2), latest release unknown"
        assert fake_runner.fetched == []

    def test_download_failure(self, install_ctx):
        seed_release_cache(install_ctx, "ajeetdsouza/zoxide", "0.9.4")
        with pytest.raises(CommandError, match="404"):
            ZoxideInstaller(install_ctx).run("install")

    def test_member_missing_from_archive(self, install_ctx, fake_runner):
        seed_release_cache(install_ctx, "ajeetdsouza/zoxide", "0.9.4")
        fake_runner.downloads[ZOXIDE_URL] = _tarball({"README.md": b"docs"})
        with pytest.raises(InstallerError, match="zoxide not found"):
            ZoxideInstaller(install_ctx).run("install")

    def test_raw_asset_system_wide(self, install_ctx, fake_runner, tmp_path: Path):
        seed_release_cache(install_ctx, "mikefarah/yq", "4.44.1")
        url = "https://github.com/mikefarah/yq/releases/download/v4.44.1/yq_linux_amd64"
        fake_runner.downloads[url] = b"ELF"
        target = tmp_path / "usr-local-bin" / "yq"
        fake_runner.after(["install", "-m", "755"], lambda: fake_runner.executables.update(yq=str(target)))
        fake_runner.respond([str(target), "--version"], stdout="yq (https://github.com/mikefarah/yq/) version v4.44.1")

        receipt = YqInstaller(install_ctx).run("install")

        assert receipt.ok, receipt.error
        install_cmd = fake_runner.ran("install", "-m", "755")[0]
        assert install_cmd[3].endswith("yq_linux_amd64")
        assert install_cmd[4] == str(target)

    def test_verify_warns_below_pin(self, install_ctx, fake_runner, home: Path):
        ctx = dataclasses.replace(
            install_ctx,
            config=ServerConfig.model_validate({"packages": {"zoxide": {"version": "1.0.0"}}}),
        )
        fake_runner.executables["zoxide"] = "/usr/bin/zoxide"
        fake_runner.respond(["/usr/bin/zoxide", "--version"], stdout="zoxide 0.9.4")
        report = HealthReport()
        ZoxideInstaller(ctx).verify(report)
        assert report.ok
        assert report.warnings[0].message == "installed 0.9.4, pinned 1.0.0"

    def test_verify_missing(self, install_ctx):
        report = HealthReport()
        ZoxideInstaller(install_ctx).verify(report)
        assert report.failed[0].message == "zoxide not found"


class TestAssetNaming:
    def test_lazygit(self, install_ctx, fake_runner):
        installer = LazygitInstaller(install_ctx)
        assert installer.asset_url("0.41.0") == (
            "https://github.com/jesseduffield/lazygit/releases/download/v0.41.0/"
            "lazygit_0.41.0_Linux_x86_64.tar.gz"
        )
        fake_runner.executables["lazygit"] = "/usr/local/bin/lazygit"
        fake_runner.respond(
            ["/usr/local/bin/lazygit"],
            stdout="commit=abc, build date=2024-01-01, version=0.41.0, os=linux, arch=amd64",
        )
        assert installer.get_installed_version() == "0.41.0"
        assert "alias lg='lazygit'" in installer.shell_fragment()

    def test_lazydocker_version(self, install_ctx, fake_runner):
        fake_runner.executables["lazydocker"] = "/usr/local/bin/lazydocker"
        fake_runner.respond(["/usr/local/bin/lazydocker"], stdout="Version: 0.23.1\nDate: 2024-01-01")
        assert LazydockerInstaller(install_ctx).get_installed_version() == "0.23.1"

    def test_delta_untagged_release(self, install_ctx):
        installer = DeltaInstaller(install_ctx)
        assert installer.asset_url("0.18.2") == (
            "https://github.com/dandavison/delta/releases/download/0.18.2/"
            "delta-0.18.2-x86_64-unknown-linux-gnu.tar.gz"
        )
        assert installer.archive_member("0.18.2") == "delta-0.18.2-x86_64-unknown-linux-gnu/delta"

    def test_delta_nested_member(self, install_ctx, fake_runner, tmp_path: Path):
        seed_release_cache(install_ctx, "dandavison/delta", "0.18.2")
        url = DeltaInstaller(install_ctx).asset_url("0.18.2")
        fake_runner.downloads[url] = _tarball(
            {
                "delta-0.18.2-x86_64-unknown-linux-gnu/README.md": b"docs",
                "delta-0.18.2-x86_64-unknown-linux-gnu/delta": b"DELTA",
            }
        )
        DeltaInstaller(install_ctx).do_install("0.18.2")
        assert fake_runner.ran("install", "-m", "755")[0][4] == str(tmp_path / "usr-local-bin" / "delta")
