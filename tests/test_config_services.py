"""
Tests for git, zsh and shell configuration services.
"""

from pathlib import Path

import pytest

from conftest import FakeRunner

from localremote.core.models.config import ServerConfig
from localremote.core.services.git_config import (
    DELTA_SETTINGS,
    GITHUB_SSH_REWRITE,
    GitConfigError,
    build_git_settings,
    configure_git,
    verify_git_config,
)
from localremote.core.services.shell_config import (
    CUSTOM_CONFIG,
    generate_shell_config,
    list_fragments,
    render_custom_config,
)
from localremote.core.services.zsh_config import (
    OMZ_INSTALL_URL,
    SOURCE_BLOCK,
    ZshConfigError,
    apply_zshrc_settings,
    configure_zsh,
    verify_zsh_config,
)

OMZ_ZSHRC = """\
export ZSH="$HOME/.oh-my-zsh"
ZSH_THEME="robbyrussell"
plugins=(git)
source $ZSH/oh-my-zsh.sh
"""


# ── git ─────────────────────────────────────────────────────────


class TestBuildGitSettings:
    def test_defaults_use_login_identity(self):
        result = build_git_settings(ServerConfig(), delta_available=False, user="dev", host="devbox")
        settings = dict(result.settings)
        assert settings["user.name"] == "dev"
        assert settings["user.email"] == "dev@devbox"
        assert settings["init.defaultBranch"] == "main"
        assert settings["push.autoSetupRemote"] == "true"
        assert settings["pull.rebase"] == "true"
        assert settings["core.pager"] == "less"
        assert result.warnings == []

    def test_configured(self):
        config = ServerConfig.model_validate(
            {
                "user": {"name": "Dev Person", "email": "dev@example.com"},
                "git": {
                    "default_branch": "trunk",
                    "push_auto_setup_remote": False,
                    "pull_rebase": False,
                    "pager": "delta",
                    "url_rewrite_github": True,
                },
            }
        )
        result = build_git_settings(config, delta_available=True, user="dev", host="devbox")
        assert result.settings[:4] == [
            ("user.name", "Dev Person"),
            ("user.email", "dev@example.com"),
            ("init.defaultBranch", "trunk"),
            ("pull.rebase", "false"),
        ]
        assert result.settings[4:-1] == DELTA_SETTINGS
        assert result.settings[-1] == GITHUB_SSH_REWRITE

    def test_delta_missing_falls_back(self):
        config = ServerConfig.model_validate({"git": {"pager": "delta"}})
        result = build_git_settings(config, delta_available=False, user="dev", host="devbox")
        assert ("core.pager", "less") in result.settings
        assert "delta is not installed" in result.warnings[0]


class TestConfigureGit:
    def test_requires_git(self):
        with pytest.raises(GitConfigError, match="git is not installed"):
            configure_git(ServerConfig(), FakeRunner())

    def test_applies_global_settings(self):
        runner = FakeRunner()
        runner.executables["git"] = "/usr/bin/git"
        result = configure_git(ServerConfig(), runner)
        assert len(runner.commands) == len(result.settings)
        assert runner.commands[0] == ["git", "config", "--global", "user.name", "dev"]
        assert ["git", "config", "--global", "user.email", "dev@devbox"] in runner.commands

    def test_dry_run(self):
        runner = FakeRunner(dry_run=True)
        runner.executables["git"] = "/usr/bin/git"
        configure_git(ServerConfig(), runner)
        assert runner.commands == []
        assert runner.planned[0] == "[DRY-RUN] Would execute: git config --global user.name dev"


class TestVerifyGitConfig:
    def test_healthy(self):
        runner = FakeRunner()
        runner.executables["git"] = "/usr/bin/git"
        runner.respond(["git", "config", "--global", "--get"], stdout="value\n")
        assert verify_git_config(runner).status == "healthy"

    def test_identity_missing(self):
        runner = FakeRunner()
        runner.executables["git"] = "/usr/bin/git"
        runner.respond(["git", "config", "--global", "--get"], returncode=1)
        report = verify_git_config(runner)
        assert [c.component for c in report.failed] == ["git:user.name", "git:user.email"]
        assert [c.component for c in report.warnings] == ["git:init.defaultBranch"]

    def test_no_git(self):
        report = verify_git_config(FakeRunner())
        assert report.failed[0].message == "git not found"


# ── zsh ─────────────────────────────────────────────────────────


class TestApplyZshrcSettings:
    def test_rewrites_theme_and_plugins(self):
        content = apply_zshrc_settings(OMZ_ZSHRC, "agnoster", ["git", "docker", "z"])
        assert 'ZSH_THEME="agnoster"' in content
        assert "plugins=(git docker z)" in content
        assert content.endswith(SOURCE_BLOCK)
        assert content.count("ZSH_THEME=") == 1

    def test_idempotent(self):
        once = apply_zshrc_settings(OMZ_ZSHRC, "agnoster", ["git"])
        assert apply_zshrc_settings(once, "agnoster", ["git"]) == once

    def test_adds_missing_lines(self):
        content = apply_zshrc_settings("source $ZSH/oh-my-zsh.sh\n", "robbyrussell", ["git"])
        assert content.startswith('ZSH_THEME="robbyrussell"\n')
        assert "plugins=(git)\n" in content


class TestConfigureZsh:
    def test_updates_and_backs_up(self, home: Path):
        zshrc = home / ".zshrc"
        zshrc.write_text(OMZ_ZSHRC)
        config = ServerConfig.model_validate({"zsh": {"theme": "agnoster"}})

        result = configure_zsh(config, FakeRunner(), home)

        assert result.zshrc_changed
        assert 'ZSH_THEME="agnoster"' in zshrc.read_text()
        backup = Path(result.backup)
        assert backup.name.startswith(".zshrc.") and backup.name.endswith(".bak")
        assert backup.read_text() == OMZ_ZSHRC

    def test_already_configured(self, home: Path):
        zshrc = home / ".zshrc"
        zshrc.write_text(apply_zshrc_settings(OMZ_ZSHRC, "robbyrussell", ["git"]))
        result = configure_zsh(ServerConfig(), FakeRunner(), home)
        assert not result.zshrc_changed
        assert result.backup is None
        assert list(home.glob("*.bak")) == []

    def test_missing_zshrc(self, home: Path):
        with pytest.raises(ZshConfigError, match="--install-omz"):
            configure_zsh(ServerConfig(), FakeRunner(), home)

    def test_installs_oh_my_zsh(self, home: Path):
        runner = FakeRunner()
        runner.downloads[OMZ_INSTALL_URL] = b"#!/bin/sh\n"

        def installer_ran():
            (home / ".oh-my-zsh").mkdir()
            (home / ".zshrc").write_text(OMZ_ZSHRC)

        runner.after(["sh"], installer_ran)

        result = configure_zsh(ServerConfig(), runner, home, install_omz=True)

        assert result.omz_installed
        assert result.zshrc_changed
        assert runner.ran("sh")[0][-1] == "--unattended"

    def test_skips_installed_oh_my_zsh(self, home: Path):
        (home / ".oh-my-zsh").mkdir()
        (home / ".zshrc").write_text(OMZ_ZSHRC)
        runner = FakeRunner()
        result = configure_zsh(ServerConfig(), runner, home, install_omz=True)
        assert not result.omz_installed
        assert runner.fetched == []

    def test_dry_run_fresh_machine(self, home: Path):
        runner = FakeRunner(dry_run=True)
        result = configure_zsh(ServerConfig(), runner, home, install_omz=True)
        assert result.omz_installed
        assert runner.planned[-1].startswith("[DRY-RUN] Would configure")
        assert not (home / ".zshrc").exists()


class TestVerifyZshConfig:
    def test_healthy(self, home: Path):
        (home / ".oh-my-zsh").mkdir()
        (home / ".zshrc").write_text(apply_zshrc_settings(OMZ_ZSHRC, "robbyrussell", ["git"]))
        runner = FakeRunner()
        runner.executables["zsh"] = "/usr/bin/zsh"
        assert verify_zsh_config(ServerConfig(), runner, home).status == "healthy"

    def test_custom_config_not_sourced(self, home: Path):
        (home / ".oh-my-zsh").mkdir()
        (home / ".zshrc").write_text(OMZ_ZSHRC.replace("robbyrussell", "agnoster"))
        runner = FakeRunner()
        runner.executables["zsh"] = "/usr/bin/zsh"
        report = verify_zsh_config(ServerConfig(), runner, home)
        assert [c.component for c in report.failed] == ["zsh:custom-config"]
        assert [c.component for c in report.warnings] == ["zsh:theme"]


# ── ~/.zsh_custom_config ────────────────────────────────────────


class TestShellConfig:
    def test_generate(self, home: Path):
        runner = FakeRunner()
        path = generate_shell_config(runner, home)
        assert path == home / CUSTOM_CONFIG
        assert path.read_text() == render_custom_config()
        assert (home / ".config" / "shell").is_dir()

    def test_unchanged_is_not_rewritten(self, home: Path):
        runner = FakeRunner(dry_run=True)
        (home / CUSTOM_CONFIG).write_text(render_custom_config())
        generate_shell_config(runner, home)
        assert not any("write file" in line for line in runner.planned)

    def test_fragments_sorted(self, home: Path):
        shell_dir = home / ".config" / "shell"
        shell_dir.mkdir(parents=True)
        for name in ("70-starship.sh", "40-docker.sh", "README.md"):
            (shell_dir / name).write_text("")
        assert [p.name for p in list_fragments(home)] == ["40-docker.sh", "70-starship.sh"]

    def test_no_fragment_dir(self, home: Path):
        assert list_fragments(home) == []
