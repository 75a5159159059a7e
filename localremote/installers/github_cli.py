"""
GitHub CLI installer: ``gh`` from the cli.github.com apt repository.
"""

from __future__ import annotations

from pathlib import Path

from localremote.core.observability.health import HealthReport, check_command_version
from localremote.installers.apt import AptPackageInstaller, add_apt_source

GH_KEY_URL = "https://cli.github.com/packages/githubcli-archive-keyring.gpg"
GH_KEYRING = Path("/etc/apt/keyrings/githubcli-archive-keyring.gpg")
GH_LIST = Path("/etc/apt/sources.list.d/github-cli.list")


class GitHubCliInstaller(AptPackageInstaller):
    name = "github-cli"
    lock_method = "apt-repo"
    package = "gh"
    command = "gh"

    def do_install(self, version: str | None) -> None:
        if not GH_LIST.is_file():
            add_apt_source(
                self.runner,
                key_url=GH_KEY_URL,
                keyring=GH_KEYRING,
                list_file=GH_LIST,
                source_line="deb [arch={arch} signed-by={keyring}] https://cli.github.com/packages stable main",
            )
        self.runner.apt("install", "-y", "-qq", self.package)

    def verify(self, report: HealthReport) -> None:
        check_command_version(report, self.runner, "gh", name=self.name)
        if self.runner.which("gh") is None:
            return
        if self.runner.probe(["gh", "auth", "status"]).ok:
            report.add_pass("gh-auth", "gh is authenticated")
        else:
            report.add_warn("gh-auth", "gh is not authenticated (run: local-remote github setup)")
