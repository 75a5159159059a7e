"""
Release binaries: the CLI tools installed straight from GitHub releases.

Each project names its assets differently; the per-tool classes below
only encode those naming rules and their shell fragments.
"""

from __future__ import annotations

from localremote.core.services.system import get_arch, get_github_arch, get_rust_arch
from localremote.installers.release import GitHubReleaseInstaller

_GITHUB = "https://github.com"


def _guarded(binary: str, body: str, title: str | None = None) -> str:
    """Shell fragment that only runs when ``binary`` is on PATH."""
    return (
        f"# {title or binary} (managed by local-remote)\n"
        f"if command -v {binary} >/dev/null 2>&1; then\n"
        f"  {body}\n"
        "fi\n"
    )


class YqInstaller(GitHubReleaseInstaller):
    name = "yq"
    repo = "mikefarah/yq"
    binary = "yq"

    def asset_url(self, version: str) -> str:
        return f"{_GITHUB}/{self.repo}/releases/download/v{version}/yq_linux_{get_arch()}"

    def archive_member(self, version: str) -> str | None:
        return None


class LazygitInstaller(GitHubReleaseInstaller):
    name = "lazygit"
    repo = "jesseduffield/lazygit"
    binary = "lazygit"
    version_pattern = r"version=v?(\d+\.\d+\.\d+)"
    shell_fragment_name = "35-lazygit.sh"

    def asset_url(self, version: str) -> str:
        asset = f"lazygit_{version}_Linux_{get_github_arch()}.tar.gz"
        return f"{_GITHUB}/{self.repo}/releases/download/v{version}/{asset}"

    def shell_fragment(self) -> str | None:
        return _guarded("lazygit", "alias lg='lazygit'")


class LazydockerInstaller(GitHubReleaseInstaller):
    name = "lazydocker"
    repo = "jesseduffield/lazydocker"
    binary = "lazydocker"
    version_pattern = r"Version:\s*v?(\d+\.\d+\.\d+)"
    shell_fragment_name = "36-lazydocker.sh"

    def asset_url(self, version: str) -> str:
        asset = f"lazydocker_{version}_Linux_{get_github_arch()}.tar.gz"
        return f"{_GITHUB}/{self.repo}/releases/download/v{version}/{asset}"

    def shell_fragment(self) -> str | None:
        return _guarded("lazydocker", "alias lzd='lazydocker'")


class StarshipInstaller(GitHubReleaseInstaller):
    name = "starship"
    repo = "starship/starship"
    binary = "starship"
    user_local = True
    shell_fragment_name = "70-starship.sh"

    def asset_url(self, version: str) -> str:
        asset = f"starship-{get_rust_arch()}-unknown-linux-musl.tar.gz"
        return f"{_GITHUB}/{self.repo}/releases/download/v{version}/{asset}"

    def shell_fragment(self) -> str | None:
        return _guarded("starship", 'eval "$(starship init zsh)"', title="starship prompt")


class DeltaInstaller(GitHubReleaseInstaller):
    """delta tags its releases without a ``v`` prefix."""

    name = "delta"
    repo = "dandavison/delta"
    binary = "delta"

    def _target(self, version: str) -> str:
        return f"delta-{version}-{get_rust_arch()}-unknown-linux-gnu"

    def asset_url(self, version: str) -> str:
        return f"{_GITHUB}/{self.repo}/releases/download/{version}/{self._target(version)}.tar.gz"

    def archive_member(self, version: str) -> str | None:
        return f"{self._target(version)}/delta"


class ZellijInstaller(GitHubReleaseInstaller):
    name = "zellij"
    repo = "zellij-org/zellij"
    binary = "zellij"

    def asset_url(self, version: str) -> str:
        asset = f"zellij-{get_rust_arch()}-unknown-linux-musl.tar.gz"
        return f"{_GITHUB}/{self.repo}/releases/download/v{version}/{asset}"


class ZoxideInstaller(GitHubReleaseInstaller):
    name = "zoxide"
    repo = "ajeetdsouza/zoxide"
    binary = "zoxide"
    user_local = True
    shell_fragment_name = "60-zoxide.sh"

    def asset_url(self, version: str) -> str:
        asset = f"zoxide-{version}-{get_rust_arch()}-unknown-linux-musl.tar.gz"
        return f"{_GITHUB}/{self.repo}/releases/download/v{version}/{asset}"

    def shell_fragment(self) -> str | None:
        return _guarded("zoxide", 'eval "$(zoxide init zsh)"')
