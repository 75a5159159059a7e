"""
Nix / Home Manager bootstrap.

Installs multi-user Nix, enables flakes, installs Docker through the
docker installer, then switches Home Manager to the flake configuration
matching this machine (see ``detect_flake_config``).  The machine-specific
``home-manager/user-config.nix`` is generated from a template first.
"""

from __future__ import annotations

import logging
import platform
import tempfile
import time
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

from localremote.core.engine.runner import CommandRunner
from localremote.core.services import system

logger = logging.getLogger(__name__)

NIX_INSTALL_URL = "https://nixos.org/nix/install"
NIX_DEFAULT_BIN = Path("/nix/var/nix/profiles/default/bin")
HOME_MANAGER_REF = "home-manager/release-24.05"
FLAKES_LINE = "experimental-features = nix-command flakes"

HOME_MANAGER_DIR = "home-manager"
USER_CONFIG_FILE = "user-config.nix"
USER_CONFIG_TEMPLATE = "user-config.nix.template"


class NixError(Exception):
    """Raised when Nix or Home Manager cannot be set up."""


@dataclass
class BootstrapResult:
    nix_installed: bool = False
    flakes_enabled: bool = False
    docker: str = ""
    flake_config: str = ""
    home_manager_switched: bool = False
    steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "nix_installed": self.nix_installed,
            "flakes_enabled": self.flakes_enabled,
            "docker": self.docker,
            "flake_config": self.flake_config,
            "home_manager_switched": self.home_manager_switched,
            "steps": self.steps,
        }


# ── Machine detection ───────────────────────────────────────────


def detect_flake_config(user: str | None = None, arch: str | None = None) -> str:
    """Home Manager flake output for this user/architecture."""
    user = user or system.current_user()
    arch = arch or system.machine()
    if user == "testuser":
        return "testuser" if arch == "aarch64" else "testuser-x86"
    return "ubuntu-aarch64" if arch == "aarch64" else "ubuntu"


def nix_system(arch: str | None = None) -> str:
    arch = arch or system.machine()
    if arch == "x86_64":
        return "x86_64-linux"
    if arch in ("aarch64", "arm64"):
        return "aarch64-linux"
    raise NixError(f"Unsupported architecture: {arch} (supported: x86_64, aarch64, arm64)")


# ── user-config.nix ─────────────────────────────────────────────


def user_config_values(home: Path, now: time.struct_time | None = None) -> dict[str, str]:
    arch = system.machine()
    return {
        "USERNAME": system.current_user(),
        "HOME_DIRECTORY": str(home),
        "HOSTNAME": system.hostname(),
        "NIX_SYSTEM": nix_system(arch),
        "ARCH": arch,
        "OS_INFO": system.os_description(),
        "KERNEL": platform.release(),
        "GENERATION_DATE": time.strftime("%Y-%m-%d %H:%M:%S UTC", now or time.gmtime()),
    }


def render_user_config(template: str, values: dict[str, str]) -> str:
    for key, value in values.items():
        template = template.replace(f"@{key}@", value)
    return template


def _load_user_config_template(hm_dir: Path) -> str:
    local = hm_dir / USER_CONFIG_TEMPLATE
    if local.is_file():
        return local.read_text(encoding="utf-8")
    return resources.files("localremote.data").joinpath(USER_CONFIG_TEMPLATE).read_text(encoding="utf-8")


def generate_user_config(runner: CommandRunner, project_root: Path, home: Path) -> str:
    """Write home-manager/user-config.nix for this machine.

    The file is git-ignored; ``git add --intent-to-add`` makes it visible
    to flake evaluation without staging it.

    Returns:
        The Nix system identifier (``x86_64-linux`` / ``aarch64-linux``).
    """
    hm_dir = project_root / HOME_MANAGER_DIR
    values = user_config_values(home)
    content = render_user_config(_load_user_config_template(hm_dir), values)

    output = hm_dir / USER_CONFIG_FILE
    runner.mkdir(hm_dir)
    runner.write_file(output, content)

    if runner.probe(["git", "-C", str(project_root), "rev-parse", "--git-dir"]).ok:
        runner.run(["git", "-C", str(project_root), "add", "--intent-to-add", str(output)], check=False)

    logger.info("Generated %s for %s", output, values["NIX_SYSTEM"])
    return values["NIX_SYSTEM"]


# ── Nix ─────────────────────────────────────────────────────────


def nix_binary(runner: CommandRunner) -> str | None:
    found = runner.which("nix")
    if found:
        return found
    default = NIX_DEFAULT_BIN / "nix"
    return str(default) if default.is_file() else None


def ensure_nix(runner: CommandRunner) -> bool:
    """Install multi-user Nix. Returns False if already installed."""
    if nix_binary(runner):
        logger.info("Nix already installed")
        return False
    with tempfile.TemporaryDirectory(prefix="lr-nix-") as tmp:
        script = runner.download(NIX_INSTALL_URL, Path(tmp) / "install")
        runner.run(["sh", str(script), "--daemon", "--yes"], timeout=1800)
    logger.info("Installed Nix (multi-user)")
    return True


def enable_flakes(runner: CommandRunner, home: Path) -> bool:
    """Add the flakes feature line to ~/.config/nix/nix.conf once."""
    conf = home / ".config" / "nix" / "nix.conf"
    if conf.is_file() and "experimental-features" in conf.read_text(encoding="utf-8"):
        logger.info("Flakes already enabled")
        return False
    runner.mkdir(conf.parent)
    runner.append_file(conf, FLAKES_LINE + "\n")
    logger.info("Enabled Nix flakes in %s", conf)
    return True


def install_home_manager(runner: CommandRunner, project_root: Path, flake_config: str) -> bool:
    """First Home Manager switch. Returns False if home-manager exists."""
    if runner.which("home-manager"):
        logger.info("Home Manager already installed")
        return False
    nix = nix_binary(runner)
    if nix is None and not runner.dry_run:
        raise NixError("nix not found; install Nix first")
    runner.run(
        [nix or "nix", "run", HOME_MANAGER_REF, "--", "switch", "--flake", f"./{HOME_MANAGER_DIR}#{flake_config}"],
        cwd=str(project_root),
        timeout=3600,
    )
    logger.info("Home Manager installed (%s)", flake_config)
    return True


def bootstrap(
    runner: CommandRunner,
    project_root: Path,
    home: Path,
    install_docker=None,
) -> BootstrapResult:
    """Ubuntu → Nix → flakes → Docker → Home Manager.

    ``install_docker`` is a zero-argument callable returning the docker
    install Receipt (the CLI passes one bound to the installer registry).

    Raises:
        NixError: not Ubuntu, or a step failed.
    """
    if not system.is_ubuntu():
        raise NixError(f"This setup is for Ubuntu. Detected: {system.os_description()}")

    result = BootstrapResult()
    result.nix_installed = ensure_nix(runner)
    result.steps.append("nix")
    result.flakes_enabled = enable_flakes(runner, home)
    result.steps.append("flakes")

    if install_docker is not None:
        receipt = install_docker()
        result.docker = receipt.status
        if receipt.failed:
            raise NixError(f"Docker installation failed: {receipt.error}")
        result.steps.append("docker")

    generate_user_config(runner, project_root, home)
    result.flake_config = detect_flake_config()
    result.home_manager_switched = install_home_manager(runner, project_root, result.flake_config)
    result.steps.append("home-manager")
    return result
