"""
Command runner: the SINGLE PLACE where provisioning commands run.

Every mutation of the system goes through a CommandRunner method.  In
dry-run mode the mutating methods record a ``[DRY-RUN] Would ...`` line
in ``runner.planned`` instead of acting, so a dry run walks exactly the
same code path as a real run.

Read-only probes (``probe``, ``which``) always execute, even in dry-run,
so installers can still decide what they *would* do.

Sudo handling:
    - already root → no prefix
    - sudo password given → ``sudo -S -k`` with the password on stdin
      (never in argv, never logged)
    - otherwise plain ``sudo`` (cached credentials / NOPASSWD, as on
      cloud-init images)
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "[DRY-RUN]"
_PREVIEW_LINES = 5


class CommandError(Exception):
    """A command exited non-zero (or could not be started)."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str = "", stdout: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        detail = (stderr or stdout).strip().splitlines()
        tail = f": {detail[-1]}" if detail else ""
        super().__init__(f"Command failed (exit {returncode}): {shlex.join(cmd)}{tail}")


@dataclass
class CommandResult:
    """Outcome of a single command."""

    cmd: list[str] = field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def dry_run_from_env() -> bool:
    """``DRY_RUN=true`` (or 1/yes) in the environment enables dry-run."""
    return os.environ.get("DRY_RUN", "").strip().lower() in ("1", "true", "yes")


class CommandRunner:
    """Dry-run aware command execution."""

    def __init__(
        self,
        dry_run: bool = False,
        sudo_password: str = "",
        timeout: int = 600,
    ):
        self.dry_run = dry_run
        self.timeout = timeout
        self._sudo_password = sudo_password
        self.planned: list[str] = []

    # ── Low-level primitives (replaced in tests) ────────────────

    def _execute(
        self,
        cmd: list[str],
        *,
        input_text: str | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        full_env = os.environ.copy()
        if env:
            full_env.update(env)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                input=input_text,
                timeout=timeout or self.timeout,
                cwd=cwd,
                env=full_env,
            )
        except FileNotFoundError as e:
            return CommandResult(cmd=cmd, returncode=127, stderr=str(e))
        except subprocess.TimeoutExpired:
            return CommandResult(
                cmd=cmd, returncode=124, stderr=f"Command timed out ({timeout or self.timeout}s)"
            )
        return CommandResult(
            cmd=cmd,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

    def which(self, name: str) -> str | None:
        """Path of an executable on PATH, or None."""
        return shutil.which(name)

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def _fetch(self, url: str, dest: Path, timeout: int = 120) -> None:
        req = urllib.request.Request(url, headers={"User-Agent": "local-remote/1.0"})
        with urllib.request.urlopen(req, timeout=timeout) as resp, dest.open("wb") as f:
            shutil.copyfileobj(resp, f)

    # ── Dry-run bookkeeping ─────────────────────────────────────

    def plan(self, message: str) -> None:
        line = f"{DRY_RUN_PREFIX} Would {message}"
        self.planned.append(line)
        logger.info(line)

    def summary(self) -> str:
        """One-line summary of a dry run."""
        if not self.dry_run:
            return ""
        return f"{DRY_RUN_PREFIX} {len(self.planned)} planned action(s). No changes were made."

    # ── Command execution ───────────────────────────────────────

    def _with_sudo(self, cmd: list[str], input_text: str | None) -> tuple[list[str], str | None]:
        if self.is_root():
            return cmd, input_text
        if self._sudo_password:
            password_line = self._sudo_password + "\n"
            return ["sudo", "-S", "-k", *cmd], password_line + (input_text or "")
        return ["sudo", *cmd], input_text

    def run(
        self,
        cmd: list[str],
        *,
        sudo: bool = False,
        check: bool = True,
        input_text: str | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a mutating command (planned only in dry-run).

        Raises:
            CommandError: non-zero exit and ``check`` is True.
        """
        if self.dry_run:
            prefix = "sudo " if sudo else ""
            self.plan(f"execute: {prefix}{shlex.join(cmd)}")
            return CommandResult(cmd=cmd, dry_run=True)

        display = cmd
        if sudo:
            cmd, input_text = self._with_sudo(cmd, input_text)

        logger.debug("Running: %s", shlex.join(display))
        result = self._execute(cmd, input_text=input_text, timeout=timeout, cwd=cwd, env=env)
        result.cmd = display

        if not result.ok:
            logger.debug("Exit %d from %s: %s", result.returncode, display[0], result.stderr.strip())
            if check:
                raise CommandError(display, result.returncode, result.stderr, result.stdout)
        return result

    def probe(self, cmd: list[str], timeout: int = 30, env: dict[str, str] | None = None) -> CommandResult:
        """Run a read-only command. Executes in dry-run too, never raises."""
        logger.debug("Probing: %s", shlex.join(cmd))
        return self._execute(cmd, timeout=timeout, env=env)

    def sudo(self, cmd: list[str], **kwargs) -> CommandResult:
        return self.run(cmd, sudo=True, **kwargs)

    def apt(self, *args: str) -> CommandResult:
        return self.run(
            ["apt-get", *args],
            sudo=True,
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )

    def systemctl(self, *args: str, check: bool = True) -> CommandResult:
        return self.run(["systemctl", *args], sudo=True, check=check)

    def git_config(self, *args: str) -> CommandResult:
        return self.run(["git", "config", *args])

    # ── File operations ─────────────────────────────────────────

    def download(self, url: str, dest: Path) -> Path:
        """Download ``url`` to ``dest``."""
        if self.dry_run:
            self.plan(f"download: {url} -> {dest}")
            return dest
        logger.info("Downloading %s", url)
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._fetch(url, dest)
        except Exception as e:
            dest.unlink(missing_ok=True)
            raise CommandError(["download", url], 1, str(e)) from e
        return dest

    def install_file(self, src: Path, dest: Path, mode: int = 0o755, sudo: bool = False) -> None:
        """Install a file with the given mode (``install -m``)."""
        if sudo:
            self.run(["install", "-m", format(mode, "o"), str(src), str(dest)], sudo=True)
            return
        if self.dry_run:
            self.plan(f"install: {src} -> {dest} (mode {format(mode, 'o')})")
            return
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
        dest.chmod(mode)

    def mkdir(self, path: Path, mode: int | None = None) -> None:
        if self.dry_run:
            self.plan(f"create directory: {path}")
            return
        path.mkdir(parents=True, exist_ok=True)
        if mode is not None:
            path.chmod(mode)

    def write_file(self, path: Path, content: str, mode: int | None = None, sudo: bool = False) -> None:
        """Write (replace) a file."""
        if self.dry_run:
            self.plan(f"write file: {path}")
            for line in content.splitlines()[:_PREVIEW_LINES]:
                logger.debug("%s   | %s", DRY_RUN_PREFIX, line)
            return
        if sudo:
            self.run(["tee", str(path)], sudo=True, input_text=content)
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if mode is not None:
            path.chmod(mode)

    def append_file(self, path: Path, content: str, sudo: bool = False) -> None:
        """Append to a file (created if missing)."""
        if self.dry_run:
            self.plan(f"append to {path}: {content.strip().splitlines()[0] if content.strip() else ''}")
            return
        if sudo:
            self.run(["tee", "-a", str(path)], sudo=True, input_text=content)
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(content)

    def remove(self, path: Path) -> None:
        """Remove a file or directory tree (``rm -rf``)."""
        if self.dry_run:
            self.plan(f"remove: {path}")
            return
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)

    def symlink(self, target: Path, link: Path) -> None:
        """Create or replace a symlink (``ln -sf``)."""
        if self.dry_run:
            self.plan(f"symlink: {link} -> {target}")
            return
        if link.is_symlink() or link.exists():
            link.unlink()
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(target)

    def copy(self, src: Path, dest: Path) -> None:
        """Copy a file or directory tree (``cp -r``)."""
        if self.dry_run:
            self.plan(f"copy: {src} -> {dest}")
            return
        dest.parent.mkdir(parents=True, exist_ok=True)
        if src.is_dir():
            shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dest)
