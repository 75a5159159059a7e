"""
Backup and rollback of user configuration.

Before provisioning changes dotfiles, the configured paths (shell
fragments, .gitconfig, .zshrc, ...) are copied into a timestamped
directory that mirrors their location relative to $HOME:

    ~/.local-remote/backups/
        2024-05-01T10:15:00/
            manifest.json
            .zshrc
            .config/shell/40-docker.sh

Only the newest ``max_backups`` are kept.  Restoring replaces the
current files with the backed-up copies.
"""

from __future__ import annotations

import difflib
import filecmp
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from localremote.core import context
from localremote.core.engine.runner import CommandRunner
from localremote.core.models.config import ServerConfig

logger = logging.getLogger(__name__)

BACKUP_ID_FORMAT = "%Y-%m-%dT%H:%M:%S"
MANIFEST_FILE = "manifest.json"


class BackupError(Exception):
    """Raised when a backup cannot be found or restored."""


@dataclass
class BackupInfo:
    """A backup on disk."""

    id: str
    path: Path
    file_count: int
    latest: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": str(self.path),
            "file_count": self.file_count,
            "latest": self.latest,
        }


def _count_files(root: Path) -> int:
    return sum(1 for p in root.rglob("*") if p.is_file() and p.name != MANIFEST_FILE)


def backup_file(path: Path, runner: CommandRunner, backup_dir: Path | None = None) -> Path | None:
    """Copy a single file to ``<name>.<YYYYmmdd_HHMMSS>.bak``.

    Returns:
        The backup path, or None if the file does not exist.
    """
    if not path.is_file():
        return None
    ts = time.strftime("%Y%m%d_%H%M%S")
    dest = (backup_dir or path.parent) / f"{path.name}.{ts}.bak"
    runner.copy(path, dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


class BackupManager:
    """Create, list, prune, diff and restore configuration backups."""

    def __init__(
        self,
        root: Path,
        paths: list[Path],
        home: Path,
        runner: CommandRunner | None = None,
        max_backups: int = 5,
        min_age_seconds: int = 3600,
    ):
        self.root = root
        self.paths = paths
        self.home = home
        self.runner = runner or CommandRunner()
        self.max_backups = max_backups
        self.min_age_seconds = min_age_seconds

    def _relative(self, path: Path) -> Path:
        try:
            return path.relative_to(self.home)
        except ValueError:
            # Outside $HOME: mirror the absolute path under the backup dir
            return Path(*path.parts[1:])

    def _new_id(self) -> str:
        base = datetime.now().strftime(BACKUP_ID_FORMAT)
        candidate, n = base, 1
        while (self.root / candidate).exists():
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    # ── Create / prune ──────────────────────────────────────────

    def create_backup(self) -> str | None:
        """Back up every existing configured path.

        Returns:
            The backup id, or None when none of the paths exist.
        """
        existing = [p for p in self.paths if p.exists()]
        if not existing:
            logger.info("Nothing to back up")
            return None

        backup_id = self._new_id()
        target = self.root / backup_id

        if self.runner.dry_run:
            self.runner.plan(f"create backup {target} ({len(existing)} path(s))")
            return backup_id

        target.mkdir(parents=True, exist_ok=True)
        copied: dict[str, str] = {}
        for path in existing:
            rel = self._relative(path)
            self.runner.copy(path, target / rel)
            copied[str(rel)] = str(path)
            logger.debug("Backed up %s", rel)

        manifest = {
            "id": backup_id,
            "created": datetime.now().isoformat(timespec="seconds"),
            "home": str(self.home),
            "file_count": _count_files(target),
            "paths": list(copied),
            "sources": copied,
        }
        (target / MANIFEST_FILE).write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")

        logger.info("Backup created: %s (%d paths)", backup_id, len(copied))
        self.cleanup_old_backups()
        return backup_id

    def cleanup_old_backups(self) -> list[str]:
        """Delete all but the newest ``max_backups``. Returns removed ids."""
        ids = self._backup_ids()
        excess = ids[: max(0, len(ids) - self.max_backups)]
        for backup_id in excess:
            self.runner.remove(self.root / backup_id)
            logger.info("Removed old backup %s", backup_id)
        return excess

    # ── Query ───────────────────────────────────────────────────

    def _backup_ids(self) -> list[str]:
        """Backup ids, oldest first (ids sort chronologically)."""
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def list_backups(self) -> list[BackupInfo]:
        """All backups, newest first."""
        ids = list(reversed(self._backup_ids()))
        return [
            BackupInfo(
                id=backup_id,
                path=self.root / backup_id,
                file_count=_count_files(self.root / backup_id),
                latest=(i == 0),
            )
            for i, backup_id in enumerate(ids)
        ]

    def get_latest_backup(self) -> Path | None:
        ids = self._backup_ids()
        return self.root / ids[-1] if ids else None

    def _resolve(self, backup_id: str | None) -> Path:
        if backup_id is None:
            latest = self.get_latest_backup()
            if latest is None:
                raise BackupError(f"No backups found in {self.root}")
            return latest
        path = self.root / backup_id
        if not path.is_dir():
            raise BackupError(f"Backup not found: {backup_id}")
        return path

    def _entries(self, backup_dir: Path) -> list[tuple[Path, Path]]:
        """(path inside the backup, original location) pairs."""
        manifest = backup_dir / MANIFEST_FILE
        if manifest.is_file():
            try:
                data = json.loads(manifest.read_text(encoding="utf-8"))
                sources = data.get("sources", {})
                return [
                    (Path(rel), Path(sources.get(rel) or self.home / rel))
                    for rel in data.get("paths", [])
                ]
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Unreadable manifest in %s: %s", backup_dir, e)
        return [
            (p.relative_to(backup_dir), self.home / p.name)
            for p in backup_dir.iterdir()
            if p.name != MANIFEST_FILE
        ]

    # ── Restore / diff ──────────────────────────────────────────

    def restore_backup(self, backup_id: str | None = None) -> list[str]:
        """Restore a backup (latest by default), replacing current files.

        Returns:
            Restored paths, relative to $HOME.

        Raises:
            BackupError: No backups, or the requested one does not exist.
        """
        backup_dir = self._resolve(backup_id)
        restored: list[str] = []
        for rel, dest in self._entries(backup_dir):
            source = backup_dir / rel
            if not source.exists():
                continue
            if dest.exists() or dest.is_symlink():
                self.runner.remove(dest)
            self.runner.copy(source, dest)
            restored.append(str(rel))
            logger.info("Restored %s", rel)
        return restored

    def diff_backup(self, backup_id: str | None = None) -> list[str]:
        """Differences between a backup and the current files.

        Returns:
            One text block per differing path (empty when identical).
        """
        backup_dir = self._resolve(backup_id)
        blocks: list[str] = []
        for rel, current in self._entries(backup_dir):
            saved = backup_dir / rel
            if not current.exists():
                blocks.append(f"Only in backup: {rel}")
            elif saved.is_dir():
                blocks.extend(_diff_dirs(saved, current, rel))
            elif not filecmp.cmp(saved, current, shallow=False):
                blocks.append(_unified(saved, current, rel))
        return blocks

    def backup_before_changes(self) -> str | None:
        """Create a backup unless the latest one is younger than ``min_age_seconds``."""
        latest = self.get_latest_backup()
        if latest is not None:
            age = time.time() - _backup_time(latest)
            if age < self.min_age_seconds:
                logger.info("Recent backup exists (%s, %ds old); skipping", latest.name, int(age))
                return None
        return self.create_backup()


def _backup_time(path: Path) -> float:
    try:
        return datetime.strptime(path.name[:19], BACKUP_ID_FORMAT).timestamp()
    except ValueError:
        return path.stat().st_mtime


def _unified(saved: Path, current: Path, rel: Path) -> str:
    try:
        old = saved.read_text(encoding="utf-8").splitlines(keepends=True)
        new = current.read_text(encoding="utf-8").splitlines(keepends=True)
    except UnicodeDecodeError:
        return f"Binary files differ: {rel}"
    return "".join(
        difflib.unified_diff(old, new, fromfile=f"backup/{rel}", tofile=f"current/{rel}")
    )


def _diff_dirs(saved: Path, current: Path, rel: Path) -> list[str]:
    blocks: list[str] = []
    cmp = filecmp.dircmp(saved, current)
    for name in cmp.left_only:
        blocks.append(f"Only in backup: {rel / name}")
    for name in cmp.right_only:
        blocks.append(f"Only in current: {rel / name}")
    for name in cmp.diff_files:
        blocks.append(f"Files differ: {rel / name}")
    for name in cmp.common_dirs:
        blocks.extend(_diff_dirs(saved / name, current / name, rel / name))
    return blocks


def manager_for(config: ServerConfig, runner: CommandRunner, home: Path | None = None) -> BackupManager:
    """BackupManager wired to the configured paths and the state directory."""
    home = home or context.home_dir()
    return BackupManager(
        root=context.backup_root(),
        paths=config.backup.expanded_paths(home),
        home=home,
        runner=runner,
        max_backups=config.backup.max_backups,
        min_age_seconds=config.backup.min_age_seconds,
    )
