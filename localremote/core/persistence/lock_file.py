"""
Lock file persistence: atomic read/write for LockFile.

The lock lives in ``<state>/packages.lock`` as JSON. Writes are atomic
(write to temp file, then rename) so an interrupted install never
leaves a half-written lock behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from localremote.core.models.lock import LockFile

logger = logging.getLogger(__name__)


def load_lock(path: Path) -> LockFile:
    """Load the lock file.

    Returns:
        LockFile model. Missing or corrupt files yield a fresh lock.
    """
    if not path.is_file():
        logger.debug("No lock file at %s; starting fresh", path)
        return LockFile()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return LockFile.model_validate(data)
    except json.JSONDecodeError as e:
        logger.warning("Corrupt lock file %s: %s; starting fresh", path, e)
        return LockFile()
    except Exception as e:
        logger.warning("Cannot load lock from %s: %s; starting fresh", path, e)
        return LockFile()


def save_lock(lock: LockFile, path: Path) -> None:
    """Save the lock file (atomic write)."""
    lock.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(lock.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    try:
        _fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".lock_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            tmp.write_text(content, encoding="utf-8")
            tmp.rename(path)
            logger.debug("Lock saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except Exception as e:
        logger.error("Failed to save lock to %s: %s", path, e)
        raise


def update_lock(name: str, version: str, path: Path, method: str = "") -> LockFile:
    """Record an installed version and persist the lock."""
    lock = load_lock(path)
    lock.record(name, version, method=method)
    save_lock(lock, path)
    logger.info("Locked %s at %s", name, version)
    return lock
