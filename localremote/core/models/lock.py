"""
Lock file model: installed package versions.

Serialized to ``<state>/packages.lock``. Installers record what they
installed so later runs (and humans) can see what is on the machine
without probing every binary.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class PackageLock(BaseModel):
    """One locked package."""

    version: str
    installed_at: str = Field(default_factory=_now_iso)
    method: str = ""  # apt, github-release, apt-repo


class LockFile(BaseModel):
    """The full lock document."""

    schema_version: int = 1
    updated_at: str = Field(default_factory=_now_iso)
    packages: dict[str, PackageLock] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def record(self, name: str, version: str, method: str = "") -> PackageLock:
        """Record (or replace) the locked version of a package."""
        entry = PackageLock(version=version, method=method)
        self.packages[name] = entry
        return entry

    def get(self, name: str) -> str | None:
        """Locked version of a package, or None."""
        entry = self.packages.get(name)
        return entry.version if entry else None

    def forget(self, name: str) -> bool:
        """Drop a package from the lock. Returns True if it was present."""
        return self.packages.pop(name, None) is not None
