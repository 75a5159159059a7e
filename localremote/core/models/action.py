"""
Receipt model: what one installer action did.

Installers never raise to the orchestrator. Every install / update /
verify / version call ends in a Receipt, and a failed package is just a
receipt with ``status="failed"`` next to the others in the run report.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

InstallerAction = Literal["install", "update", "verify", "version"]
ReceiptStatus = Literal["ok", "skipped", "failed"]


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Outcome of one installer action or provisioning step.

    ``metadata`` carries the version transition (``from_version``,
    ``to_version``), ``changed``, ``dry_run`` and the dry-run ``planned``
    lines.
    """

    installer: str
    action: str
    status: ReceiptStatus = "ok"
    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    started_at: str = Field(default_factory=utc_now)
    ended_at: str = Field(default_factory=utc_now)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def changed(self) -> bool:
        """True if the system was modified (or would be, in dry-run)."""
        return bool(self.metadata.get("changed"))

    @property
    def detail(self) -> str:
        """The line shown next to the package name: error or output."""
        if self.failed:
            return self.error or ""
        return self.output

    @property
    def version_change(self) -> str:
        """``0.9.0 → 1.0.0`` for an upgrade, ``→ 1.0.0`` for a fresh install."""
        new = self.metadata.get("to_version")
        if not new:
            return ""
        old = self.metadata.get("from_version")
        return f"{old} → {new}" if old else f"→ {new}"

    def finish(self, started_at: str, start: float) -> Receipt:
        """Stamp the timing: ``started_at`` as given, ``ended_at`` now.

        ``start`` is the ``time.monotonic()`` reading taken with ``started_at``.
        """
        self.started_at = started_at
        self.ended_at = utc_now()
        self.duration_ms = int((time.monotonic() - start) * 1000)
        return self

    # ── Constructors ────────────────────────────────────────────

    @classmethod
    def success(cls, installer: str, action: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(installer=installer, action=action, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, installer: str, action: str, error: str, **kwargs: Any) -> Receipt:
        return cls(installer=installer, action=action, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, installer: str, action: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Nothing to do: disabled, already up to date, or not applicable."""
        return cls(installer=installer, action=action, status="skipped", output=reason, **kwargs)
