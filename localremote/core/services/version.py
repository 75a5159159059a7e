"""
Version handling: parsing, comparison, and GitHub release lookup.

Versions are compared numerically component by component; missing
components count as zero, so ``1.2`` equals ``1.2.0``.  ``latest`` is
the one symbolic version: it always asks for an update until it has been
resolved to a concrete release through ``GitHubReleases``.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
import urllib.request
from pathlib import Path

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"[0-9]+\.[0-9]+(?:\.[0-9]+)?")

GITHUB_API = "https://api.github.com"
CACHE_MAX_AGE = 3600  # seconds


# ── Parsing / comparison (pure) ─────────────────────────────────


def extract_version(text: str | None) -> str:
    """Extract the first ``X.Y`` or ``X.Y.Z`` from arbitrary text.

    >>> extract_version("git version 2.43.0")
    '2.43.0'
    >>> extract_version("v0.40.2")
    '0.40.2'

    Returns an empty string when nothing version-like is present.
    """
    if not text:
        return ""
    match = _VERSION_RE.search(text)
    return match.group(0) if match else ""


def _parts(version: str) -> list[int]:
    cleaned = extract_version(version)
    if not cleaned:
        return []
    return [int(p) for p in cleaned.split(".")]


def compare_versions(v1: str | None, v2: str | None) -> int:
    """Compare two versions.

    Returns:
        0 if equal, 1 if ``v1 > v2``, -1 if ``v1 < v2``.
        Two empty versions are equal; an empty version is lower than
        any non-empty one.
    """
    a, b = _parts(v1 or ""), _parts(v2 or "")
    if not a and not b:
        return 0
    if not a:
        return -1
    if not b:
        return 1

    width = max(len(a), len(b))
    a += [0] * (width - len(a))
    b += [0] * (width - len(b))
    if a == b:
        return 0
    return 1 if a > b else -1


def version_gt(v1: str | None, v2: str | None) -> bool:
    return compare_versions(v1, v2) > 0


def version_gte(v1: str | None, v2: str | None) -> bool:
    return compare_versions(v1, v2) >= 0


def version_lt(v1: str | None, v2: str | None) -> bool:
    return compare_versions(v1, v2) < 0


def version_eq(v1: str | None, v2: str | None) -> bool:
    return compare_versions(v1, v2) == 0


def needs_update(current: str | None, desired: str | None) -> bool:
    """Whether ``current`` should be replaced to satisfy ``desired``.

    - ``latest`` (unresolved) always needs an update
    - an unknown or empty current version needs an update
    - otherwise only when ``current < desired`` (never downgrades)
    """
    if desired == "latest":
        return True
    if not current or current == "unknown":
        return True
    return version_lt(current, desired)


# ── GitHub releases ─────────────────────────────────────────────


def _fetch_latest_tag(repo: str, timeout: int = 15) -> str:
    """Fetch ``tag_name`` of the latest release of ``owner/repo``."""
    headers = {
        "Accept": "application/vnd.github.v3+json",
        "User-Agent": "local-remote/1.0",
    }
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    req = urllib.request.Request(
        f"{GITHUB_API}/repos/{repo}/releases/latest",
        headers=headers,
    )
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        data = json.loads(resp.read())
    return data.get("tag_name", "") or ""


class GitHubReleases:
    """Latest-release lookup with a per-repo file cache.

    Each repo's latest version is cached as plain text in
    ``<cache_dir>/<owner>_<repo>_latest.txt``; the file's mtime is its age.
    When the API cannot be reached, a stale cache entry is still used.
    """

    def __init__(self, cache_dir: Path, max_age: int = CACHE_MAX_AGE):
        self.cache_dir = cache_dir
        self.max_age = max_age

    def _cache_file(self, repo: str) -> Path:
        return self.cache_dir / f"{repo.replace('/', '_')}_latest.txt"

    def _read_cache(self, repo: str, *, allow_stale: bool) -> str | None:
        path = self._cache_file(repo)
        if not path.is_file():
            return None
        age = time.time() - path.stat().st_mtime
        if age >= self.max_age and not allow_stale:
            return None
        value = path.read_text(encoding="utf-8").strip()
        return value or None

    def latest_version(self, repo: str) -> str | None:
        """Latest release version of ``owner/repo`` (without ``v`` prefix)."""
        cached = self._read_cache(repo, allow_stale=False)
        if cached:
            logger.debug("Using cached latest version for %s: %s", repo, cached)
            return cached

        try:
            tag = _fetch_latest_tag(repo)
        except Exception as e:
            logger.warning("GitHub API lookup failed for %s: %s", repo, e)
            tag = ""

        version = tag[1:] if tag.startswith("v") else tag
        if version:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._cache_file(repo).write_text(version + "\n", encoding="utf-8")
            logger.debug("Latest version for %s: %s", repo, version)
            return version

        stale = self._read_cache(repo, allow_stale=True)
        if stale:
            logger.warning("Using stale cached version for %s: %s", repo, stale)
        return stale

    def resolve_version(self, version: str | None, repo: str) -> str | None:
        """Map ``latest`` (or an empty pin) to a concrete release version."""
        if not version or version == "latest":
            return self.latest_version(repo)
        return version[1:] if version.startswith("v") else version

    def clear_cache(self) -> int:
        """Delete all cached lookups. Returns the number of files removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*_latest.txt"):
            path.unlink(missing_ok=True)
            removed += 1
        logger.info("Cleared %d cached GitHub lookups", removed)
        return removed
