"""
Logging setup for local-remote.

main.py calls ``configure_logging`` once per process; every other module
only does ``logger = logging.getLogger(__name__)``.

Console level, highest precedence first:
    --debug  >  --verbose  >  --quiet  >  $LR_LOG_LEVEL  >  WARNING

``$LR_LOG_FILE`` adds a persistent log file at ``$LR_LOG_FILE_LEVEL``
(default: the console level).  install-all / update-all additionally get
a per-run DEBUG log under ``<state>/logs`` (``attach_run_log``), which is
where the "Log file:" line of their summary points.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

ENV_LEVEL = "LR_LOG_LEVEL"
ENV_FILE = "LR_LOG_FILE"
ENV_FILE_LEVEL = "LR_LOG_FILE_LEVEL"

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

# threshold → (format, datefmt); above INFO the console shows bare messages
_CONSOLE_FORMATS = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def parse_level(name: str | None, default: int = logging.WARNING) -> int:
    """Numeric level for a name such as ``info``; ``default`` if unknown."""
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def console_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Resolve the console level from CLI flags and the environment."""
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if quiet:
        return logging.ERROR
    env = os.environ if environ is None else environ
    return parse_level(env.get(ENV_LEVEL))


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_DETAILED, datefmt=_FILE_DATEFMT))
    return handler


def configure_logging(level: int, environ: Mapping[str, str] | None = None) -> None:
    """Install the stderr console handler (and the optional log file).

    Replaces any handlers a previous call installed.
    """
    env = os.environ if environ is None else environ
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(_console_formatter(level))
    root.addHandler(console)

    root_level = level
    log_file = env.get(ENV_FILE)
    if log_file:
        file_level = parse_level(env.get(ENV_FILE_LEVEL), default=level)
        root.addHandler(_file_handler(Path(log_file), file_level))
        root_level = min(root_level, file_level)
    root.setLevel(root_level)

    logging.raiseExceptions = False


def attach_run_log(log_dir: Path, prefix: str, level: int = logging.DEBUG) -> Path:
    """Add a per-run log file, e.g. ``logs/install-20240101_120000.log``.

    The root level is lowered when needed so the file gets full detail;
    the console handler keeps its own level.
    """
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = log_dir / f"{prefix}-{stamp}.log"

    root = logging.getLogger()
    root.addHandler(_file_handler(path, level))
    if root.level == logging.NOTSET or root.level > level:
        root.setLevel(level)
    return path
