"""Session naming: timestamp plus source revision."""

from __future__ import annotations

import logging
import subprocess
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

UNKNOWN_REVISION = "nogit"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def resolve_revision(cwd: Path | None = None) -> str:
    """Best-effort short hash of the checked-out revision."""
    try:
        out = subprocess.check_output(
            ["git", "log", "-1", "--pretty=%h"],
            cwd=cwd,
            stderr=subprocess.DEVNULL,
            text=True,
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        logger.debug("git revision unavailable, using '%s'", UNKNOWN_REVISION)
        return UNKNOWN_REVISION
    return out or UNKNOWN_REVISION


def new_session_id(
    revision: str,
    *,
    now: datetime | None = None,
    archive_dir: Path | None = None,
) -> str:
    """Return ``<timestamp>_<revision>``, suffixed if that archive already exists."""
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    base = f"{stamp}_{revision}"
    if archive_dir is None:
        return base
    candidate = base
    counter = 1
    while (Path(archive_dir) / f"{candidate}.zip").exists():
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
