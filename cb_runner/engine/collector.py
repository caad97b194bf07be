"""Copy workspace artifacts into the results tree."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from cb_common.errors import CollectionError
from cb_runner.engine.workspace import is_preserved, remove_entry

logger = logging.getLogger(__name__)


class ResultCollector:
    """Persist everything a case produced under ``results/<category>/<case>/``."""

    def __init__(self, preserve: Sequence[str]) -> None:
        self.preserve = list(preserve)

    def case_dir(self, results_root: Path, category: str, case_name: str) -> Path:
        return Path(results_root) / category / case_name

    def collect(
        self, workspace: Path, results_root: Path, category: str, case_name: str
    ) -> Path:
        """Copy non-host entries of ``workspace``; re-collecting overwrites."""
        target = self.case_dir(results_root, category, case_name)
        copied: list[str] = []
        try:
            target.mkdir(parents=True, exist_ok=True)
            for entry in sorted(Path(workspace).iterdir()):
                if is_preserved(entry.name, self.preserve):
                    continue
                destination = target / entry.name
                if destination.exists() and destination.is_dir() != entry.is_dir():
                    remove_entry(destination)
                if entry.is_dir() and not entry.is_symlink():
                    shutil.copytree(entry, destination, symlinks=True, dirs_exist_ok=True)
                else:
                    shutil.copy2(entry, destination, follow_symlinks=False)
                copied.append(entry.name)
        except OSError as exc:
            raise CollectionError(
                "Failed to copy results",
                context={
                    "workspace": workspace,
                    "target": target,
                    "copied": copied,
                },
                cause=exc,
            ) from exc
        logger.info("Collected %d entr(ies) into %s", len(copied), target)
        return target
