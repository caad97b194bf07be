"""Benchmark case discovery from the commands/<category>/<case>/ layout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from cb_common.errors import DiscoveryError

logger = logging.getLogger(__name__)

RUN_COMMAND = "run.sh"


@dataclass(frozen=True)
class BenchmarkCase:
    """One benchmark scenario: a run command plus its input files."""

    category: str
    name: str
    path: Path
    run_command_name: str = RUN_COMMAND

    @property
    def category_path(self) -> Path:
        return self.path.parent

    @property
    def run_command(self) -> Path:
        return self.path / self.run_command_name

    @property
    def key(self) -> str:
        return f"{self.category}/{self.name}"


def _visible_dirs(path: Path) -> list[Path]:
    return sorted(
        entry for entry in path.iterdir() if entry.is_dir() and not entry.name.startswith(".")
    )


class CaseRepository:
    """Enumerate cases grouped by executable category."""

    def __init__(self, root: Path, run_command: str = RUN_COMMAND) -> None:
        self.root = Path(root)
        self.run_command = run_command

    def _require_root(self) -> None:
        if not self.root.is_dir():
            raise DiscoveryError(
                "Benchmark commands root does not exist",
                context={"root": self.root},
            )

    def list_cases(self, categories: Iterable[str] | None = None) -> list[BenchmarkCase]:
        """Return every case in deterministic (category, name) order.

        Categories without case subdirectories are skipped; a layout that
        yields no case at all is a discovery failure.
        """
        self._require_root()
        wanted = set(categories) if categories is not None else None
        cases: list[BenchmarkCase] = []
        for category_dir in _visible_dirs(self.root):
            if wanted is not None and category_dir.name not in wanted:
                continue
            case_dirs = _visible_dirs(category_dir)
            if not case_dirs:
                logger.warning(
                    "Skipping category '%s': no case directories", category_dir.name
                )
                continue
            cases.extend(
                BenchmarkCase(
                    category=category_dir.name,
                    name=case_dir.name,
                    path=case_dir,
                    run_command_name=self.run_command,
                )
                for case_dir in case_dirs
            )
        if not cases:
            raise DiscoveryError(
                "No benchmark cases found",
                context={
                    "root": self.root,
                    "categories": sorted(wanted) if wanted is not None else None,
                },
            )
        logger.info("Discovered %d case(s) under %s", len(cases), self.root)
        return cases
