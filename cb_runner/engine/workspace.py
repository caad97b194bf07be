"""Scoped staging of a case into the shared workspace directory."""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import stat
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence

from cb_common.errors import CleanupError, StagingError
from cb_runner.engine.cases import BenchmarkCase
from cb_runner.engine.context import StrategyContext
from cb_runner.models.config import StagingConfig

logger = logging.getLogger(__name__)


def is_preserved(name: str, patterns: Sequence[str]) -> bool:
    """True when ``name`` matches one of the allow-list glob patterns."""
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def remove_entry(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


@dataclass(frozen=True)
class StagedWorkspace:
    """Handle to a workspace holding one staged case."""

    path: Path
    case: BenchmarkCase
    staged_entries: tuple[str, ...] = field(default=())

    @property
    def run_command(self) -> Path:
        return self.path / self.case.run_command_name

    def export_path(self, export_name: str) -> Path:
        return self.path / export_name


class WorkspaceManager:
    """Own the shared workspace: stage a case, then restore the baseline."""

    def __init__(self, workspace_dir: Path, staging: StagingConfig | None = None) -> None:
        self.path = Path(workspace_dir)
        self.staging = staging or StagingConfig()

    @property
    def preserve(self) -> list[str]:
        return list(self.staging.preserve)

    def leftovers(self) -> list[str]:
        """Names under the workspace root that cleanup would delete."""
        if not self.path.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.path.iterdir()
            if not is_preserved(entry.name, self.staging.preserve)
        )

    def reset(self) -> list[str]:
        """Delete everything except the allow-listed host directories."""
        removed = self.leftovers()
        for name in removed:
            try:
                remove_entry(self.path / name)
            except OSError as exc:
                raise CleanupError(
                    "Failed to restore the workspace baseline",
                    context={"workspace": self.path, "entry": name},
                    cause=exc,
                ) from exc
        if removed:
            logger.debug("Workspace reset removed %s", removed)
        return removed

    @contextmanager
    def staged(
        self, case: BenchmarkCase, context: StrategyContext | None = None
    ) -> Iterator[StagedWorkspace]:
        """Stage ``case`` and guarantee teardown on scope exit."""
        self.path.mkdir(parents=True, exist_ok=True)
        stale = self.reset()
        if stale:
            logger.warning("Removed stale workspace entries before staging: %s", stale)

        failed = False
        try:
            yield self._stage(case)
        except BaseException:
            failed = True
            raise
        finally:
            self._teardown(case, context, suppress=failed)

    def _stage(self, case: BenchmarkCase) -> StagedWorkspace:
        if not case.run_command.is_file():
            raise StagingError(
                "Case run command is missing",
                context={"case": case.key, "run_command": case.run_command},
            )
        entries: list[str] = []
        try:
            inputs = sorted(case.path.iterdir())
            shadowed = [e.name for e in inputs if is_preserved(e.name, self.staging.preserve)]
            if shadowed:
                # would merge into host directories that reset() keeps
                raise StagingError(
                    "Case inputs collide with preserved workspace entries",
                    context={"case": case.key, "entries": shadowed},
                )
            for entry in inputs:
                target = self.path / entry.name
                if entry.is_dir():
                    shutil.copytree(entry, target, symlinks=True, dirs_exist_ok=True)
                else:
                    shutil.copy2(entry, target)
                entries.append(entry.name)
            auxiliary = self._auxiliary_for(case)
            if auxiliary is not None:
                shutil.copy2(auxiliary, self.path / auxiliary.name)
                entries.append(auxiliary.name)
        except OSError as exc:
            raise StagingError(
                "Failed to copy case inputs",
                context={"case": case.key, "workspace": self.path},
                cause=exc,
            ) from exc

        self._make_executable(case)
        logger.info("Staged %s into %s", case.key, self.path)
        return StagedWorkspace(path=self.path, case=case, staged_entries=tuple(entries))

    def _auxiliary_for(self, case: BenchmarkCase) -> Path | None:
        name = self.staging.auxiliary.get(case.category)
        if name:
            source = case.category_path / name
            if not source.is_file():
                raise StagingError(
                    "Category auxiliary executable is missing",
                    context={"case": case.key, "auxiliary": source},
                )
            return source
        if self.staging.copy_category_executable:
            source = case.category_path / case.category
            if source.is_file():
                return source
        return None

    def _make_executable(self, case: BenchmarkCase) -> None:
        target = self.path / case.run_command_name
        try:
            mode = target.stat().st_mode
            target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as exc:
            raise StagingError(
                "Could not make run command executable",
                context={"case": case.key, "run_command": target},
                cause=exc,
            ) from exc
        if not os.access(target, os.X_OK):
            raise StagingError(
                "Run command is not executable",
                context={"case": case.key, "run_command": target},
            )

    def _teardown(
        self, case: BenchmarkCase, context: StrategyContext | None, *, suppress: bool
    ) -> None:
        if context is not None:
            context.run_resets()
        try:
            self.reset()
        except CleanupError as exc:
            if not suppress:
                raise
            logger.error("Workspace cleanup failed after %s: %s", case.key, exc)
