"""Hand the results tree to the report scripts and package it."""

from __future__ import annotations

import logging
import shutil
import subprocess
import zipfile
from pathlib import Path

from cb_common.errors import ArchiveError, ReportError
from cb_runner.models.config import ReportConfig

logger = logging.getLogger(__name__)


class ReportGenerator:
    """Invoke the table and plot scripts; their output format is opaque."""

    def __init__(self, config: ReportConfig) -> None:
        self.config = config

    def _run_script(self, script: Path, target: Path) -> None:
        cmd = [self.config.python, str(script), f"{target}/"]
        try:
            result = subprocess.run(cmd, check=False, capture_output=True, text=True)
        except OSError as exc:
            raise ReportError(
                "Could not start report script",
                context={"command": cmd},
                cause=exc,
            ) from exc
        if result.returncode != 0:
            raise ReportError(
                f"Report script failed (rc={result.returncode})",
                context={
                    "command": cmd,
                    "stderr": (result.stderr or result.stdout or "")[-2000:],
                },
            )

    def generate(self, results_root: Path) -> list[ReportError]:
        """Run every configured script, logging (not raising) failures."""
        if not self.config.enabled:
            logger.info("Report generation disabled")
            return []
        jobs = [(self.config.table_script, Path(results_root))]
        plot_target = Path(results_root) / self.config.plot_category
        if plot_target.is_dir():
            jobs.append((self.config.plot_script, plot_target))
        else:
            logger.info("No '%s' results to plot", self.config.plot_category)

        failures: list[ReportError] = []
        for script, target in jobs:
            if not Path(script).is_file():
                logger.warning("Report script %s not found, skipping", script)
                continue
            try:
                self._run_script(Path(script), target)
                logger.info("Report script %s completed for %s", script, target)
            except ReportError as exc:
                logger.error("%s: %s", exc, exc.context.get("stderr", ""))
                failures.append(exc)
        return failures


def archive_results(results_root: Path, archive_dir: Path, session_id: str) -> Path:
    """Zip the tree contents into ``<archive_dir>/<session_id>.zip`` and drop the tree."""
    results_root = Path(results_root)
    archive_dir = Path(archive_dir)
    archive_path = archive_dir / f"{session_id}.zip"
    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zip_ref:
            if results_root.is_dir():
                for path in sorted(results_root.rglob("*")):
                    zip_ref.write(path, path.relative_to(results_root))
        if results_root.is_dir():
            shutil.rmtree(results_root)
    except OSError as exc:
        raise ArchiveError(
            "Failed to archive results",
            context={"results_root": results_root, "archive": archive_path},
            cause=exc,
        ) from exc
    logger.info("Results archived to %s", archive_path)
    return archive_path
