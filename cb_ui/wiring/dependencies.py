from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console

from cb_common.logging import configure_logging
from cb_runner.api import BenchConfig, DoctorService, load_config

__all__ = ["UIContext", "configure_logging"]


@dataclass
class UIContext:
    """Container for CLI services and state, initialized lazily."""

    debug: bool = False

    _console: Optional[Console] = None

    @property
    def console(self) -> Console:
        if self._console is None:
            self._console = Console(stderr=False, highlight=False)
        return self._console

    @console.setter
    def console(self, value: Console) -> None:
        self._console = value

    def load_config(self, path: Optional[Path]) -> BenchConfig:
        return load_config(path)

    def doctor_service(self, config: BenchConfig) -> DoctorService:
        return DoctorService(config)
