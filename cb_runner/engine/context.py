"""Session-scoped dependencies shared by every strategy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from cb_runner.models.config import BenchConfig
    from cb_runner.services.containers import ContainerClient

logger = logging.getLogger(__name__)


@dataclass
class StrategyContext:
    """Context object encapsulating session-scoped dependencies for strategies.

    Strategies that leave state outside the workspace (container roots,
    scratch copies) register a reset callback; the workspace manager drains
    them when the staged scope closes.
    """

    session_id: str
    config: BenchConfig
    containers: ContainerClient
    _resets: dict[str, Callable[[], None]] = field(default_factory=dict, repr=False)

    def register_reset(self, key: str, callback: Callable[[], None]) -> None:
        """Register ``callback`` once per staged case under ``key``."""
        self._resets.setdefault(key, callback)

    def pending_resets(self) -> list[str]:
        return list(self._resets)

    def run_resets(self) -> list[Exception]:
        """Run and clear registered resets, returning the failures."""
        failures: list[Exception] = []
        resets, self._resets = self._resets, {}
        for key, callback in resets.items():
            try:
                callback()
            except Exception as exc:
                logger.error("Reset '%s' failed: %s", key, exc)
                failures.append(exc)
        return failures
