"""Benchmark-matrix runner for cairn-bench.

Re-exports the session-facing types; the engine lives in
``cb_runner.engine`` and the external-process services in
``cb_runner.services``.
"""

from cb_runner.api import (
    BenchConfig,
    BenchmarkCase,
    CaseRepository,
    RunCoordinator,
    RunEvent,
    RunState,
    SessionSummary,
    StrategyRegistry,
    load_config,
)

__all__ = [
    "BenchConfig",
    "BenchmarkCase",
    "CaseRepository",
    "RunCoordinator",
    "RunEvent",
    "RunState",
    "SessionSummary",
    "StrategyRegistry",
    "load_config",
]
