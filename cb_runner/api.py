"""Stable runner API surface."""

from cb_runner.engine.cases import BenchmarkCase, CaseRepository
from cb_runner.engine.collector import ResultCollector
from cb_runner.engine.coordinator import (
    PairOutcome,
    RunCoordinator,
    RunState,
    SessionSummary,
)
from cb_runner.engine.invocation import (
    ContainerTarget,
    HostTarget,
    HyperfineCommand,
    ParameterSweep,
    StrategyInvocation,
)
from cb_runner.engine.measurement import MeasurementExport, MeasurementRunner
from cb_runner.engine.strategies import (
    ExecutionStrategy,
    StrategyRegistry,
    build_strategies,
    default_registry,
)
from cb_runner.engine.workspace import StagedWorkspace, WorkspaceManager
from cb_runner.models.config import BenchConfig, load_config, resolve_config_path
from cb_runner.models.events import RunEvent
from cb_runner.services.containers import ContainerClient
from cb_runner.services.doctor import DoctorReport, DoctorService

__all__ = [
    "BenchConfig",
    "BenchmarkCase",
    "CaseRepository",
    "ContainerClient",
    "ContainerTarget",
    "DoctorReport",
    "DoctorService",
    "ExecutionStrategy",
    "HostTarget",
    "HyperfineCommand",
    "MeasurementExport",
    "MeasurementRunner",
    "PairOutcome",
    "ParameterSweep",
    "ResultCollector",
    "RunCoordinator",
    "RunEvent",
    "RunState",
    "SessionSummary",
    "StagedWorkspace",
    "StrategyInvocation",
    "StrategyRegistry",
    "WorkspaceManager",
    "build_strategies",
    "default_registry",
    "load_config",
    "resolve_config_path",
]
