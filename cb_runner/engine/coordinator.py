"""Top-level control loop of a benchmark session.

``Idle -> Discovering -> {Staging -> Measuring(xN) -> Collecting ->
CleaningUp} per case -> Reporting -> Archiving -> Done``; a discovery
failure ends in ``Aborted``. Failures below discovery are isolated to the
case (staging) or to the (case, strategy) pair (measurement, collection).
A workspace that cannot be restored stops the remaining cases; whatever
was collected is still reported and archived.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

from cb_common.errors import (
    ArchiveError,
    CBError,
    CleanupError,
    CollectionError,
    ConfigurationError,
    ContainerError,
    DiscoveryError,
    MeasurementError,
    StagingError,
    error_to_payload,
)
from cb_runner.engine.cases import BenchmarkCase, CaseRepository
from cb_runner.engine.collector import ResultCollector
from cb_runner.engine.context import StrategyContext
from cb_runner.engine.invocation import ParameterSweep
from cb_runner.engine.measurement import (
    MeasurementRunner,
    export_name,
    failure_marker_name,
)
from cb_runner.engine.strategies import (
    ExecutionStrategy,
    StrategyRegistry,
    default_registry,
)
from cb_runner.engine.workspace import StagedWorkspace, WorkspaceManager
from cb_runner.models.config import BenchConfig
from cb_runner.models.events import RunEvent
from cb_runner.services.containers import ContainerClient
from cb_runner.services.reporting import ReportGenerator, archive_results
from cb_runner.services.session import new_session_id, resolve_revision

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Coordinator states."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    STAGING = "staging"
    MEASURING = "measuring"
    COLLECTING = "collecting"
    CLEANING_UP = "cleaning_up"
    REPORTING = "reporting"
    ARCHIVING = "archiving"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PairOutcome:
    """Result of measuring one strategy for one case."""

    category: str
    case: str
    strategy: str
    status: str  # ok | failed
    export_name: str
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class SessionSummary:
    """What a session produced; the archive holds whatever succeeded."""

    session_id: str
    state: RunState = RunState.IDLE
    cases: list[str] = field(default_factory=list)
    outcomes: list[PairOutcome] = field(default_factory=list)
    skipped_cases: dict[str, dict[str, Any]] = field(default_factory=dict)
    collection_errors: dict[str, dict[str, Any]] = field(default_factory=dict)
    report_errors: list[dict[str, Any]] = field(default_factory=list)
    cleanup_error: dict[str, Any] | None = None
    unrun_cases: list[str] = field(default_factory=list)
    archive_path: Path | None = None
    error: dict[str, Any] | None = None

    @property
    def succeeded(self) -> list[PairOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> list[PairOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


class RunCoordinator:
    """Drive every case through every strategy, one pair at a time."""

    def __init__(
        self,
        config: BenchConfig,
        *,
        session_id: str | None = None,
        repository: CaseRepository | None = None,
        workspace: WorkspaceManager | None = None,
        registry: StrategyRegistry | None = None,
        containers: ContainerClient | None = None,
        runner: MeasurementRunner | None = None,
        collector: ResultCollector | None = None,
        reports: ReportGenerator | None = None,
        categories: Iterable[str] | None = None,
        on_event: Callable[[RunEvent], None] | None = None,
    ) -> None:
        self.config = config
        self.containers = containers or ContainerClient(
            config.containers.engine, config.tools.shell
        )
        self.repository = repository or CaseRepository(
            config.commands_root, run_command=config.staging.run_command
        )
        self.workspace = workspace or WorkspaceManager(config.workspace_dir, config.staging)
        self.registry = registry or default_registry(config, self.containers)
        self.runner = runner or MeasurementRunner(
            self.containers, warmup=config.warmup, binary=config.tools.hyperfine
        )
        self.collector = collector or ResultCollector(config.staging.preserve)
        self.reports = reports or ReportGenerator(config.report)
        self.categories = list(categories) if categories is not None else None
        self.on_event = on_event
        self.session_id = session_id or new_session_id(
            resolve_revision(), archive_dir=config.archive_dir
        )
        self.state = RunState.IDLE
        self.history: list[RunState] = [RunState.IDLE]

    # -- state / narration -------------------------------------------------

    def _transition(
        self,
        state: RunState,
        *,
        status: str = "running",
        case: BenchmarkCase | None = None,
        strategy: str = "",
        message: str = "",
        level: str = "INFO",
    ) -> None:
        self.state = state
        self.history.append(state)
        self._emit(state, status=status, case=case, strategy=strategy, message=message, level=level)

    def _emit(
        self,
        state: RunState,
        *,
        status: str,
        case: BenchmarkCase | None = None,
        strategy: str = "",
        message: str = "",
        level: str = "INFO",
    ) -> None:
        event = RunEvent(
            session_id=self.session_id,
            state=state.value,
            status=status,
            category=case.category if case else "",
            case=case.name if case else "",
            strategy=strategy,
            message=message,
            level=level,
        )
        if self.on_event is not None:
            self.on_event(event)

    # -- session -----------------------------------------------------------

    def run(self) -> SessionSummary:
        """Run the whole matrix and return the session summary."""
        summary = SessionSummary(session_id=self.session_id)
        logger.info("Starting benchmark session %s", self.session_id)

        self._transition(RunState.DISCOVERING)
        try:
            cases = self.repository.list_cases(self.categories)
        except DiscoveryError as exc:
            return self._abort(summary, exc)

        summary.cases = [case.key for case in cases]
        results_root = Path(self.config.results_root)
        try:
            self._fresh_results_root(results_root)
        except CollectionError as exc:
            return self._abort(summary, exc)
        context = StrategyContext(
            session_id=self.session_id,
            config=self.config,
            containers=self.containers,
        )

        for index, case in enumerate(cases, start=1):
            logger.info("Benchmarking %s (%d/%d)", case.key, index, len(cases))
            if not self._run_case(case, context, results_root, summary):
                summary.unrun_cases = [later.key for later in cases[index:]]
                if summary.unrun_cases:
                    logger.error(
                        "Workspace baseline lost, not running %s", ", ".join(summary.unrun_cases)
                    )
                break

        self._transition(RunState.REPORTING)
        summary.report_errors = [
            error_to_payload(exc) for exc in self.reports.generate(results_root)
        ]

        self._transition(RunState.ARCHIVING)
        try:
            summary.archive_path = archive_results(
                results_root, self.config.archive_dir, self.session_id
            )
        except ArchiveError as exc:
            logger.error("Archiving failed, results kept in %s: %s", results_root, exc)
            summary.error = error_to_payload(exc)

        self._transition(RunState.DONE, status="done")
        summary.state = self.state
        logger.info(
            "Session %s done: %d ok, %d failed, %d case(s) skipped",
            self.session_id,
            len(summary.succeeded),
            len(summary.failed),
            len(summary.skipped_cases),
        )
        return summary

    def _abort(self, summary: SessionSummary, exc: CBError) -> SessionSummary:
        logger.error("Aborting session %s: %s", self.session_id, exc)
        summary.error = error_to_payload(exc)
        self._transition(RunState.ABORTED, status="failed", message=str(exc), level="ERROR")
        summary.state = self.state
        return summary

    def _fresh_results_root(self, results_root: Path) -> None:
        """Start from an empty results tree, moving a leftover one aside."""
        try:
            if results_root.is_dir() and any(results_root.iterdir()):
                stale = results_root.with_name(f"{results_root.name}.before-{self.session_id}")
                logger.warning("Moving leftover results tree %s to %s", results_root, stale)
                results_root.rename(stale)
            results_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CollectionError(
                "Could not prepare a fresh results tree",
                context={"results_root": results_root},
                cause=exc,
            ) from exc

    def _run_case(
        self,
        case: BenchmarkCase,
        context: StrategyContext,
        results_root: Path,
        summary: SessionSummary,
    ) -> bool:
        """Run one case; False when the workspace baseline could not be restored."""
        self._transition(RunState.STAGING, case=case)
        try:
            with self.workspace.staged(case, context) as staged:
                for strategy, sweep in self.registry.for_case(case, self.config.sweep):
                    self._transition(RunState.MEASURING, case=case, strategy=strategy.name)
                    outcome = self._measure_pair(context, staged, strategy, sweep)
                    summary.outcomes.append(outcome)
                    self._emit(
                        RunState.MEASURING,
                        status="done" if outcome.ok else "failed",
                        case=case,
                        strategy=strategy.name,
                    )

                self._transition(RunState.COLLECTING, case=case)
                try:
                    self.collector.collect(staged.path, results_root, case.category, case.name)
                except CollectionError as exc:
                    logger.error("Collecting %s failed: %s", case.key, exc)
                    summary.collection_errors[case.key] = error_to_payload(exc)

                self._transition(RunState.CLEANING_UP, case=case)
        except StagingError as exc:
            logger.error("Skipping %s: %s", case.key, exc)
            summary.skipped_cases[case.key] = error_to_payload(exc)
            self._emit(RunState.STAGING, status="skipped", case=case, message=str(exc), level="ERROR")
        except CleanupError as exc:
            return self._baseline_lost(case, summary, exc)

        # teardown only logs a cleanup failure while another error is in flight
        leftovers = self.workspace.leftovers()
        if leftovers:
            return self._baseline_lost(
                case,
                summary,
                CleanupError(
                    "Workspace entries survived cleanup",
                    context={"case": case.key, "entries": leftovers},
                ),
            )
        return True

    def _baseline_lost(
        self, case: BenchmarkCase, summary: SessionSummary, exc: CleanupError
    ) -> bool:
        logger.error("Cleanup after %s failed: %s", case.key, exc)
        summary.cleanup_error = {"case": case.key, **error_to_payload(exc)}
        self._emit(
            RunState.CLEANING_UP, status="failed", case=case, message=str(exc), level="ERROR"
        )
        return False

    def _measure_pair(
        self,
        context: StrategyContext,
        staged: StagedWorkspace,
        strategy: ExecutionStrategy,
        sweep: ParameterSweep | None,
    ) -> PairOutcome:
        case = staged.case
        name = export_name(strategy.export_prefix, self.session_id)
        try:
            strategy.prepare(context, staged)
            invocation = strategy.invoke(f"./{case.run_command_name}", sweep)
            self.runner.measure(invocation, self.config.warmup, name)
            strategy.retrieve(context, staged, name)
            exported = staged.export_path(name)
            if not exported.is_file() or exported.stat().st_size == 0:
                raise MeasurementError(
                    "Export file missing after measurement",
                    context={"strategy": strategy.name, "export": exported},
                )
        except (MeasurementError, ConfigurationError) as exc:
            return self._failed(staged, strategy, name, exc)
        except ContainerError as exc:
            wrapped = MeasurementError(
                f"Container step failed for '{strategy.name}'",
                context={"strategy": strategy.name, **exc.context},
                cause=exc,
            )
            return self._failed(staged, strategy, name, wrapped)
        finally:
            try:
                strategy.cleanup(context, staged)
            except ContainerError as exc:
                logger.error("Cleanup for %s failed: %s", strategy.name, exc)

        logger.info("%s: %s -> %s", case.key, strategy.name, name)
        return PairOutcome(
            category=case.category,
            case=case.name,
            strategy=strategy.name,
            status="ok",
            export_name=name,
        )

    def _failed(
        self,
        staged: StagedWorkspace,
        strategy: ExecutionStrategy,
        name: str,
        exc: CBError,
    ) -> PairOutcome:
        case = staged.case
        payload = error_to_payload(exc)
        logger.error("%s: %s failed: %s", case.key, strategy.name, exc)
        if self.config.record_failures:
            self._write_failure_marker(staged, strategy, payload)
        return PairOutcome(
            category=case.category,
            case=case.name,
            strategy=strategy.name,
            status="failed",
            export_name=name,
            error=payload,
        )

    def _write_failure_marker(
        self,
        staged: StagedWorkspace,
        strategy: ExecutionStrategy,
        payload: dict[str, Any],
    ) -> None:
        marker = staged.path / failure_marker_name(strategy.export_prefix, self.session_id)
        body = {"session_id": self.session_id, "strategy": strategy.name, **payload}
        try:
            marker.write_text(json.dumps(body, indent=2))
        except OSError:
            logger.exception("Could not write failure marker %s", marker)
