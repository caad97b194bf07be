"""Drive the external benchmarking tool for one (case, strategy) pair."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass

from cb_common.errors import ContainerError, MeasurementError
from cb_runner.engine.invocation import (
    ContainerTarget,
    HostTarget,
    HyperfineCommand,
    StrategyInvocation,
)
from cb_runner.services.containers import ContainerClient

logger = logging.getLogger(__name__)

_STDERR_TAIL = 2000


def export_name(prefix: str, session_id: str) -> str:
    """Deterministic export file name for one strategy in one session."""
    return f"{prefix}_{session_id}.json"


def failure_marker_name(prefix: str, session_id: str) -> str:
    return f"{prefix}_{session_id}.error"


@dataclass(frozen=True)
class MeasurementExport:
    """Location of one hyperfine JSON export; its contents stay opaque."""

    strategy: str
    export_name: str
    export_path: str
    command: tuple[str, ...]


class MeasurementRunner:
    """Build and run the hyperfine command for a strategy invocation."""

    def __init__(
        self,
        containers: ContainerClient,
        *,
        warmup: int = 3,
        binary: str = "hyperfine",
    ) -> None:
        self.containers = containers
        self.warmup = warmup
        self.binary = binary

    def build(
        self, invocation: StrategyInvocation, warmup: int | None, export_path: str
    ) -> HyperfineCommand:
        return HyperfineCommand(
            invocation=invocation,
            warmup=self.warmup if warmup is None else warmup,
            export_path=export_path,
            binary=self.binary,
        )

    def measure(
        self,
        invocation: StrategyInvocation,
        warmup: int | None,
        export_path: str,
    ) -> MeasurementExport:
        """Run hyperfine; ``export_path`` is resolved relative to the target dir."""
        command = self.build(invocation, warmup, export_path)
        argv = command.argv()
        target = invocation.target
        logger.info("Measuring %s: %s", invocation.strategy, shlex.join(argv))

        if isinstance(target, HostTarget):
            result = self._run_host(argv, target)
        elif isinstance(target, ContainerTarget):
            result = self._run_container(argv, target)
        else:
            raise MeasurementError(
                "Unsupported execution target",
                context={"strategy": invocation.strategy, "target": repr(target)},
            )

        if result.returncode != 0:
            raise MeasurementError(
                f"hyperfine failed for '{invocation.strategy}' (rc={result.returncode})",
                context={
                    "strategy": invocation.strategy,
                    "returncode": result.returncode,
                    "command": argv,
                    "stderr": (result.stderr or result.stdout or "")[-_STDERR_TAIL:],
                },
            )
        if result.stdout:
            logger.debug("%s output:\n%s", invocation.strategy, result.stdout)
        return MeasurementExport(
            strategy=invocation.strategy,
            export_name=export_path.rsplit("/", 1)[-1],
            export_path=export_path,
            command=tuple(argv),
        )

    def _run_host(
        self, argv: list[str], target: HostTarget
    ) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                argv, cwd=target.cwd, check=False, capture_output=True, text=True
            )
        except OSError as exc:
            raise MeasurementError(
                "Could not start the benchmarking tool",
                context={"command": argv, "cwd": target.cwd},
                cause=exc,
            ) from exc

    def _run_container(
        self, argv: list[str], target: ContainerTarget
    ) -> subprocess.CompletedProcess[str]:
        script = f"cd {shlex.quote(str(target.workdir))} && {shlex.join(argv)}"
        try:
            return self.containers.exec_script(target.container, script, check=False)
        except (ContainerError, OSError) as exc:
            raise MeasurementError(
                "Could not reach the container",
                context={"container": target.container, "command": argv},
                cause=exc,
            ) from exc
