"""Execution strategies compared by the benchmark matrix.

Each strategy is a stateless descriptor: it knows where the case's run
command executes and how to express that as a :class:`StrategyInvocation`.
Strategies that leave state outside the shared workspace (a container
scratch copy, files copied into a container root) move it in ``prepare``,
bring the export back in ``retrieve`` and register the matching reset on
the :class:`StrategyContext`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from cb_common.errors import ConfigurationError
from cb_runner.engine.cases import BenchmarkCase
from cb_runner.engine.context import StrategyContext
from cb_runner.engine.invocation import (
    ContainerTarget,
    HostTarget,
    ParameterSweep,
    StrategyInvocation,
    with_sweep,
)
from cb_runner.engine.workspace import StagedWorkspace
from cb_runner.models.config import BenchConfig, SweepConfig
from cb_runner.services.containers import ContainerClient


def _posix(path: str, *parts: str) -> str:
    return str(PurePosixPath(path, *parts))


class ExecutionStrategy(ABC):
    """One execution environment under comparison."""

    name: str
    label: str
    environment: str
    sweep_aware: bool = True

    @property
    def export_prefix(self) -> str:
        return self.name

    def prepare(self, ctx: StrategyContext, workspace: StagedWorkspace) -> None:
        """Move staged inputs to where the command will run."""

    @abstractmethod
    def invoke(self, command: str, sweep: ParameterSweep | None = None) -> StrategyInvocation:
        """Describe the timed command for ``command`` (and optional sweep)."""

    def retrieve(self, ctx: StrategyContext, workspace: StagedWorkspace, export_name: str) -> None:
        """Bring the export file back into the workspace."""

    def cleanup(self, ctx: StrategyContext, workspace: StagedWorkspace) -> None:
        """Drop per-measurement state outside the workspace."""

    def _command(self, command: str, sweep: ParameterSweep | None) -> str:
        return with_sweep(command, sweep if self.sweep_aware else None)

    def _sweep(self, sweep: ParameterSweep | None) -> ParameterSweep | None:
        return sweep if self.sweep_aware else None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class LocalStrategy(ExecutionStrategy):
    """Run the command directly on the host inside the workspace."""

    environment = "host"

    def __init__(self, workspace_dir: Path, name: str = "local") -> None:
        self.name = name
        self.label = "Local"
        self.workspace_dir = Path(workspace_dir)

    def invoke(self, command: str, sweep: ParameterSweep | None = None) -> StrategyInvocation:
        return StrategyInvocation(
            strategy=self.name,
            command=self._command(command, sweep),
            target=HostTarget(self.workspace_dir),
            sweep=self._sweep(sweep),
        )


class DirectTraceStrategy(LocalStrategy):
    """Run the command on the host under a syscall-level file access tracer."""

    environment = "host + fsatrace"

    def __init__(self, workspace_dir: Path, tracer: str = "fsatrace", name: str = "cairn_IV") -> None:
        super().__init__(workspace_dir, name=name)
        self.label = "Direct trace"
        self.tracer = tracer

    def invoke(self, command: str, sweep: ParameterSweep | None = None) -> StrategyInvocation:
        return StrategyInvocation(
            strategy=self.name,
            command=f"{self.tracer} -- {self._command(command, sweep)}",
            target=HostTarget(self.workspace_dir),
            sweep=self._sweep(sweep),
        )


class InContainerStrategy(ExecutionStrategy):
    """Run the benchmarking tool itself inside a container directory.

    ``stage_into_root`` copies the staged files into the container root,
    which the passthrough mounts expose. ``export_in_workspace`` is set
    when ``workdir`` is backed by the shared workspace mount, so the export
    needs no copy back.
    """

    def __init__(
        self,
        name: str,
        label: str,
        container: str,
        workdir: str,
        *,
        stage_into_root: bool = False,
        export_in_workspace: bool = False,
    ) -> None:
        self.name = name
        self.label = label
        self.container = container
        self.workdir = workdir
        self.stage_into_root = stage_into_root
        self.export_in_workspace = export_in_workspace
        self.environment = f"{container}:{workdir}"

    def prepare(self, ctx: StrategyContext, workspace: StagedWorkspace) -> None:
        if self.stage_into_root:
            stage_into_container_root(ctx, self.container)
        ctx.containers.exec_argv(
            self.container,
            ["chmod", "+x", _posix(self.workdir, workspace.case.run_command_name)],
        )

    def invoke(self, command: str, sweep: ParameterSweep | None = None) -> StrategyInvocation:
        return StrategyInvocation(
            strategy=self.name,
            command=self._command(command, sweep),
            target=ContainerTarget(self.container, PurePosixPath(self.workdir)),
            sweep=self._sweep(sweep),
        )

    def retrieve(self, ctx: StrategyContext, workspace: StagedWorkspace, export_name: str) -> None:
        if self.export_in_workspace:
            return
        ctx.containers.copy_file(
            self.container,
            _posix(self.workdir, export_name),
            _posix(ctx.config.containers.shared_mount) + "/",
        )


class ContainerizedStrategy(InContainerStrategy):
    """Copy the workspace into a private directory of the tracer container."""

    def __init__(self, container: str, shared_mount: str, scratch_dir: str, name: str = "docker") -> None:
        super().__init__(name, "Docker", container, scratch_dir)
        self.shared_mount = shared_mount

    def prepare(self, ctx: StrategyContext, workspace: StagedWorkspace) -> None:
        ctx.register_reset(
            f"{self.name}:scratch",
            lambda: ctx.containers.exec_argv(
                self.container, ["rm", "-rf", self.workdir], check=False
            ),
        )
        ctx.containers.copy_tree(self.container, self.shared_mount, self.workdir)
        super().prepare(ctx, workspace)

    def cleanup(self, ctx: StrategyContext, workspace: StagedWorkspace) -> None:
        ctx.containers.purge(self.container, self.workdir)


class PassthroughStrategy(InContainerStrategy):
    """Run inside a passthrough filesystem mounted over the fs container root."""

    def __init__(self, name: str, label: str, container: str, mount: str) -> None:
        super().__init__(name, label, container, mount, stage_into_root=True)


class TracerBackedStrategy(InContainerStrategy):
    """Run inside the tracer-managed mount, with tracing off or on."""

    def __init__(
        self,
        name: str,
        container: str,
        mount: str,
        *,
        traced: bool,
        stage_into_root: bool = False,
    ) -> None:
        label = "Tracer mount (trace)" if traced else "Tracer mount (no trace)"
        super().__init__(
            name,
            label,
            container,
            mount,
            stage_into_root=stage_into_root,
            export_in_workspace=traced,
        )
        self.traced = traced


class ContainerExecStrategy(ExecutionStrategy):
    """Time a ``docker exec`` of the command from the host."""

    def __init__(
        self,
        name: str,
        label: str,
        client: ContainerClient,
        container: str,
        mount: str,
        workspace_dir: Path,
        *,
        stage_into_root: bool = False,
    ) -> None:
        self.name = name
        self.label = label
        self.client = client
        self.container = container
        self.mount = mount
        self.workspace_dir = Path(workspace_dir)
        self.stage_into_root = stage_into_root
        self.environment = f"host -> {container}:{mount}"

    def prepare(self, ctx: StrategyContext, workspace: StagedWorkspace) -> None:
        if self.stage_into_root:
            stage_into_container_root(ctx, self.container)

    def _script(self, command: str) -> str:
        return f"cd {self.mount} && {command}"

    def invoke(self, command: str, sweep: ParameterSweep | None = None) -> StrategyInvocation:
        script = self._script(self._command(command, sweep))
        return StrategyInvocation(
            strategy=self.name,
            command=self.client.shell_command(self.container, script),
            target=HostTarget(self.workspace_dir),
            sweep=self._sweep(sweep),
        )


class ChrootWrappedStrategy(ContainerExecStrategy):
    """Like :class:`ContainerExecStrategy`, but chroot into the mount first.

    Separates path-resolution overhead from the cost of the exec itself.
    """

    def __init__(
        self,
        name: str,
        label: str,
        client: ContainerClient,
        container: str,
        mount: str,
        workspace_dir: Path,
        *,
        wrapper: str = "./command_wrapper.sh",
        stage_into_root: bool = False,
    ) -> None:
        super().__init__(
            name,
            label,
            client,
            container,
            mount,
            workspace_dir,
            stage_into_root=stage_into_root,
        )
        self.wrapper = wrapper
        self.environment = f"host -> {container}: chroot {mount}"

    def _script(self, command: str) -> str:
        return f"{self.wrapper} {self.mount} {command}"


def stage_into_container_root(ctx: StrategyContext, container: str) -> None:
    """Copy staged files into the container root and schedule its purge."""
    containers_cfg = ctx.config.containers
    ctx.register_reset(
        f"{container}:root",
        lambda: ctx.containers.purge_root(container, containers_cfg.fs_container_preserve),
    )
    ctx.containers.copy_files_flat(container, containers_cfg.shared_mount, "/")


class StrategyRegistry:
    """Ordered, closed set of execution strategies."""

    def __init__(self, strategies: Iterable[ExecutionStrategy] = ()) -> None:
        self._strategies: OrderedDict[str, ExecutionStrategy] = OrderedDict()
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: ExecutionStrategy) -> None:
        if strategy.name in self._strategies:
            raise ConfigurationError(
                "Duplicate strategy name", context={"strategy": strategy.name}
            )
        self._strategies[strategy.name] = strategy

    def get(self, name: str) -> ExecutionStrategy:
        try:
            return self._strategies[name]
        except KeyError as exc:
            raise ConfigurationError(
                f"Unknown strategy: {name}",
                context={"strategy": name, "available": self.names()},
            ) from exc

    def names(self) -> list[str]:
        return list(self._strategies)

    def select(self, names: Iterable[str]) -> "StrategyRegistry":
        """Registry restricted to ``names``, in the given order."""
        return StrategyRegistry(self.get(name) for name in names)

    def for_case(
        self, case: BenchmarkCase, sweep_config: SweepConfig
    ) -> list[tuple[ExecutionStrategy, ParameterSweep | None]]:
        """Pair every strategy with the sweep it receives for ``case``."""
        sweep = sweep_for(case, sweep_config)
        return [
            (strategy, sweep if strategy.sweep_aware else None)
            for strategy in self._strategies.values()
        ]

    def __iter__(self) -> Iterator[ExecutionStrategy]:
        return iter(self._strategies.values())

    def __len__(self) -> int:
        return len(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies


def sweep_for(case: BenchmarkCase, sweep_config: SweepConfig) -> ParameterSweep | None:
    """Only sweep categories get a parameter scan."""
    if case.category not in sweep_config.categories:
        return None
    return ParameterSweep(
        token=sweep_config.token,
        start=sweep_config.start,
        end=sweep_config.end,
        step=sweep_config.step,
    )


def build_strategies(
    config: BenchConfig, client: ContainerClient | None = None
) -> list[ExecutionStrategy]:
    """Every known strategy, in the order the matrix runs them."""
    c = config.containers
    workspace = config.workspace_dir
    client = client or ContainerClient(c.engine, config.tools.shell)
    return [
        LocalStrategy(workspace),
        ContainerizedStrategy(c.tracer_container, c.shared_mount, c.scratch_dir),
        PassthroughStrategy("fuse_docker", "Passthrough FUSE", c.fs_container, c.fuse_mount),
        ChrootWrappedStrategy(
            "fuse_chroot",
            "Passthrough FUSE (chroot)",
            client,
            c.fs_container,
            c.fuse_mount,
            workspace,
            wrapper=c.chroot_wrapper,
            stage_into_root=True,
        ),
        PassthroughStrategy(
            "fuse_ll_docker", "Low-level passthrough FUSE", c.fs_container, c.fuse_ll_mount
        ),
        ChrootWrappedStrategy(
            "fuse_ll_chroot",
            "Low-level passthrough FUSE (chroot)",
            client,
            c.fs_container,
            c.fuse_ll_mount,
            workspace,
            wrapper=c.chroot_wrapper,
            stage_into_root=True,
        ),
        TracerBackedStrategy(
            "cairn_fuse_no_trace",
            c.fs_container,
            c.tracer_mount_untraced,
            traced=False,
            stage_into_root=True,
        ),
        TracerBackedStrategy("cairn_fuse_trace", c.tracer_container, c.tracer_mount, traced=True),
        ContainerExecStrategy(
            "cairn_II",
            "Tracer mount via docker exec",
            client,
            c.tracer_container,
            c.tracer_mount,
            workspace,
        ),
        ChrootWrappedStrategy(
            "cairn_III",
            "Tracer mount via docker exec (chroot)",
            client,
            c.tracer_container,
            c.tracer_mount,
            workspace,
            wrapper=c.chroot_wrapper,
        ),
        DirectTraceStrategy(workspace, tracer=config.tools.fsatrace),
    ]


def default_registry(
    config: BenchConfig, client: ContainerClient | None = None
) -> StrategyRegistry:
    """Registry of the strategies enabled in ``config``."""
    return StrategyRegistry(build_strategies(config, client)).select(config.strategies)
