"""Typed invocation builder for the external benchmarking tool.

Every strategy describes *what* to time as a :class:`StrategyInvocation`;
:class:`HyperfineCommand` turns it into the argv handed to ``hyperfine``.
Malformed combinations (a sweep without its placeholder, a placeholder
without a sweep, an empty command) fail here, at construction time, rather
than as a tool failure half-way through a session.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union

from cb_common.errors import ConfigurationError


@dataclass(frozen=True)
class ParameterSweep:
    """A ``start..end`` scan stepping by ``step``, exposed as ``{token}``."""

    token: str
    start: int
    end: int
    step: int

    def __post_init__(self) -> None:
        for field_name in ("start", "end", "step"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(
                    f"Sweep '{field_name}' must be an integer",
                    context={field_name: value},
                )
        if not self.token.isidentifier():
            raise ConfigurationError("Invalid sweep token", context={"token": self.token})
        if self.step <= 0:
            raise ConfigurationError("Sweep step must be positive", context={"step": self.step})
        if self.end < self.start:
            raise ConfigurationError(
                "Sweep end must not precede start",
                context={"start": self.start, "end": self.end},
            )

    @property
    def placeholder(self) -> str:
        return "{" + self.token + "}"

    def hyperfine_args(self) -> list[str]:
        return [
            "--parameter-scan",
            self.token,
            str(self.start),
            str(self.end),
            "-D",
            str(self.step),
        ]


@dataclass(frozen=True)
class HostTarget:
    """Run the benchmarking tool on the host, in ``cwd``."""

    cwd: Path


@dataclass(frozen=True)
class ContainerTarget:
    """Run the benchmarking tool inside ``container``, in ``workdir``."""

    container: str
    workdir: PurePosixPath

    def __post_init__(self) -> None:
        if not self.container:
            raise ConfigurationError("Container target requires a container name")
        if not PurePosixPath(self.workdir).is_absolute():
            raise ConfigurationError(
                "Container workdir must be absolute",
                context={"workdir": self.workdir},
            )


ExecutionTarget = Union[HostTarget, ContainerTarget]


@dataclass(frozen=True)
class StrategyInvocation:
    """The command one strategy wants timed, and where the timing happens."""

    strategy: str
    command: str
    target: ExecutionTarget
    sweep: ParameterSweep | None = None

    def __post_init__(self) -> None:
        if not self.command.strip():
            raise ConfigurationError(
                "Invocation command is empty", context={"strategy": self.strategy}
            )
        if self.sweep is not None and self.sweep.placeholder not in self.command:
            raise ConfigurationError(
                "Sweep placeholder missing from command",
                context={
                    "strategy": self.strategy,
                    "command": self.command,
                    "placeholder": self.sweep.placeholder,
                },
            )

    @property
    def in_container(self) -> bool:
        return isinstance(self.target, ContainerTarget)


def with_sweep(command: str, sweep: ParameterSweep | None) -> str:
    """Append the sweep placeholder as the single argument of ``command``."""
    if sweep is None:
        return command
    return f"{command} {sweep.placeholder}"


@dataclass(frozen=True)
class HyperfineCommand:
    """Concrete hyperfine command line for one invocation."""

    invocation: StrategyInvocation
    warmup: int
    export_path: str
    binary: str = "hyperfine"

    def __post_init__(self) -> None:
        if self.warmup < 0:
            raise ConfigurationError("Warmup must be >= 0", context={"warmup": self.warmup})
        if not self.export_path:
            raise ConfigurationError("Export path is required")

    def argv(self) -> list[str]:
        args = [self.binary, "--warmup", str(self.warmup)]
        if self.invocation.sweep is not None:
            args.extend(self.invocation.sweep.hyperfine_args())
        args.extend([self.invocation.command, "--export-json", self.export_path])
        return args
