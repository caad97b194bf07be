"""Benchmark session configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field, model_validator

from cb_common.config.env import parse_path_env

DEFAULT_CONFIG_NAME = "bench_config.json"

DEFAULT_STRATEGIES = [
    "local",
    "docker",
    "fuse_docker",
    "fuse_chroot",
    "fuse_ll_docker",
    "fuse_ll_chroot",
    "cairn_fuse_no_trace",
    "cairn_fuse_trace",
    "cairn_II",
    "cairn_III",
    "cairn_IV",
]

# Host-level subtrees that live in the shared workspace because it is
# bind-mounted as a container root.
DEFAULT_PRESERVE = ["bin", "dev", "etc", "lib*", "proc", "sys", "usr", "tracer.log"]

DEFAULT_FS_CONTAINER_PRESERVE = [
    "bin",
    "boot",
    "dev",
    "etc",
    "home",
    "lib*",
    "media",
    "mnt",
    "opt",
    "proc",
    "root",
    "run",
    "srv",
    "sys",
    "tmp",
    "usr",
    "var",
]


class SweepConfig(BaseModel):
    """Parameter scan applied to sweep categories."""

    token: str = Field(default="iter", description="Substitution token exposed to run.sh")
    start: int = Field(default=1, description="First scan value")
    end: int = Field(default=10, description="Last scan value")
    step: int = Field(default=2, gt=0, description="Scan increment")
    categories: List[str] = Field(
        default_factory=lambda: ["stress"],
        description="Categories whose cases are swept",
    )

    @model_validator(mode="after")
    def _validate_range(self) -> "SweepConfig":
        if self.end < self.start:
            raise ValueError("SweepConfig: 'end' must be >= 'start'")
        if not self.token.isidentifier():
            raise ValueError(f"SweepConfig: invalid token {self.token!r}")
        return self


class StagingConfig(BaseModel):
    """How case inputs are staged into the shared workspace."""

    run_command: str = Field(default="run.sh", description="Case-local entry point")
    auxiliary: Dict[str, str] = Field(
        default_factory=lambda: {"stress": "gcc"},
        description="Category -> category-level executable staged with every case",
    )
    copy_category_executable: bool = Field(
        default=True,
        description="Stage commands/<category>/<category> when it exists",
    )
    preserve: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PRESERVE),
        description="Glob patterns of workspace entries that survive cleanup",
    )


class ContainerConfig(BaseModel):
    """Long-lived containers addressed by name."""

    engine: str = Field(default="docker", description="Container runtime binary")
    tracer_container: str = Field(default="build-env", description="Tracer-overhead reference container")
    fs_container: str = Field(default="build-env-bench", description="Filesystem-overhead reference container")
    shared_mount: str = Field(
        default="/usr/src/dockermount",
        description="Workspace bind mount inside both containers",
    )
    scratch_dir: str = Field(
        default="/usr/src/benchmark",
        description="Private copy of the workspace inside the tracer container",
    )
    fuse_mount: str = Field(default="/usr/src/app/mnt", description="Standard passthrough mount")
    fuse_ll_mount: str = Field(default="/usr/src/app/mnt_ll", description="Low-level passthrough mount")
    tracer_mount_untraced: str = Field(
        default="/usr/src/app/mnt_cairn",
        description="Tracer mount with tracing disabled (fs container)",
    )
    tracer_mount: str = Field(
        default="/usr/src/fusemount",
        description="Tracer mount with tracing enabled (tracer container)",
    )
    chroot_wrapper: str = Field(
        default="./command_wrapper.sh",
        description="Helper that chroots into its first argument before exec",
    )
    fs_container_preserve: List[str] = Field(
        default_factory=lambda: list(DEFAULT_FS_CONTAINER_PRESERVE),
        description="Root entries of the fs container kept between cases",
    )


class ToolsConfig(BaseModel):
    """External executables."""

    hyperfine: str = Field(default="hyperfine", description="Benchmarking tool")
    fsatrace: str = Field(default="fsatrace", description="Syscall-level file access tracer")
    shell: str = Field(default="/bin/bash", description="Shell used for in-container scripts")


class ReportConfig(BaseModel):
    """Downstream report generator scripts."""

    enabled: bool = Field(default=True, description="Run report scripts after the matrix")
    python: str = Field(default="venv/bin/python3", description="Interpreter for report scripts")
    table_script: Path = Field(default=Path("benchmarks/tex.py"), description="Table generator")
    plot_script: Path = Field(default=Path("benchmarks/plot.py"), description="Plot generator")
    plot_category: str = Field(default="stress", description="Results subtree handed to the plotter")


class BenchConfig(BaseModel):
    """Main configuration for a benchmark session."""

    commands_root: Path = Field(default=Path("benchmarks/commands"), description="Case layout root")
    results_root: Path = Field(default=Path("benchmarks/results"), description="Uncompressed results tree")
    archive_dir: Path = Field(default=Path("benchmarks"), description="Where <session>.zip is written")
    workspace_dir: Path = Field(default=Path("host_mnt"), description="Shared staging workspace")
    warmup: int = Field(default=3, ge=0, description="hyperfine warmup runs")
    record_failures: bool = Field(
        default=True,
        description="Write a <prefix>_<session>.error marker for failed measurements",
    )
    strategies: List[str] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGIES),
        description="Enabled strategies, in execution order",
    )

    sweep: SweepConfig = Field(default_factory=SweepConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)
    containers: ContainerConfig = Field(default_factory=ContainerConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @model_validator(mode="after")
    def _validate_strategies_unique(self) -> "BenchConfig":
        if len(self.strategies) != len(set(self.strategies)):
            raise ValueError("BenchConfig: strategies must be unique")
        return self

    @classmethod
    def from_dict(cls, data: Dict) -> "BenchConfig":
        return cls.model_validate(data)

    def save(self, filepath: Path) -> None:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(self.model_dump_json(indent=2))

    @classmethod
    def load(cls, filepath: Path) -> "BenchConfig":
        return cls.model_validate_json(filepath.read_text())


def resolve_config_path(explicit: Path | None) -> Path | None:
    """Pick the config file: explicit path, CB_CONFIG_PATH, then ./bench_config.json."""
    if explicit is not None:
        return Path(explicit).expanduser()
    env_path = parse_path_env("CB_CONFIG_PATH")
    if env_path is not None:
        return env_path
    local = Path(DEFAULT_CONFIG_NAME)
    if local.exists():
        return local
    return None


def load_config(explicit: Path | None = None) -> BenchConfig:
    """Load the resolved config file, or the defaults when there is none."""
    path = resolve_config_path(explicit)
    if path is None:
        return BenchConfig()
    return BenchConfig.load(path)
