import shlex
from pathlib import Path, PurePosixPath

import pytest

from cb_common.errors import ConfigurationError
from cb_runner.engine.cases import BenchmarkCase
from cb_runner.engine.context import StrategyContext
from cb_runner.engine.invocation import ContainerTarget, HostTarget, ParameterSweep
from cb_runner.engine.strategies import (
    StrategyRegistry,
    build_strategies,
    default_registry,
    sweep_for,
)
from cb_runner.engine.workspace import StagedWorkspace
from cb_runner.models.config import DEFAULT_STRATEGIES, SweepConfig

pytestmark = pytest.mark.unit_runner

SWEEP = ParameterSweep("iter", 1, 10, 2)


@pytest.fixture
def registry(bench_config, fake_containers):
    return StrategyRegistry(build_strategies(bench_config, fake_containers))


@pytest.fixture
def context(bench_config, fake_containers):
    return StrategyContext(session_id="s1", config=bench_config, containers=fake_containers)


@pytest.fixture
def staged(bench_config):
    case = BenchmarkCase("stress", "compile", Path("/cases/stress/compile"))
    return StagedWorkspace(path=bench_config.workspace_dir, case=case)


def test_registry_holds_every_strategy_in_matrix_order(registry):
    assert registry.names() == DEFAULT_STRATEGIES
    assert len(registry) == 11
    assert "cairn_IV" in registry


def test_default_registry_follows_config_selection(bench_config, fake_containers):
    bench_config.strategies = ["cairn_IV", "local"]

    registry = default_registry(bench_config, fake_containers)

    assert registry.names() == ["cairn_IV", "local"]


def test_unknown_and_duplicate_strategies_are_rejected(registry):
    with pytest.raises(ConfigurationError):
        registry.select(["local", "warp_drive"])
    with pytest.raises(ConfigurationError):
        StrategyRegistry([registry.get("local"), registry.get("local")])


def test_sweep_only_for_sweep_categories():
    config = SweepConfig()
    stress = BenchmarkCase("stress", "a", Path("/c/stress/a"))
    echo = BenchmarkCase("echo", "a", Path("/c/echo/a"))

    assert sweep_for(stress, config) == SWEEP
    assert sweep_for(echo, config) is None


def test_for_case_pairs_each_strategy_with_sweep(registry):
    pairs = registry.for_case(BenchmarkCase("stress", "a", Path("/c")), SweepConfig())

    assert [strategy.name for strategy, _ in pairs] == DEFAULT_STRATEGIES
    assert all(sweep == SWEEP for _, sweep in pairs)


def test_local_invocation(registry, bench_config):
    invocation = registry.get("local").invoke("./run.sh", SWEEP)

    assert invocation.target == HostTarget(bench_config.workspace_dir)
    assert invocation.command == "./run.sh {iter}"
    assert invocation.sweep == SWEEP


def test_direct_trace_wraps_command_with_tracer(registry):
    invocation = registry.get("cairn_IV").invoke("./run.sh")

    assert invocation.command == "fsatrace -- ./run.sh"
    assert invocation.sweep is None


def test_in_container_strategies_target_their_mount(registry):
    expected = {
        "docker": ("build-env", "/usr/src/benchmark"),
        "fuse_docker": ("build-env-bench", "/usr/src/app/mnt"),
        "fuse_ll_docker": ("build-env-bench", "/usr/src/app/mnt_ll"),
        "cairn_fuse_no_trace": ("build-env-bench", "/usr/src/app/mnt_cairn"),
        "cairn_fuse_trace": ("build-env", "/usr/src/fusemount"),
    }
    for name, (container, workdir) in expected.items():
        invocation = registry.get(name).invoke("./run.sh", SWEEP)
        assert invocation.target == ContainerTarget(container, PurePosixPath(workdir)), name
        assert invocation.command == "./run.sh {iter}"


def test_exec_strategies_time_the_docker_exec(registry, bench_config):
    invocation = registry.get("cairn_II").invoke("./run.sh", SWEEP)

    assert invocation.target == HostTarget(bench_config.workspace_dir)
    assert shlex.split(invocation.command) == [
        "docker",
        "exec",
        "build-env",
        "/bin/bash",
        "-c",
        "cd /usr/src/fusemount && ./run.sh {iter}",
    ]


def test_chroot_strategies_use_the_wrapper(registry):
    for name, mount in (
        ("fuse_chroot", "/usr/src/app/mnt"),
        ("fuse_ll_chroot", "/usr/src/app/mnt_ll"),
        ("cairn_III", "/usr/src/fusemount"),
    ):
        script = shlex.split(registry.get(name).invoke("./run.sh").command)[-1]
        assert script == f"./command_wrapper.sh {mount} ./run.sh"


def test_containerized_prepare_copies_into_scratch_and_registers_reset(
    registry, context, staged, fake_containers
):
    strategy = registry.get("docker")

    strategy.prepare(context, staged)

    argvs = [argv for _, argv in fake_containers.calls]
    assert ["mkdir", "-p", "/usr/src/benchmark"] in argvs
    assert ["cp", "-r", "/usr/src/dockermount/.", "/usr/src/benchmark"] in argvs
    assert ["chmod", "+x", "/usr/src/benchmark/run.sh"] in argvs
    assert context.pending_resets() == ["docker:scratch"]

    strategy.cleanup(context, staged)
    assert fake_containers.calls[-1] == ("build-env", ["find", "/usr/src/benchmark", "-delete"])


def test_passthrough_prepare_stages_into_fs_container_root(
    registry, context, staged, fake_containers
):
    registry.get("fuse_docker").prepare(context, staged)
    registry.get("fuse_ll_docker").prepare(context, staged)

    container, argv = fake_containers.calls[0]
    assert container == "build-env-bench"
    assert argv[:2] == ["find", "/usr/src/dockermount"]
    assert context.pending_resets() == ["build-env-bench:root"]

    context.run_resets()
    container, argv = fake_containers.calls[-1]
    assert argv[:6] == ["find", "/", "-mindepth", "1", "-maxdepth", "1"]
    assert ["!", "-name", "usr"] == argv[argv.index("usr") - 2: argv.index("usr") + 1]


def test_retrieve_copies_export_to_shared_mount(registry, context, staged, fake_containers):
    fake_containers.files["/usr/src/app/mnt/fuse_docker_s1.json"] = "{}"

    registry.get("fuse_docker").retrieve(context, staged, "fuse_docker_s1.json")

    assert fake_containers.calls[-1] == (
        "build-env-bench",
        ["cp", "/usr/src/app/mnt/fuse_docker_s1.json", "/usr/src/dockermount/"],
    )
    assert staged.export_path("fuse_docker_s1.json").read_text() == "{}"


def test_traced_mount_needs_no_retrieval(registry, context, staged, fake_containers):
    registry.get("cairn_fuse_trace").retrieve(context, staged, "x.json")

    assert fake_containers.calls == []
