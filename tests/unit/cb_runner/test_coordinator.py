import json
import zipfile
from unittest.mock import MagicMock

import pytest

from cb_common.errors import ArchiveError
from cb_runner.engine.coordinator import RunCoordinator, RunState

pytestmark = pytest.mark.unit_runner

SESSION = "2024-01-01_00-00-00_abc"


@pytest.fixture
def local_only(bench_config):
    bench_config.strategies = ["local", "cairn_IV"]
    return bench_config


def _coordinator(config, containers, **kwargs):
    return RunCoordinator(config, session_id=SESSION, containers=containers, **kwargs)


def test_state_sequence_for_one_case(local_only, fake_containers, fake_hyperfine, make_case):
    make_case(local_only.commands_root, "echo", "hello")
    events = []

    summary = _coordinator(local_only, fake_containers, on_event=events.append).run()

    assert summary.state is RunState.DONE
    states = [event.state for event in events if event.status == "running"]
    assert states == [
        "discovering",
        "staging",
        "measuring",
        "measuring",
        "collecting",
        "cleaning_up",
        "reporting",
        "archiving",
    ]
    assert events[-1].state == "done"
    assert all(event.session_id == SESSION for event in events)
    assert [o.export_name for o in summary.succeeded] == [
        f"local_{SESSION}.json",
        f"cairn_IV_{SESSION}.json",
    ]


def test_sweep_is_applied_only_to_stress(local_only, fake_containers, fake_hyperfine, make_case):
    make_case(local_only.commands_root, "echo", "hello")
    stress = make_case(local_only.commands_root, "stress", "compile")
    (stress.parent / "gcc").write_text("gcc")
    local_only.strategies = ["local"]

    _coordinator(local_only, fake_containers).run()

    echo_call, stress_call = (call["argv"] for call in fake_hyperfine.calls)
    assert "--parameter-scan" not in echo_call
    assert stress_call[3:9] == ["--parameter-scan", "iter", "1", "10", "-D", "2"]
    assert "./run.sh {iter}" in stress_call


def test_failed_pair_is_isolated_and_marked(local_only, fake_containers, fake_hyperfine, make_case):
    make_case(local_only.commands_root, "echo", "hello")
    fake_hyperfine.fail_when.append("fsatrace")

    summary = _coordinator(local_only, fake_containers).run()

    assert [o.strategy for o in summary.succeeded] == ["local"]
    [failed] = summary.failed
    assert failed.strategy == "cairn_IV"
    assert failed.error["error_type"] == "MeasurementError"

    with zipfile.ZipFile(summary.archive_path) as zip_ref:
        names = set(zip_ref.namelist())
        marker = json.loads(zip_ref.read(f"echo/hello/cairn_IV_{SESSION}.error"))
    assert f"echo/hello/local_{SESSION}.json" in names
    assert f"echo/hello/cairn_IV_{SESSION}.json" not in names
    # tools globbing *.json must only ever see hyperfine exports
    assert [n for n in names if n.endswith(".json")] == [f"echo/hello/local_{SESSION}.json"]
    assert marker["strategy"] == "cairn_IV"
    assert marker["session_id"] == SESSION


def test_failures_can_be_left_implicit(local_only, fake_containers, fake_hyperfine, make_case):
    make_case(local_only.commands_root, "echo", "hello")
    local_only.record_failures = False
    fake_hyperfine.fail_when.append("fsatrace")

    summary = _coordinator(local_only, fake_containers).run()

    with zipfile.ZipFile(summary.archive_path) as zip_ref:
        assert not [n for n in zip_ref.namelist() if n.endswith(".error")]


def test_empty_export_counts_as_failure(local_only, fake_containers, make_case):
    make_case(local_only.commands_root, "echo", "hello")
    local_only.strategies = ["local"]
    runner = MagicMock()

    summary = _coordinator(local_only, fake_containers, runner=runner).run()

    assert summary.failed[0].error["error"] == "Export file missing after measurement"


def test_discovery_failure_aborts(bench_config, fake_containers):
    summary = _coordinator(bench_config, fake_containers).run()

    assert summary.state is RunState.ABORTED
    assert summary.error["error_type"] == "DiscoveryError"
    assert summary.archive_path is None


def test_staging_failure_skips_case(local_only, fake_containers, fake_hyperfine, make_case):
    make_case(local_only.commands_root, "echo", "broken", run_script=False)
    make_case(local_only.commands_root, "echo", "hello")

    summary = _coordinator(local_only, fake_containers).run()

    assert list(summary.skipped_cases) == ["echo/broken"]
    assert {o.case for o in summary.outcomes} == {"hello"}
    assert summary.state is RunState.DONE


def test_archive_failure_keeps_results(local_only, fake_containers, fake_hyperfine, make_case, monkeypatch):
    make_case(local_only.commands_root, "echo", "hello")

    def broken(*args, **kwargs):
        raise ArchiveError("disk full")

    monkeypatch.setattr("cb_runner.engine.coordinator.archive_results", broken)

    summary = _coordinator(local_only, fake_containers).run()

    assert summary.state is RunState.DONE
    assert summary.archive_path is None
    assert summary.error["error_type"] == "ArchiveError"
    assert (local_only.results_root / "echo" / "hello" / f"local_{SESSION}.json").is_file()


def test_container_failure_marks_only_that_pair(bench_config, fake_containers, fake_hyperfine, make_case):
    make_case(bench_config.commands_root, "echo", "hello")
    bench_config.strategies = ["local", "fuse_docker"]
    fake_containers.fail_when.append("chmod")

    summary = _coordinator(bench_config, fake_containers).run()

    assert [o.strategy for o in summary.succeeded] == ["local"]
    assert summary.failed[0].error["error_context"]["strategy"] == "fuse_docker"


def _deny_removal_of(monkeypatch, name, times=1):
    import cb_runner.engine.workspace as workspace_module

    real = workspace_module.remove_entry
    denied = []

    def remove(path):
        if path.name == name and len(denied) < times:
            denied.append(path)
            raise PermissionError(13, "Permission denied", str(path))
        real(path)

    monkeypatch.setattr(workspace_module, "remove_entry", remove)
    return denied


def test_cleanup_failure_stops_remaining_cases_but_archives(
    local_only, fake_containers, fake_hyperfine, make_case, monkeypatch
):
    make_case(local_only.commands_root, "echo", "a")
    make_case(local_only.commands_root, "echo", "b")
    local_only.strategies = ["local"]
    _deny_removal_of(monkeypatch, "run.sh")
    events = []

    summary = _coordinator(local_only, fake_containers, on_event=events.append).run()

    assert summary.state is RunState.DONE
    assert summary.cleanup_error["case"] == "echo/a"
    assert summary.cleanup_error["error_type"] == "CleanupError"
    assert summary.unrun_cases == ["echo/b"]
    assert {o.case for o in summary.outcomes} == {"a"}
    assert len(fake_hyperfine.calls) == 1
    assert any(e.state == "cleaning_up" and e.status == "failed" for e in events)
    with zipfile.ZipFile(summary.archive_path) as zip_ref:
        assert f"echo/a/local_{SESSION}.json" in zip_ref.namelist()


def test_cleanup_failure_during_skipped_case_still_stops(
    local_only, fake_containers, fake_hyperfine, make_case, monkeypatch
):
    make_case(local_only.commands_root, "alpha", "one")
    make_case(local_only.commands_root, "beta", "two")
    local_only.staging.auxiliary = {"alpha": "tool"}
    _deny_removal_of(monkeypatch, "run.sh", times=10)

    summary = _coordinator(local_only, fake_containers).run()

    assert list(summary.skipped_cases) == ["alpha/one"]
    assert summary.cleanup_error["case"] == "alpha/one"
    assert summary.cleanup_error["error_context"]["entries"] == ["run.sh"]
    assert summary.unrun_cases == ["beta/two"]
    assert fake_hyperfine.calls == []


def test_leftover_results_do_not_leak_into_next_archive(
    local_only, fake_containers, fake_hyperfine, make_case, monkeypatch
):
    import cb_runner.engine.coordinator as coordinator_module

    make_case(local_only.commands_root, "echo", "hello")
    local_only.strategies = ["local"]
    real_archive = coordinator_module.archive_results
    attempts = []

    def archive_once_broken(*args, **kwargs):
        attempts.append(args)
        if len(attempts) == 1:
            raise ArchiveError("disk full")
        return real_archive(*args, **kwargs)

    monkeypatch.setattr(coordinator_module, "archive_results", archive_once_broken)

    first = _coordinator(local_only, fake_containers).run()
    assert first.archive_path is None

    second_id = "2024-01-01_00-00-01_abc"
    second = RunCoordinator(local_only, session_id=second_id, containers=fake_containers).run()

    with zipfile.ZipFile(second.archive_path) as zip_ref:
        names = zip_ref.namelist()
    assert f"echo/hello/local_{second_id}.json" in names
    assert not [n for n in names if SESSION in n]
    kept = local_only.results_root.with_name(f"results.before-{second_id}")
    assert (kept / "echo" / "hello" / f"local_{SESSION}.json").is_file()
