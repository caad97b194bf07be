import json
import shlex
import subprocess
from collections import defaultdict
from pathlib import Path, PurePosixPath

import pytest
from rich.console import Console
from rich.table import Table

from cb_common.errors import ContainerError
from cb_runner.models.config import BenchConfig
from cb_runner.services.containers import ContainerClient


def _completed(argv, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(list(argv), returncode, stdout, stderr)


def _export_from(argv):
    """Return the --export-json argument of a hyperfine argv."""
    args = list(argv)
    return args[args.index("--export-json") + 1]


def _fake_export(argv):
    return json.dumps({"results": [{"command": " ".join(argv), "mean": 0.01}]})


class FakeHyperfine:
    """Stand-in for subprocess.run that writes a hyperfine export in cwd."""

    def __init__(self):
        self.calls = []
        self.fail_when = []

    def __call__(self, argv, cwd=None, **kwargs):
        self.calls.append({"argv": list(argv), "cwd": cwd})
        if any(marker in " ".join(argv) for marker in self.fail_when):
            return _completed(argv, 1, stderr="Command terminated with non-zero exit code")
        export = Path(cwd or ".") / _export_from(argv)
        export.write_text(_fake_export(argv))
        return _completed(argv, stdout="Benchmark 1: done")


class FakeContainerClient(ContainerClient):
    """Container client simulating in-container files without a runtime.

    ``host_mounts`` maps in-container directories to host directories (the
    shared workspace bind mounts); everything else lives in ``files``.
    """

    def __init__(self, host_mounts=None, shell="/bin/bash"):
        super().__init__("docker", shell)
        self.host_mounts = {str(k): Path(v) for k, v in (host_mounts or {}).items()}
        self.files = {}
        self.calls = []
        self.fail_when = []

    def _host_path(self, path):
        for prefix, host in self.host_mounts.items():
            if path == prefix:
                return host
            if path.startswith(prefix.rstrip("/") + "/"):
                return host / path[len(prefix.rstrip("/")) + 1:]
        return None

    def _write(self, path, content):
        host = self._host_path(path)
        if host is not None:
            host.parent.mkdir(parents=True, exist_ok=True)
            host.write_text(content)
        else:
            self.files[path] = content

    def _read(self, path):
        host = self._host_path(path)
        if host is not None:
            return host.read_text() if host.is_file() else None
        return self.files.get(path)

    def exec_argv(self, container, argv, *, check=True):
        argv = list(argv)
        self.calls.append((container, argv))
        if any(marker in " ".join(argv) for marker in self.fail_when):
            if check:
                raise ContainerError("Container command failed", context={"container": container})
            return _completed(argv, 1, stderr="boom")
        if argv[:2] == [self.shell, "-c"] and "--export-json" in argv[2]:
            tokens = shlex.split(argv[2])
            workdir = tokens[1]
            self._write(str(PurePosixPath(workdir, tokens[-1])), _fake_export(tokens))
        elif argv[0] == "cp" and len(argv) == 3:
            src, dst = argv[1], argv[2]
            content = self._read(src)
            if content is None:
                return _completed(argv, 1, stderr=f"cp: cannot stat '{src}'")
            if dst.endswith("/"):
                dst = dst + PurePosixPath(src).name
            self._write(dst, content)
        return _completed(argv)


@pytest.fixture
def fake_hyperfine(monkeypatch):
    fake = FakeHyperfine()
    monkeypatch.setattr("cb_runner.engine.measurement.subprocess.run", fake)
    return fake


@pytest.fixture
def make_case():
    """Create commands/<category>/<name>/ with an optional run.sh."""

    def _make(root, category, name, *, run_script=True, files=None):
        case_dir = Path(root) / category / name
        case_dir.mkdir(parents=True, exist_ok=True)
        if run_script:
            (case_dir / "run.sh").write_text("#!/bin/sh\necho run \"$@\"\n")
        for rel, content in (files or {}).items():
            target = case_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        return case_dir

    return _make


@pytest.fixture
def bench_config(tmp_path):
    """Config rooted in tmp_path with report scripts absent."""
    return BenchConfig(
        commands_root=tmp_path / "commands",
        results_root=tmp_path / "results",
        archive_dir=tmp_path / "archives",
        workspace_dir=tmp_path / "host_mnt",
        report={
            "table_script": tmp_path / "scripts" / "tex.py",
            "plot_script": tmp_path / "scripts" / "plot.py",
        },
    )


@pytest.fixture
def fake_containers(bench_config):
    workspace = bench_config.workspace_dir
    return FakeContainerClient(
        {
            bench_config.containers.shared_mount: workspace,
            bench_config.containers.tracer_mount: workspace,
        }
    )


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """
    Custom hook to print statistics by marker at the end of the test session.
    """
    _ = (exitstatus, config)
    known_markers = {"unit_common", "unit_runner", "unit_ui", "inter_generic"}

    marker_stats = defaultdict(lambda: {"passed": 0, "failed": 0, "skipped": 0, "total": 0, "duration": 0.0})

    for outcome in ["passed", "failed", "skipped"]:
        reports = terminalreporter.stats.get(outcome, [])
        for report in reports:
            # Only count the actual test call, or setup skips
            if report.when == "call" or (report.when == "setup" and report.outcome == "skipped"):
                duration = getattr(report, "duration", 0.0)
                for marker in known_markers:
                    if marker in report.keywords:
                        stats = marker_stats[marker]
                        stats[outcome] += 1
                        stats["total"] += 1
                        stats["duration"] += duration

    if not marker_stats:
        return

    console = Console()
    table = Table(title="Test Statistics by Marker", show_header=True, header_style="bold magenta")
    table.add_column("Marker", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Duration (s)", justify="right", style="blue")

    for marker in sorted(marker_stats):
        stats = marker_stats[marker]
        if stats["total"] > 0:
            table.add_row(
                marker,
                str(stats["total"]),
                str(stats["passed"]),
                str(stats["failed"]),
                str(stats["skipped"]),
                f"{stats['duration']:.2f}",
            )

    console.print("\n")
    console.print(table)
