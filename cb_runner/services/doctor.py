"""
Preflight checks for a benchmark session (doctor).
"""

import platform
import shutil
from dataclasses import dataclass
from typing import List, Tuple

from cb_runner.engine.strategies import DirectTraceStrategy, LocalStrategy, build_strategies
from cb_runner.models.config import BenchConfig


@dataclass
class DoctorCheckItem:
    label: str
    ok: bool
    required: bool


@dataclass
class DoctorCheckGroup:
    title: str
    items: List[DoctorCheckItem]
    failures: int


@dataclass
class DoctorReport:
    groups: List[DoctorCheckGroup]
    info_messages: List[str]
    total_failures: int


class DoctorService:
    """Check the tools and layout a session depends on."""

    def __init__(self, config: BenchConfig):
        self.config = config

    def _check_command(self, name: str) -> bool:
        return shutil.which(name) is not None

    def _build_check_group(
        self, title: str, items: List[Tuple[str, bool, bool]]
    ) -> DoctorCheckGroup:
        failures = 0
        check_items = []
        for label, ok, required in items:
            check_items.append(DoctorCheckItem(label, ok, required))
            failures += 0 if ok or not required else 1
        return DoctorCheckGroup(title, check_items, failures)

    def check(self) -> DoctorReport:
        names = set(self.config.strategies)
        enabled = [s for s in build_strategies(self.config) if s.name in names]
        needs_engine = any(not isinstance(s, LocalStrategy) for s in enabled)
        needs_tracer = any(isinstance(s, DirectTraceStrategy) for s in enabled)
        tools = self.config.tools
        tool_items = [
            (tools.hyperfine, self._check_command(tools.hyperfine), True),
            (
                self.config.containers.engine,
                self._check_command(self.config.containers.engine),
                needs_engine,
            ),
            (tools.fsatrace, self._check_command(tools.fsatrace), needs_tracer),
            ("git", self._check_command("git"), False),
        ]
        layout_items = [
            (f"Commands root {self.config.commands_root}", self.config.commands_root.is_dir(), True),
            (
                f"Report script {self.config.report.table_script}",
                self.config.report.table_script.is_file(),
                False,
            ),
        ]
        groups = [
            self._build_check_group("Tools", tool_items),
            self._build_check_group("Layout", layout_items),
        ]
        info = [
            f"Python: {platform.python_version()} ({platform.python_implementation()})",
            f"Strategies: {', '.join(self.config.strategies)}",
        ]
        return DoctorReport(
            groups=groups,
            info_messages=info,
            total_failures=sum(group.failures for group in groups),
        )
