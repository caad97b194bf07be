"""Rich renderings of runner objects."""

from __future__ import annotations

from typing import Iterable, List

from rich.table import Table

from cb_runner.api import (
    BenchmarkCase,
    DoctorReport,
    ExecutionStrategy,
    SessionSummary,
)


def cases_table(cases: Iterable[BenchmarkCase], sweep_categories: List[str]) -> Table:
    table = Table(title="Benchmark Cases", header_style="bold magenta")
    table.add_column("Category", style="cyan")
    table.add_column("Case")
    table.add_column("Sweep", justify="center")
    table.add_column("Path", style="dim")
    for case in cases:
        swept = "yes" if case.category in sweep_categories else "-"
        table.add_row(case.category, case.name, swept, str(case.path))
    return table


def strategies_table(strategies: Iterable[ExecutionStrategy]) -> Table:
    table = Table(title="Execution Strategies", header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Label")
    table.add_column("Environment", style="dim")
    table.add_column("Export prefix")
    for strategy in strategies:
        table.add_row(strategy.name, strategy.label, strategy.environment, strategy.export_prefix)
    return table


def doctor_tables(report: DoctorReport) -> List[Table]:
    tables = []
    for group in report.groups:
        table = Table(title=group.title, header_style="bold magenta")
        table.add_column("Item")
        table.add_column("Status", justify="center")
        table.add_column("Required", justify="center")
        for item in group.items:
            status = "[green]✓[/green]" if item.ok else "[red]✗[/red]"
            table.add_row(item.label, status, "yes" if item.required else "no")
        tables.append(table)
    return tables


def summary_table(summary: SessionSummary) -> Table:
    table = Table(title=f"Session {summary.session_id}", header_style="bold magenta")
    table.add_column("Case", style="cyan")
    table.add_column("Strategy")
    table.add_column("Status", justify="center")
    table.add_column("Export / error", style="dim")
    for outcome in summary.outcomes:
        if outcome.ok:
            status, detail = "[green]ok[/green]", outcome.export_name
        else:
            status = "[red]failed[/red]"
            detail = (outcome.error or {}).get("error", "")
        table.add_row(f"{outcome.category}/{outcome.case}", outcome.strategy, status, detail)
    for key, payload in summary.skipped_cases.items():
        table.add_row(key, "-", "[yellow]skipped[/yellow]", payload.get("error", ""))
    for key in summary.unrun_cases:
        table.add_row(key, "-", "[red]not run[/red]", "workspace baseline lost")
    return table
