from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from cb_common.errors import ConfigurationError
from cb_runner.api import BenchConfig, RunCoordinator, RunEvent, RunState
from cb_ui.presenters.tables import summary_table
from cb_ui.wiring.dependencies import UIContext

_STATUS_STYLE = {
    "running": "cyan",
    "done": "green",
    "failed": "red",
    "skipped": "yellow",
}


def _render_event(ctx: UIContext, event: RunEvent) -> None:
    if event.state == "measuring" and event.status == "running":
        ctx.console.print(f"  [cyan]→[/cyan] {event.strategy}")
        return
    if event.state == "measuring":
        style = _STATUS_STYLE.get(event.status, "white")
        ctx.console.print(f"    [{style}]{event.status}[/{style}]")
        return
    if event.state == "staging" and event.status == "running":
        ctx.console.rule(f"Benchmarking {event.category}/{event.case}")
        return
    if event.status in ("failed", "skipped"):
        style = _STATUS_STYLE[event.status]
        ctx.console.print(f"[{style}]{event.state}: {event.message}[/{style}]")
        return
    if event.state in ("collecting", "cleaning_up", "reporting", "archiving"):
        ctx.console.print(f"[dim]{event.state.replace('_', ' ')}...[/dim]")


def apply_overrides(
    cfg: BenchConfig,
    *,
    start: Optional[int] = None,
    end: Optional[int] = None,
    step: Optional[int] = None,
    warmup: Optional[int] = None,
    strategies: Optional[List[str]] = None,
    report: bool = True,
) -> BenchConfig:
    """Return a re-validated copy of ``cfg`` with CLI flags applied."""
    data = cfg.model_dump()
    for key, value in (("start", start), ("end", end), ("step", step)):
        if value is not None:
            data["sweep"][key] = value
    if warmup is not None:
        data["warmup"] = warmup
    if strategies:
        data["strategies"] = list(strategies)
    if not report:
        data["report"]["enabled"] = False
    return BenchConfig.model_validate(data)


def register_run_command(app: typer.Typer, ctx: UIContext) -> None:
    @app.command("run")
    def run(
        config: Optional[Path] = typer.Option(
            None, "--config", "-c", help="Config file (JSON)."
        ),
        start: Optional[int] = typer.Option(None, "--start", "-s", help="Sweep start value."),
        end: Optional[int] = typer.Option(None, "--end", "-e", help="Sweep end value."),
        step: Optional[int] = typer.Option(None, "--step", "-r", help="Sweep increment."),
        warmup: Optional[int] = typer.Option(None, "--warmup", help="hyperfine warmup runs."),
        strategy: Optional[List[str]] = typer.Option(
            None, "--strategy", help="Restrict to these strategies (repeatable)."
        ),
        category: Optional[List[str]] = typer.Option(
            None, "--category", help="Restrict to these categories (repeatable)."
        ),
        no_report: bool = typer.Option(False, "--no-report", help="Skip report scripts."),
    ) -> None:
        """Run the full case x strategy matrix and archive the results."""
        try:
            cfg = apply_overrides(
                ctx.load_config(config),
                start=start,
                end=end,
                step=step,
                warmup=warmup,
                strategies=strategy,
                report=not no_report,
            )
            coordinator = RunCoordinator(
                cfg,
                categories=category or None,
                on_event=lambda event: _render_event(ctx, event),
            )
        except (ConfigurationError, ValueError, OSError) as exc:
            ctx.console.print(f"[red]Invalid configuration: {exc}[/red]")
            raise typer.Exit(2)

        summary = coordinator.run()
        ctx.console.print(summary_table(summary))
        if summary.cleanup_error:
            ctx.console.print(
                f"[red]Workspace cleanup failed after {summary.cleanup_error['case']}: "
                f"{summary.cleanup_error['error']}[/red]"
            )
        if summary.state is RunState.ABORTED:
            ctx.console.print(f"[red]Session aborted: {(summary.error or {}).get('error', '')}[/red]")
            raise typer.Exit(1)
        if summary.archive_path is not None:
            ctx.console.print(f"[green]Results archived to {summary.archive_path}[/green]")
        elif summary.error:
            ctx.console.print(f"[yellow]{summary.error.get('error', '')}[/yellow]")
        if summary.cleanup_error:
            raise typer.Exit(1)
