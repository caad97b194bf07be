from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from cb_ui.presenters.tables import doctor_tables
from cb_ui.wiring.dependencies import UIContext


def register_doctor_command(app: typer.Typer, ctx: UIContext) -> None:
    @app.command("doctor")
    def doctor(
        config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file (JSON)."),
    ) -> None:
        """Check tools and layout required by a session."""
        cfg = ctx.load_config(config)
        report = ctx.doctor_service(cfg).check()
        for table in doctor_tables(report):
            ctx.console.print(table)
        for msg in report.info_messages:
            ctx.console.print(f"[dim]{msg}[/dim]")
        if report.total_failures > 0:
            ctx.console.print(f"[red]Found {report.total_failures} failures.[/red]")
            raise typer.Exit(1)
        ctx.console.print("[green]All checks passed.[/green]")
