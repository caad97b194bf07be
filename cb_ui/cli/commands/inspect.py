from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from cb_common.errors import DiscoveryError
from cb_runner.api import CaseRepository, build_strategies
from cb_ui.presenters.tables import cases_table, strategies_table
from cb_ui.wiring.dependencies import UIContext


def register_inspect_commands(app: typer.Typer, ctx: UIContext) -> None:
    @app.command("cases")
    def list_cases(
        config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file (JSON)."),
    ) -> None:
        """List the benchmark cases that a run would stage."""
        cfg = ctx.load_config(config)
        repository = CaseRepository(cfg.commands_root, run_command=cfg.staging.run_command)
        try:
            cases = repository.list_cases()
        except DiscoveryError as exc:
            ctx.console.print(f"[red]{exc} ({exc.context.get('root')})[/red]")
            raise typer.Exit(1)
        ctx.console.print(cases_table(cases, cfg.sweep.categories))

    @app.command("strategies")
    def list_strategies(
        config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file (JSON)."),
        all_: bool = typer.Option(False, "--all", help="Include strategies disabled in the config."),
    ) -> None:
        """List execution strategies in matrix order."""
        cfg = ctx.load_config(config)
        strategies = build_strategies(cfg)
        if not all_:
            enabled = set(cfg.strategies)
            strategies = [s for s in strategies if s.name in enabled]
        ctx.console.print(strategies_table(strategies))
