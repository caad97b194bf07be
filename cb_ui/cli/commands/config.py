from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from cb_runner.api import BenchConfig
from cb_runner.models.config import DEFAULT_CONFIG_NAME
from cb_ui.wiring.dependencies import UIContext


def create_config_app(ctx: UIContext) -> typer.Typer:
    """Build the config Typer app."""
    app = typer.Typer(help="Manage session configuration.", no_args_is_help=True)

    @app.command("init")
    def config_init(
        path: Path = typer.Argument(Path(DEFAULT_CONFIG_NAME), help="Where to write the config."),
        force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file."),
    ) -> None:
        """Write the default configuration as JSON."""
        if path.exists() and not force:
            ctx.console.print(f"[yellow]{path} already exists (use --force).[/yellow]")
            raise typer.Exit(1)
        BenchConfig().save(path)
        ctx.console.print(f"[green]Config written to {path}[/green]")

    @app.command("show")
    def config_show(
        path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file (JSON)."),
    ) -> None:
        """Print the effective configuration."""
        ctx.console.print_json(ctx.load_config(path).model_dump_json())

    return app
