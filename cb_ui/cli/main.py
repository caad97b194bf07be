"""
Command-line interface for cairn-bench.

Runs the benchmark matrix (cases x execution strategies) and inspects its inputs.
"""

from __future__ import annotations

from typing import Optional

import typer

from cb_ui.cli.commands.config import create_config_app
from cb_ui.cli.commands.doctor import register_doctor_command
from cb_ui.cli.commands.inspect import register_inspect_commands
from cb_ui.cli.commands.run import register_run_command
from cb_ui.wiring.dependencies import UIContext, configure_logging

ctx_store = UIContext()

app = typer.Typer(
    help="Compare file-system interception overhead across execution strategies.",
    no_args_is_help=True,
)


@app.callback()
def entry(
    debug: bool = typer.Option(False, "--debug", help="Verbose logging."),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also log to this file."),
) -> None:
    """Global options."""
    ctx_store.debug = debug
    configure_logging(debug=debug, log_file=log_file, force=True)


app.add_typer(create_config_app(ctx_store), name="config")
register_run_command(app, ctx_store)
register_inspect_commands(app, ctx_store)
register_doctor_command(app, ctx_store)


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()
