"""CLI application for SQL Server maintenance."""

import typer

from sqlmaint.cli.commands.maintenance import run

app = typer.Typer(
    help="sqlmaint - SQL Server index, statistics and backup maintenance",
    no_args_is_help=True,
)


@app.callback()
def _main():
    """Keep `run` as an explicit subcommand."""


app.command("run", help="Decide and run maintenance for the selected databases.")(run)


if __name__ == "__main__":
    app()
