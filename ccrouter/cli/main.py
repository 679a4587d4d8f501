"""Main CLI entry point for ccrouter."""

import typer
from rich.console import Console

from ccrouter.cli.commands import start as start_command

app = typer.Typer(
    name="ccr",
    help="Claude Code Router CLI - route Claude requests to any LLM provider",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command(name="start")(start_command.start)


@app.command()
def version() -> None:
    """Show version information."""
    from ccrouter import __version__

    console = Console()
    console.print(f"[bold cyan]ccr[/bold cyan] version [green]{__version__}[/green]")


if __name__ == "__main__":
    app()
