"""
DocFlow - Main CLI Application

This module defines the main Typer application and registers the workflow
commands.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

# Create main app
app = typer.Typer(
    name="docflow",
    help="DocFlow - Document workflow orchestration",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Rich console for pretty output
console = Console()


def configure_logging(level: str = "WARNING") -> None:
    """Send log records through rich at the given level."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# Import and register workflow commands
from docflow.cli.workflows import classify_instruction, plan_instruction, run_instruction

app.command("classify")(classify_instruction)
app.command("plan")(plan_instruction)
app.command("run")(run_instruction)


@app.command()
def version():
    """Show DocFlow version."""
    from docflow import __version__

    console.print(f"[bold cyan]DocFlow[/bold cyan] v{__version__}")


@app.callback()
def callback():
    """
    DocFlow - Document workflow orchestration

    Turns instructions about a document into plans of agent steps and runs
    them in dependency order.
    """
    pass


if __name__ == "__main__":
    app()
