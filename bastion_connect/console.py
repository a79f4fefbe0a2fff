"""Shared rich consoles for operator output."""

import shlex

from rich.console import Console
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)

_verbose = False


def set_verbose(enabled: bool):
    global _verbose
    _verbose = enabled


def detail(message: str):
    """Print a dim detail line, only when --verbose is on."""
    if _verbose:
        console.print(f"[dim]{message}[/dim]")


def step(message: str):
    console.print(f"[green]✓[/green] {message}")


def command(args: list[str]):
    console.print(f"[cyan]→ {escape(shlex.join(args))}[/cyan]")


def fail(message: str):
    err_console.print(f"[red]❌ {escape(message)}[/red]")
