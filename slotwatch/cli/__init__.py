"""
Slotwatch CLI

Typer commands for running the tracker and inspecting its state.
"""

from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.console import Console

from slotwatch.config import Settings

console = Console()


def load_settings() -> Settings:
    """Read settings from the environment, exiting on invalid values."""
    try:
        return Settings()
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "settings"
            console.print(f"  [yellow]{field}[/yellow]: {error['msg']}")
        raise typer.Exit(1)
