"""
Slotwatch CLI Main Entry Point

The main Typer application that assembles all command groups.
"""

import asyncio
import contextlib
import logging
import signal
from typing import Annotated

import structlog
import typer
from rich.panel import Panel
from rich.text import Text

from slotwatch import __version__
from slotwatch.cli import console, load_settings
from slotwatch.heartbeat import CivilTime, PollScheduler, build_cycle

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# Create the main app
app = typer.Typer(
    name="slotwatch",
    help="Slotwatch - drop-in session availability tracker",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(
            Panel(
                Text.from_markup(
                    f"[bold cyan]Slotwatch[/bold cyan] v{__version__}\n"
                    "[dim]Drop-in session availability tracker[/dim]"
                ),
                title="Version",
                border_style="cyan",
            )
        )
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """
    Slotwatch - watches drop-in sessions and alerts when they are worth
    signing up for, polling more often as sessions approach.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


# Import and register sub-commands
from slotwatch.cli.monitor import app as sessions_app

app.add_typer(sessions_app, name="sessions", help="Inspect tracked sessions and record responses")


@app.command()
def run() -> None:
    """
    Run the tracker in the foreground.

    Polls once immediately, then sleeps until the next planned poll.
    Use Ctrl+C (or SIGTERM) to stop; a poll in progress is allowed to finish.

    Example: slotwatch run
    """
    settings = load_settings()

    async def _daemon() -> None:
        scheduler = PollScheduler(build_cycle(settings))
        stop_requested = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not available on every platform's event loop
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop_requested.set)

        console.print(Panel(
            f"[green]Slotwatch started[/green]\n\n"
            f"[cyan]State file:[/cyan] {settings.state_path}\n"
            f"[cyan]Timezone:[/cyan] {settings.timezone}\n"
            f"[cyan]Active hours:[/cyan] {settings.active_hour_start}:00-{settings.active_hour_end}:59\n"
            f"[dim]Press Ctrl+C to stop[/dim]",
            title="Slotwatch",
            border_style="green",
        ))

        await scheduler.start()
        try:
            await stop_requested.wait()
            logger.info("Stop requested", next_wake=scheduler.next_wake)
        finally:
            await scheduler.stop()
            console.print("[yellow]Slotwatch stopped[/yellow]")

    try:
        asyncio.run(_daemon())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")


@app.command()
def poll() -> None:
    """
    Run a single poll cycle and show when the next one would run.

    Example: slotwatch poll
    """
    settings = load_settings()
    civil = CivilTime(settings.timezone)

    async def _poll():
        cycle = build_cycle(settings)
        try:
            return await cycle.run()
        finally:
            await cycle.close()

    outcome = asyncio.run(_poll())

    decision = outcome.decision
    console.print(Panel(
        f"[cyan]Sessions tracked:[/cyan] {len(outcome.states)}\n"
        f"[cyan]Alerts sent:[/cyan] {len(outcome.alerts)}\n"
        f"[cyan]Next poll:[/cyan] {civil.describe(decision.wake_at)} "
        f"[dim]({decision.reason.value})[/dim]",
        title="Poll Complete" if outcome.success else "Poll Failed",
        border_style="green" if outcome.success else "red",
    ))

    for resource_id, sinks in outcome.failed_sinks.items():
        console.print(f"[yellow]Delivery failed for {resource_id}:[/yellow] {', '.join(sinks)}")

    if outcome.error:
        console.print(f"[red]Error:[/red] {outcome.error}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
