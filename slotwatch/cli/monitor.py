"""
Sessions CLI Commands

Commands for inspecting tracked sessions and recording responses.
"""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from slotwatch.cli import console, load_settings
from slotwatch.heartbeat import (
    AlertClass,
    CivilTime,
    PersistedState,
    StateStore,
    UserResponse,
    filling_fast,
    next_poll,
)
from slotwatch.heartbeat.civil_time import format_clock, format_day, utc_now
from slotwatch.heartbeat.store import drop_elapsed, find_state, prune

app = typer.Typer(
    name="sessions",
    help="Inspect tracked sessions and record responses",
    no_args_is_help=True,
)

_RESPONSE_LABELS = {
    UserResponse.NONE: "[dim]-[/dim]",
    UserResponse.ACCEPTED: "[green]registered[/green]",
    UserResponse.DECLINED: "[dim]not interested[/dim]",
    UserResponse.SNOOZED: "[yellow]snoozed[/yellow]",
}

_CLASS_STYLES = {
    AlertClass.SATURATED: "red",
    AlertClass.REOPENED: "green",
    AlertClass.URGENT: "yellow",
    AlertClass.VIABLE: "cyan",
}


def _status(state: PersistedState) -> str:
    snapshot = state.snapshot
    if snapshot.is_saturated:
        return "[red]FULL[/red]"
    spots = "spot" if snapshot.remaining == 1 else "spots"
    return f"[green]Open[/green] ({snapshot.remaining} {spots} left)"


def _last_alert(state: PersistedState) -> str:
    if state.last_alert_class is None:
        return "[dim]-[/dim]"
    style = _CLASS_STYLES.get(state.last_alert_class, "white")
    return f"[{style}]{state.last_alert_class.label}[/{style}]"


@app.command("list")
def list_sessions() -> None:
    """
    List tracked sessions, soonest first.

    Example:
        slotwatch sessions list
    """
    settings = load_settings()
    civil = CivilTime(settings.timezone)
    store = StateStore(settings.state_path)

    states = sorted(store.load(), key=lambda s: s.snapshot.anchor_instant)
    if not states:
        console.print("[dim]No sessions tracked yet.[/dim]")
        return

    table = Table(title="Tracked Sessions", border_style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Session", style="cyan")
    table.add_column("Players", justify="right")
    table.add_column("Goalies", justify="right")
    table.add_column("Status")
    table.add_column("Last Alert")
    table.add_column("Response")

    for state in states:
        snapshot = state.snapshot
        table.add_row(
            state.resource_id,
            f"{snapshot.weekday_name[:3]} {format_day(snapshot.session_date)}, "
            f"{format_clock(snapshot.start_time)}",
            f"{snapshot.primary_count}/{snapshot.primary_max}",
            f"{snapshot.secondary_count}/{snapshot.secondary_max}",
            _status(state),
            _last_alert(state),
            _RESPONSE_LABELS.get(state.user_response, state.user_response.value),
        )

    console.print(table)

    last_polled = store.last_modified()
    polled = civil.describe(last_polled) if last_polled else "never"
    console.print(f"\n[dim]Total: {len(states)} sessions. Last polled: {polled}[/dim]")


@app.command("respond")
def respond(
    resource_id: Annotated[
        str,
        typer.Argument(help="Session id, e.g. 2026-02-20:06:00"),
    ],
    response: Annotated[
        UserResponse,
        typer.Argument(help="accepted, declined, snoozed, or none to clear"),
    ],
) -> None:
    """
    Record how you answered an alert for a session.

    Safe to run while the daemon is polling: a running poll keeps responses
    recorded before it saves. Best run between polls.

    Examples:
        slotwatch sessions respond 2026-02-20:06:00 accepted
        slotwatch sessions respond 2026-02-20:06:00 snoozed
    """
    settings = load_settings()
    civil = CivilTime(settings.timezone)
    store = StateStore(settings.state_path)

    now = utc_now()
    if not store.record_user_response(resource_id, response, now, settings.snooze_hours):
        console.print(f"[red]No tracked session: {resource_id}[/red]")
        raise typer.Exit(1)

    if response == UserResponse.ACCEPTED:
        console.print("[green]Marked as registered.[/green] No more alerts for this session.")
    elif response == UserResponse.DECLINED:
        console.print("[dim]Marked as not interested.[/dim] No more alerts for this session.")
    elif response == UserResponse.SNOOZED:
        state = find_state(store.load(), resource_id)
        until = civil.describe(state.snooze_until) if state and state.snooze_until else "later"
        console.print(f"[yellow]Snoozed until {until}.[/yellow]")
    else:
        console.print("Response cleared. Alerts resume for this session.")


@app.command("next-poll")
def show_next_poll() -> None:
    """
    Show when the next poll would run, given the current state.

    Example:
        slotwatch sessions next-poll
    """
    settings = load_settings()
    civil = CivilTime(settings.timezone)
    store = StateStore(settings.state_path)

    now = utc_now()
    states = drop_elapsed(prune(store.load(), civil.today(now)), now)
    decision = next_poll(
        now,
        states,
        settings.poll_window,
        accelerated=filling_fast(states, settings.policy, now),
        civil=civil,
    )

    table = Table(title="Next Poll", show_header=False, border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Reason", decision.reason.value)
    table.add_row("Wake at", civil.describe(decision.wake_at))
    table.add_row("Delay", f"{decision.delay_seconds / 3600:.1f}h")
    table.add_row(
        "Next session",
        civil.describe(decision.next_anchor) if decision.next_anchor else "none tracked",
    )

    console.print(table)
