"""Operator commands for API keys and rate limits.

Usage:
    leadsradar keys issue --user-id <uuid> --name "Zapier" [--expires-in-days 90]
    leadsradar keys revoke --user-id <uuid> <key_id>
    leadsradar keys verify <raw_key>
    leadsradar limits --user-id <uuid>

The commands call the same async core functions as the HTTP API through
``asyncio.run`` so every invariant (hash-only storage, owner-only revocation)
holds for operators too.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from leadsradar import background
from leadsradar.db.models import ResourceType
from leadsradar.db.session import engine
from leadsradar.errors import LeadsRadarError
from leadsradar.security import rate_limit
from leadsradar.security.api_key import issue_api_key, revoke_api_key, verify_api_key

# Module-level console used by all commands
console = Console()

keys_app = typer.Typer(help="Issue, revoke, and verify API keys.", no_args_is_help=True)


def _run(coro):
    """Run a core coroutine, letting background writes finish before exit."""

    async def _main():
        try:
            return await coro
        finally:
            await background.drain()
            # Pooled connections are bound to this event loop
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except LeadsRadarError as exc:
        console.print(f"[red]{exc.public_message}[/red]")
        raise typer.Exit(code=1)


@keys_app.command("issue")
def issue(
    user_id: str = typer.Option(..., "--user-id", envvar="LEADSRADAR_USER_ID", help="Owner of the key."),
    name: str = typer.Option(..., "--name", help="Label for the key (1-50 characters)."),
    expires_in_days: Optional[int] = typer.Option(None, "--expires-in-days", help="Optional lifetime."),
) -> None:
    """Issue a key.  The full key is printed once and cannot be recovered."""
    issued = _run(issue_api_key(user_id, name, expires_in_days))
    console.print(Panel(
        f"[bold]{issued.full_key}[/bold]\n\n"
        f"[dim]Prefix: {issued.prefix}[/dim]\n"
        f"[dim]Key id: {issued.key_id}[/dim]\n"
        "[yellow]Copy this key now. It will not be shown again.[/yellow]",
        title="API key issued",
        border_style="green",
    ))


@keys_app.command("revoke")
def revoke(
    key_id: str = typer.Argument(..., help="Id of the key to revoke."),
    user_id: str = typer.Option(..., "--user-id", envvar="LEADSRADAR_USER_ID", help="Owner of the key."),
) -> None:
    """Revoke a key.  Revocation is permanent."""
    _run(revoke_api_key(user_id, key_id))
    console.print(f"[green]Key {key_id} revoked.[/green]")


@keys_app.command("verify")
def verify(raw_key: str = typer.Argument(..., help="Full key to check.")) -> None:
    """Check whether a key is currently valid."""
    result = _run(verify_api_key(raw_key))
    if not result.valid:
        console.print("[red]Invalid, revoked, or expired key.[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Valid[/green] · user {result.user_id} · key {result.key_id}")


def limits(
    user_id: str = typer.Option(..., "--user-id", envvar="LEADSRADAR_USER_ID", help="User to inspect."),
) -> None:
    """Show remaining rate-limit slots for every resource."""
    table = Table(title=f"Rate limits for {user_id}")
    table.add_column("Resource")
    table.add_column("Remaining (hour)", justify="right")
    table.add_column("Remaining (day)", justify="right")

    async def _collect():
        return [(resource, await rate_limit.get_usage(user_id, resource)) for resource in ResourceType]

    for resource, usage in _run(_collect()):
        table.add_row(resource.value, str(usage.remaining_hourly), str(usage.remaining_daily))

    console.print(table)
