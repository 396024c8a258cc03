"""CLI command implementations: all commands delegate to DealService."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import click
from rich import box
from rich.console import Console
from rich.table import Table

from src.agent.service import InvalidStatusError
from src.gmail.client import GmailAuthError, GmailError
from src.processing.types import DealStatus, DealType
from src.storage.db import DealNotFoundError

if TYPE_CHECKING:
    from src.agent.service import DealService

logger = logging.getLogger(__name__)
console = Console(width=200)

_user_option = click.option(
    "--user",
    "user_id",
    envvar="DEAL_SCANNER_USER",
    required=True,
    help="User id the command acts for (env: DEAL_SCANNER_USER).",
)


def _confidence_style(confidence: float) -> str:
    if confidence >= 0.9:
        return "green"
    if confidence >= 0.6:
        return "yellow"
    return "red"


@click.command()
@_user_option
@click.pass_obj
def scan(service: DealService, user_id: str) -> None:
    """Scan the inbox for deal opportunities."""
    console.print(f"Scanning Gmail for [bold]{user_id}[/bold] ({service.classifier.name} classifier)...")
    try:
        summary = asyncio.run(service.scan(user_id))
    except GmailAuthError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1)
    except GmailError as exc:
        console.print(f"[red]Gmail error: {exc}[/red]")
        raise SystemExit(1)

    console.print(
        f"Listed {summary.total_messages} message(s): "
        f"[dim]{summary.skipped_cached} already scanned,[/dim] "
        f"{summary.fetched} fetched, "
        f"[bold green]{summary.deals_created} new deal(s)[/bold green]"
        + (f", {summary.duplicates} duplicate(s)" if summary.duplicates else "")
        + "."
    )
    if summary.errors:
        console.print(f"[red]{len(summary.errors)} error(s):[/red]")
        for err in summary.errors:
            console.print(f"  • {err}")


@click.command()
@_user_option
@click.option(
    "--status",
    type=click.Choice([s.value for s in DealStatus]),
    default=None,
    help="Only show deals in this status.",
)
@click.option(
    "--type",
    "deal_type",
    type=click.Choice([t.value for t in DealType]),
    default=None,
    help="Only show deals of this type.",
)
@click.option("--limit", default=50, show_default=True, help="Maximum deals to show.")
@click.pass_obj
def deals(
    service: DealService,
    user_id: str,
    status: str | None,
    deal_type: str | None,
    limit: int,
) -> None:
    """List detected deals, newest first."""
    rows = service.list_deals(user_id, status=status, deal_type=deal_type, limit=limit)
    if not rows:
        console.print("[yellow]No deals found. Run `deal-scanner scan` to get started.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", width=12)
    table.add_column("Subject", max_width=38)
    table.add_column("Brand", max_width=20)
    table.add_column("Type", width=12)
    table.add_column("Pay", width=10)
    table.add_column("Deliverables", max_width=24)
    table.add_column("Conf.", width=6)
    table.add_column("Status", width=12)

    for deal in rows:
        style = _confidence_style(deal.confidence)
        table.add_row(
            deal.id[:12],
            deal.subject,
            deal.brand or "",
            deal.type,
            deal.compensation or "",
            ", ".join(deal.deliverables),
            f"[{style}]{round(deal.confidence * 100)}%[/{style}]",
            deal.status,
        )
    console.print(table)


@click.command("set-status")
@_user_option
@click.argument("deal_id")
@click.argument("status")
@click.pass_obj
def set_status(service: DealService, user_id: str, deal_id: str, status: str) -> None:
    """Move a deal to STATUS (e.g. "In Progress")."""
    try:
        deal = service.update_status(user_id, deal_id, status)
    except InvalidStatusError as exc:
        raise click.BadParameter(str(exc), param_hint="STATUS")
    except DealNotFoundError:
        console.print(f"[red]Deal {deal_id} not found.[/red]")
        raise SystemExit(1)
    console.print(f"[green]Deal {deal.id} is now {deal.status}.[/green]")


@click.command()
@_user_option
@click.argument("deal_id")
@click.pass_obj
def delete(service: DealService, user_id: str, deal_id: str) -> None:
    """Delete a deal."""
    try:
        service.delete_deal(user_id, deal_id)
    except DealNotFoundError:
        console.print(f"[red]Deal {deal_id} not found.[/red]")
        raise SystemExit(1)
    console.print(f"[green]Deleted deal {deal_id}.[/green]")


@click.command("store-token")
@_user_option
@click.option("--access-token", required=True, help="Gmail OAuth access token.")
@click.option("--refresh-token", default=None, help="Gmail OAuth refresh token.")
@click.pass_obj
def store_token(
    service: DealService, user_id: str, access_token: str, refresh_token: str | None
) -> None:
    """Store the Gmail token pair used by `scan`."""
    service.store_tokens(user_id, access_token, refresh_token)
    console.print(f"[green]Stored Gmail tokens for {user_id}.[/green]")


@click.command("clear-cache")
@_user_option
@click.pass_obj
def clear_cache(service: DealService, user_id: str) -> None:
    """Forget scanned messages so the next scan reprocesses them."""
    count = service.clear_scan_cache(user_id)
    console.print(f"Cleared {count} scan marker(s).")


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def serve(service: DealService, host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from src.api.app import create_app

    uvicorn.run(create_app(service), host=host, port=port)
