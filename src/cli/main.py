"""CLI entry point for the deal scanner."""

import logging

import click
from dotenv import load_dotenv

from src.agent.service import build_service
from src.config import ConfigError
from src.storage.db import StorageError

logger = logging.getLogger(__name__)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log at INFO instead of WARNING.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Scan Gmail for brand deals and manage the detected deals."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    try:
        ctx.obj = build_service()
    except (ConfigError, StorageError) as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.call_on_close(ctx.obj.close)


# Import and register commands after cli is defined to avoid circular imports.
from src.cli.commands import (  # noqa: E402
    clear_cache,
    deals,
    delete,
    scan,
    serve,
    set_status,
    store_token,
)

cli.add_command(scan)
cli.add_command(deals)
cli.add_command(set_status)
cli.add_command(delete)
cli.add_command(store_token)
cli.add_command(clear_cache)
cli.add_command(serve)
