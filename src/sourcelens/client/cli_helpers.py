"""Helper functions for CLI commands."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import click

from sourcelens.constants import CONTENT_PREVIEW_LENGTH
from sourcelens.exceptions import ConfigurationError, SourceLensError
from sourcelens.service.models import Document
from sourcelens.service.services import Services, create_services


def run_with_services(
    action: Callable[[Services], Awaitable[Any]],
    create_if_missing: bool = False,
) -> Any:
    """Build the services, run ``action`` with them and map errors to CLI aborts.

    Raises:
        click.Abort: If configuration is missing or a service call fails
    """

    async def _main() -> Any:
        services = await create_services(create_if_missing=create_if_missing)
        return await action(services)

    try:
        return asyncio.run(_main())
    except ConfigurationError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        if "does not exist" in str(e):
            click.echo("\nPlease create the database first using:", err=True)
            click.echo("  sourcelens-ingest <directory> --create-database", err=True)
        raise click.Abort()
    except SourceLensError as e:
        click.echo(f"✗ Error: {e}", err=True)
        raise click.Abort()


def format_search_result(index: int, document: Document, max_length: int = CONTENT_PREVIEW_LENGTH) -> str:
    """Format a search hit for display.

    Args:
        index: Result number (1-based)
        document: Scored document returned by search_similar
        max_length: Maximum content length before truncation

    Returns:
        Formatted string for display
    """
    score = document.metadata.score or 0.0
    chunk_idx = getattr(document.metadata, "chunk_index", 0)
    content = document.content
    display_content = content[:max_length] + "..." if len(content) > max_length else content

    lines = [
        f"{index}. [{document.metadata.file_name} - chunk #{chunk_idx}] (score: {score:.4f})",
        f"   {display_content}",
        "",
    ]
    return "\n".join(lines)


def format_source(entry: dict) -> str:
    """Format one source listing entry on a single line."""
    return (
        f"{entry['uploadedAt']}  {entry['name']}  "
        f"({entry['type']}, {entry['chunks']} chunk(s))  id={entry['id']}"
    )
