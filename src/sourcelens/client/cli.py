"""Command-line interface for SourceLens using Click."""

import logging
import os
from pathlib import Path

import click
from dotenv import load_dotenv

from sourcelens.client.cli_helpers import format_search_result, format_source, run_with_services
from sourcelens.client.ingest import ingest_upload, load_directory, validate_upload_batch
from sourcelens.constants import DEFAULT_TOP_K, MAX_UPLOAD_FILES
from sourcelens.exceptions import SourceLensError, ValidationError
from sourcelens.service.models import DocumentType
from sourcelens.service.services import Services

# Load environment variables
load_dotenv()
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING")),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@click.command()
@click.argument(
    "directory",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.option(
    "--create-database",
    "create_database_flag",
    is_flag=True,
    default=False,
    help="Create the RavenDB database if it doesn't exist",
)
def ingest(directory: Path, create_database_flag: bool) -> None:
    """Ingest PDF, text and transcript files from DIRECTORY.

    Example:
        sourcelens-ingest interviews/
        sourcelens-ingest interviews/ --create-database
    """
    uploads = load_directory(directory)
    if not uploads:
        click.echo(f"No supported files found in '{directory}'")
        return

    click.echo(f"Found {len(uploads)} file(s)\n")
    batches = [uploads[i : i + MAX_UPLOAD_FILES] for i in range(0, len(uploads), MAX_UPLOAD_FILES)]
    try:
        for batch in batches:
            validate_upload_batch(batch)
    except ValidationError as e:
        click.echo(f"✗ {e}", err=True)
        raise click.Abort()

    async def _ingest(services: Services) -> int:
        stored = 0
        for upload in uploads:
            try:
                documents = await ingest_upload(services.document_store, upload)
            except SourceLensError as e:
                click.echo(f"  ✗ Error processing {upload.file_name}: {e}", err=True)
                continue
            if documents:
                stored += 1
                click.echo(f"  ✓ Stored {len(documents)} chunks from {upload.file_name}")
            else:
                click.echo(f"  - Skipped {upload.file_name}: no usable text")
        return stored

    stored = run_with_services(_ingest, create_if_missing=create_database_flag)
    click.echo(f"\n✓ Ingestion complete! Stored {stored} of {len(uploads)} file(s).")


@click.command()
@click.argument("query", type=str)
@click.option("--top-k", type=int, default=DEFAULT_TOP_K, help="Number of results to return (default: 5)")
def search(query: str, top_k: int) -> None:
    """Search uploaded sources for chunks similar to QUERY.

    Example:
        sourcelens-search "funding decisions"
        sourcelens-search "early life" --top-k 3
    """
    click.echo(f"🔍 Searching for: '{query}'")
    click.echo(f"   Returning top {top_k} results...\n")

    async def _search(services: Services):
        return await services.document_store.search_similar(
            query, {"type": DocumentType.SOURCE.value}, top_k
        )

    results = run_with_services(_search)
    if not results:
        click.echo("No results found.")
        return

    click.echo(f"✅ Found {len(results)} result(s):\n")
    for i, document in enumerate(results, 1):
        click.echo(format_search_result(i, document))


@click.command()
@click.option("--delete", "delete_id", type=str, default=None, help="Delete the source with this id")
def sources(delete_id: str | None) -> None:
    """List uploaded sources, or delete one with --delete.

    Example:
        sourcelens-sources
        sourcelens-sources --delete interview.txt-1700000000000-0a1b2c3d4e
    """
    if delete_id:

        async def _delete(services: Services) -> int:
            return await services.document_store.delete_source(delete_id)

        deleted = run_with_services(_delete)
        if deleted == 0:
            click.echo(f"✗ Source not found: {delete_id}", err=True)
            raise click.Abort()
        click.echo(f"🗑️  Deleted {deleted} chunk(s) of {delete_id}")
        return

    async def _list(services: Services) -> list[dict]:
        return await services.document_store.list_sources()

    entries = run_with_services(_list)
    if not entries:
        click.echo("No sources uploaded yet.")
        return
    click.echo(f"📂 {len(entries)} source(s):\n")
    for entry in entries:
        click.echo(format_source(entry))


@click.command()
@click.option("--dry-run", is_flag=True, default=False, help="Only report inconsistencies")
def reconcile(dry_run: bool) -> None:
    """Remove vector records without originals and originals without records.

    Example:
        sourcelens-reconcile --dry-run
        sourcelens-reconcile
    """

    async def _reconcile(services: Services):
        if dry_run:
            return await services.reconciler.check()
        return await services.reconciler.reconcile()

    result = run_with_services(_reconcile)
    if dry_run:
        if not result:
            click.echo("✓ Stores are consistent")
            return
        click.echo(f"⚠️  {len(result)} inconsistency(ies):")
        for item in result:
            click.echo(f"  • {item.describe()}")
        return

    click.echo(f"🧹 Pruned {result.pruned_from_vector_store} vector record(s)")
    click.echo(f"🧹 Pruned {result.pruned_from_blob_store} blob(s)")
    for failure in result.failures:
        click.echo(f"  ✗ {failure}", err=True)


@click.command()
@click.argument("query", type=str)
@click.option("--top-k", type=int, default=None, help="Candidate chunks to retrieve")
def ask(query: str, top_k: int | None) -> None:
    """Answer QUERY from uploaded sources, streaming the analysis.

    Example:
        sourcelens-ask "Give me an overview of everything said about the move"
    """

    async def _ask(services: Services) -> None:
        project_context = await services.document_store.get_project_details()
        async for fragment in services.pipeline().run(query, project_context, top_k):
            click.echo(fragment, nl=False)
        click.echo()

    run_with_services(_ask)


if __name__ == "__main__":
    ingest()
