"""FastMCP server exposing source search, listing and reconciliation."""

import asyncio
import logging
import os
from typing import Any

from dotenv import load_dotenv
from fastmcp import FastMCP

from sourcelens.constants import (
    DEFAULT_MCP_HOST,
    DEFAULT_MCP_PORT,
    DEFAULT_TOP_K,
)
from sourcelens.service.models import DocumentType
from sourcelens.service.services import Services, create_services

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Create FastMCP instance
mcp = FastMCP("SourceLens Sources")

_services: Services | None = None
_services_lock = asyncio.Lock()


async def get_services() -> Services:
    """Create the service graph on first use and reuse it afterwards."""
    global _services
    async with _services_lock:
        if _services is None:
            create_if_missing = os.getenv("RAVENDB_CREATE_DATABASE", "false").lower() == "true"
            _services = await create_services(create_if_missing=create_if_missing)
    return _services


def set_services(services: Services | None) -> None:
    """Install a pre-built service graph (used by tests)."""
    global _services
    _services = services


async def search_sources_impl(query: str, top_k: int = DEFAULT_TOP_K) -> list[dict[str, Any]]:
    """Search source chunks and return them as plain dicts."""
    logger.debug(f"MCP Tool: search_sources query='{query[:100]}', top_k={top_k}")
    try:
        services = await get_services()
        documents = await services.document_store.search_similar(
            query, {"type": DocumentType.SOURCE.value}, top_k
        )
    except Exception as e:
        error_msg = f"Unexpected error: {type(e).__name__}: {e}"
        logger.error(f"❌ MCP Tool: {error_msg}", exc_info=True)
        raise ValueError(error_msg) from e

    results = [
        {
            "id": doc.id,
            "fileName": doc.metadata.file_name,
            "chunkIndex": getattr(doc.metadata, "chunk_index", 0),
            "score": doc.metadata.score,
            "content": doc.content,
        }
        for doc in documents
    ]
    logger.info(f"✅ MCP Tool: Returning {len(results)} results")
    return results


async def list_sources_impl() -> list[dict[str, Any]]:
    """List uploaded sources, newest first."""
    logger.info("📂 MCP Tool list_sources")
    try:
        services = await get_services()
        return await services.document_store.list_sources()
    except Exception as e:
        error_msg = f"Error listing sources: {type(e).__name__}: {e}"
        logger.error(f"❌ MCP Tool: {error_msg}", exc_info=True)
        raise ValueError(error_msg) from e


async def reconcile_stores_impl(dry_run: bool = True) -> dict[str, Any]:
    """Report inconsistencies, or prune them when dry_run is False."""
    logger.info(f"🧹 MCP Tool reconcile_stores dry_run={dry_run}")
    try:
        services = await get_services()
        if dry_run:
            inconsistencies = await services.reconciler.check()
            return {
                "inconsistencies": [item.describe() for item in inconsistencies],
                "count": len(inconsistencies),
            }
        report = await services.reconciler.reconcile()
        return report.to_dict()
    except Exception as e:
        error_msg = f"Reconciliation error: {type(e).__name__}: {e}"
        logger.error(f"❌ MCP Tool: {error_msg}", exc_info=True)
        raise ValueError(error_msg) from e


@mcp.tool()
async def search_sources(query: str, top_k: int = DEFAULT_TOP_K) -> list[dict[str, Any]]:
    """
    Searches uploaded source documents for chunks semantically similar to the
    query. Returns the top_k most relevant chunks with file name, score and
    content. Use this tool to find material for answering a question.

    Args:
        query: The search query text
        top_k: Number of top results to return (default: 5)
    """
    return await search_sources_impl(query, top_k)


@mcp.tool()
async def list_sources() -> list[dict[str, Any]]:
    """
    Lists uploaded sources, newest first, with id, name, type, URL, upload
    time and chunk count.
    """
    return await list_sources_impl()


@mcp.tool()
async def reconcile_stores(dry_run: bool = True) -> dict[str, Any]:
    """
    Compares vector records with uploaded files. With dry_run (the default)
    only the inconsistencies are reported; otherwise orphans on both sides
    are deleted and the pruned counts are returned.

    Args:
        dry_run: Report without deleting (default: True)
    """
    return await reconcile_stores_impl(dry_run)


def main() -> None:
    """Entry point for the MCP server command-line interface."""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    host = os.getenv("MCP_HOST", DEFAULT_MCP_HOST)
    port = int(os.getenv("MCP_PORT", str(DEFAULT_MCP_PORT)))
    logger.info(f"🚀 Starting SourceLens MCP Server on {host}:{port}...")
    mcp.run(transport="sse", host=host, port=port)


if __name__ == "__main__":
    main()
