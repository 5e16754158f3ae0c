"""Source listing, status and deletion routes."""

import logging

from flask import Blueprint, jsonify

from sourcelens.client.routes.config import get_config
from sourcelens.service.async_helpers import run_async

logger = logging.getLogger(__name__)

sources_bp = Blueprint("sources", __name__)


@sources_bp.route("/api/sources", methods=["GET"])
def list_sources():
    """List uploaded sources, newest first."""
    services = get_config().services
    try:
        sources = run_async(services.document_store.list_sources())
    except Exception as e:
        logger.error(f"❌ Error listing sources: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    logger.info(f"📂 Listed {len(sources)} sources")
    return jsonify({"sources": sources})


@sources_bp.route("/api/sources/<path:source_id>/status", methods=["GET"])
def source_status(source_id: str):
    """Report vector record and blob presence for one source."""
    services = get_config().services
    try:
        status = run_async(services.document_store.source_status(source_id))
    except Exception as e:
        logger.error(f"❌ Error checking source {source_id}: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    if status is None:
        return jsonify({"error": f"Source not found: {source_id}"}), 404
    return jsonify(status)


@sources_bp.route("/api/sources/<path:source_id>", methods=["DELETE"])
def delete_source(source_id: str):
    """Delete a source by source id, document id, file name or upload pathname."""
    services = get_config().services
    logger.info(f"🗑️ Deleting source {source_id}")
    try:
        deleted = run_async(services.document_store.delete_source(source_id))
    except Exception as e:
        logger.error(f"❌ Error deleting source {source_id}: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    if deleted == 0:
        return jsonify({"error": f"Source not found: {source_id}"}), 404
    return jsonify({"success": True, "deleted": deleted})
