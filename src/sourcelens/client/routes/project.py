"""Project details and conversation storage routes."""

import logging

from flask import Blueprint, jsonify, request

from sourcelens.client.routes.config import get_config
from sourcelens.exceptions import ValidationError
from sourcelens.service.async_helpers import run_async

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__)


@project_bp.route("/api/project-details", methods=["GET"])
def get_project_details():
    services = get_config().services
    try:
        details = run_async(services.document_store.get_project_details())
    except Exception as e:
        logger.error(f"❌ Error loading project details: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    return jsonify({"details": details})


@project_bp.route("/api/project-details", methods=["POST"])
def save_project_details():
    """Replace the project description used as context for every chat query.

    Request:
        {"details": "A documentary about ..."}
    """
    services = get_config().services
    data = request.get_json(silent=True) or {}
    try:
        document = run_async(
            services.document_store.save_project_details(str(data.get("details") or ""))
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"❌ Error saving project details: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    logger.info("✅ Project details saved")
    return jsonify({"success": True, "id": document.id})


@project_bp.route("/api/conversations", methods=["POST"])
def store_conversation():
    """Store a chat transcript.

    Request:
        {"messages": [{"role": "user", "content": "..."}, ...]}
    """
    services = get_config().services
    data = request.get_json(silent=True) or {}
    try:
        document = run_async(services.document_store.store_conversation(data.get("messages")))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"❌ Error storing conversation: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    return jsonify({"success": True, "id": document.id})
