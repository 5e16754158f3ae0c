"""Health check route."""

from flask import Blueprint, jsonify

from sourcelens.client.routes.config import get_config

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint.

    Returns:
        JSON with service status
    """
    services = get_config().services
    return jsonify(
        {
            "status": "healthy",
            "services": "initialized" if services else "not initialized",
        }
    )
