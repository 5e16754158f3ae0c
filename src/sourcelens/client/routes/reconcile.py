"""Operator-triggered consistency check and repair routes."""

import logging
from dataclasses import asdict

from flask import Blueprint, jsonify

from sourcelens.client.routes.config import get_config
from sourcelens.service.async_helpers import run_async

logger = logging.getLogger(__name__)

reconcile_bp = Blueprint("reconcile", __name__)


@reconcile_bp.route("/api/check-consistency", methods=["GET"])
def check_consistency():
    """List orphaned vector records and blobs without deleting anything."""
    services = get_config().services
    try:
        inconsistencies = run_async(services.reconciler.check())
    except Exception as e:
        logger.error(f"❌ Consistency check failed: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    return jsonify(
        {
            "consistent": not inconsistencies,
            "count": len(inconsistencies),
            "inconsistencies": [item.describe() for item in inconsistencies],
            "details": [asdict(item) for item in inconsistencies],
        }
    )


@reconcile_bp.route("/api/reconcile", methods=["POST"])
def reconcile():
    """Prune orphans on both sides and report the counts."""
    services = get_config().services
    logger.info("🧹 Reconciliation requested")
    try:
        report = run_async(services.reconciler.reconcile())
    except Exception as e:
        logger.error(f"❌ Reconciliation failed: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500
    return jsonify({"success": True, **report.to_dict()})
