"""Chat API route streaming the retrieval-synthesis pipeline as server-sent events."""

import logging

from flask import Blueprint, Response, jsonify, request

from sourcelens.client.routes.config import get_config
from sourcelens.service.async_helpers import iterate_async, run_async
from sourcelens.service.pipeline import sse_frames

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__)

# Request mode -> overview override for the pipeline (None detects from wording)
CHAT_MODES = {"auto": None, "overview": True, "focused": False}


def latest_user_message(messages: list) -> str | None:
    """Return the content of the last user message, if any."""
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user" and message.get("content"):
            return message["content"]
    return None


@chat_bp.route("/api/chat", methods=["POST"])
def chat():
    """Answer a query from uploaded sources as a server-sent event stream.

    Request:
        {
            "query": "What did the interviewees say about funding?",
            "messages": [{"role": "user", "content": "..."}],  # Optional
            "projectContext": "Documentary about ...",  # Optional
            "topK": 20,  # Optional
            "mode": "auto"  # Optional: "auto", "overview" or "focused"
        }

    Response:
        ``text/event-stream`` of ``data:`` frames. Stage changes arrive as
        ``[STAGE: ...]`` fragments and the stream ends with ``[DONE]`` or
        ``[ERROR: ...]``.
    """
    services = get_config().services
    logger.info("📨 Received chat request")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        logger.warning("❌ Missing JSON body in chat request")
        return jsonify({"error": "Request body must be a JSON object"}), 400

    messages = data.get("messages") or []
    if not isinstance(messages, list):
        return jsonify({"error": "'messages' must be a list"}), 400
    query = data.get("query") or latest_user_message(messages)
    if not query or not str(query).strip():
        logger.warning("❌ Missing 'query' field in request")
        return jsonify({"error": "Missing 'query' field or user message in request"}), 400

    top_k = data.get("topK")
    if top_k is not None and (not isinstance(top_k, int) or top_k <= 0):
        return jsonify({"error": "'topK' must be a positive integer"}), 400

    mode = data.get("mode", "auto")
    if not isinstance(mode, str) or mode not in CHAT_MODES:
        logger.warning(f"❌ Unknown chat mode: {mode!r}")
        return jsonify({"error": f"'mode' must be one of {sorted(CHAT_MODES)}"}), 400

    try:
        project_context = data.get("projectContext")
        if project_context is None:
            project_context = run_async(services.document_store.get_project_details())
    except Exception as e:
        logger.error(f"❌ Error loading project details: {e}", exc_info=True)
        return jsonify({"error": f"Internal server error: {str(e)}"}), 500

    logger.info(f"🔍 Query: '{str(query)[:100]}'")
    pipeline = services.pipeline()
    frames = sse_frames(pipeline.run(str(query), project_context or "", top_k, CHAT_MODES[mode]))
    return Response(
        iterate_async(frames),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
