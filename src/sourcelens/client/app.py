"""Flask web application for source-grounded chat.

This module wires the REST API: uploads, streamed chat answers, source
listing and deletion, consistency checks and project details. All async
services run on a shared background event loop.
"""

import logging
import os

from dotenv import load_dotenv
from flask import Flask

from sourcelens.client.routes import (
    chat_bp,
    health_bp,
    init_config,
    project_bp,
    reconcile_bp,
    sources_bp,
    upload_bp,
)
from sourcelens.constants import MAX_UPLOAD_FILES, MAX_UPLOAD_SIZE_BYTES
from sourcelens.service.async_helpers import run_async
from sourcelens.service.services import create_services

# Load environment variables
load_dotenv()

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create Flask app
app = Flask(__name__)
logger.debug("Flask app created")

# One request may carry a full batch of maximum-size files
app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_SIZE_BYTES * MAX_UPLOAD_FILES

# Register blueprints
app.register_blueprint(chat_bp)
app.register_blueprint(upload_bp)
app.register_blueprint(sources_bp)
app.register_blueprint(reconcile_bp)
app.register_blueprint(project_bp)
app.register_blueprint(health_bp)


def initialize_services() -> None:
    """Build and initialize the service graph, then hand it to the routes."""
    create_if_missing = os.getenv("RAVENDB_CREATE_DATABASE", "false").lower() == "true"
    services = run_async(create_services(create_if_missing=create_if_missing))
    init_config(services=services)


def create_app():
    """Factory function for creating the Flask application.

    This function is used by WSGI servers like gunicorn to create the app.
    It initializes services before returning the app instance.

    Returns:
        Flask: The configured Flask application instance
    """
    initialize_services()
    return app


def main() -> None:
    """Entry point for the Flask application command-line interface."""
    print("🚀 Starting SourceLens Flask application...")

    print("📦 Initializing services...")
    initialize_services()
    print("✅ Services initialized successfully")

    host = os.getenv("FLASK_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_PORT", "5000"))
    debug = os.getenv("FLASK_ENV", "development") == "development"

    print(f"🌐 Starting Flask server on http://{host}:{port}")
    print(f"🔧 Debug mode: {debug}")
    print("📝 Press CTRL+C to quit")

    # The reloader would start a second process with its own service graph
    app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)


if __name__ == "__main__":
    main()
