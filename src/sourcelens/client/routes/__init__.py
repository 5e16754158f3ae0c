"""Flask route blueprints for the SourceLens client application."""

from sourcelens.client.routes.chat import chat_bp
from sourcelens.client.routes.config import get_config, init_config
from sourcelens.client.routes.health import health_bp
from sourcelens.client.routes.project import project_bp
from sourcelens.client.routes.reconcile import reconcile_bp
from sourcelens.client.routes.sources import sources_bp
from sourcelens.client.routes.upload import upload_bp

__all__ = [
    "chat_bp",
    "health_bp",
    "project_bp",
    "reconcile_bp",
    "sources_bp",
    "upload_bp",
    "init_config",
    "get_config",
]
