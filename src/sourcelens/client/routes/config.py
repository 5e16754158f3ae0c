"""Shared configuration for route modules."""

from dataclasses import dataclass
from typing import Any


@dataclass
class RouteConfig:
    """Configuration container for Flask route dependencies.

    This replaces global variables with a proper configuration object
    that can be passed around and tested more easily.
    """

    services: Any = None


# Single shared config instance
_config = RouteConfig()


def get_config() -> RouteConfig:
    """Get the shared route configuration.

    Returns:
        RouteConfig instance with current settings
    """
    return _config


def init_config(services: Any = None) -> None:
    """Initialize the shared route configuration.

    Args:
        services: Initialized service graph (see sourcelens.service.services)
    """
    if services is not None:
        _config.services = services
