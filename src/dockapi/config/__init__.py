"""Configuration loading and validation."""

from dockapi.config.loader import (
    DEFAULT_API_VERSION,
    DEFAULT_URL,
    ClientConfig,
    LoggingConfig,
    load_config,
)

__all__ = [
    "load_config",
    "ClientConfig",
    "LoggingConfig",
    "DEFAULT_URL",
    "DEFAULT_API_VERSION",
]
