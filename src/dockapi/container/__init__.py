"""Containers and their configuration documents."""

from dockapi.container.config import (
    BOOLEAN_OPS,
    FLAG_ALIASES,
    ContainerConfig,
    Op,
    parse_memory,
)
from dockapi.container.container import Container

__all__ = [
    "Container",
    "ContainerConfig",
    "Op",
    "FLAG_ALIASES",
    "BOOLEAN_OPS",
    "parse_memory",
]
