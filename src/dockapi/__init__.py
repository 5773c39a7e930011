"""dockapi: a client for the container engine HTTP API.

Engine resources (containers, images, networks, volumes, swarm services,
nodes, tasks and events) are mapped onto Python objects. Every request
passes through a middleware chain that versions the path and converts
JSON bodies, and containers can be configured with ``docker run``
command-line syntax.
"""

__version__ = "0.1.0"

# Logging exports
from dockapi.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Error exports
from dockapi.errors import (
    ArgumentError,
    ClientError,
    ConflictError,
    ConnectionFailure,
    ContainerError,
    DockerError,
    ImageError,
    NotFoundError,
    ServerError,
    StateError,
    TimeoutError,
    UnauthorizedError,
    UnexpectedResponseError,
)

# Config exports
from dockapi.config import ClientConfig, load_config

# Core exports
from dockapi.casing import camelize, camelize_keys, snakeify, snakeify_keys
from dockapi.connection import Connection
from dockapi.container import Container, ContainerConfig, Op
from dockapi.context import context_files, create_dir_tar, create_tar
from dockapi.event import Event
from dockapi.image import Image
from dockapi.middleware import CasingStage, JsonStage, MiddlewareChain, Stage, VersioningStage
from dockapi.network import Network
from dockapi.swarm import Node, Service, Swarm, Task
from dockapi.volume import Volume

__all__ = [
    "__version__",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    # Errors
    "DockerError",
    "ArgumentError",
    "StateError",
    "ContainerError",
    "ImageError",
    "UnexpectedResponseError",
    "ClientError",
    "UnauthorizedError",
    "NotFoundError",
    "ConflictError",
    "ServerError",
    "ConnectionFailure",
    "TimeoutError",
    # Config
    "ClientConfig",
    "load_config",
    # Casing
    "camelize",
    "snakeify",
    "camelize_keys",
    "snakeify_keys",
    # Middleware
    "Stage",
    "MiddlewareChain",
    "JsonStage",
    "CasingStage",
    "VersioningStage",
    # Connection and resources
    "Connection",
    "Container",
    "ContainerConfig",
    "Op",
    "Image",
    "Network",
    "Volume",
    "Service",
    "Node",
    "Task",
    "Swarm",
    "Event",
    # Build context
    "context_files",
    "create_dir_tar",
    "create_tar",
]
