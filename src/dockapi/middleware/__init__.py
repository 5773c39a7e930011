"""Composable request/response middleware."""

from dockapi.middleware.base import (
    DEFAULT_EXPECTS,
    JSON_CONTENT_TYPE,
    Datum,
    MiddlewareChain,
    Response,
    Stage,
    header_value,
    is_json,
)
from dockapi.middleware.casing import CasingStage
from dockapi.middleware.json import JsonStage
from dockapi.middleware.versioning import VersioningStage

__all__ = [
    "Datum",
    "Response",
    "Stage",
    "MiddlewareChain",
    "JsonStage",
    "CasingStage",
    "VersioningStage",
    "is_json",
    "header_value",
    "JSON_CONTENT_TYPE",
    "DEFAULT_EXPECTS",
]
