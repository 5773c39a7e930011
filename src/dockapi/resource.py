"""Base class for engine resources.

A resource is a thin handle: an id, the connection it was obtained
through, and the last JSON document the engine returned for it. Nothing
is cached beyond that document, so every call reflects the engine's
current state.
"""

from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar
from urllib.parse import quote

from dockapi.connection import Connection
from dockapi.errors import ArgumentError, StateError

R = TypeVar("R", bound="Resource")


class Resource:
    """Base class for containers, images, networks and the rest."""

    resource_base: ClassVar[str] = ""
    error_class: ClassVar[Type[StateError]] = StateError

    def __init__(self, connection: Connection, info: Optional[Mapping[str, Any]] = None):
        if not isinstance(connection, Connection):
            raise ArgumentError(f"Expected a Connection, got {type(connection).__name__}")
        self.connection = connection
        self.info: Dict[str, Any] = dict(info or {})
        self.id: Optional[str] = self.info.pop("id", None) or self.info.get("Id") or self.info.get("ID")

    @property
    def created(self) -> bool:
        """True once the engine has assigned an id."""
        return bool(self.id)

    def ensure_created(self) -> None:
        if not self.created:
            raise self.error_class(f"This {type(self).__name__} is not created.")

    def path_for(self, resource: Optional[str] = None) -> str:
        """Return ``/<base>/<id>[/<resource>]`` for this resource."""
        self.ensure_created()
        path = f"{self.resource_base}/{quote(self.id, safe='/:@')}"
        return f"{path}/{resource}" if resource else path

    @classmethod
    def _from_json(cls: Type[R], connection: Connection, body: Any) -> R:
        return cls(connection, body if isinstance(body, Mapping) else {})

    @classmethod
    def _list(cls: Type[R], connection: Connection, path: str, query: Optional[Mapping[str, Any]] = None) -> List[R]:
        hashes = connection.json_request("GET", path, query=query) or []
        return [cls(connection, item) for item in hashes]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return type(self) is type(other) and self.id == other.id and self.connection is other.connection

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, connection={self.connection!r})"
