"""Volumes."""

from typing import Any, Dict, List, Mapping, Optional

from dockapi.connection import Connection
from dockapi.logging import get_logger
from dockapi.resource import Resource

logger = get_logger(__name__, component="volume")


class Volume(Resource):
    """A handle on one volume. Volumes are identified by name."""

    resource_base = "/volumes"

    def __init__(self, connection: Connection, info: Optional[Mapping[str, Any]] = None):
        super().__init__(connection, info)
        self.id = self.id or self.info.get("Name")

    @classmethod
    def create(cls, connection: Connection, name: Optional[str] = None, **options: Any) -> "Volume":
        """Create a volume; the engine picks a name when none is given."""
        body = dict(options)
        if name:
            body["Name"] = name
        created = connection.json_request("POST", "/volumes/create", body=body) or {}
        logger.info("volume_created", volume=created.get("Name", name))
        return cls(connection, created)

    @classmethod
    def get(cls, connection: Connection, name: str) -> "Volume":
        handle = cls(connection, {"id": name})
        return cls._from_json(connection, connection.json_request("GET", handle.path_for()))

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Volume"]:
        """List volumes. The engine wraps the list in a ``Volumes`` key."""
        body = connection.json_request("GET", "/volumes", query=query) or {}
        if isinstance(body, Mapping):
            body = body.get("Volumes") or []
        return [cls(connection, item) for item in body]

    def json(self) -> Dict[str, Any]:
        return self.connection.json_request("GET", self.path_for())

    def remove(self, force: bool = False) -> None:
        self.connection.delete(self.path_for(), {"force": force})
        logger.info("volume_removed", volume=self.id)

    delete = remove
