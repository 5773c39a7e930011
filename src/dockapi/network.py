"""Networks."""

from typing import Any, Dict, List, Mapping, Optional

from dockapi.connection import Connection
from dockapi.logging import get_logger
from dockapi.resource import Resource

logger = get_logger(__name__, component="network")


class Network(Resource):
    """A handle on one network."""

    resource_base = "/networks"

    @classmethod
    def create(cls, connection: Connection, name: str, options: Optional[Mapping[str, Any]] = None) -> "Network":
        """Create a network called ``name``.

        Duplicate names are refused unless ``options`` sets
        ``CheckDuplicate`` to false.
        """
        body = {"Name": name, "CheckDuplicate": True, **(options or {})}
        created = connection.json_request("POST", "/networks/create", body=body) or {}
        logger.info("network_created", network=name, network_id=created.get("Id"))
        return cls(connection, {"Name": name, **created})

    @classmethod
    def get(cls, connection: Connection, network_id: str, **query: Any) -> "Network":
        handle = cls(connection, {"id": network_id})
        return cls._from_json(connection, connection.json_request("GET", handle.path_for(), query=query))

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Network"]:
        return cls._list(connection, "/networks", query)

    @classmethod
    def prune(cls, connection: Connection) -> Dict[str, Any]:
        return connection.json_request("POST", "/networks/prune") or {}

    def json(self) -> Dict[str, Any]:
        return self.connection.json_request("GET", self.path_for())

    def connect(self, container: str, endpoint_config: Optional[Mapping[str, Any]] = None) -> "Network":
        body: Dict[str, Any] = {"Container": container}
        if endpoint_config:
            body["EndpointConfig"] = dict(endpoint_config)
        self.connection.json_request("POST", self.path_for("connect"), body=body)
        return self

    def disconnect(self, container: str, force: bool = False) -> "Network":
        body = {"Container": container, "Force": force}
        self.connection.json_request("POST", self.path_for("disconnect"), body=body)
        return self

    def remove(self) -> None:
        self.connection.delete(self.path_for())
        logger.info("network_removed", network_id=self.id)

    delete = remove
