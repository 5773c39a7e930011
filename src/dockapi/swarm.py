"""Swarm mode: the swarm itself, its services, nodes and tasks."""

from typing import Any, Dict, List, Mapping, Optional

from dockapi.connection import Connection
from dockapi.errors import UnexpectedResponseError
from dockapi.logging import get_logger
from dockapi.resource import Resource

logger = get_logger(__name__, component="swarm")


class Swarm:
    """Operations on the swarm the engine belongs to."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.info: Dict[str, Any] = {}

    def init(self, spec: Optional[Mapping[str, Any]] = None) -> str:
        """Create a new swarm with this engine as manager; returns the node id."""
        body = {"ListenAddr": "0.0.0.0:2377", **(spec or {})}
        node_id = self.connection.json_request("POST", "/swarm/init", body=body)
        logger.info("swarm_initialized", node_id=node_id)
        return node_id

    def join(self, remote_addrs: List[str], join_token: str, **spec: Any) -> "Swarm":
        body = {"ListenAddr": "0.0.0.0:2377", "RemoteAddrs": list(remote_addrs), "JoinToken": join_token, **spec}
        self.connection.json_request("POST", "/swarm/join", body=body)
        logger.info("swarm_joined", remote_addrs=remote_addrs)
        return self

    def leave(self, force: bool = False) -> "Swarm":
        self.connection.post("/swarm/leave", {"force": force})
        logger.info("swarm_left", force=force)
        return self

    def inspect(self) -> Dict[str, Any]:
        self.info = self.connection.json_request("GET", "/swarm") or {}
        return self.info

    def update(self, spec: Mapping[str, Any], version: Optional[int] = None, **query: Any) -> "Swarm":
        """Update the swarm spec.

        The engine requires the current object version; it is read from
        :meth:`inspect` when not given.
        """
        if version is None:
            version = (self.inspect().get("Version") or {}).get("Index")
            if version is None:
                raise UnexpectedResponseError("Swarm inspect returned no version index")
        self.connection.json_request("POST", "/swarm/update", query={"version": version, **query}, body=dict(spec))
        return self

    def unlock_key(self) -> Optional[str]:
        body = self.connection.json_request("GET", "/swarm/unlockkey") or {}
        return body.get("UnlockKey")


class Service(Resource):
    """A handle on one swarm service."""

    resource_base = "/services"

    @classmethod
    def create(cls, connection: Connection, spec: Mapping[str, Any]) -> "Service":
        created = connection.json_request("POST", "/services/create", body=dict(spec)) or {}
        logger.info("service_created", service=spec.get("Name"), service_id=created.get("ID"))
        return cls(connection, {"Spec": dict(spec), **created})

    @classmethod
    def get(cls, connection: Connection, service_id: str) -> "Service":
        handle = cls(connection, {"id": service_id})
        return cls._from_json(connection, connection.json_request("GET", handle.path_for()))

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Service"]:
        return cls._list(connection, "/services", query)

    def json(self) -> Dict[str, Any]:
        return self.connection.json_request("GET", self.path_for())

    @property
    def version(self) -> Optional[int]:
        return (self.info.get("Version") or {}).get("Index")

    def update(self, spec: Mapping[str, Any], version: Optional[int] = None) -> "Service":
        """Replace the service spec at ``version`` (defaults to the known one)."""
        version = version if version is not None else self.version
        if version is None:
            self.info = dict(self.json())
            version = self.version
        self.connection.json_request("POST", self.path_for("update"), query={"version": version}, body=dict(spec))
        self.info["Spec"] = dict(spec)
        return self

    def remove(self) -> None:
        self.connection.delete(self.path_for())
        logger.info("service_removed", service_id=self.id)

    delete = remove


class Node(Resource):
    """A swarm node."""

    resource_base = "/nodes"

    @classmethod
    def get(cls, connection: Connection, node_id: str) -> "Node":
        handle = cls(connection, {"id": node_id})
        return cls._from_json(connection, connection.json_request("GET", handle.path_for()))

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Node"]:
        return cls._list(connection, "/nodes", query)

    def update(self, spec: Mapping[str, Any], version: int) -> "Node":
        self.connection.json_request("POST", self.path_for("update"), query={"version": version}, body=dict(spec))
        return self

    def remove(self, force: bool = False) -> None:
        self.connection.delete(self.path_for(), {"force": force})

    delete = remove


class Task(Resource):
    """A swarm task. Tasks are read-only."""

    resource_base = "/tasks"

    @classmethod
    def get(cls, connection: Connection, task_id: str) -> "Task":
        handle = cls(connection, {"id": task_id})
        return cls._from_json(connection, connection.json_request("GET", handle.path_for()))

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Task"]:
        return cls._list(connection, "/tasks", query)
