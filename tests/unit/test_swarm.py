"""Tests for swarm mode resources."""

import pytest

from dockapi.errors import UnexpectedResponseError
from dockapi.swarm import Node, Service, Swarm, Task

V = "/v1.41"


def query_of(request) -> dict:
    return dict(request.url.params.items())


class TestSwarm:
    """Tests for Swarm."""

    def test_init(self, connection, engine):
        """Test that init defaults the listen address."""
        engine.route("POST", f"{V}/swarm/init", '"node-1"', headers={"Content-Type": "application/json"})

        node_id = Swarm(connection).init({"AdvertiseAddr": "10.0.0.1"})

        assert node_id == "node-1"
        assert engine.last_json() == {"ListenAddr": "0.0.0.0:2377", "AdvertiseAddr": "10.0.0.1"}

    def test_join(self, connection, engine):
        engine.route("POST", f"{V}/swarm/join", b"", status=200)

        Swarm(connection).join(["10.0.0.1:2377"], "SWMTKN-1-x", AdvertiseAddr="10.0.0.2")

        assert engine.last_json() == {
            "ListenAddr": "0.0.0.0:2377",
            "RemoteAddrs": ["10.0.0.1:2377"],
            "JoinToken": "SWMTKN-1-x",
            "AdvertiseAddr": "10.0.0.2",
        }

    def test_leave(self, connection, engine):
        engine.route("POST", f"{V}/swarm/leave", b"", status=200)

        Swarm(connection).leave(force=True)

        assert query_of(engine.last) == {"force": "true"}

    def test_inspect(self, connection, engine):
        engine.route("GET", f"{V}/swarm", {"ID": "s1", "Version": {"Index": 11}})

        swarm = Swarm(connection)

        assert swarm.inspect()["ID"] == "s1"
        assert swarm.info["Version"] == {"Index": 11}

    def test_update_reads_version(self, connection, engine):
        """Test that update inspects the swarm for its version."""
        engine.route("GET", f"{V}/swarm", {"ID": "s1", "Version": {"Index": 11}})
        engine.route("POST", f"{V}/swarm/update", b"", status=200)

        Swarm(connection).update({"Name": "default"}, rotateWorkerToken=True)

        assert engine.paths() == [f"{V}/swarm", f"{V}/swarm/update"]
        assert query_of(engine.last) == {"version": "11", "rotateWorkerToken": "true"}
        assert engine.last_json() == {"Name": "default"}

    def test_update_with_version(self, connection, engine):
        engine.route("POST", f"{V}/swarm/update", b"", status=200)

        Swarm(connection).update({"Name": "default"}, version=4)

        assert engine.paths() == [f"{V}/swarm/update"]
        assert query_of(engine.last) == {"version": "4"}

    def test_update_without_version_index(self, connection, engine):
        """Test that a swarm without a version index cannot be updated."""
        engine.route("GET", f"{V}/swarm", {"ID": "s1"})

        with pytest.raises(UnexpectedResponseError):
            Swarm(connection).update({})

    def test_unlock_key(self, connection, engine):
        engine.route("GET", f"{V}/swarm/unlockkey", {"UnlockKey": "SWMKEY-1-x"})
        assert Swarm(connection).unlock_key() == "SWMKEY-1-x"


class TestService:
    """Tests for Service."""

    def test_create(self, connection, engine):
        engine.route("POST", f"{V}/services/create", {"ID": "svc1"}, status=201)
        spec = {"Name": "web", "TaskTemplate": {"ContainerSpec": {"Image": "nginx"}}}

        service = Service.create(connection, spec)

        assert service.id == "svc1"
        assert service.info["Spec"] == spec
        assert engine.last_json() == spec

    def test_get_and_all(self, connection, engine):
        engine.route("GET", f"{V}/services/svc1", {"ID": "svc1", "Version": {"Index": 3}})
        engine.route("GET", f"{V}/services", [{"ID": "svc1"}])

        service = Service.get(connection, "svc1")

        assert service.version == 3
        assert [s.id for s in Service.all(connection)] == ["svc1"]

    def test_update_with_known_version(self, connection, engine):
        """Test that a cached version is sent without inspecting."""
        engine.route("POST", f"{V}/services/svc1/update", {"Warnings": None})
        service = Service(connection, {"ID": "svc1", "Version": {"Index": 3}})

        service.update({"Name": "web", "Mode": {"Replicated": {"Replicas": 2}}})

        assert engine.paths() == [f"{V}/services/svc1/update"]
        assert query_of(engine.last) == {"version": "3"}
        assert service.info["Spec"]["Mode"] == {"Replicated": {"Replicas": 2}}

    def test_update_inspects_when_version_unknown(self, connection, engine):
        """Test that update inspects first when no version is cached."""
        engine.route("GET", f"{V}/services/svc1", {"ID": "svc1", "Version": {"Index": 9}})
        engine.route("POST", f"{V}/services/svc1/update", {})

        Service(connection, {"ID": "svc1"}).update({"Name": "web"})

        assert engine.paths() == [f"{V}/services/svc1", f"{V}/services/svc1/update"]
        assert query_of(engine.last) == {"version": "9"}

    def test_remove(self, connection, engine):
        engine.route("DELETE", f"{V}/services/svc1", b"", status=200)

        Service(connection, {"ID": "svc1"}).remove()

        assert engine.paths("DELETE") == [f"{V}/services/svc1"]


class TestNodesAndTasks:
    """Tests for Node and Task."""

    def test_node_get_all_update_remove(self, connection, engine):
        """Test node lookup, update and removal."""
        engine.route("GET", f"{V}/nodes/node1", {"ID": "node1", "Spec": {"Role": "manager"}})
        engine.route("GET", f"{V}/nodes", [{"ID": "node1"}, {"ID": "node2"}])
        engine.route("POST", f"{V}/nodes/node1/update", b"", status=200)
        engine.route("DELETE", f"{V}/nodes/node1", b"", status=200)

        node = Node.get(connection, "node1")
        assert node.info["Spec"] == {"Role": "manager"}
        assert [n.id for n in Node.all(connection)] == ["node1", "node2"]

        node.update({"Role": "worker", "Availability": "drain"}, version=5)
        assert query_of(engine.last) == {"version": "5"}
        assert engine.last_json() == {"Role": "worker", "Availability": "drain"}

        node.remove(force=True)
        assert query_of(engine.last) == {"force": "true"}

    def test_tasks(self, connection, engine):
        engine.route("GET", f"{V}/tasks/t1", {"ID": "t1", "Status": {"State": "running"}})
        engine.route("GET", f"{V}/tasks", [{"ID": "t1"}])

        assert Task.get(connection, "t1").info["Status"] == {"State": "running"}
        assert [t.id for t in Task.all(connection, filters={"service": ["web"]})] == ["t1"]
        assert query_of(engine.last) == {"filters": '{"service": ["web"]}'}
