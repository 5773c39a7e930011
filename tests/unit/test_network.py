"""Tests for Network and Volume."""

import pytest

from dockapi.errors import ConflictError, NotFoundError
from dockapi.network import Network
from dockapi.volume import Volume

V = "/v1.41"


class TestNetwork:
    """Tests for Network."""

    def test_create(self, connection, engine):
        """Test that duplicate checking is on unless overridden."""
        engine.route("POST", f"{V}/networks/create", {"Id": "n1", "Warning": ""}, status=201)

        network = Network.create(connection, "backend", {"Driver": "bridge"})

        assert network.id == "n1"
        assert network.info["Name"] == "backend"
        assert engine.last_json() == {"Name": "backend", "CheckDuplicate": True, "Driver": "bridge"}

    def test_create_without_duplicate_check(self, connection, engine):
        """Test that the duplicate check can be turned off."""
        engine.route("POST", f"{V}/networks/create", {"Id": "n1"}, status=201)

        Network.create(connection, "backend", {"CheckDuplicate": False})

        assert engine.last_json()["CheckDuplicate"] is False

    def test_create_duplicate(self, connection, engine):
        """Test that a name clash raises ConflictError."""
        engine.route("POST", f"{V}/networks/create", {"message": "network backend already exists"}, status=409)

        with pytest.raises(ConflictError):
            Network.create(connection, "backend")

    def test_get_and_all(self, connection, engine):
        engine.route("GET", f"{V}/networks/n1", {"Id": "n1", "Name": "backend"})
        engine.route("GET", f"{V}/networks", [{"Id": "n1"}, {"Id": "n2"}])

        assert Network.get(connection, "n1").info["Name"] == "backend"
        assert [n.id for n in Network.all(connection)] == ["n1", "n2"]

    def test_connect(self, connection, engine):
        """Test that connect sends the container and endpoint config."""
        engine.route("POST", f"{V}/networks/n1/connect", b"", status=200)
        network = Network(connection, {"Id": "n1"})

        network.connect("abc", {"Aliases": ["db"]})

        assert engine.last_json() == {"Container": "abc", "EndpointConfig": {"Aliases": ["db"]}}

    def test_connect_without_endpoint_config(self, connection, engine):
        """Test that connect sends only the container when no config is given."""
        engine.route("POST", f"{V}/networks/n1/connect", b"", status=200)

        Network(connection, {"Id": "n1"}).connect("abc")

        assert engine.last_json() == {"Container": "abc"}

    def test_disconnect(self, connection, engine):
        engine.route("POST", f"{V}/networks/n1/disconnect", b"", status=200)

        Network(connection, {"Id": "n1"}).disconnect("abc", force=True)

        assert engine.last_json() == {"Container": "abc", "Force": True}

    def test_prune(self, connection, engine):
        engine.route("POST", f"{V}/networks/prune", {"NetworksDeleted": ["old"]})
        assert Network.prune(connection) == {"NetworksDeleted": ["old"]}

    def test_remove(self, connection, engine):
        engine.route("DELETE", f"{V}/networks/n1", b"", status=204)

        Network(connection, {"Id": "n1"}).remove()

        assert engine.paths("DELETE") == [f"{V}/networks/n1"]


class TestVolume:
    """Tests for Volume."""

    def test_identified_by_name(self, connection):
        """Test that volumes fall back to their name as id."""
        assert Volume(connection, {"Name": "data", "Driver": "local"}).id == "data"

    def test_create(self, connection, engine):
        engine.route("POST", f"{V}/volumes/create", {"Name": "data", "Driver": "local"}, status=201)

        volume = Volume.create(connection, "data", Driver="local", Labels={"app": "db"})

        assert volume.id == "data"
        assert engine.last_json() == {"Name": "data", "Driver": "local", "Labels": {"app": "db"}}

    def test_create_anonymous(self, connection, engine):
        """Test that a volume can be created without a name."""
        engine.route("POST", f"{V}/volumes/create", {"Name": "f00d"}, status=201)

        volume = Volume.create(connection)

        assert volume.id == "f00d"
        assert engine.last_json() == {}

    def test_all_unwraps_volumes_key(self, connection, engine):
        """Test that the volume list is read from the Volumes key."""
        engine.route("GET", f"{V}/volumes", {"Volumes": [{"Name": "a"}, {"Name": "b"}], "Warnings": None})

        assert [v.id for v in Volume.all(connection)] == ["a", "b"]

    def test_all_empty(self, connection, engine):
        engine.route("GET", f"{V}/volumes", {"Volumes": None})
        assert Volume.all(connection) == []

    def test_get_and_json(self, connection, engine):
        engine.route("GET", f"{V}/volumes/data", {"Name": "data", "Mountpoint": "/var/lib/x"})

        volume = Volume.get(connection, "data")

        assert volume.info["Mountpoint"] == "/var/lib/x"
        assert volume.json()["Name"] == "data"

    def test_remove(self, connection, engine):
        engine.route("DELETE", f"{V}/volumes/data", b"", status=204)

        Volume(connection, {"Name": "data"}).remove(force=True)

        assert dict(engine.last.url.params.items()) == {"force": "true"}

    def test_remove_missing(self, connection):
        """Test that removing a missing volume raises NotFoundError."""
        with pytest.raises(NotFoundError):
            Volume(connection, {"Name": "gone"}).remove()
