"""Tests for Image."""

import base64
import json

import httpx
import pytest

from dockapi.context import tar_members
from dockapi.errors import ImageError, NotFoundError, ServerError, UnexpectedResponseError
from dockapi.image import Image

V = "/v1.41"


def lines(*docs) -> str:
    return "".join(json.dumps(doc) + "\r\n" for doc in docs)


def decode_header(value: str):
    return json.loads(base64.urlsafe_b64decode(value.encode("ascii")))


def query_of(request) -> dict:
    return dict(request.url.params.items())


# ============================================================================
# Pull and build
# ============================================================================


class TestPull:
    """Tests for Image.create()."""

    def test_pull_then_inspect(self, connection, engine):
        """Test that a pull is followed by an inspect of the pulled reference."""
        engine.route("POST", f"{V}/images/create", lines({"status": "Pulling"}, {"status": "Done"}))
        engine.route("GET", f"{V}/images/busybox:latest/json", {"Id": "sha256:b1", "RepoTags": ["busybox:latest"]})
        progress = []

        image = Image.create(connection, "busybox", tag="latest", callback=progress.append)

        assert image.id == "sha256:b1"
        assert progress == [{"status": "Pulling"}, {"status": "Done"}]
        pull = engine.requests[0]
        assert query_of(pull) == {"fromImage": "busybox", "tag": "latest"}
        assert "X-Registry-Auth" not in pull.headers

    def test_reference_with_tag_kept(self, connection, engine):
        """Test that an explicit tag is split from the reference."""
        engine.route("POST", f"{V}/images/create", lines({"status": "Done"}))
        engine.route("GET", f"{V}/images/busybox:1.36/json", {"Id": "sha256:b1"})

        Image.create(connection, "busybox:1.36")

        assert engine.paths("GET") == [f"{V}/images/busybox:1.36/json"]

    def test_credentials(self, connection, engine):
        engine.route("POST", f"{V}/images/create", lines({"status": "Done"}))
        engine.route("GET", f"{V}/images/private/app/json", {"Id": "sha256:p"})

        Image.create(connection, "private/app", credentials={"username": "me", "password": "pw"})

        assert decode_header(engine.requests[0].headers["X-Registry-Auth"]) == {"username": "me", "password": "pw"}

    def test_error_in_stream(self, connection, engine):
        """Test that in-band stream errors raise."""
        engine.route(
            "POST",
            f"{V}/images/create",
            lines({"status": "Pulling"}, {"error": "manifest unknown", "errorDetail": {"message": "manifest unknown"}}),
        )

        with pytest.raises(UnexpectedResponseError, match="manifest unknown") as exc_info:
            Image.create(connection, "nope")

        assert exc_info.value.details == {"message": "manifest unknown"}
        assert engine.paths("GET") == []


class TestBuild:
    """Tests for Image.build() and Image.build_from_dir()."""

    def test_build_from_dockerfile(self, connection, engine):
        """Test that a Dockerfile is sent as a one-entry tar archive."""
        engine.route("POST", f"{V}/build", lines({"stream": "Step 1/1 : FROM busybox\n"}, {"stream": "Successfully built 0a1b2c3d\n"}))

        image = Image.build(connection, "FROM busybox\n", t="me/app")

        assert image.id == "0a1b2c3d"
        request = engine.last
        assert request.headers["Content-Type"] == "application/x-tar"
        assert query_of(request) == {"t": "me/app"}
        assert tar_members(request.content) == {"Dockerfile": b"FROM busybox\n"}

    def test_build_aux_id(self, connection, engine):
        """Test that the id is read from aux output."""
        engine.route("POST", f"{V}/build", lines({"aux": {"ID": "sha256:abc"}}, {"stream": "Successfully tagged x\n"}))

        assert Image.build(connection, "FROM scratch\n").id == "sha256:abc"

    def test_build_without_id(self, connection, engine):
        """Test that a build without an id raises."""
        engine.route("POST", f"{V}/build", lines({"stream": "Step 1/1\n"}))

        with pytest.raises(UnexpectedResponseError, match="Couldn't find id"):
            Image.build(connection, "FROM busybox\n")

    def test_build_error(self, connection, engine):
        engine.route("POST", f"{V}/build", lines({"error": "unknown instruction: FRM"}))

        with pytest.raises(UnexpectedResponseError, match="unknown instruction"):
            Image.build(connection, "FRM busybox\n")

    def test_build_from_dir(self, connection, engine, tmp_path):
        """Test that the directory context honors .dockerignore."""
        (tmp_path / "Dockerfile").write_text("FROM busybox\nCOPY . /app\n")
        (tmp_path / "app.py").write_text("print('hi')\n")
        (tmp_path / "secret.key").write_text("nope")
        (tmp_path / ".dockerignore").write_text("*.key\n")
        engine.route("POST", f"{V}/build", lines({"stream": "Successfully built feedbeef\n"}))
        progress = []

        image = Image.build_from_dir(
            connection,
            tmp_path,
            credentials={"serveraddress": "registry.test", "username": "me", "password": "pw"},
            callback=progress.append,
            t="app",
        )

        assert image.id == "feedbeef"
        assert progress == [{"stream": "Successfully built feedbeef\n"}]
        request = engine.last
        assert set(tar_members(request.content)) == {".dockerignore", "Dockerfile", "app.py"}
        assert decode_header(request.headers["X-Registry-Config"]) == {
            "registry.test": {"username": "me", "password": "pw", "email": None}
        }

    def test_callback_sees_documents_split_across_chunks(self, connection, engine):
        """Test that progress documents split across chunks reach the callback whole."""
        output = lines({"stream": "Step 1/1\n"}, {"stream": "Successfully built 77\n"}).encode()

        class Chunks(httpx.SyncByteStream):
            def __iter__(self):
                for index in range(0, len(output), 7):
                    yield output[index:index + 7]

        engine.route("POST", f"{V}/build", lambda request: httpx.Response(200, stream=Chunks()))
        progress = []

        image = Image.build(connection, "FROM busybox\n", callback=progress.append)

        assert image.id == "77"
        assert progress == [{"stream": "Step 1/1\n"}, {"stream": "Successfully built 77\n"}]

    def test_plain_text_output_with_callback(self, connection, engine, tmp_path):
        """Test that plain text build output does not abort a build with a callback."""
        (tmp_path / "Dockerfile").write_text("FROM busybox\n")
        engine.route(
            "POST",
            f"{V}/build",
            "Step 1/1 : FROM busybox\nSuccessfully built abc123\n",
            headers={"Content-Type": "text/plain"},
        )
        progress = []

        image = Image.build_from_dir(connection, tmp_path, callback=progress.append)

        assert image.id == "abc123"
        assert progress == []

    def test_last_document_without_newline_reaches_callback(self, connection, engine):
        """Test that a final document without a trailing newline is delivered."""
        engine.route("POST", f"{V}/build", '{"stream":"Step 1/1\\n"}\n{"aux":{"ID":"sha256:ff"}}')
        progress = []

        image = Image.build(connection, "FROM busybox\n", callback=progress.append)

        assert image.id == "sha256:ff"
        assert progress == [{"stream": "Step 1/1\n"}, {"aux": {"ID": "sha256:ff"}}]


# ============================================================================
# Lookup
# ============================================================================


class TestLookup:
    """Tests for get, exists, all and search."""

    def test_get(self, connection, engine):
        engine.route("GET", f"{V}/images/busybox/json", {"Id": "sha256:b1", "Size": 10})

        image = Image.get(connection, "busybox")

        assert image.id == "sha256:b1"
        assert image.info["Size"] == 10

    def test_exists(self, connection, engine):
        engine.route("GET", f"{V}/images/busybox/json", {"Id": "sha256:b1"})

        assert Image.exists(connection, "busybox") is True
        assert Image.exists(connection, "missing") is False

    def test_exists_propagates_other_errors(self, connection, engine):
        """Test that errors other than not found propagate."""
        engine.route("GET", f"{V}/images/busybox/json", {"message": "daemon broke"}, status=500)

        with pytest.raises(ServerError):
            Image.exists(connection, "busybox")

    def test_all(self, connection, engine):
        engine.route("GET", f"{V}/images/json", [{"Id": "sha256:a"}, {"Id": "sha256:b"}])

        assert [image.id for image in Image.all(connection)] == ["sha256:a", "sha256:b"]

    def test_search(self, connection, engine):
        """Test that search results are keyed by repository name."""
        engine.route("GET", f"{V}/images/search", [{"name": "busybox", "star_count": 9}])

        results = Image.search(connection, "busy", limit=5)

        assert [image.id for image in results] == ["busybox"]
        assert results[0].info["star_count"] == 9
        assert query_of(engine.last) == {"term": "busy", "limit": "5"}


# ============================================================================
# Instance operations
# ============================================================================


@pytest.fixture
def image(connection) -> Image:
    return Image(connection, {"Id": "sha256:b1", "RepoTags": ["busybox:latest"]})


class TestInstance:
    """Tests for operations on an existing image."""

    def test_history(self, image, engine):
        engine.route("GET", f"{V}/images/sha256:b1/history", [{"Id": "sha256:b1", "CreatedBy": "sh"}])
        assert image.history()[0]["CreatedBy"] == "sh"

    def test_refresh(self, image, engine):
        engine.route("GET", f"{V}/images/sha256:b1/json", {"Id": "sha256:b1", "Size": 1})

        assert image.refresh() is image
        assert image.info["Size"] == 1

    def test_tag(self, image, engine):
        """Test that tagging records the new reference locally."""
        engine.route("POST", f"{V}/images/sha256:b1/tag", b"", status=201)

        image.tag("me/busybox", "v1", force=True)

        assert query_of(engine.last) == {"repo": "me/busybox", "tag": "v1", "force": "true"}
        assert image.info["RepoTags"] == ["busybox:latest", "me/busybox:v1"]

    def test_tag_defaults_to_latest(self, connection, engine):
        """Test that tagging without a tag uses latest."""
        engine.route("POST", f"{V}/images/sha256:b1/tag", b"", status=201)
        image = Image(connection, {"Id": "sha256:b1"})

        image.tag("me/busybox")

        assert query_of(engine.last) == {"repo": "me/busybox"}
        assert image.info["RepoTags"] == ["me/busybox:latest"]

    def test_push_sends_empty_auth(self, image, engine):
        """Test that push always sends a registry auth header."""
        engine.route("POST", f"{V}/images/sha256:b1/push", lines({"status": "Pushed"}))

        image.push(tag="v1")

        assert decode_header(engine.last.headers["X-Registry-Auth"]) == {}
        assert query_of(engine.last) == {"tag": "v1"}

    def test_push_error(self, image, engine):
        engine.route("POST", f"{V}/images/sha256:b1/push", lines({"error": "denied"}))

        with pytest.raises(UnexpectedResponseError, match="denied"):
            image.push({"username": "me", "password": "pw"})

    def test_remove(self, image, engine):
        """Test that removal clears the id."""
        engine.route("DELETE", f"{V}/images/sha256:b1", [{"Untagged": "busybox:latest"}, {"Deleted": "sha256:b1"}])

        result = image.remove(force=True)

        assert result == [{"Untagged": "busybox:latest"}, {"Deleted": "sha256:b1"}]
        assert query_of(engine.last) == {"force": "true", "noprune": "false"}
        assert image.id is None
        assert not image.created
        with pytest.raises(ImageError, match="This Image is not created."):
            image.history()

    def test_remove_missing(self, image, engine):
        """Test that removing a missing image raises NotFoundError."""
        engine.route("DELETE", f"{V}/images/sha256:b1", {"message": "No such image"}, status=404)

        with pytest.raises(NotFoundError):
            image.remove()
        assert image.id == "sha256:b1"

    def test_delete_alias(self):
        assert Image.delete is Image.remove
