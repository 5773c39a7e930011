"""Images: pull, build, inspect, tag, push and remove."""

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from dockapi.connection import Connection
from dockapi.context import create_dir_tar, create_tar
from dockapi.errors import ImageError, NotFoundError, UnexpectedResponseError
from dockapi.logging import get_logger
from dockapi.resource import Resource
from dockapi.util import JSONLineReader, build_auth_header, build_config_header, extract_id, parse_json

logger = get_logger(__name__, component="image")

TAR_CONTENT_TYPE = "application/x-tar"

ProgressCallback = Callable[[Dict[str, Any]], None]


class _ProgressReader:
    """Collect streamed output and hand each progress document to ``callback``."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.chunks: List[bytes] = []
        self.lines = JSONLineReader(callback) if callback is not None else None

    def __call__(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        if self.lines is not None:
            self.lines(chunk)

    def finish(self) -> str:
        """Deliver any unterminated last document and return the whole output."""
        if self.lines is not None:
            self.lines.flush()
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def _raise_stream_error(output: str) -> None:
    # Progress streams report failures in-band with a 200 status.
    for line in output.splitlines():
        try:
            doc = parse_json(line)
        except UnexpectedResponseError:
            continue
        if isinstance(doc, dict) and doc.get("error"):
            raise UnexpectedResponseError(doc["error"], details=doc.get("errorDetail") or {})


class Image(Resource):
    """A handle on one image."""

    resource_base = "/images"
    error_class = ImageError

    # ------------------------------------------------------------------
    # Class-level operations
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        connection: Connection,
        from_image: str,
        tag: Optional[str] = None,
        credentials: Optional[Mapping[str, Any]] = None,
        callback: Optional[ProgressCallback] = None,
        **query: Any,
    ) -> "Image":
        """Pull ``from_image`` and return the pulled image.

        Args:
            connection: Engine connection.
            from_image: Repository to pull, optionally with ``:tag``.
            tag: Tag to pull when ``from_image`` carries none.
            credentials: Registry credentials, sent as ``X-Registry-Auth``.
            callback: Called with every progress document.

        Raises:
            UnexpectedResponseError: If the engine reported a pull error in
                the progress stream.
        """
        query = {"fromImage": from_image, **query}
        if tag:
            query["tag"] = tag
        headers = build_auth_header(credentials) if credentials else {}
        reader = _ProgressReader(callback)
        connection.post(
            "/images/create",
            query,
            headers=headers,
            response_block=reader,
        )
        _raise_stream_error(reader.finish())

        reference = f"{from_image}:{tag}" if tag and ":" not in from_image else from_image
        logger.info("image_pulled", image=reference)
        return cls.get(connection, reference)

    @classmethod
    def build(
        cls,
        connection: Connection,
        dockerfile: str,
        callback: Optional[ProgressCallback] = None,
        **query: Any,
    ) -> "Image":
        """Build an image from the text of a Dockerfile."""
        archive = create_tar({"Dockerfile": dockerfile})
        return cls._build(connection, archive, query=query, callback=callback)

    @classmethod
    def build_from_dir(
        cls,
        connection: Connection,
        path: Union[str, Path],
        credentials: Optional[Mapping[str, Any]] = None,
        callback: Optional[ProgressCallback] = None,
        **query: Any,
    ) -> "Image":
        """Build an image from a directory, honoring its ``.dockerignore``.

        Args:
            connection: Engine connection.
            path: Context root.
            credentials: Registry credentials, sent as ``X-Registry-Config``.
            callback: Called with every build output document.
            **query: Build parameters such as ``t`` or ``dockerfile``.
        """
        with create_dir_tar(path) as archive:
            return cls._build(connection, archive.read(), query=query, credentials=credentials, callback=callback)

    @classmethod
    def _build(
        cls,
        connection: Connection,
        archive: bytes,
        query: Optional[Mapping[str, Any]] = None,
        credentials: Optional[Mapping[str, Any]] = None,
        callback: Optional[ProgressCallback] = None,
    ) -> "Image":
        headers = {"Content-Type": TAR_CONTENT_TYPE}
        if credentials:
            headers.update(build_config_header(credentials))
        reader = _ProgressReader(callback)
        connection.post(
            "/build",
            query,
            body=archive,
            headers=headers,
            response_block=reader,
        )
        output = reader.finish()
        _raise_stream_error(output)
        image_id = extract_id(output)
        if not image_id:
            raise UnexpectedResponseError("Couldn't find id in build output", details={"output": output[-500:]})
        logger.info("image_built", image_id=image_id)
        return cls(connection, {"id": image_id})

    @classmethod
    def get(cls, connection: Connection, name: str, **query: Any) -> "Image":
        """Inspect the image called ``name``."""
        image = cls(connection, {"id": name})
        return cls._from_json(connection, connection.json_request("GET", image.path_for("json"), query=query))

    @classmethod
    def exists(cls, connection: Connection, name: str) -> bool:
        try:
            cls.get(connection, name)
        except NotFoundError:
            return False
        return True

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Image"]:
        return cls._list(connection, "/images/json", query)

    @classmethod
    def search(cls, connection: Connection, term: str, **query: Any) -> List["Image"]:
        """Search the registry; results are keyed by repository name."""
        results = connection.json_request("GET", "/images/search", query={"term": term, **query}) or []
        return [cls(connection, {"id": result["name"], **result}) for result in results]

    # ------------------------------------------------------------------
    # Instance operations
    # ------------------------------------------------------------------

    def json(self) -> Dict[str, Any]:
        return self.connection.json_request("GET", self.path_for("json"))

    def history(self) -> List[Dict[str, Any]]:
        return self.connection.json_request("GET", self.path_for("history")) or []

    def refresh(self) -> "Image":
        """Reload :attr:`info` from the engine."""
        self.info = dict(self.json())
        return self

    def tag(self, repo: str, tag: Optional[str] = None, force: bool = False) -> "Image":
        """Tag the image into ``repo[:tag]``."""
        query: Dict[str, Any] = {"repo": repo}
        if tag:
            query["tag"] = tag
        if force:
            query["force"] = True
        self.connection.post(self.path_for("tag"), query)
        self.info.setdefault("RepoTags", []).append(f"{repo}:{tag or 'latest'}")
        return self

    def push(
        self,
        credentials: Optional[Mapping[str, Any]] = None,
        tag: Optional[str] = None,
        callback: Optional[ProgressCallback] = None,
    ) -> "Image":
        """Push the image to its registry.

        The engine always wants an ``X-Registry-Auth`` header, so an empty
        one is sent when no credentials are given.

        Raises:
            UnexpectedResponseError: If the push stream reports an error.
        """
        query = {"tag": tag} if tag else None
        headers = build_auth_header(credentials or {})
        reader = _ProgressReader(callback)
        self.connection.post(
            self.path_for("push"),
            query,
            headers=headers,
            response_block=reader,
        )
        _raise_stream_error(reader.finish())
        return self

    def remove(self, force: bool = False, noprune: bool = False) -> List[Dict[str, Any]]:
        """Delete the image; the handle is no longer created afterwards."""
        query = {"force": force, "noprune": noprune}
        result = self.connection.json_request("DELETE", self.path_for(), query=query) or []
        logger.info("image_removed", image_id=self.id)
        self.id = None
        return result

    delete = remove
