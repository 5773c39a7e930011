"""Shared helpers that don't belong to a single resource."""

import base64
import codecs
import json
import re
from typing import Any, Callable, Dict, Mapping, Optional, Union

from dockapi.errors import UnexpectedResponseError
from dockapi.logging import get_logger

logger = get_logger(__name__, component="util")

_BUILT_ID = re.compile(r"Successfully built ([a-f0-9]+)")


def parse_json(body: Optional[Union[str, bytes]]) -> Any:
    """Decode a JSON response body.

    An absent body, an empty body and the literal ``null`` all decode to
    ``None``; they are not errors.

    Args:
        body: Raw response body.

    Returns:
        The decoded value, or None.

    Raises:
        UnexpectedResponseError: If the body is not valid JSON.
    """
    if body is None:
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if body == "" or body.strip() == "null":
        return None
    try:
        return json.loads(body)
    except ValueError as e:
        raise UnexpectedResponseError(
            f"Could not parse response body as JSON: {e}",
            details={"body": body[:200]},
        ) from e


def encode_header(payload: Mapping[str, Any]) -> str:
    """Encode ``payload`` the way the engine expects registry headers."""
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def build_auth_header(credentials: Mapping[str, Any]) -> Dict[str, str]:
    """Build the ``X-Registry-Auth`` header for push and pull requests."""
    return {"X-Registry-Auth": encode_header(credentials)}


def build_config_header(credentials: Mapping[str, Any]) -> Dict[str, str]:
    """Build the ``X-Registry-Config`` header for build requests.

    Args:
        credentials: A mapping with ``serveraddress``, ``username``,
            ``password`` and optionally ``email``.
    """
    server = credentials.get("serveraddress", "https://index.docker.io/v1/")
    entry = {
        "username": credentials.get("username"),
        "password": credentials.get("password"),
        "email": credentials.get("email"),
    }
    return {"X-Registry-Config": encode_header({server: entry})}


def extract_id(body: Union[str, bytes]) -> Optional[str]:
    """Find the image id announced in build output, or None."""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    image_id = None
    for line in body.splitlines():
        try:
            doc = parse_json(line)
        except UnexpectedResponseError:
            doc = None
        if isinstance(doc, dict):
            aux = doc.get("aux")
            if isinstance(aux, dict) and aux.get("ID"):
                image_id = aux["ID"]
                continue
            line = doc.get("stream", "")
        match = _BUILT_ID.search(line)
        if match:
            image_id = match.group(1)
    return image_id


class JSONLineReader:
    """Feed the JSON documents of a chunked line stream to ``callback``.

    Chunks may split a line, or a UTF-8 character, anywhere; the unfinished
    tail waits in :attr:`buffer` for the next chunk. Only mapping documents
    are passed on. Lines that are not JSON, such as plain text mixed into
    build output, are skipped.
    """

    def __init__(self, callback: Callable[[Dict[str, Any]], None]):
        self.callback = callback
        self.buffer = ""
        self.count = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def __call__(self, chunk: Union[str, bytes]) -> None:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self.buffer += chunk
        *lines, self.buffer = self.buffer.split("\n")
        for line in lines:
            self.emit(line)

    def emit(self, line: str) -> None:
        try:
            doc = parse_json(line.strip())
        except UnexpectedResponseError:
            logger.debug("stream_line_skipped", line=line[:200])
            return
        if isinstance(doc, Mapping):
            self.count += 1
            self.callback(dict(doc))

    def flush(self) -> None:
        """Deliver a final line that arrived without a trailing newline."""
        self.buffer += self._decoder.decode(b"", final=True)
        if self.buffer.strip():
            self.emit(self.buffer)
        self.buffer = ""
