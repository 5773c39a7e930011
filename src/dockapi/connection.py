"""HTTP connection to a container engine.

The connection owns an ``httpx.Client`` and routes every request through a
:class:`~dockapi.middleware.MiddlewareChain`. It is safe to reuse across
calls but is not synchronized: give each thread its own connection or
serialize access externally.
"""

import json
import socket
import ssl
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode, urlsplit

import httpx

from dockapi.config import ClientConfig, load_config
from dockapi.errors import (
    ConnectionFailure,
    DockerError,
    TimeoutError,
    UnexpectedResponseError,
    error_for_status,
)
from dockapi.logging import get_logger, redact_headers
from dockapi.metrics import get_metrics_collector
from dockapi.middleware import (
    DEFAULT_EXPECTS,
    JSON_CONTENT_TYPE,
    CasingStage,
    Datum,
    JsonStage,
    MiddlewareChain,
    Response,
    Stage,
    VersioningStage,
    header_value,
)
from dockapi.middleware.base import ResponseBlock
from dockapi.util import parse_json

logger = get_logger(__name__, component="connection")
metrics = get_metrics_collector()


def default_middlewares(config: ClientConfig) -> List[Stage]:
    """Build the default stage list for ``config``.

    The versioning stage comes last so its request phase runs immediately
    before the transport.
    """
    codec: Stage = CasingStage() if config.casify_keys else JsonStage()
    return [codec, VersioningStage(config.api_version, config.user_agent)]


def _encode_query(query: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """Render query values the way the engine parses them."""
    if not query:
        return None
    params = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (dict, list)):
            value = json.dumps(value)
        params[key] = str(value)
    return params


def _error_message(response: httpx.Response) -> str:
    """Pull the engine's error message out of a failed response."""
    try:
        text = response.text
    except httpx.ResponseNotRead:
        text = response.read().decode("utf-8", errors="replace")
    try:
        doc = parse_json(text)
    except UnexpectedResponseError:
        doc = None
    if isinstance(doc, dict) and doc.get("message"):
        return str(doc["message"])
    return text or f"HTTP {response.status_code}"


def _is_textual(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == JSON_CONTENT_TYPE or media_type.startswith("text/")


class Connection:
    """A connection to a container engine.

    Example:
        >>> conn = Connection(ClientConfig(url="tcp://127.0.0.1:2375"))
        >>> conn.get("/info").body["Containers"]
        3
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        middlewares: Optional[Sequence[Stage]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize connection.

        Args:
            config: Engine settings. Defaults to the local Unix socket.
            middlewares: Stages to run around the transport. Defaults to
                :func:`default_middlewares`.
            transport: Optional httpx transport, mainly for tests.
        """
        self.config = config or ClientConfig()
        if middlewares is None:
            middlewares = default_middlewares(self.config)
        self.chain = MiddlewareChain(middlewares)
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_env(cls, path: Optional[str] = None, **kwargs: Any) -> "Connection":
        """Build a connection from an optional YAML file and ``DOCKER_*`` variables."""
        return cls(load_config(path), **kwargs)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _ssl_context(self) -> Optional[ssl.SSLContext]:
        config = self.config
        if not (config.tls_verify or config.cert_path):
            return None
        context = ssl.create_default_context(cafile=str(config.ca_path) if config.ca_path else None)
        if not config.tls_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if config.cert_path:
            context.load_cert_chain(
                str(config.cert_path),
                str(config.key_path) if config.key_path else None,
            )
        return context

    @property
    def client(self) -> httpx.Client:
        """The underlying httpx client, created on first use."""
        if self._client is None:
            transport = self._transport
            context = self._ssl_context()
            if transport is None and self.config.is_unix_socket:
                transport = httpx.HTTPTransport(uds=self.config.socket_path)
            self._client = httpx.Client(
                base_url=self.config.base_url,
                transport=transport,
                timeout=self.config.timeout,
                verify=context if context is not None else True,
            )
        return self._client

    def close(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _send(self, datum: Datum) -> Response:
        """Perform the HTTP exchange described by ``datum``.

        Raises:
            ClientError: 4xx status outside ``datum.expects``.
            ServerError: 5xx status outside ``datum.expects``.
            ConnectionFailure: The engine could not be reached.
        """
        expects = datum.expects if datum.expects is not None else DEFAULT_EXPECTS
        content = datum.body
        if isinstance(content, Mapping):
            # Non-JSON mappings are sent form encoded.
            content = urlencode(content)
        elif hasattr(content, "read"):
            content = content.read()

        request = self.client.build_request(
            datum.method,
            datum.path,
            params=_encode_query(datum.query),
            content=content,
            headers=datum.headers,
        )

        try:
            if datum.response_block is not None:
                return self._send_streaming(request, datum.response_block, expects)
            response = self.client.send(request)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request to {datum.path} timed out", timeout=self.config.timeout) from e
        except httpx.TransportError as e:
            raise ConnectionFailure(
                f"Could not reach engine at {self.config.url}: {e}",
                details={"path": datum.path},
            ) from e

        self._check_status(response, expects)
        content_type = header_value(response.headers, "Content-Type")
        body: Union[str, bytes] = response.text if _is_textual(content_type) else response.content
        return Response(status=response.status_code, headers=response.headers, body=body)

    def _send_streaming(self, request: httpx.Request, block: ResponseBlock, expects: Any) -> Response:
        response = self.client.send(request, stream=True)
        try:
            if response.status_code not in expects:
                response.read()
                self._check_status(response, expects)
            for chunk in response.iter_bytes():
                block(chunk)
        finally:
            response.close()
        return Response(status=response.status_code, headers=response.headers, body=b"")

    def _check_status(self, response: httpx.Response, expects: Any) -> None:
        if response.status_code in expects:
            return
        message = _error_message(response)
        details = {"path": str(response.request.url.path), "method": response.request.method}
        raise error_for_status(response.status_code, message, details=details)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        expects: Optional[Sequence[int]] = None,
        response_block: Optional[ResponseBlock] = None,
    ) -> Response:
        """Send one request through the middleware chain.

        Args:
            method: HTTP verb.
            path: Unversioned API path, e.g. ``/containers/json``.
            query: Query parameters.
            body: Mapping, text, bytes or a readable file object.
            headers: Request headers.
            expects: Accepted status codes (defaults to 200-204).
            response_block: If given, called once per received body chunk.

        Returns:
            The response envelope, after every response phase ran.
        """
        datum = Datum(
            method=method.upper(),
            path=path,
            query=dict(query) if query else None,
            body=body,
            headers=dict(headers or {}),
            expects=expects,
            response_block=response_block,
        )
        start = time.monotonic()
        with metrics.track_request(datum.method):
            try:
                self.chain.execute(datum, self._send)
            except DockerError as e:
                metrics.increment_error_count(type(e).__name__)
                logger.warning(
                    "request_failed",
                    method=datum.method,
                    path=datum.path,
                    error=e.message,
                    error_type=type(e).__name__,
                )
                raise

        response = datum.response
        metrics.increment_request_count(datum.method, response.status if response else None)
        logger.debug(
            "request_completed",
            method=datum.method,
            path=datum.path,
            status=response.status if response else None,
            headers=redact_headers(datum.headers),
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return response

    def get(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Response:
        return self.request("GET", path, query=query, **kwargs)

    def post(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Response:
        return self.request("POST", path, query=query, **kwargs)

    def put(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Response:
        return self.request("PUT", path, query=query, **kwargs)

    def delete(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Response:
        return self.request("DELETE", path, query=query, **kwargs)

    def head(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Response:
        return self.request("HEAD", path, query=query, **kwargs)

    def json_request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        **kwargs: Any,
    ) -> Any:
        """Send a JSON request and return the decoded body.

        Falls back to parsing the body here when the engine omitted the JSON
        content type and no stage decoded it.
        """
        headers = {"Content-Type": JSON_CONTENT_TYPE, **kwargs.pop("headers", {})}
        response = self.request(method, path, query=query, body=body, headers=headers, **kwargs)
        if response.decoded or not isinstance(response.body, (str, bytes)):
            return response.body
        return parse_json(response.body)

    # ------------------------------------------------------------------
    # Hijacked sockets
    # ------------------------------------------------------------------

    def _open_socket(self) -> socket.socket:
        timeout = self.config.timeout
        if self.config.is_unix_socket:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.settimeout(timeout)
            sock.connect(self.config.socket_path)
            return sock

        parts = urlsplit(self.config.base_url)
        port = parts.port or (443 if parts.scheme == "https" else 80)
        sock = socket.create_connection((parts.hostname, port), timeout=timeout)
        context = self._ssl_context()
        if parts.scheme == "https":
            context = context or ssl.create_default_context()
            sock = context.wrap_socket(sock, server_hostname=parts.hostname)
        return sock

    def hijack(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[Union[str, bytes]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Tuple[socket.socket, bytes]:
        """Open a raw, bidirectional socket to the engine.

        The request is upgraded to a plain TCP stream, as the engine does
        for interactive attach and exec.

        Returns:
            The connected socket and any stream bytes that arrived together
            with the response headers.

        Raises:
            ConnectionFailure: The socket could not be opened.
            ClientError: The engine refused the upgrade with a 4xx status.
            ServerError: The engine refused the upgrade with a 5xx status.
        """
        datum = Datum(
            method=method.upper(),
            path=path,
            query=dict(query) if query else None,
            body=body,
            headers={"Connection": "Upgrade", "Upgrade": "tcp", **(headers or {})},
        )
        self.chain.prepare(datum)

        target = datum.path
        params = _encode_query(datum.query)
        if params:
            target = f"{target}?{urlencode(params)}"
        payload = datum.body or b""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        header_lines = {"Host": "localhost", **datum.headers}
        if payload:
            header_lines["Content-Length"] = str(len(payload))
        request_bytes = (
            f"{datum.method} {target} HTTP/1.1\r\n"
            + "".join(f"{key}: {value}\r\n" for key, value in header_lines.items())
            + "\r\n"
        ).encode("utf-8") + payload

        try:
            sock = self._open_socket()
        except OSError as e:
            raise ConnectionFailure(f"Could not open raw socket to {self.config.url}: {e}") from e

        data = b""
        try:
            sock.sendall(request_bytes)
            while b"\r\n\r\n" not in data:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data += chunk
        except OSError as e:
            sock.close()
            raise ConnectionFailure(f"Could not open raw socket to {self.config.url}: {e}") from e

        if b"\r\n\r\n" not in data:
            sock.close()
            raise UnexpectedResponseError("Engine closed the connection before answering the upgrade")

        header_end = data.index(b"\r\n\r\n")
        status_line = data[:header_end].decode("latin-1").split("\r\n", 1)[0]
        parts = status_line.split(" ", 2)
        status = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0
        if status not in (101, 200):
            sock.close()
            raise error_for_status(status, parts[2] if len(parts) > 2 else status_line, details={"path": datum.path})

        logger.debug("socket_hijacked", method=datum.method, path=datum.path, status=status)
        return sock, data[header_end + 4:]

    # ------------------------------------------------------------------
    # Engine-wide endpoints
    # ------------------------------------------------------------------

    def version(self) -> Dict[str, Any]:
        """Engine and API version information."""
        return self.json_request("GET", "/version")

    def info(self) -> Dict[str, Any]:
        """System-wide engine information."""
        return self.json_request("GET", "/info")

    def ping(self) -> bool:
        """True if the engine answers ``/_ping``."""
        try:
            self.get("/_ping")
        except DockerError:
            return False
        return True

    def authenticate(self, credentials: Mapping[str, Any]) -> Dict[str, Any]:
        """Check registry credentials with the engine."""
        return self.json_request("POST", "/auth", body=dict(credentials)) or {}

    def __repr__(self) -> str:
        return f"Connection(url={self.config.url!r}, api_version={self.config.api_version!r})"
