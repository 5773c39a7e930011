"""Containers: lifecycle, inspection, streams and exec.

Nothing is cached beyond :attr:`Container.info`, so every call reflects
the engine's current state.
"""

import socket
import threading
from typing import IO, Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from dockapi.connection import Connection
from dockapi.container.config import ContainerConfig
from dockapi.errors import ConnectionFailure, ContainerError, UnexpectedResponseError
from dockapi.image import Image
from dockapi.logging import get_logger
from dockapi.messages import Frame, Messages, MessagesStack
from dockapi.resource import Resource

logger = get_logger(__name__, component="container")

# Called with ("stdout" | "stderr", text) for every demultiplexed frame.
StreamCallback = Callable[[str, str], None]

READ_SIZE = 4096


class Container(Resource):
    """A handle on one container."""

    resource_base = "/containers"
    error_class = ContainerError

    # ------------------------------------------------------------------
    # Class-level operations
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, connection: Connection, config: Union[ContainerConfig, Mapping[str, Any]]) -> "Container":
        """Create a container from a config document.

        A ``name`` entry is sent as a query parameter, not in the body.
        """
        options = dict(config.to_dict() if isinstance(config, ContainerConfig) else config)
        name = options.pop("name", None)
        query = {"name": name} if name else None
        body = connection.json_request("POST", "/containers/create", query=query, body=options)
        container = cls._from_json(connection, body)
        logger.info("container_created", container_id=container.id, image=options.get("Image"))
        return container

    @classmethod
    def get(cls, connection: Connection, container_id: str, **query: Any) -> "Container":
        handle = cls(connection, {"id": container_id})
        return cls._from_json(connection, connection.json_request("GET", handle.path_for("json"), query=query))

    @classmethod
    def all(cls, connection: Connection, **query: Any) -> List["Container"]:
        """List containers. Pass ``all=True`` to include stopped ones."""
        return cls._list(connection, "/containers/json", query)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def json(self, **query: Any) -> Dict[str, Any]:
        return self.connection.json_request("GET", self.path_for("json"), query=query)

    def refresh(self) -> "Container":
        self.info = dict(self.json())
        return self

    def top(self, **query: Any) -> List[Dict[str, str]]:
        """Running processes, one mapping of column title to value each."""
        body = self.connection.json_request("GET", self.path_for("top"), query=query) or {}
        titles = body.get("Titles") or []
        return [dict(zip(titles, row)) for row in body.get("Processes") or []]

    def changes(self) -> List[Dict[str, Any]]:
        return self.connection.json_request("GET", self.path_for("changes")) or []

    def logs(self, stdout: bool = True, stderr: bool = False, tty: bool = False, **query: Any) -> str:
        """Fetch the container's output as text.

        Frames from both requested streams are joined in arrival order.
        """
        response = self.connection.get(self.path_for("logs"), {"stdout": stdout, "stderr": stderr, **query})
        messages = Messages(tty=tty)
        messages.decipher(response.body or b"")
        messages.finish()
        return "".join(messages.all_messages)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, **options: Any) -> "Container":
        self.connection.json_request("POST", self.path_for("start"), body=options or None)
        logger.info("container_started", container_id=self.id)
        return self

    def stop(self, timeout: Optional[int] = None) -> "Container":
        query = {"t": timeout} if timeout is not None else None
        self.connection.post(self.path_for("stop"), query)
        logger.info("container_stopped", container_id=self.id)
        return self

    def restart(self, timeout: Optional[int] = None) -> "Container":
        query = {"t": timeout} if timeout is not None else None
        self.connection.post(self.path_for("restart"), query)
        return self

    def kill(self, signal: Optional[str] = None) -> "Container":
        query = {"signal": signal} if signal else None
        self.connection.post(self.path_for("kill"), query)
        return self

    def pause(self) -> "Container":
        self.connection.post(self.path_for("pause"))
        return self

    def unpause(self) -> "Container":
        self.connection.post(self.path_for("unpause"))
        return self

    def rename(self, name: str) -> "Container":
        self.connection.post(self.path_for("rename"), {"name": name})
        self.info["Name"] = f"/{name}"
        return self

    def wait(self) -> Dict[str, Any]:
        """Block until the container stops; returns ``{"StatusCode": ...}``.

        The wait is bounded by the connection's configured timeout.
        """
        return self.connection.json_request("POST", self.path_for("wait")) or {}

    def remove(self, force: bool = False, volumes: bool = False) -> None:
        self.connection.delete(self.path_for(), {"force": force, "v": volumes})
        logger.info("container_removed", container_id=self.id)

    delete = remove

    def run(self, cmd: Union[str, List[str]]) -> "Container":
        """Start, wait, commit, then run ``cmd`` in a container of the result.

        Raises:
            UnexpectedResponseError: If this container exits non-zero.
        """
        code = self.start().wait().get("StatusCode")
        if code != 0:
            raise UnexpectedResponseError(f"Command returned status code {code}.", details={"container_id": self.id})
        image = self.commit()
        config = ContainerConfig().image(image.id)
        config.cmd(*([cmd] if isinstance(cmd, str) else cmd))
        return Container.create(self.connection, config).start()

    def commit(self, config: Optional[Mapping[str, Any]] = None, **query: Any) -> Image:
        """Create an image from the container's changes.

        Args:
            config: Container config the image should carry.
            **query: ``repo``, ``tag``, ``comment``, ``author``...
        """
        self.ensure_created()
        query = {"container": self.id[:12], **query}
        body = self.connection.json_request("POST", "/commit", query=query, body=dict(config or {}))
        return Image(self.connection, body or {})

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def export(self, block: Callable[[bytes], None]) -> "Container":
        """Stream the container filesystem as a tar archive into ``block``."""
        self.connection.get(self.path_for("export"), response_block=block)
        return self

    def attach(
        self,
        block: Optional[StreamCallback] = None,
        stdin: Optional[IO[Any]] = None,
        tty: bool = False,
        stream: bool = True,
        logs: bool = False,
        stdout: bool = True,
        stderr: bool = True,
        stack_size: Optional[int] = None,
    ) -> Tuple[List[str], List[str]]:
        """Attach to the container's output and optionally feed its stdin.

        Without ``stdin`` this is a plain streaming request. With ``stdin``
        the connection is hijacked: one worker copies ``stdin`` to the
        socket and half-closes it on EOF while this thread reads output
        until the engine closes its side.

        Args:
            block: Called with ``(stream, text)`` for every frame.
            stdin: Readable file object sent to the container.
            tty: The container has a TTY, so output is not multiplexed.
            stack_size: Keep only the latest this many messages in the
                returned lists.

        Returns:
            ``(stdout_messages, stderr_messages)``.
        """
        query = {"stream": stream, "logs": logs, "stdout": stdout, "stderr": stderr}
        messages = Messages(tty=tty, record=False)
        stack = MessagesStack(stack_size)

        def deliver(frames: List[Frame]) -> None:
            stack.append(frames)
            if block is not None:
                for name, text in frames:
                    block(name, text)

        def handle(chunk: bytes) -> None:
            deliver(messages.decipher(chunk))

        if stdin is None:
            self.connection.post(self.path_for("attach"), query, response_block=handle)
        else:
            query["stdin"] = True
            sock, leftover = self.connection.hijack("POST", self.path_for("attach"), query=query)
            _pump(sock, leftover, stdin, handle)
        deliver(messages.finish())

        return stack.stream("stdout"), stack.stream("stderr")

    def exec(
        self,
        cmd: Union[str, List[str]],
        block: Optional[StreamCallback] = None,
        stdin: Optional[IO[Any]] = None,
        tty: bool = False,
        detach: bool = False,
        user: Optional[str] = None,
    ) -> Tuple[List[str], List[str], Optional[int]]:
        """Run ``cmd`` inside the running container.

        Returns:
            ``(stdout_messages, stderr_messages, exit_code)``. Detached
            execs return empty output and no exit code.
        """
        command = ContainerConfig().cmd(*([cmd] if isinstance(cmd, str) else cmd)).options["Cmd"]
        create_body: Dict[str, Any] = {
            "Cmd": command,
            "AttachStdin": stdin is not None,
            "AttachStdout": not detach,
            "AttachStderr": not detach,
            "Tty": tty,
        }
        if user:
            create_body["User"] = user
        created = self.connection.json_request("POST", self.path_for("exec"), body=create_body) or {}
        exec_id = created.get("Id")
        if not exec_id:
            raise UnexpectedResponseError("Engine did not return an exec id", details={"container_id": self.id})

        start_path = f"/exec/{exec_id}/start"
        start_body = {"Detach": detach, "Tty": tty}
        if detach:
            self.connection.json_request("POST", start_path, body=start_body)
            return [], [], None

        messages = Messages(tty=tty)

        def deliver(frames: List[Frame]) -> None:
            if block is not None:
                for name, text in frames:
                    block(name, text)

        def handle(chunk: bytes) -> None:
            deliver(messages.decipher(chunk))

        if stdin is None:
            self.connection.request(
                "POST",
                start_path,
                body=start_body,
                headers={"Content-Type": "application/json"},
                response_block=handle,
            )
        else:
            sock, leftover = self.connection.hijack(
                "POST", start_path, body=start_body, headers={"Content-Type": "application/json"}
            )
            _pump(sock, leftover, stdin, handle)
        deliver(messages.finish())

        inspected = self.connection.json_request("GET", f"/exec/{exec_id}/json") or {}
        return messages.stdout_messages, messages.stderr_messages, inspected.get("ExitCode")


def _pump(sock: socket.socket, leftover: bytes, stdin: IO[Any], handle: Callable[[bytes], None]) -> None:
    """Copy ``stdin`` into ``sock`` on a worker while reading output here.

    Raises:
        ConnectionFailure: If either direction fails at the socket level.
    """
    errors: List[BaseException] = []

    def copy_stdin() -> None:
        try:
            while True:
                data = stdin.read(READ_SIZE)
                if not data:
                    break
                sock.sendall(data.encode("utf-8") if isinstance(data, str) else data)
        except OSError as e:
            errors.append(e)
        finally:
            try:
                sock.shutdown(socket.SHUT_WR)
            except OSError as e:
                logger.debug("socket_half_close_failed", error=str(e))

    writer = threading.Thread(target=copy_stdin, name="dockapi-stdin", daemon=True)
    writer.start()
    finished = False
    try:
        if leftover:
            handle(leftover)
        while True:
            chunk = sock.recv(READ_SIZE)
            if not chunk:
                break
            handle(chunk)
        finished = True
    except OSError as e:
        raise ConnectionFailure(f"Attached stream failed: {e}") from e
    finally:
        # Closing first unblocks a writer still sending into a dead stream.
        if not finished:
            sock.close()
        writer.join()
        sock.close()

    if errors:
        raise ConnectionFailure(f"Writing to attached stream failed: {errors[0]}") from errors[0]
