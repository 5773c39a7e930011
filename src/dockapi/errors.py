"""Exception hierarchy for dockapi.

Every error raised by the library derives from :class:`DockerError`, so
callers can catch all library failures with a single ``except`` clause while
still distinguishing:

- malformed caller input (:class:`ArgumentError`)
- resources used in the wrong lifecycle state (:class:`StateError`)
- responses that could not be understood (:class:`UnexpectedResponseError`)
- HTTP failures bucketed by status class (:class:`ClientError`,
  :class:`ServerError`) and transport failures (:class:`ConnectionFailure`)
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class DockerError(Exception):
    """Base exception for all dockapi errors."""

    def __init__(
        self,
        message: str,
        code: str = "DOCKER_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ArgumentError(DockerError):
    """Invalid arguments were passed to a method."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="ARGUMENT_ERROR", details=details)


class StateError(DockerError):
    """A resource is not in the state an operation requires."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="STATE_ERROR", details=details)


class ContainerError(StateError):
    """A container operation was attempted in the wrong lifecycle state."""


class ImageError(StateError):
    """An image operation was attempted in the wrong lifecycle state."""


class UnexpectedResponseError(DockerError):
    """The engine answered with something that could not be interpreted."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="UNEXPECTED_RESPONSE", details=details)


# ============================================================================
# HTTP and transport errors
# ============================================================================


class HTTPStatusError(DockerError):
    """Base for errors carrying an HTTP status code."""

    def __init__(
        self,
        message: str,
        status: int,
        code: str = "HTTP_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["status"] = status
        super().__init__(message, code=code, details=details)
        self.status = status


class ClientError(HTTPStatusError):
    """The engine rejected the request (4xx)."""

    def __init__(self, message: str, status: int = 400, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status, code="CLIENT_ERROR", details=details)


class UnauthorizedError(ClientError):
    """Authentication with the engine or registry failed (401)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status=401, details=details)


class NotFoundError(ClientError):
    """The requested resource does not exist (404)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status=404, details=details)


class ConflictError(ClientError):
    """The request conflicts with the resource's current state (409)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status=409, details=details)


class ServerError(HTTPStatusError):
    """The engine failed to process the request (5xx)."""

    def __init__(self, message: str, status: int = 500, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status, code="SERVER_ERROR", details=details)


class ConnectionFailure(DockerError):
    """The engine could not be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONNECTION_ERROR", details=details)


class TimeoutError(ConnectionFailure):
    """A configured transport timeout elapsed."""

    def __init__(self, message: str, timeout: Optional[float] = None, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        if timeout is not None:
            details["timeout"] = timeout
        super().__init__(message, details=details)
        self.code = "TIMEOUT_ERROR"


_STATUS_ERRORS = {
    401: UnauthorizedError,
    404: NotFoundError,
    409: ConflictError,
}


def error_for_status(status: int, message: str, details: Optional[Dict[str, Any]] = None) -> DockerError:
    """Build the error that corresponds to an unexpected HTTP status.

    Args:
        status: HTTP status code returned by the engine.
        message: Error message (usually the engine's own message).
        details: Additional error context.

    Returns:
        An exception instance; the caller raises it.
    """
    if status in _STATUS_ERRORS:
        return _STATUS_ERRORS[status](message, details=details)
    if 400 <= status < 500:
        return ClientError(message, status=status, details=details)
    if status >= 500:
        return ServerError(message, status=status, details=details)
    details = dict(details or {})
    details["status"] = status
    return UnexpectedResponseError(message, details=details)
