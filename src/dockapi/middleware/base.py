"""Request envelope and the middleware chain that drives it.

A :class:`Datum` describes one in-flight request. Each :class:`Stage` gets
to rewrite it before it reaches the transport (``request_call``) and to
rewrite the :class:`Response` once the transport returns
(``response_call``). The :class:`MiddlewareChain` runs stages onion-style:
request phases in declared order, response phases in reverse order.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Collection, Dict, List, Mapping, Optional, Sequence

JSON_CONTENT_TYPE = "application/json"
DEFAULT_EXPECTS = range(200, 205)

ResponseBlock = Callable[[bytes], None]


@dataclass
class Response:
    """Response envelope returned by the transport."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    # Set once a stage has decoded the body so it is never decoded twice.
    decoded: bool = False


@dataclass
class Datum:
    """Mutable envelope around a single request."""

    method: str
    path: str
    query: Optional[Dict[str, Any]] = None
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    expects: Optional[Collection[int]] = None
    response_block: Optional[ResponseBlock] = None
    response: Optional[Response] = None


def header_value(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def is_json(headers: Optional[Mapping[str, str]]) -> bool:
    """True if the ``Content-Type`` header names JSON.

    Media type parameters such as ``; charset=utf-8`` are ignored.
    """
    content_type = header_value(headers, "Content-Type")
    if content_type is None:
        return False
    return content_type.split(";", 1)[0].strip().lower() == JSON_CONTENT_TYPE


class Stage:
    """One unit of the middleware chain.

    Subclasses override either or both phases. Each phase mutates the datum
    in place; raising aborts the remainder of the chain.
    """

    def request_call(self, datum: Datum) -> None:
        """Rewrite the outgoing request."""

    def response_call(self, datum: Datum) -> None:
        """Rewrite ``datum.response`` after the transport returned."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


Transport = Callable[[Datum], Response]


class MiddlewareChain:
    """Executes stages around a transport call.

    Example:
        >>> chain = MiddlewareChain([JsonStage(), VersioningStage("1.41")])
        >>> datum = chain.execute(Datum("GET", "/info"), transport)
    """

    def __init__(self, stages: Optional[Sequence[Stage]] = None):
        """Initialize chain.

        Args:
            stages: Stages in declared order. The first stage's request phase
                runs first and its response phase runs last.
        """
        self._stages: List[Stage] = list(stages or [])

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    def prepare(self, datum: Datum) -> Datum:
        """Run only the request phases.

        Used for requests that bypass the transport, such as hijacked
        attach sockets, but still need versioned paths and headers.
        """
        for stage in self._stages:
            stage.request_call(datum)
        return datum

    def execute(self, datum: Datum, transport: Transport) -> Datum:
        """Run ``datum`` through every stage and the transport.

        Args:
            datum: The request envelope; mutated in place.
            transport: Callable that performs the request.

        Returns:
            The same datum, with ``response`` populated.
        """
        self.prepare(datum)

        datum.response = transport(datum)

        for stage in reversed(self._stages):
            stage.response_call(datum)
        return datum

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"MiddlewareChain({self._stages!r})"
