"""Engine event stream."""

from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, Field

from dockapi.connection import Connection
from dockapi.logging import get_logger
from dockapi.util import JSONLineReader

logger = get_logger(__name__, component="event")


class Actor(BaseModel):
    """The object an event is about."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    id: str = Field(default="", alias="ID")
    attributes: Dict[str, str] = Field(default_factory=dict, alias="Attributes")


class Event(BaseModel):
    """One engine event.

    Engines since API 1.22 send ``Type``/``Action``/``Actor``; older ones
    only ``status``/``id``/``from``. Both shapes are accepted.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    type: Optional[str] = Field(default=None, alias="Type")
    action: Optional[str] = Field(default=None, alias="Action")
    actor: Optional[Actor] = Field(default=None, alias="Actor")
    scope: Optional[str] = None
    status: Optional[str] = None
    id: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    time: Optional[int] = None
    time_nano: Optional[int] = Field(default=None, alias="timeNano")

    def __str__(self) -> str:
        if self.type is None:
            return f"Event {{ {self.time} {self.status} {self.id} (from={self.from_}) }}"
        actor = self.actor or Actor()
        attributes = ", ".join(f"{key}={value}" for key, value in sorted(actor.attributes.items()))
        return f"Event {{ {self.time_nano} {self.type} {self.action} {actor.id} ({attributes}) }}"


EventCallback = Callable[[Event], None]


def stream(
    connection: Connection,
    callback: EventCallback,
    filters: Optional[Mapping[str, Any]] = None,
    **query: Any,
) -> int:
    """Call ``callback`` for every event until the engine ends the stream.

    Args:
        connection: Engine connection.
        callback: Receives one :class:`Event` per engine event, in order.
        filters: Engine event filters, e.g. ``{"type": ["container"]}``.

    Returns:
        The number of events delivered.
    """
    if filters:
        query["filters"] = dict(filters)
    reader = JSONLineReader(lambda doc: callback(Event.model_validate(doc)))
    connection.get("/events", query, response_block=reader)
    reader.flush()
    logger.debug("event_stream_closed", events=reader.count)
    return reader.count


def since(
    connection: Connection,
    since: Union[int, str],
    callback: EventCallback,
    until: Optional[Union[int, str]] = None,
    filters: Optional[Mapping[str, Any]] = None,
) -> int:
    """Replay events from ``since``; stops at ``until`` when given."""
    query: Dict[str, Any] = {"since": since}
    if until is not None:
        query["until"] = until
    return stream(connection, callback, filters=filters, **query)
