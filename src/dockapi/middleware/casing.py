"""Key casing stage layered on top of the JSON stage."""

from typing import Mapping, Optional

from dockapi.casing import camelize_keys, snakeify_keys
from dockapi.middleware.base import Datum, Stage, is_json
from dockapi.middleware.json import JsonStage


class CasingStage(Stage):
    """Camelize outgoing keys and snake-case incoming keys.

    Keys are camelized before the wrapped codec serializes the body, and
    snake-cased only after it has parsed the response, so the transform
    always sees structured mappings. Only the top level of the query and
    body mappings is converted.
    """

    def __init__(self, codec: Optional[JsonStage] = None):
        self.codec = codec or JsonStage()

    def request_call(self, datum: Datum) -> None:
        if is_json(datum.headers):
            if isinstance(datum.query, Mapping):
                datum.query = camelize_keys(datum.query)
            if isinstance(datum.body, Mapping):
                datum.body = camelize_keys(datum.body)
        self.codec.request_call(datum)

    def response_call(self, datum: Datum) -> None:
        self.codec.response_call(datum)
        response = datum.response
        if response is not None and is_json(response.headers) and isinstance(response.body, Mapping):
            response.body = snakeify_keys(response.body)

    def __repr__(self) -> str:
        return f"CasingStage(codec={self.codec!r})"
