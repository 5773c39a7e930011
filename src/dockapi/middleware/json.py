"""JSON encoding of request bodies and decoding of response bodies."""

import json
from typing import Mapping

from dockapi.errors import UnexpectedResponseError
from dockapi.logging import get_logger
from dockapi.middleware.base import Datum, Stage, is_json
from dockapi.util import parse_json

logger = get_logger(__name__, component="middleware")


class JsonStage(Stage):
    """Serialize mapping bodies on the way out, parse JSON on the way in.

    Both directions only apply when the relevant ``Content-Type`` is
    ``application/json``. A response body that fails to parse is left as it
    was unless the stage is ``strict``, in which case the
    :class:`~dockapi.errors.UnexpectedResponseError` propagates.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def request_call(self, datum: Datum) -> None:
        if is_json(datum.headers) and isinstance(datum.body, Mapping):
            datum.body = json.dumps(datum.body, separators=(",", ":"))

    def response_call(self, datum: Datum) -> None:
        response = datum.response
        if response is None or response.decoded or not is_json(response.headers):
            return
        try:
            response.body = parse_json(response.body)
        except UnexpectedResponseError:
            if self.strict:
                raise
            logger.debug("response_body_not_json", path=datum.path, status=response.status)
            return
        response.decoded = True

    def __repr__(self) -> str:
        return f"JsonStage(strict={self.strict})"
