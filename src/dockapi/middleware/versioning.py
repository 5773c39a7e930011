"""Path versioning and client identification."""

from typing import Optional

from dockapi.middleware.base import DEFAULT_EXPECTS, Datum, Stage


def default_user_agent() -> str:
    from dockapi import __version__

    return f"dockapi/{__version__}"


class VersioningStage(Stage):
    """Prefix request paths with the API version and identify the client.

    Placed last in the chain so earlier stages only ever see the
    unversioned path and the caller's own headers.
    """

    def __init__(self, api_version: str, user_agent: Optional[str] = None):
        self.api_version = api_version
        self.user_agent = user_agent or default_user_agent()

    def request_call(self, datum: Datum) -> None:
        path = datum.path if datum.path.startswith("/") else f"/{datum.path}"
        datum.path = f"/v{self.api_version}{path}"
        datum.headers = {**datum.headers, "User-Agent": self.user_agent}
        if datum.expects is None:
            datum.expects = DEFAULT_EXPECTS

    def __repr__(self) -> str:
        return f"VersioningStage(api_version={self.api_version!r})"
