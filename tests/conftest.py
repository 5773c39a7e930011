"""Pytest configuration and fixtures for dockapi tests."""

import json
import os
from typing import Any, Callable, Dict, Generator, List, Optional

import httpx
import pytest
from prometheus_client import REGISTRY

from dockapi.config import ClientConfig
from dockapi.connection import Connection


@pytest.fixture
def isolated_metrics_collector():
    """Provide a metrics collector with freshly registered metrics.

    The collector is a singleton, so the instance is reset and every
    ``dockapi_`` collector is unregistered before a new one is created.
    """
    from dockapi.metrics import MetricsCollector

    for collector in list(REGISTRY._collector_to_names.keys()):
        names = REGISTRY._collector_to_names.get(collector, set())
        if any(name.startswith("dockapi_") for name in names):
            REGISTRY.unregister(collector)

    MetricsCollector._instance = None
    yield MetricsCollector()


class RecordingEngine:
    """Fake engine behind an ``httpx.MockTransport``.

    Routes are ``(METHOD, path)`` pairs mapped to a response body or to a
    callable taking the request. A fresh response is built for every
    request, and every request is recorded.
    """

    def __init__(self):
        self.routes: Dict[tuple, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, path: str, response: Any = None, status: int = 200, **kwargs: Any) -> None:
        if callable(response):
            handler = response
        elif isinstance(response, (bytes, str)):
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, content=response, **kwargs)
        else:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, json=response, **kwargs)
        self.routes[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {request.url.path}"})
        return handler(request)

    def paths(self, method: Optional[str] = None) -> List[str]:
        """Request paths in order, optionally only for ``method``."""
        return [r.url.path for r in self.requests if method is None or r.method == method]

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content)


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(url="tcp://engine.test:2375", api_version="1.41")


@pytest.fixture
def connection(engine: RecordingEngine, client_config: ClientConfig) -> Generator[Connection, None, None]:
    conn = Connection(client_config, transport=httpx.MockTransport(engine))
    yield conn
    conn.close()


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["DOCKAPI_ENV"] = "test"

    config.addinivalue_line("markers", "unit: unit tests that don't require an engine")


def pytest_collection_modifyitems(config, items):
    """Mark tests under tests/unit."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
