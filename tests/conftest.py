"""tests/conftest.py

Pytest configuration and shared fixtures for the bettertransfer test suite.
"""

from __future__ import annotations

# Standard Library
import asyncio
import json
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any

# Third-Party Libraries
import httpx
import pytest

# Local Modules
from bettertransfer.tools import ToolDispatcher

TOOL_BASE_URL = "http://tools.test"


class ScriptedCompletion:
    """Completion engine double that replays canned replies.

    Records a snapshot of the messages passed to every call, since the loop
    keeps appending to the list it hands over.
    """

    def __init__(self, replies: Iterable[str] | Callable[[int], str]) -> None:
        self._replies = replies if callable(replies) else list(replies)
        self.calls: list[list[dict[str, Any]]] = []

    async def complete(self, messages: Sequence[dict[str, Any]]) -> str:
        self.calls.append([dict(message) for message in messages])
        index = len(self.calls) - 1
        if callable(self._replies):
            return self._replies(index)
        return self._replies[index]


class ToolBackend:
    """In-memory stand-in for the tool REST service.

    Attributes:
        requests: Every request the dispatcher sent, in order.
        responses: Path -> (status, JSON body) overrides.
        failures: Paths that raise a transport error instead of answering.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, tuple[int, Any]] = {}
        self.failures: dict[str, Exception] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failures:
            raise self.failures[path]
        status, body = self.responses.get(path, (200, {"path": path, "ok": True}))
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def json_body(self, index: int = 0) -> Any:
        return json.loads(self.requests[index].content)


@pytest.fixture
def tool_backend() -> ToolBackend:
    return ToolBackend()


@pytest.fixture
def tool_dispatcher(tool_backend: ToolBackend) -> Iterator[ToolDispatcher]:
    """Dispatcher whose HTTP client is wired to ``tool_backend``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(tool_backend.handler))
    yield ToolDispatcher(TOOL_BASE_URL, client, timeout=5.0, default_limit=5)
    asyncio.run(client.aclose())


@pytest.fixture
def scripted() -> type[ScriptedCompletion]:
    """The scripted completion engine class, for building per-test doubles."""
    return ScriptedCompletion


@pytest.fixture
def transfer_question() -> list[dict[str, str]]:
    return [{"role": "user", "content": "How do I transfer from De Anza to UC Berkeley?"}]
