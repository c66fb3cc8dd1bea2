"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable

import anyio
import httpx
import pytest

from lotsawa.core.config import ServerConfig, WorkflowConfig
from lotsawa.core.orchestrator import SessionContext, StageOrchestrator
from lotsawa.stream.transport import StreamTransport


def encode_records(*records: dict) -> bytes:
    """Encode records as ``data:``-prefixed lines, the way the backend streams them."""
    return "".join(f"data: {json.dumps(record)}\n" for record in records).encode()


class FakeBackend:
    """Serves canned responses per path and records every request."""

    encode = staticmethod(encode_records)

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: dict[str, list[Callable[[], httpx.Response]]] = {}

    def _add(self, path: str, factory: Callable[[], httpx.Response]) -> None:
        self._responses.setdefault(path, []).append(factory)

    def stream(
        self, path: str, *chunks: bytes, status: int = 200, hang: bool = False
    ) -> None:
        """Queue a streamed response delivered in the given chunks.

        With ``hang=True`` the body never ends after the last chunk.
        """

        async def body() -> AsyncIterator[bytes]:
            for chunk in chunks:
                yield chunk
            if hang:
                await anyio.sleep_forever()

        self._add(path, lambda: httpx.Response(status, content=body()))

    def json(self, path: str, body: object, status: int = 200) -> None:
        self._add(path, lambda: httpx.Response(status, json=body))

    def text(self, path: str, body: str, status: int) -> None:
        self._add(path, lambda: httpx.Response(status, text=body))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._responses.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"error": f"no route for {request.url.path}"})
        # The last queued response repeats once the others are used up
        factory = queue.pop(0) if len(queue) > 1 else queue[0]
        return factory()

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(base_url="http://backend.test", api_token="secret-token")


@pytest.fixture
def transport(backend: FakeBackend, server_config: ServerConfig) -> StreamTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
    return StreamTransport(server_config, client=client)


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(document_id="doc-1")


@pytest.fixture
def orchestrator(session: SessionContext, transport: StreamTransport) -> StageOrchestrator:
    workflow = WorkflowConfig(target_language="english", model_name="claude", batch_size=2)
    return StageOrchestrator(session, transport, workflow)
