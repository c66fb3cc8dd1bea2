"""HTTP transport for stage requests.

Issues the POST for a stage, classifies non-success responses into typed
errors without assuming the body is parseable, and hands streamed bodies
back as a ``StreamHandle`` bound to the stage's cancellation token.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from lotsawa.core.config import ServerConfig
from lotsawa.core.errors import (
    AbortedError,
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    ProtocolError,
    ServiceUnavailableError,
    TransportError,
)
from lotsawa.core.models import STAGE_INFO, Stage
from lotsawa.stream.cancellation import CancellationToken


def _body_message(body: bytes) -> str | None:
    """Extract a server-supplied error message from a JSON body, if any."""
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    message = data.get("error") or data.get("message")
    return message if isinstance(message, str) and message.strip() else None


def classify_failure(stage: Stage, status_code: int, body: bytes = b"") -> TransportError:
    """Map a non-2xx response to a typed error with a user-facing message."""
    info = STAGE_INFO[stage]
    if status_code == 401:
        return AuthenticationError("Authentication failed. Please log in again.", status_code)
    if status_code == 403:
        return AuthorizationError(
            f"Access denied. You don't have permission to use {info.service} services.",
            status_code,
        )
    if status_code == 400:
        return BadRequestError(_body_message(body) or info.invalid_message, status_code)
    if status_code >= 500:
        return ServiceUnavailableError(
            f"{info.service.capitalize()} service is temporarily unavailable. "
            "Please try again later.",
            status_code,
        )
    return TransportError(
        _body_message(body) or f"{info.operation} failed with status {status_code}",
        status_code,
    )


class StreamHandle:
    """A live streamed response.

    Closing the handle releases the connection; it is safe to close twice.
    """

    def __init__(self, response: httpx.Response, token: CancellationToken | None = None) -> None:
        self._response = response
        self._token = token
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._token is not None and self._token.cancelled

    def aiter_chunks(self) -> AsyncIterator[bytes]:
        """Iterate over body chunks as they arrive."""
        return self._response.aiter_bytes()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._response.aclose()


class StreamTransport:
    """Posts stage requests to the backend.

    Args:
        config: Server address, credentials, and endpoint paths.
        client: Optional pre-configured client (e.g. with a mock transport).
            When omitted, one is created on first use and closed by ``aclose``.
    """

    def __init__(self, config: ServerConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> StreamTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # No read timeout: a stream stays alive until it ends or is stopped
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=self.config.connect_timeout)
            )
        return self._client

    def url_for(self, stage: Stage) -> str:
        path = getattr(self.config.endpoints, stage.value)
        return self.config.base_url.rstrip("/") + "/" + path.lstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_token}",
            "Content-Type": "application/json",
        }

    async def _send(self, stage: Stage, payload: dict[str, Any]) -> httpx.Response:
        client = self._get_client()
        request = client.build_request(
            "POST", self.url_for(stage), json=payload, headers=self._headers()
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as e:
            info = STAGE_INFO[stage]
            raise ServiceUnavailableError(
                f"{info.service.capitalize()} service could not be reached: {e}"
            ) from e

        if not response.is_success:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            raise classify_failure(stage, response.status_code, body)
        return response

    async def start_stream(
        self,
        stage: Stage,
        payload: dict[str, Any],
        token: CancellationToken | None = None,
    ) -> StreamHandle:
        """Start a streamed stage request.

        Raises:
            TransportError: On a non-2xx status (see ``classify_failure``).
            AbortedError: If the token was signalled while the request was pending.
        """
        response = await self._send(stage, payload)
        handle = StreamHandle(response, token)
        if handle.cancelled:
            await handle.aclose()
            raise AbortedError()
        return handle

    async def post_json(
        self,
        stage: Stage,
        payload: dict[str, Any],
        token: CancellationToken | None = None,
    ) -> Any:
        """Issue a non-streamed stage request and return the decoded JSON body."""
        response = await self._send(stage, payload)
        try:
            body = await response.aread()
        finally:
            await response.aclose()
        if token is not None and token.cancelled:
            raise AbortedError()
        try:
            return json.loads(body)
        except ValueError as e:
            raise ProtocolError(
                f"{STAGE_INFO[stage].label} returned a response that is not valid JSON"
            ) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
