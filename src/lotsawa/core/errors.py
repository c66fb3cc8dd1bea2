"""Error taxonomy for the streaming workflow client.

Every error carries a user-facing message. Transport errors also carry the
HTTP status code that produced them, when there was one.
"""

from __future__ import annotations

from typing import Any


class LotsawaError(Exception):
    """Base class for all workflow errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LotsawaError):
    """Request parameters rejected locally, before any network call."""


class TransportError(LotsawaError):
    """The server answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(TransportError):
    """Missing or expired credentials (401, or an auth failure in the stream)."""


class AuthorizationError(TransportError):
    """Credentials valid but not permitted to use the service (403)."""


class BadRequestError(TransportError):
    """Server rejected the request parameters (400)."""


class ServiceUnavailableError(TransportError):
    """Server-side failure (5xx) or the service could not be reached."""


class ProtocolError(LotsawaError):
    """A stream record could not be decoded. Recovered by skipping the record."""


class StreamError(LotsawaError):
    """The server emitted an ``error`` event in the stream."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


class AbortedError(LotsawaError):
    """The stage was stopped by the caller. Never shown to the user."""

    def __init__(self, message: str = "Request aborted") -> None:
        super().__init__(message)
