"""Stage request runners: validate, send, and consume as one cancellable unit."""

from __future__ import annotations

from typing import Any, Callable

import anyio

from lotsawa.core.errors import AbortedError, LotsawaError, ValidationError
from lotsawa.core.events import EventCallback
from lotsawa.core.models import Stage
from lotsawa.stream.cancellation import CancellationToken
from lotsawa.stream.parser import consume_stream
from lotsawa.stream.transport import StreamTransport
from lotsawa.stream.validation import validate_params

ErrorCallback = Callable[[LotsawaError], None]


async def stream_stage(
    transport: StreamTransport,
    stage: Stage,
    payload: dict[str, Any],
    on_event: EventCallback,
    on_complete: Callable[[], None] | None = None,
    on_error: ErrorCallback | None = None,
    token: CancellationToken | None = None,
) -> None:
    """Run a streamed stage request to its end.

    Exactly one of ``on_complete`` or ``on_error`` is called, unless the
    token is signalled, in which case neither is. Waiting for the response
    headers and for each chunk are both interrupted by the token.
    """
    try:
        validate_params(stage, payload)
    except ValidationError as e:
        if on_error is not None:
            on_error(e)
        return

    token = token or CancellationToken()
    with anyio.CancelScope() as scope:
        token.add_callback(scope.cancel)
        try:
            try:
                handle = await transport.start_stream(stage, payload, token)
            except AbortedError:
                return
            except LotsawaError as e:
                if not token.cancelled and on_error is not None:
                    on_error(e)
                return
            await consume_stream(handle, on_event, on_complete, on_error, token, stage)
        finally:
            token.remove_callback(scope.cancel)


async def request_stage(
    transport: StreamTransport,
    stage: Stage,
    payload: dict[str, Any],
    on_error: ErrorCallback | None = None,
    token: CancellationToken | None = None,
) -> Any | None:
    """Run a non-streamed stage request and return its decoded body.

    Returns None after reporting a failure to ``on_error``, or silently
    when the token is signalled.
    """
    try:
        validate_params(stage, payload)
    except ValidationError as e:
        if on_error is not None:
            on_error(e)
        return None

    token = token or CancellationToken()
    with anyio.CancelScope() as scope:
        token.add_callback(scope.cancel)
        try:
            return await transport.post_json(stage, payload, token)
        except AbortedError:
            return None
        except LotsawaError as e:
            if not token.cancelled and on_error is not None:
                on_error(e)
            return None
        finally:
            token.remove_callback(scope.cancel)
    return None
