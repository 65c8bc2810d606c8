"""Incremental transport of request and response bodies.

``send`` feeds the request's outbound channel, which the transport drains
into the httpx request stream.  ``read`` drains the inbound channel the
transport fills from the response stream.  Both channels are bounded, so a
slow reader pauses the network side instead of growing memory.
"""

from __future__ import annotations

import logging

from httpbridge.core.errors import Cancelled, InvalidState, TransportError
from httpbridge.models.fetch.descriptor import RequestState
from httpbridge.repositories.requests.registry import RequestEntry, RequestRegistry

logger = logging.getLogger(__name__)

_SENDABLE = {RequestState.CREATED, RequestState.SENDING_BODY}
_DONE_SENDING = {RequestState.COMPLETED, RequestState.FAILED}


class BodyStreamer:
    def __init__(self, registry: RequestRegistry) -> None:
        self._registry = registry

    async def send(self, handle: str, chunk: bytes) -> None:
        """Append *chunk* to the request body, in call order."""
        entry = self._registry.lookup(handle)
        async with entry.send_lock:
            if entry.state in _DONE_SENDING:
                raise InvalidState(f"Request {handle} has already finished")
            self._check_finished(entry)
            if not entry.descriptor.has_body:
                raise InvalidState(f"Request {handle} has no body to send")
            if not entry.advance(_SENDABLE, RequestState.SENDING_BODY):
                raise InvalidState(f"Request {handle} already finished sending its body")
            try:
                await entry.outbound.put(chunk, entry.token)
            except Cancelled:
                self._registry.finish_entry(entry, RequestState.CANCELLED)
                raise

    async def read(self, handle: str, limit: int | None = None) -> bytes:
        """Return the next slice of the response body.

        Suspends only until some bytes or the end of the body are available.
        ``b""`` marks the end of the body and is returned exactly once.
        """
        entry = self._registry.lookup(handle)
        async with entry.read_lock:
            self._check_finished(entry)

            # The first read ends the outbound body.
            if entry.advance(_SENDABLE, RequestState.AWAITING_RESPONSE):
                entry.outbound.close()

            try:
                chunk = await entry.inbound.get(entry.token, limit)
            except Cancelled:
                self._registry.finish_entry(entry, RequestState.CANCELLED)
                raise

            if chunk:
                return chunk
            final = self._registry.finish_entry(entry, RequestState.COMPLETED)
            if final is RequestState.CANCELLED:
                raise Cancelled(f"Request {handle} was cancelled")
            if final is RequestState.FAILED and entry.error is not None:
                raise _failure(entry)
            logger.debug("Request %s body fully read.", handle)
            return b""

    def _check_finished(self, entry: RequestEntry) -> None:
        if entry.state is RequestState.CANCELLED:
            raise Cancelled(f"Request {entry.handle} was cancelled")
        if entry.state is RequestState.FAILED:
            if entry.error is not None:
                raise _failure(entry)
            raise InvalidState(f"Request {entry.handle} failed")
        if entry.state is RequestState.COMPLETED:
            raise InvalidState(f"Request {entry.handle} is already complete")
        if entry.token.cancelled:
            self._registry.finish_entry(entry, RequestState.CANCELLED)
            raise Cancelled(f"Request {entry.handle} was cancelled")


def _failure(entry: RequestEntry) -> TransportError:
    # Fresh per call so repeated reads do not grow one shared traceback.
    exc = TransportError(str(entry.error))
    exc.__cause__ = entry.error
    return exc
