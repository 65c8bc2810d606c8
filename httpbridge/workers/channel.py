"""Bounded byte buffer shared by a producer and a consumer.

A :class:`ByteChannel` carries one direction of one request body.  It never
holds more than ``capacity`` unread bytes: ``put`` copies as much as fits and
suspends until the consumer drains the rest, ``get`` suspends until at least
one byte, the end of the stream, a failure or a cancellation is available.

Channels are confined to the event loop that drives the request; no await
happens between a state check and the mutation that depends on it.
"""

from __future__ import annotations

import asyncio

from httpbridge.core.cancel import CancelToken
from httpbridge.core.errors import Cancelled, InvalidState


class ByteChannel:
    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._buffer = bytearray()
        self._closed = False
        self._error: BaseException | None = None
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._buffer)

    def _check(self, token: CancelToken) -> None:
        if token.cancelled:
            raise Cancelled("request was cancelled")
        if self._error is not None:
            raise self._error.with_traceback(None)

    async def put(self, data: bytes, token: CancelToken) -> None:
        """Append *data*, suspending while the buffer is full."""
        view = memoryview(data)
        while view:
            self._check(token)
            if self._closed:
                raise InvalidState("body stream is already closed")
            free = self._capacity - len(self._buffer)
            if free <= 0:
                self._writable.clear()
                await self._writable.wait()
                continue
            self._buffer += view[:free]
            view = view[free:]
            self._readable.set()

    async def get(self, token: CancelToken, limit: int | None = None) -> bytes:
        """Return up to *limit* unread bytes, or ``b""`` at end of stream."""
        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive")
        while True:
            self._check(token)
            if self._buffer:
                size = len(self._buffer) if limit is None else min(limit, len(self._buffer))
                chunk = bytes(self._buffer[:size])
                del self._buffer[:size]
                self._writable.set()
                return chunk
            if self._closed:
                return b""
            self._readable.clear()
            await self._readable.wait()

    def close(self) -> None:
        """Mark the end of the stream.  Buffered bytes stay readable."""
        self._closed = True
        self._readable.set()

    def fail(self, exc: BaseException) -> None:
        """Make every pending and later ``put``/``get`` raise *exc*."""
        self._error = exc
        self.wake()

    def wake(self) -> None:
        self._readable.set()
        self._writable.set()
