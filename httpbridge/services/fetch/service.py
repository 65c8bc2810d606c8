from __future__ import annotations

from httpbridge.models.fetch.descriptor import RequestDescriptor, ResponseHead
from httpbridge.repositories.requests.registry import RequestRegistry
from httpbridge.services.fetch.scope import ScopeValidator
from httpbridge.workers.streamer import BodyStreamer
from httpbridge.workers.transport import Transport


class FetchService:
    """The four request lifecycle operations offered to callers.

    Each operation is safe to call concurrently with any other, on the same
    or a different handle.  Errors from the registry, the streamer and the
    transport are propagated unchanged.
    """

    def __init__(
        self,
        registry: RequestRegistry,
        streamer: BodyStreamer,
        transport: Transport,
        scope: ScopeValidator,
    ) -> None:
        self._registry = registry
        self._streamer = streamer
        self._transport = transport
        self._scope = scope

    async def fetch(self, descriptor: RequestDescriptor) -> str:
        """Validate *descriptor*, register the request and start it.

        Raises:
            ScopeViolation: the descriptor is outside the allowed scope; no
                handle is allocated.
        """
        self._scope.validate(descriptor)
        handle = self._registry.open(descriptor)
        self._transport.start(self._registry.lookup(handle))
        return handle

    async def fetch_send(self, handle: str, chunk: bytes) -> None:
        """Append *chunk* to the request body of *handle*."""
        await self._streamer.send(handle, chunk)

    async def fetch_read_body(self, handle: str, limit: int | None = None) -> bytes:
        """Return the next response body chunk, ``b""`` at the end."""
        return await self._streamer.read(handle, limit)

    async def fetch_cancel(self, handle: str) -> None:
        self._registry.cancel(handle)

    def response_head(self, handle: str) -> ResponseHead | None:
        """Status and headers of the response, once they have arrived."""
        return self._registry.lookup(handle).response
