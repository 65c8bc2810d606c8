from __future__ import annotations

import asyncio
import logging

import httpx

from httpbridge.core.config import Settings
from httpbridge.repositories.cookies.store import CookieStore
from httpbridge.repositories.requests.registry import RequestRegistry
from httpbridge.services.fetch.scope import ScopeValidator, UrlPatternScope
from httpbridge.services.fetch.service import FetchService
from httpbridge.workers.streamer import BodyStreamer
from httpbridge.workers.transport import Transport, create_http_client

logger = logging.getLogger(__name__)


class BridgeContext:
    """Everything the fetch operations share, built once at startup.

    The cookie store is optional: with ``cookies_enabled`` off the context is
    composed without it and requests carry no persisted cookies.

    Lifecycle::

        ctx = BridgeContext.create(settings)   # once at startup
        ...
        await ctx.close()                      # once at shutdown
    """

    def __init__(
        self,
        settings: Settings,
        registry: RequestRegistry,
        transport: Transport,
        scope: ScopeValidator,
        cookies: CookieStore | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.transport = transport
        self.cookies = cookies
        self.streamer = BodyStreamer(registry)
        self.service = FetchService(registry, self.streamer, transport, scope)
        self._closed = False

    @classmethod
    def create(
        cls,
        settings: Settings,
        scope: ScopeValidator | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> BridgeContext:
        """Load the cookie store (if enabled) and wire the components."""
        cookies = None
        if settings.cookies_enabled:
            cookies = CookieStore.load(
                settings.cookie_path, save_attempts=settings.cookie_save_attempts
            )
        registry = RequestRegistry(
            buffer_size=settings.stream_buffer_size,
            grace_seconds=settings.reap_grace_seconds,
        )
        client = create_http_client(settings, cookies, transport=http_transport)
        if scope is None:
            scope = UrlPatternScope(settings.allowed_urls, settings.denied_urls)
        return cls(settings, registry, Transport(client, registry), scope, cookies)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Cancel live requests, save cookies once and close the client."""
        if self._closed:
            return
        self._closed = True

        entries = self.registry.cancel_all()
        drivers = [e.driver for e in entries if e.driver is not None]
        if drivers:
            logger.info("Cancelling %d in-flight requests.", len(drivers))
            await asyncio.gather(*drivers, return_exceptions=True)

        if self.cookies is not None:
            await asyncio.to_thread(self.cookies.save)
        await self.transport.aclose()
