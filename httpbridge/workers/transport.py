"""Async HTTP transport.

Drives every registered request over one shared ``httpx.AsyncClient``.  The
client is long-lived and owned by the :class:`Transport`; see
:func:`create_http_client` and :meth:`Transport.aclose` for the lifecycle.

Each request runs as one task: it streams the outbound channel into the
request body, records the response head and pumps the response body into the
inbound channel.  Cancelling the request's token cancels the task at its
current await.  Transport failures are not retried here; they are surfaced
to the caller as :class:`TransportError` carrying httpx's message.

Cookies live only in the :class:`CookieStore`: the client's own jar refuses
every cookie, and event hooks attach and collect cookies on each request and
response, redirect hops included.
"""

from __future__ import annotations

import asyncio
import logging
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import AsyncIterator

import httpx

from httpbridge.core.config import Settings
from httpbridge.core.errors import Cancelled, TransportError
from httpbridge.models.fetch.descriptor import RequestState, ResponseHead
from httpbridge.repositories.cookies.store import CookieStore
from httpbridge.repositories.requests.registry import RequestEntry, RequestRegistry

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError)


def create_http_client(
    settings: Settings,
    cookies: CookieStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the shared AsyncClient, wired to *cookies* when given."""
    event_hooks: dict[str, list] = {"request": [], "response": []}
    if cookies is not None:

        async def attach_cookies(request: httpx.Request) -> None:
            cookies.apply_to(request)

        async def store_cookies(response: httpx.Response) -> None:
            cookies.extract_from(response)

        event_hooks = {"request": [attach_cookies], "response": [store_cookies]}

    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout),
        follow_redirects=settings.http_follow_redirects,
        verify=settings.http_verify_ssl,
        headers={"User-Agent": settings.http_user_agent},
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        event_hooks=event_hooks,
        transport=transport,
    )


class Transport:
    def __init__(self, client: httpx.AsyncClient, registry: RequestRegistry) -> None:
        self._client = client
        self._registry = registry

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def start(self, entry: RequestEntry) -> asyncio.Task:
        """Start driving *entry* and attach the task to it."""
        task = asyncio.create_task(self._drive(entry), name=f"fetch-{entry.handle}")
        task.add_done_callback(lambda t: self._on_driver_done(entry, t))
        entry.attach_driver(task)
        return task

    async def aclose(self) -> None:
        """Close the shared AsyncClient gracefully."""
        if not self._client.is_closed:
            await self._client.aclose()
            logger.info("HTTP client closed.")

    async def _drive(self, entry: RequestEntry) -> None:
        try:
            await self._exchange(entry)
        except asyncio.CancelledError:
            if not entry.token.cancelled:
                raise
            self._registry.finish_entry(entry, RequestState.CANCELLED)
            logger.info("Request %s cancelled.", entry.handle)
        except Cancelled:
            self._registry.finish_entry(entry, RequestState.CANCELLED)
            logger.info("Request %s cancelled.", entry.handle)
        except _TRANSPORT_ERRORS as exc:
            if entry.token.cancelled:
                self._registry.finish_entry(entry, RequestState.CANCELLED)
                return
            logger.warning("Request %s failed: %s", entry.handle, exc)
            self._fail(entry, TransportError(str(exc) or type(exc).__name__))
        except Exception as exc:
            logger.exception("Unexpected error driving request %s", entry.handle)
            self._fail(entry, TransportError(f"{type(exc).__name__}: {exc}"))

    async def _exchange(self, entry: RequestEntry) -> None:
        descriptor = entry.descriptor
        content = None
        if descriptor.has_body:
            content = self._outbound_body(entry)
        else:
            entry.advance({RequestState.CREATED}, RequestState.AWAITING_RESPONSE)

        request = self._client.build_request(
            descriptor.method,
            str(descriptor.url),
            headers=descriptor.headers,
            content=content,
        )
        response = await self._client.send(request, stream=True)
        try:
            entry.response = ResponseHead.from_response(response)
            entry.advance(
                {
                    RequestState.CREATED,
                    RequestState.SENDING_BODY,
                    RequestState.AWAITING_RESPONSE,
                },
                RequestState.READING_BODY,
            )
            logger.info(
                "%s %s -> %d (%s)",
                descriptor.method,
                descriptor.url,
                response.status_code,
                entry.handle,
            )
            async for chunk in response.aiter_bytes():
                await entry.inbound.put(chunk, entry.token)
            entry.inbound.close()
        finally:
            await response.aclose()

    async def _outbound_body(self, entry: RequestEntry) -> AsyncIterator[bytes]:
        while True:
            chunk = await entry.outbound.get(entry.token)
            if not chunk:
                return
            yield chunk

    def _on_driver_done(self, entry: RequestEntry, task: asyncio.Task) -> None:
        # A task cancelled before it started, or by something other than the
        # request's token, never reached the handlers in ``_drive``.
        if not task.cancelled():
            return
        if entry.token.cancelled:
            self._registry.finish_entry(entry, RequestState.CANCELLED)
        else:
            self._fail(entry, TransportError("request was aborted"))

    def _fail(self, entry: RequestEntry, error: TransportError) -> None:
        entry.error = error
        if self._registry.finish_entry(entry, RequestState.FAILED) is RequestState.FAILED:
            entry.outbound.fail(error)
            entry.inbound.fail(error)
