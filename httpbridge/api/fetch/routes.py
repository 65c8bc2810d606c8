from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from httpbridge.core.errors import BridgeError
from httpbridge.models.common import AckResponse, ErrorResponse
from httpbridge.models.fetch.descriptor import RequestDescriptor
from httpbridge.models.fetch.schemas import FetchCreatedResponse
from httpbridge.services.fetch.service import FetchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fetch", tags=["fetch"])

_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    410: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


# ---------------------------------------------------------------------------
# Dependency
# ---------------------------------------------------------------------------


def _get_service(request: Request) -> FetchService:
    """FastAPI dependency returning the service of the app's context."""
    return request.app.state.bridge.service


def _http_error(exc: BridgeError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"kind": exc.kind, "message": str(exc)},
    )


# ---------------------------------------------------------------------------
# POST /fetch
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=FetchCreatedResponse,
    responses=_ERRORS,
    summary="Open a request and return its handle",
)
async def post_fetch(
    descriptor: RequestDescriptor,
    service: FetchService = Depends(_get_service),
) -> FetchCreatedResponse:
    """Validate the descriptor against the scope and start the request.

    - **200** — request registered; use the handle for the other calls
    - **403** — URL outside the allowed scope
    - **422** — malformed descriptor
    """
    try:
        handle = await service.fetch(descriptor)
    except BridgeError as exc:
        logger.warning("POST /fetch rejected %s: %s", descriptor.url, exc)
        raise _http_error(exc)
    return FetchCreatedResponse(handle=handle)


# ---------------------------------------------------------------------------
# POST /fetch/{handle}/send
# ---------------------------------------------------------------------------


@router.post(
    "/{handle}/send",
    response_model=AckResponse,
    responses=_ERRORS,
    summary="Append one chunk to the request body",
)
async def post_send(
    handle: str,
    request: Request,
    service: FetchService = Depends(_get_service),
) -> AckResponse:
    """The raw request body is one chunk; chunks are sent in call order."""
    chunk = await request.body()
    try:
        await service.fetch_send(handle, chunk)
    except BridgeError as exc:
        raise _http_error(exc)
    return AckResponse(message=f"{len(chunk)} bytes queued for {handle}")


# ---------------------------------------------------------------------------
# GET /fetch/{handle}/body
# ---------------------------------------------------------------------------


@router.get(
    "/{handle}/body",
    responses={
        200: {"content": {"application/octet-stream": {}}},
        204: {"description": "End of the response body"},
        **_ERRORS,
    },
    summary="Read the next response body chunk",
)
async def get_body(
    handle: str,
    limit: int | None = Query(default=None, gt=0),
    service: FetchService = Depends(_get_service),
) -> Response:
    """Return the next chunk of the upstream response body.

    - **200** — chunk bytes; ``X-Fetch-Status`` carries the upstream status
    - **204** — end of body (``X-Fetch-End: 1``); returned exactly once
    - **404** — unknown or evicted handle
    - **409** — body already read to the end
    - **410** — request cancelled
    - **502** — upstream transport failure
    """
    try:
        chunk = await service.fetch_read_body(handle, limit)
        if not chunk:
            return Response(status_code=204, headers={"X-Fetch-End": "1"})
        head = service.response_head(handle)
    except BridgeError as exc:
        raise _http_error(exc)

    headers = {}
    if head is not None:
        headers = {"X-Fetch-Status": str(head.status_code), "X-Fetch-Url": head.url}
    return Response(
        content=chunk, media_type="application/octet-stream", headers=headers
    )


# ---------------------------------------------------------------------------
# POST /fetch/{handle}/cancel
# ---------------------------------------------------------------------------


@router.post(
    "/{handle}/cancel",
    response_model=AckResponse,
    responses=_ERRORS,
    summary="Cancel an in-flight request",
)
async def post_cancel(
    handle: str,
    service: FetchService = Depends(_get_service),
) -> AckResponse:
    """Cancellation is advisory and idempotent; finished requests are left as is."""
    try:
        await service.fetch_cancel(handle)
    except BridgeError as exc:
        raise _http_error(exc)
    return AckResponse(message=f"Cancel requested for {handle}")
