from __future__ import annotations

from enum import Enum

import httpx
from pydantic import BaseModel, HttpUrl, field_validator


class RequestState(str, Enum):
    CREATED = "created"
    SENDING_BODY = "sending_body"
    AWAITING_RESPONSE = "awaiting_response"
    READING_BODY = "reading_body"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {RequestState.COMPLETED, RequestState.CANCELLED, RequestState.FAILED}
)


class RequestDescriptor(BaseModel):
    """What the caller asks to fetch.

    ``has_body`` announces that the body will be streamed with
    ``fetch_send``; without it the request is sent as soon as it is opened.
    """

    method: str = "GET"
    url: HttpUrl
    headers: dict[str, str] = {}
    has_body: bool = False

    @field_validator("method")
    @classmethod
    def _normalise_method(cls, value: str) -> str:
        value = value.strip().upper()
        if not value.isalpha():
            raise ValueError(f"Invalid HTTP method: {value!r}")
        return value


class ResponseHead(BaseModel):
    """Status line and headers of a response, known before its body."""

    status_code: int
    reason_phrase: str
    url: str
    headers: list[tuple[str, str]]

    @classmethod
    def from_response(cls, response: httpx.Response) -> ResponseHead:
        return cls(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            url=str(response.url),
            headers=list(response.headers.multi_items()),
        )
