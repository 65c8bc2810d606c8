from __future__ import annotations

from pydantic import BaseModel


class FetchCreatedResponse(BaseModel):
    """API response shape for POST /fetch."""

    handle: str
