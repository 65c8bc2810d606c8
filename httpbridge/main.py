from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from httpbridge.api.router import router
from httpbridge.core.config import settings
from httpbridge.core.context import BridgeContext


def _configure_logging() -> None:
    """Configure the ``httpbridge`` logger namespace.

    ``logging.basicConfig`` is a no-op when the root logger already has
    handlers (e.g. when uvicorn sets up its own handlers before our lifespan
    runs).  Configuring the ``httpbridge`` namespace directly, with
    ``propagate = False``, sends all application logs to stdout regardless
    of uvicorn's root-logger setup.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    )
    app_log = logging.getLogger("httpbridge")
    app_log.setLevel(level)
    if not app_log.handlers:
        app_log.addHandler(handler)
    app_log.propagate = False


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # ── Startup ──────────────────────────────────────────────────────
    app.state.bridge = BridgeContext.create(settings)
    yield
    # ── Shutdown ─────────────────────────────────────────────────────
    # Awaited so the cookie file is written before the process exits.
    await app.state.bridge.close()


app = FastAPI(
    title="httpbridge",
    description="Managed outbound HTTP requests with persisted cookies.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}
