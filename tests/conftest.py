from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from httpbridge.core.config import Settings, settings
from httpbridge.core.context import BridgeContext
from httpbridge.main import app


@pytest.fixture
def bridge_settings(tmp_path) -> Settings:
    """Settings with a private cookie directory and a tiny stream buffer."""
    return Settings(
        _env_file=None,
        cookie_dir=tmp_path,
        stream_buffer_size=8,
        reap_grace_seconds=30.0,
    )


@pytest.fixture
async def make_context(bridge_settings):
    """Factory for contexts whose upstream is an ``httpx.MockTransport``.

    Every context built here is closed when the test ends.
    """
    contexts: list[BridgeContext] = []

    def factory(handler, **overrides) -> BridgeContext:
        cfg = bridge_settings.model_copy(update=overrides)
        ctx = BridgeContext.create(cfg, http_transport=httpx.MockTransport(handler))
        contexts.append(ctx)
        return ctx

    yield factory

    for ctx in contexts:
        await ctx.close()


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient running the real lifespan with cookies kept under tmp_path."""
    monkeypatch.setattr(settings, "cookie_dir", tmp_path)
    with TestClient(app) as c:
        yield c
