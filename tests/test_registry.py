from __future__ import annotations

import asyncio
import uuid
from unittest.mock import patch

import pytest

from httpbridge.core.errors import NotFound
from httpbridge.models.fetch.descriptor import RequestDescriptor, RequestState
from httpbridge.repositories.requests.registry import RequestRegistry


def _descriptor(**kwargs) -> RequestDescriptor:
    return RequestDescriptor(**{"url": "https://example.com/", **kwargs})


@pytest.fixture
def registry() -> RequestRegistry:
    return RequestRegistry(buffer_size=1024, grace_seconds=30.0)


class TestOpen:
    def test_handles_are_pairwise_distinct(self, registry):
        handles = {registry.open(_descriptor()) for _ in range(200)}
        assert len(handles) == 200
        assert len(registry) == 200

    def test_new_request_starts_created(self, registry):
        handle = registry.open(_descriptor(method="post", has_body=True))
        entry = registry.lookup(handle)
        assert entry.state is RequestState.CREATED
        assert entry.descriptor.method == "POST"
        assert entry.outbound.capacity == 1024
        assert not entry.token.cancelled

    def test_live_handle_is_never_reused(self, registry):
        ids = [uuid.UUID(int=1), uuid.UUID(int=1), uuid.UUID(int=2)]
        with patch(
            "httpbridge.repositories.requests.registry.uuid.uuid4", side_effect=ids
        ):
            first = registry.open(_descriptor())
            second = registry.open(_descriptor())
        assert first == uuid.UUID(int=1).hex
        assert second == uuid.UUID(int=2).hex

    def test_unknown_handle_raises_not_found(self, registry):
        with pytest.raises(NotFound):
            registry.lookup("nope")


class TestCancel:
    def test_cancel_without_driver_finishes_immediately(self, registry):
        handle = registry.open(_descriptor())
        registry.cancel(handle)
        entry = registry.lookup(handle)
        assert entry.token.cancelled
        assert entry.state is RequestState.CANCELLED

    def test_cancel_is_idempotent(self, registry):
        handle = registry.open(_descriptor())
        registry.cancel(handle)
        registry.cancel(handle)
        assert registry.lookup(handle).state is RequestState.CANCELLED

    def test_cancel_after_completion_is_noop(self, registry):
        handle = registry.open(_descriptor())
        registry.finish(handle, RequestState.COMPLETED)
        registry.cancel(handle)
        entry = registry.lookup(handle)
        assert entry.state is RequestState.COMPLETED
        assert not entry.token.cancelled

    def test_cancel_unknown_handle_raises_not_found(self, registry):
        with pytest.raises(NotFound):
            registry.cancel("nope")

    async def test_cancel_with_running_driver_only_flips_token(self, registry):
        handle = registry.open(_descriptor())
        entry = registry.lookup(handle)
        driver = asyncio.create_task(asyncio.Event().wait())
        entry.attach_driver(driver)

        registry.cancel(handle)

        assert entry.token.cancelled
        assert entry.state is RequestState.CREATED
        with pytest.raises(asyncio.CancelledError):
            await driver

    def test_cancel_all_skips_finished_requests(self, registry):
        live = [registry.open(_descriptor()) for _ in range(2)]
        done = registry.open(_descriptor())
        registry.finish(done, RequestState.COMPLETED)

        cancelled = registry.cancel_all()

        assert {e.handle for e in cancelled} == set(live)
        assert all(registry.lookup(h).state is RequestState.CANCELLED for h in live)
        assert registry.lookup(done).state is RequestState.COMPLETED


class TestFinish:
    def test_terminal_states_are_absorbing(self, registry):
        handle = registry.open(_descriptor())
        assert registry.finish(handle, RequestState.FAILED) is RequestState.FAILED
        assert registry.finish(handle, RequestState.COMPLETED) is RequestState.FAILED
        assert registry.lookup(handle).state is RequestState.FAILED

    def test_cancel_token_wins_over_completion(self, registry):
        handle = registry.open(_descriptor())
        registry.lookup(handle).token.cancel()
        assert registry.finish(handle, RequestState.COMPLETED) is RequestState.CANCELLED

    def test_non_terminal_state_is_rejected(self, registry):
        handle = registry.open(_descriptor())
        with pytest.raises(ValueError):
            registry.finish(handle, RequestState.READING_BODY)

    def test_finished_request_resolves_during_grace(self, registry):
        handle = registry.open(_descriptor())
        registry.finish(handle, RequestState.COMPLETED)
        assert registry.lookup(handle).state is RequestState.COMPLETED

    def test_finished_request_is_reaped_on_lookup(self):
        registry = RequestRegistry(buffer_size=16, grace_seconds=0)
        handle = registry.open(_descriptor())
        registry.finish(handle, RequestState.COMPLETED)
        with pytest.raises(NotFound):
            registry.lookup(handle)
        assert len(registry) == 0

    async def test_finished_request_is_evicted_by_timer(self):
        registry = RequestRegistry(buffer_size=16, grace_seconds=0.01)
        handle = registry.open(_descriptor())
        registry.finish(handle, RequestState.CANCELLED)
        assert handle in registry

        await asyncio.sleep(0.05)
        assert handle not in registry

    def test_live_requests_are_never_reaped(self):
        registry = RequestRegistry(buffer_size=16, grace_seconds=0)
        live = registry.open(_descriptor())
        done = registry.open(_descriptor())
        registry.finish(done, RequestState.FAILED)
        registry.open(_descriptor())
        assert live in registry
        assert done not in registry
