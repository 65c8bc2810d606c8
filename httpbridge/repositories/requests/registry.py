"""In-memory registry of in-flight requests keyed by opaque handles.

The handle map is guarded by one lock held only while entries are inserted,
evicted or scanned.  Everything else about a request (its state, cancel
token and body channels) lives on its :class:`RequestEntry`, which has its
own lock, so two requests never contend with each other.

Terminal entries remain resolvable for a grace period so that late calls on
the handle report ``InvalidState``/``Cancelled`` rather than ``NotFound``.
They are then evicted by a loop timer, or on the next registry access if no
loop was running when the request finished.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field

from httpbridge.core.cancel import CancelToken
from httpbridge.core.errors import NotFound, TransportError
from httpbridge.models.fetch.descriptor import RequestDescriptor, RequestState, ResponseHead
from httpbridge.workers.channel import ByteChannel

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class RequestEntry:
    """State of one in-flight or finished HTTP exchange."""

    handle: str
    descriptor: RequestDescriptor
    outbound: ByteChannel
    inbound: ByteChannel
    token: CancelToken = field(default_factory=CancelToken)
    state: RequestState = RequestState.CREATED
    response: ResponseHead | None = None
    error: TransportError | None = None
    driver: asyncio.Task | None = None
    evict_at: float | None = None
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    read_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.token.add_callback(self.outbound.wake)
        self.token.add_callback(self.inbound.wake)

    def advance(self, allowed: set[RequestState], target: RequestState) -> bool:
        """Move to *target* if the current state is in *allowed*."""
        with self._lock:
            if self.state not in allowed:
                return False
            self.state = target
            return True

    def terminate(self, target: RequestState) -> tuple[RequestState, bool]:
        """Record a terminal state.  Returns ``(final_state, changed)``.

        The first terminal state wins.  Completing a request whose token was
        set before this point records ``CANCELLED`` instead.
        """
        with self._lock:
            if self.state.terminal:
                return self.state, False
            if target is RequestState.COMPLETED and self.token.cancelled:
                target = RequestState.CANCELLED
            self.state = target
            return target, True

    def attach_driver(self, task: asyncio.Task) -> None:
        self.driver = task
        self.token.add_callback(task.cancel)

    @property
    def driver_running(self) -> bool:
        return self.driver is not None and not self.driver.done()


class RequestRegistry:
    def __init__(self, buffer_size: int, grace_seconds: float) -> None:
        self._buffer_size = buffer_size
        self._grace = grace_seconds
        self._entries: dict[str, RequestEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._entries

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, descriptor: RequestDescriptor) -> str:
        """Register a new request in ``CREATED`` and return its handle."""
        with self._lock:
            self._reap_locked()
            handle = uuid.uuid4().hex
            while handle in self._entries:
                handle = uuid.uuid4().hex
            self._entries[handle] = RequestEntry(
                handle=handle,
                descriptor=descriptor,
                outbound=ByteChannel(self._buffer_size),
                inbound=ByteChannel(self._buffer_size),
            )
        logger.debug("Opened %s %s as %s.", descriptor.method, descriptor.url, handle)
        return handle

    def lookup(self, handle: str) -> RequestEntry:
        with self._lock:
            self._reap_locked()
            entry = self._entries.get(handle)
        if entry is None:
            raise NotFound(f"Unknown request handle {handle!r}")
        return entry

    def cancel(self, handle: str) -> None:
        """Set the request's cancel token.  No-op for finished requests."""
        entry = self.lookup(handle)
        if entry.state.terminal:
            return
        if entry.token.cancel():
            logger.info("Cancel requested for %s.", handle)
        if not entry.driver_running:
            self.finish_entry(entry, RequestState.CANCELLED)

    def finish(self, handle: str, state: RequestState) -> RequestState:
        """Move the request to a terminal *state* and schedule eviction.

        Returns the state actually recorded, which differs from *state* when
        the request had already finished or was cancelled first.
        """
        return self.finish_entry(self.lookup(handle), state)

    def finish_entry(self, entry: RequestEntry, state: RequestState) -> RequestState:
        """Like :meth:`finish` for callers already holding the entry."""
        if not state.terminal:
            raise ValueError(f"{state} is not a terminal state")
        final, changed = entry.terminate(state)
        if not changed:
            return final

        entry.evict_at = time.monotonic() + self._grace
        logger.debug("Request %s finished as %s.", entry.handle, final.value)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return final
        loop.call_later(self._grace, self._evict, entry.handle, entry)
        return final

    def cancel_all(self) -> list[RequestEntry]:
        """Cancel every live request.  Returns the entries that were live."""
        with self._lock:
            entries = [e for e in self._entries.values() if not e.state.terminal]
        for entry in entries:
            try:
                self.cancel(entry.handle)
            except NotFound:
                continue
        return entries

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _evict(self, handle: str, entry: RequestEntry) -> None:
        with self._lock:
            if self._entries.get(handle) is entry:
                del self._entries[handle]
                logger.debug("Evicted %s.", handle)

    def _reap_locked(self) -> None:
        now = time.monotonic()
        expired = [
            handle
            for handle, entry in self._entries.items()
            if entry.evict_at is not None and entry.evict_at <= now
        ]
        for handle in expired:
            del self._entries[handle]
