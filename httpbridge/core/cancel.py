from __future__ import annotations

import threading
from typing import Callable


class CancelToken:
    """Shared, settable flag observed cooperatively at suspension points.

    Setting the token never interrupts work by itself.  Registered callbacks
    (channel wake-ups, driver task cancellation) make waiters re-check the
    flag at their current await.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def add_callback(self, fn: Callable[[], None]) -> None:
        """Run *fn* on cancellation, immediately if already cancelled."""
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(fn)
                return
        fn()

    def cancel(self) -> bool:
        """Set the flag.  Returns ``True`` only for the call that set it."""
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            fn()
        return True
