"""Disk-persisted cookie jar shared by every request.

The jar is an :class:`httpx.Cookies` (a ``http.cookiejar.CookieJar``), so
domain/path/secure/expiry matching and ``Set-Cookie`` parsing follow the
standard library.  It is loaded once at startup and written back once at
shutdown; an abnormal exit in between loses that session's cookie updates.

Nothing outside this module touches the jar except through
:meth:`CookieStore.with_lock`, which only accepts synchronous callables so
the lock can never be held across an await.
"""

from __future__ import annotations

import inspect
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from httpbridge.core.errors import PersistenceError
from httpbridge.models.cookies.record import CookieRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RECORDS = TypeAdapter(list[CookieRecord])


def _write_file(path: Path, payload: bytes) -> None:
    """Replace *path* with *payload* without leaving a half-written file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(payload)
    os.replace(tmp, path)


class CookieStore:
    """Cookie records owned jointly by all concurrent requests."""

    def __init__(
        self,
        path: Path,
        records: Iterable[CookieRecord] = (),
        save_attempts: int = 3,
    ) -> None:
        self._path = path
        self._save_attempts = save_attempts
        self._lock = threading.Lock()
        self._jar = httpx.Cookies()
        for record in records:
            self._jar.jar.set_cookie(record.to_cookie())

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path, save_attempts: int = 3) -> CookieStore:
        """Open (creating if needed) the cookie file at *path* and parse it.

        A missing file yields an empty store.  An unreadable or corrupt file
        also yields an empty store; the failure is logged, never raised.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a+b") as fh:
                fh.seek(0)
                raw = fh.read()
        except OSError as exc:
            _absorb(PersistenceError(f"Cannot open cookie file {path}: {exc}"))
            return cls(path, save_attempts=save_attempts)

        if not raw.strip():
            logger.debug("Cookie file %s is empty.", path)
            return cls(path, save_attempts=save_attempts)

        try:
            records = _RECORDS.validate_json(raw)
        except ValidationError as exc:
            _absorb(PersistenceError(f"Corrupt cookie file {path}: {exc}"))
            return cls(path, save_attempts=save_attempts)

        store = cls(path, records, save_attempts)
        store.with_lock(lambda jar: jar.jar.clear_expired_cookies())
        logger.info("Loaded %d cookies from %s.", len(store), path)
        return store

    def save(self, path: Path | None = None) -> bool:
        """Write every unexpired cookie to *path* (default: the load path).

        Returns ``False`` when the write failed; the failure is logged and
        otherwise ignored.
        """
        target = path or self._path
        payload = _RECORDS.dump_json(self.records(), by_alias=True, indent=2)
        try:
            self._retrying()(_write_file, target, payload)
        except RetryError as exc:
            _absorb(
                PersistenceError(
                    f"Cannot save cookies to {target}: {exc.last_attempt.exception()}"
                )
            )
            return False
        logger.info("Saved cookies to %s.", target)
        return True

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(OSError),
            stop=stop_after_attempt(self._save_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=False,
        )

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def with_lock(self, fn: Callable[[httpx.Cookies], T]) -> T:
        """Run ``fn(jar)`` with exclusive access to the jar.

        *fn* must be synchronous; coroutine functions and awaitable results
        are rejected with ``TypeError``.
        """
        if inspect.iscoroutinefunction(fn):
            raise TypeError("with_lock() requires a synchronous callable")
        with self._lock:
            result = fn(self._jar)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise TypeError("with_lock() callable returned an awaitable")
        return result

    def records(self) -> list[CookieRecord]:
        return self.with_lock(
            lambda jar: [
                CookieRecord.from_cookie(cookie)
                for cookie in jar.jar
                if not cookie.is_expired()
            ]
        )

    def add(self, record: CookieRecord) -> None:
        self.with_lock(lambda jar: jar.jar.set_cookie(record.to_cookie()))

    def apply_to(self, request: httpx.Request) -> None:
        """Add a ``Cookie`` header for the cookies matching *request*."""
        self.with_lock(lambda jar: jar.set_cookie_header(request))

    def extract_from(self, response: httpx.Response) -> None:
        """Store the ``Set-Cookie`` headers of *response*."""
        self.with_lock(lambda jar: jar.extract_cookies(response))

    def __len__(self) -> int:
        return self.with_lock(lambda jar: len(jar.jar))


def _absorb(exc: PersistenceError) -> None:
    logger.error("%s: %s", exc.kind, exc)
