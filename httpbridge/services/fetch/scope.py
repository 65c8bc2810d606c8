from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from typing import Iterable, Protocol

from httpbridge.core.errors import ScopeViolation
from httpbridge.models.fetch.descriptor import RequestDescriptor

logger = logging.getLogger(__name__)


class ScopeValidator(Protocol):
    """Decides whether a request descriptor may be fetched at all."""

    def validate(self, descriptor: RequestDescriptor) -> None:
        """Raise :class:`ScopeViolation` if *descriptor* is not allowed."""


class UrlPatternScope:
    """Allow-list of URL glob patterns, with deny patterns taking precedence."""

    def __init__(self, allow: Iterable[str], deny: Iterable[str] = ()) -> None:
        self._allow = list(allow)
        self._deny = list(deny)

    def validate(self, descriptor: RequestDescriptor) -> None:
        url = str(descriptor.url)
        if any(fnmatchcase(url, pattern) for pattern in self._deny):
            logger.warning("Denied by scope: %s", url)
            raise ScopeViolation(f"url not allowed on the configured scope: {url}")
        if not any(fnmatchcase(url, pattern) for pattern in self._allow):
            logger.warning("Outside of scope: %s", url)
            raise ScopeViolation(f"url not allowed on the configured scope: {url}")
