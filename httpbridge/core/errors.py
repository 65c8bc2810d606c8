"""Error kinds surfaced by the request lifecycle manager.

Every error a caller can receive derives from :class:`BridgeError`.  The
``kind`` string is what the HTTP binding reports to clients and
``status_code`` is the response status it maps to.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for lifecycle errors."""

    kind: str = "BridgeError"
    status_code: int = 500


class NotFound(BridgeError):
    """The handle is unknown or its request was already evicted."""

    kind = "NotFound"
    status_code = 404


class InvalidState(BridgeError):
    """The operation is illegal for the request's current phase."""

    kind = "InvalidState"
    status_code = 409


class Cancelled(BridgeError):
    """The request was cancelled."""

    kind = "Cancelled"
    status_code = 410


class TransportError(BridgeError):
    """The underlying HTTP transport failed.  Never retried here."""

    kind = "IOError"
    status_code = 502


class PersistenceError(BridgeError):
    """Loading or saving the cookie file failed.  Always absorbed."""

    kind = "PersistenceError"
    status_code = 500


class ScopeViolation(BridgeError):
    """The request descriptor was rejected by the scope validator."""

    kind = "ScopeViolation"
    status_code = 403
