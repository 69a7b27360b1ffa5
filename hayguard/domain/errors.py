"""
Engine error taxonomy.

All errors raised across the engine boundary derive from ``HayGuardError`` so
the API layer can map them to responses with a single ``except`` clause.
"""

from __future__ import annotations


class HayGuardError(Exception):
    """Base class for engine errors."""


class NotFoundError(HayGuardError, LookupError):
    """Unknown sensor or alert ID."""


class AlreadyPairedError(HayGuardError):
    """Pairing was requested for a sensor that already has a permanent ID."""


class InvalidConfigError(HayGuardError, ValueError):
    """Malformed sensor configuration (e.g. optimal range with min >= max)."""


class PersistenceError(HayGuardError):
    """
    Durable-store write failure.

    The in-memory change that triggered the write is still authoritative; the
    record has been queued for a background retry.
    """

    def __init__(self, key: str, cause: BaseException):
        super().__init__(f"failed to persist {key!r}: {cause!r}")
        self.key = key
        self.cause = cause
