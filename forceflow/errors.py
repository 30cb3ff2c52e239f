"""Error taxonomy for the ingestion and scoring pipeline."""

from __future__ import annotations


class ForceFlowError(Exception):
    """Base class for pipeline errors."""

    code = "forceflow_error"


class TransportError(ForceFlowError):
    """The feed or token endpoint could not be reached or answered non-2xx.

    Never retried inside a cycle; the next scheduled trigger is the retry.
    """

    code = "transport_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ForceFlowError):
    """The credential exchange failed or the feed rejected our credential."""

    code = "auth_error"


class RecordValidationError(ForceFlowError):
    """A single upstream record was malformed and has been rejected."""

    code = "record_rejected"

    def __init__(self, reason: str, *, icao24: str | None = None, raw_timestamp=None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.icao24 = icao24
        self.raw_timestamp = raw_timestamp


class PersistenceError(ForceFlowError):
    """A store write for one record failed and was rolled back."""

    code = "persistence_error"


__all__ = [
    "AuthError",
    "ForceFlowError",
    "PersistenceError",
    "RecordValidationError",
    "TransportError",
]
