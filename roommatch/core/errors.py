"""
Error taxonomy for the matching engine.

Every raised error carries an HTTP-equivalent status code, a message, a
details payload and a context dict (entity id, kind, stage) so callers can
tell failure causes apart without parsing messages.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class RoomMatchError(Exception):
    """Base application error."""

    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        details: Any = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        self.context: dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def annotate(self, **context: Any) -> "RoomMatchError":
        """Attach extra context; keys already set by an inner layer win."""
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        if self.context:
            payload["context"] = self.context
        return payload

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({ctx})"


class ValidationError(RoomMatchError):
    status_code = 400


class NotFoundError(RoomMatchError):
    status_code = 404


class PersistenceError(RoomMatchError):
    status_code = 500


# ── Embedding provider failures ───────────────────────────────────────────────

class EmbeddingError(RoomMatchError):
    """No embedding could be produced for the given text."""

    status_code = 502


class UpstreamUnavailable(EmbeddingError):
    """Network error, timeout or 5xx. The only retryable class."""

    status_code = 503
    retryable = True


class UpstreamRejected(EmbeddingError):
    """Provider refused the request (4xx)."""

    status_code = 502


class UpstreamMalformedResponse(EmbeddingError):
    """Provider answered 2xx but without a usable vector."""

    status_code = 502


# ── Non-fatal data problems ───────────────────────────────────────────────────

@dataclass(frozen=True)
class DataIntegrityWarning:
    """
    A stored vector that cannot take part in a search (wrong dimensionality,
    zero magnitude, non-finite score). Logged and excluded, never raised.
    """

    entity_id: str
    reason: str
