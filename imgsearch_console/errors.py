"""Error taxonomy for remote operations.

None of these are retried automatically. Controllers catch them and turn
them into a ``Failed`` operation or a warning notification; they never
escape ``submit()``.
"""

from __future__ import annotations

from imgsearch_console.types import ErrorKind


class ImageSearchError(Exception):
    """Base class for every error the console reports to the user."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ConfigurationError(ImageSearchError):
    """The remote base address is not configured."""

    kind = ErrorKind.CONFIGURATION


class ValidationError(ImageSearchError):
    """Local input is missing or not acceptable. The remote is never contacted."""

    kind = ErrorKind.VALIDATION


class TransportError(ImageSearchError):
    """Network failure or non-OK HTTP status."""

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body_excerpt: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail if detail is not None else body_excerpt)
        self.status_code = status_code
        self.body_excerpt = body_excerpt


class ProtocolError(ImageSearchError):
    """The remote answered, but with missing or unexpected fields."""

    kind = ErrorKind.PROTOCOL


class RemoteJobError(ImageSearchError):
    """A remote job ran and reported its own failure."""

    kind = ErrorKind.REMOTE
