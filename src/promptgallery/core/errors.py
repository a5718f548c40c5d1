"""Domain error taxonomy and its translation to HTTP.

Every error raised by the repository, the image gateway, or the rate limiter
carries an :class:`ErrorKind` tag.  The HTTP layer never inspects exception
classes directly; it hands the exception to :func:`to_http`, a pure function
that returns the status code and JSON envelope to send.  Middleware and
exception handlers both render errors through it.

Mapping
-------
=====================  ======
Kind                   Status
=====================  ======
``validation``         400
``payload_too_large``  413
``not_found``          404
``rate_limited``       429
``upstream``           502
``storage``            503
anything else          500
=====================  ======
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ErrorKind(str, enum.Enum):
    """Tag identifying the category of a :class:`GalleryError`."""

    VALIDATION = "validation"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"
    STORAGE = "storage"


class GalleryError(Exception):
    """Base class for all domain errors.

    The message is intended to be shown to the API caller.
    """

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GalleryError):
    """Client input is malformed or incomplete."""

    kind = ErrorKind.VALIDATION


class PayloadTooLargeError(ValidationError):
    """Request body exceeds the configured size limit."""

    kind = ErrorKind.PAYLOAD_TOO_LARGE


class NotFoundError(GalleryError):
    """The referenced post does not exist."""

    kind = ErrorKind.NOT_FOUND


class UpstreamError(GalleryError):
    """The image-generation provider failed or timed out."""

    kind = ErrorKind.UPSTREAM


class StorageError(GalleryError):
    """The database is unreachable or rejected a write."""

    kind = ErrorKind.STORAGE


class RateLimitError(GalleryError):
    """The client exhausted its request quota for the current window.

    Attributes:
        retry_after: Seconds until the window resets, rounded up.
    """

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.STORAGE: 503,
}

INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass(frozen=True)
class HttpError:
    """HTTP rendering of an exception.

    Attributes:
        status_code: Response status.
        body: JSON envelope ``{"status": "error", "message": ...}``.
        headers: Extra response headers (``Retry-After`` for rate limits).
    """

    status_code: int
    body: dict
    headers: dict[str, str] = field(default_factory=dict)


def error_envelope(message: str) -> dict:
    """Build the JSON envelope used for every failed request."""
    return {"status": "error", "message": message}


def to_http(exc: BaseException) -> HttpError:
    """Translate an exception into its HTTP status, envelope, and headers.

    Domain errors keep their own message.  Anything that is not a
    :class:`GalleryError` becomes a 500 with a generic message so internal
    details never leak to the caller.

    Args:
        exc: The exception to translate.

    Returns:
        The :class:`HttpError` to render.
    """
    if not isinstance(exc, GalleryError):
        return HttpError(500, error_envelope(INTERNAL_ERROR_MESSAGE))

    status_code = _STATUS_BY_KIND.get(exc.kind, 500)
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitError) and exc.retry_after > 0:
        headers["Retry-After"] = str(exc.retry_after)
    return HttpError(status_code, error_envelope(exc.message), headers)
