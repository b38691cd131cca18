"""Error taxonomy for failed Klaviyo API exchanges.

Every failure surfaced by the client is exactly one of five kinds. The
client is the only place that builds them; higher layers (cache,
pagination, compaction, tools) let them propagate untouched.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, List, Optional

UNKNOWN_ERROR = "Unknown error"
TIMEOUT_STATUS = 408


class ErrorKind(str, Enum):
    AUTH = "auth"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    GENERIC = "generic"


class ApiError(Exception):
    """Base class for every Klaviyo API failure.

    `errors` holds the JSON:API error objects from the response body, in
    order, when the body had any.
    """

    kind: ErrorKind = ErrorKind.GENERIC

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors: List[Dict[str, Any]] = list(errors or [])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code!r}, message={self.message!r})"


class AuthError(ApiError):
    kind = ErrorKind.AUTH

    def __init__(self, message: str = "Authentication failed", status_code: Optional[int] = 401, errors=None):
        super().__init__(message, status_code, errors)


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Resource not found", status_code: Optional[int] = 404, errors=None):
        super().__init__(message, status_code, errors)


class RateLimitError(ApiError):
    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[int] = None, errors=None):
        super().__init__(message, 429, errors)
        self.retry_after = retry_after


class ValidationError(ApiError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, status_code: Optional[int] = 400, errors=None):
        super().__init__(message, status_code, errors)


class GenericApiError(ApiError):
    kind = ErrorKind.GENERIC


class RequestTimeoutError(GenericApiError):
    """The request did not complete within the configured timeout."""

    def __init__(self, message: str = "Request timeout"):
        super().__init__(message, TIMEOUT_STATUS)


def _error_objects(body: Any) -> List[Dict[str, Any]]:
    if not isinstance(body, dict):
        return []
    errors = body.get("errors")
    if not isinstance(errors, list):
        return []
    return [e for e in errors if isinstance(e, dict)]


def format_error_message(errors: List[Dict[str, Any]]) -> str:
    """Join error objects into one display message: detail, else title, else a placeholder."""
    return "; ".join(str(e.get("detail") or e.get("title") or UNKNOWN_ERROR) for e in errors)


_LEADING_INT = re.compile(r"^\s*(\d+)")


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Leading whole seconds of a Retry-After value ('17.5' -> 17); None when there are none."""
    if value is None:
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def classify_error(
    status_code: int,
    body: Any = None,
    status_text: str = "",
    retry_after: Optional[str] = None,
) -> ApiError:
    """Map an HTTP status and optional decoded body to exactly one ApiError.

    `retry_after` is the raw `Retry-After` header value, only consulted for 429.
    Never raises: bodies that are not JSON:API error documents fall back to a
    message built from the status line.
    """
    errors = _error_objects(body)
    if errors:
        message = format_error_message(errors)
    else:
        message = f"API error: {status_code} {status_text}".rstrip()

    if status_code in (401, 403):
        return AuthError(message, status_code, errors)
    if status_code == 404:
        return NotFoundError(message, status_code, errors)
    if status_code == 429:
        return RateLimitError(message, parse_retry_after(retry_after), errors)
    if status_code in (400, 422):
        return ValidationError(message, status_code, errors)
    return GenericApiError(message, status_code, errors)
