"""Helpers shared by the client and the tool modules for turning HTTP bodies
and API outcomes into text.

- `robust_parse_text`: best-effort decode of a response body that may not be
  clean JSON (error pages, bodies with trailing junk).
- `render_json`: serialise a tool result for the model.
- `render_error`: one-line, human readable rendering of an ApiError.
"""
from __future__ import annotations

import json
from typing import Any

from core.errors import ApiError, RateLimitError


def robust_parse_text(text: str) -> Any:
    """Parse text as JSON, else the first JSON value in it, else return the raw text."""
    if not text:
        return text
    try:
        return json.loads(text)
    except ValueError:
        pass

    # Try to extract the first JSON object from a noisy text blob
    try:
        obj, _ = json.JSONDecoder().raw_decode(text.lstrip())
        return obj
    except ValueError:
        pass

    return text


def render_json(result: Any) -> str:
    if hasattr(result, "to_dict"):
        result = result.to_dict()
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)


def render_error(exc: ApiError) -> str:
    if isinstance(exc, RateLimitError):
        retry = f" Retry after {exc.retry_after} seconds." if exc.retry_after is not None else ""
        return f"Rate limit exceeded.{retry}"
    status = exc.status_code if exc.status_code is not None else "unknown"
    return f"Klaviyo API error ({status}): {exc.message}"
