"""Unit tests for the API error taxonomy."""

import pytest

from core.errors import (
    AuthError,
    ErrorKind,
    GenericApiError,
    NotFoundError,
    RateLimitError,
    ValidationError,
    classify_error,
    format_error_message,
    parse_retry_after,
)


class TestClassifyError:
    """Tests for classify_error status partitioning."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (401, AuthError),
            (403, AuthError),
            (404, NotFoundError),
            (429, RateLimitError),
            (400, ValidationError),
            (422, ValidationError),
        ],
    )
    def test_known_statuses(self, status: int, expected: type) -> None:
        """Each known status maps to exactly its error class."""
        error = classify_error(status)

        assert type(error) is expected
        assert error.status_code == status

    @pytest.mark.parametrize("status", [402, 405, 409, 410, 418, 500, 502, 503, 504])
    def test_other_statuses_are_generic(self, status: int) -> None:
        """Any other 4xx/5xx status is Generic and keeps the raw status code."""
        error = classify_error(status)

        assert type(error) is GenericApiError
        assert error.kind is ErrorKind.GENERIC
        assert error.status_code == status

    def test_partition_has_no_overlap(self) -> None:
        """Every status from 400 to 599 yields exactly one kind."""
        kinds = {status: classify_error(status).kind for status in range(400, 600)}

        assert {s for s, k in kinds.items() if k is ErrorKind.AUTH} == {401, 403}
        assert {s for s, k in kinds.items() if k is ErrorKind.NOT_FOUND} == {404}
        assert {s for s, k in kinds.items() if k is ErrorKind.RATE_LIMIT} == {429}
        assert {s for s, k in kinds.items() if k is ErrorKind.VALIDATION} == {400, 422}
        assert len([k for k in kinds.values() if k is ErrorKind.GENERIC]) == 200 - 6

    def test_rate_limit_parses_retry_after(self) -> None:
        """Retry-After is read as whole seconds."""
        error = classify_error(429, retry_after="30")

        assert isinstance(error, RateLimitError)
        assert error.retry_after == 30

    def test_rate_limit_without_retry_after(self) -> None:
        """Missing or unparseable Retry-After leaves retry_after empty."""
        assert classify_error(429).retry_after is None
        assert classify_error(429, retry_after="Wed, 21 Oct 2015 07:28:00 GMT").retry_after is None

    def test_validation_keeps_structured_errors(self) -> None:
        """Validation errors keep every error object and join their messages."""
        body = {
            "errors": [
                {"status": 400, "code": "invalid", "title": "Invalid input", "detail": "email is invalid", "source": {"pointer": "/data/attributes/email"}},
                {"status": 400, "title": "Missing field"},
                {"status": 400},
            ]
        }

        error = classify_error(400, body)

        assert isinstance(error, ValidationError)
        assert error.message == "email is invalid; Missing field; Unknown error"
        assert len(error.errors) == 3
        assert error.errors[0]["source"]["pointer"] == "/data/attributes/email"

    def test_unstructured_body_falls_back_to_status_line(self) -> None:
        """A body that is not a JSON:API error document yields a status-based message."""
        error = classify_error(500, "<html>Bad gateway</html>", status_text="Internal Server Error")

        assert isinstance(error, GenericApiError)
        assert error.message == "API error: 500 Internal Server Error"
        assert error.errors == []

    def test_errors_key_of_wrong_type_is_ignored(self) -> None:
        """A non-list `errors` value never raises."""
        error = classify_error(404, {"errors": "nope"}, status_text="Not Found")

        assert isinstance(error, NotFoundError)
        assert error.message == "API error: 404 Not Found"


class TestHelpers:
    """Tests for message and header helpers."""

    def test_format_error_message_prefers_detail(self) -> None:
        assert format_error_message([{"detail": "d", "title": "t"}]) == "d"

    def test_parse_retry_after(self) -> None:
        assert parse_retry_after(" 12 ") == 12
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None

    def test_parse_retry_after_leading_digits(self) -> None:
        assert parse_retry_after("17.5") == 17
        assert parse_retry_after("17abc") == 17
        assert parse_retry_after("") is None
        assert classify_error(429, retry_after="2.9").retry_after == 2
