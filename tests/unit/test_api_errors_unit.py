"""Unit tests for API error types."""

import pytest

from signal_daemon.api_errors import (
    APIError,
    CategoryError,
    InvalidDateError,
    NotFoundError,
    ServiceNotConfiguredError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error,status",
    [
        (CategoryError("sports"), 422),
        (InvalidDateError("start_date", "soon"), 422),
        (NotFoundError("Insight record", "abc"), 404),
        (ServiceNotConfiguredError("storage"), 500),
    ],
)
def test_status_codes(error: APIError, status: int) -> None:
    assert isinstance(error, APIError)
    assert error.status_code == status
    assert error.detail == error.message


def test_category_error_messages_list_valid_values() -> None:
    unknown = CategoryError("sports")
    missing = CategoryError()

    assert isinstance(unknown, ValidationError)
    assert "Unknown category 'sports'" in unknown.message
    assert missing.message.startswith("category is required")
    for message in (unknown.message, missing.message):
        assert "mortgage, product-management, competitor-intel, all" in message
