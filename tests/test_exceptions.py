"""Tests for exception utilities."""

import pytest
from fastapi import HTTPException, status

from clipmatch.services.errors import (
    AutoMatchInterruptedError,
    ComputationError,
    ConfigurationError,
    ConflictError,
    MatchingError,
    NotFoundError,
    ReportBusyError,
    ValidationError,
)
from clipmatch.utils.exceptions import (
    raise_bad_request,
    raise_conflict,
    raise_for_matching_error,
    raise_internal_error,
    raise_not_found,
    raise_unprocessable,
)


def test_raise_not_found():
    with pytest.raises(HTTPException) as exc_info:
        raise_not_found("Report 3")

    assert exc_info.value.status_code == status.HTTP_404_NOT_FOUND
    assert exc_info.value.detail == "Report 3 not found"


def test_raise_not_found_with_cause():
    cause = ValueError("Original error")

    with pytest.raises(HTTPException) as exc_info:
        raise_not_found("Match", cause=cause)

    assert exc_info.value.__cause__ is cause


@pytest.mark.parametrize(
    "helper, expected",
    [
        (raise_bad_request, status.HTTP_400_BAD_REQUEST),
        (raise_conflict, status.HTTP_409_CONFLICT),
        (raise_unprocessable, 422),
        (raise_internal_error, status.HTTP_500_INTERNAL_SERVER_ERROR),
    ],
)
def test_detail_helpers(helper, expected):
    with pytest.raises(HTTPException) as exc_info:
        helper("Something happened")

    assert exc_info.value.status_code == expected
    assert exc_info.value.detail == "Something happened"


class TestRaiseForMatchingError:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (NotFoundError("Report", 9), 404),
            (ConflictError("Side A transaction 4 is already matched"), 409),
            (ReportBusyError(9), 409),
            (ConfigurationError("account_scope has no side b accounts"), 400),
            (ValidationError("bad payload"), 422),
            (ComputationError("not finite"), 422),
            (AutoMatchInterruptedError(9, 4), 500),
            (MatchingError("unexpected"), 500),
        ],
    )
    def test_status_codes(self, error, expected):
        with pytest.raises(HTTPException) as exc_info:
            raise_for_matching_error(error)

        assert exc_info.value.status_code == expected
        assert exc_info.value.__cause__ is error

    def test_not_found_detail_names_resource(self):
        with pytest.raises(HTTPException) as exc_info:
            raise_for_matching_error(NotFoundError("Side B transaction", 12))

        assert exc_info.value.detail == "Side B transaction 12 not found"

    def test_interrupted_detail_carries_committed_count(self):
        with pytest.raises(HTTPException) as exc_info:
            raise_for_matching_error(AutoMatchInterruptedError(9, 4))

        assert "after 4 matches" in exc_info.value.detail
