# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for sigv4/string_to_sign.py."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from sigv4.canonical import canonicalize
from sigv4.errors import InvalidTimestampError
from sigv4.string_to_sign import (
    build_string_to_sign,
    format_amz_date,
    parse_amz_date,
    scope_for,
    validate_amz_date,
    validate_datestamp,
)
from sigv4.types import SigningScope
from tests.vectors import (
    EXAMPLE_AMZ_DATE,
    EXAMPLE_SCOPE,
    EXAMPLE_TIME,
    GET_OBJECT_CANONICAL_REQUEST,
    GET_OBJECT_CANONICAL_REQUEST_SHA256,
    GET_OBJECT_REQUEST,
)


_SCOPE = SigningScope("20130524", "us-east-1", "s3")


class TestFormatAmzDate:
    """Tests for format_amz_date."""

    def test_utc(self) -> None:
        assert format_amz_date(EXAMPLE_TIME) == EXAMPLE_AMZ_DATE

    def test_converts_to_utc(self) -> None:
        """Offsets are normalized, which can change the date."""
        tz = timezone(timedelta(hours=-5))
        now = datetime(2013, 5, 23, 19, 30, 0, tzinfo=tz)
        assert format_amz_date(now) == "20130524T003000Z"

    def test_naive_datetime_raises(self) -> None:
        """Naive datetimes are ambiguous and rejected."""
        with pytest.raises(InvalidTimestampError, match="timezone-aware"):
            format_amz_date(datetime(2013, 5, 24))

    def test_microseconds_dropped(self) -> None:
        now = datetime(2013, 5, 24, 0, 0, 0, 999999, tzinfo=UTC)
        assert format_amz_date(now) == EXAMPLE_AMZ_DATE


class TestValidation:
    """Tests for validate_amz_date, validate_datestamp and parse_amz_date."""

    def test_valid_amz_date(self) -> None:
        assert validate_amz_date(EXAMPLE_AMZ_DATE) == EXAMPLE_AMZ_DATE

    @pytest.mark.parametrize(
        "value",
        [
            "2013-05-24T00:00:00Z",
            "20130524T000000",
            "20130524T000000+0000",
            "20130524",
            "",
        ],
    )
    def test_malformed_amz_date(self, value: str) -> None:
        """Extended ISO8601, missing Z and offsets are rejected."""
        with pytest.raises(InvalidTimestampError):
            validate_amz_date(value)

    def test_impossible_calendar_date(self) -> None:
        """Fixed-width but impossible dates are rejected."""
        with pytest.raises(InvalidTimestampError):
            validate_amz_date("20130231T000000Z")

    def test_datestamp(self) -> None:
        assert validate_datestamp("20130524") == "20130524"
        with pytest.raises(InvalidTimestampError):
            validate_datestamp("2013-05-24")
        with pytest.raises(InvalidTimestampError):
            validate_datestamp("20131301")

    def test_parse_round_trip(self) -> None:
        assert parse_amz_date(EXAMPLE_AMZ_DATE) == EXAMPLE_TIME
        assert parse_amz_date(EXAMPLE_AMZ_DATE).tzinfo is UTC


class TestScopeFor:
    """Tests for scope_for."""

    def test_scope_from_timestamp(self) -> None:
        scope = scope_for(EXAMPLE_AMZ_DATE, "us-east-1", "s3")
        assert scope == _SCOPE
        assert scope.credential_scope == EXAMPLE_SCOPE

    def test_bad_timestamp(self) -> None:
        with pytest.raises(InvalidTimestampError):
            scope_for("yesterday", "us-east-1", "s3")


class TestBuildStringToSign:
    """Tests for build_string_to_sign."""

    def test_reference_example(self) -> None:
        """String to sign matches the documented GET object example."""
        result = build_string_to_sign(
            EXAMPLE_AMZ_DATE, _SCOPE, canonicalize(GET_OBJECT_REQUEST)
        )
        assert result == (
            "AWS4-HMAC-SHA256\n"
            f"{EXAMPLE_AMZ_DATE}\n"
            f"{EXAMPLE_SCOPE}\n"
            f"{GET_OBJECT_CANONICAL_REQUEST_SHA256}"
        )

    def test_accepts_canonical_text(self) -> None:
        """The canonical request may be passed as its text."""
        from_text = build_string_to_sign(
            EXAMPLE_AMZ_DATE, _SCOPE, GET_OBJECT_CANONICAL_REQUEST
        )
        from_object = build_string_to_sign(
            EXAMPLE_AMZ_DATE, _SCOPE, canonicalize(GET_OBJECT_REQUEST)
        )
        assert from_text == from_object

    def test_four_lines_no_trailing_newline(self) -> None:
        result = build_string_to_sign(EXAMPLE_AMZ_DATE, _SCOPE, "x")
        assert len(result.split("\n")) == 4
        assert not result.endswith("\n")

    def test_scope_date_mismatch(self) -> None:
        """Scope date must equal the timestamp's date."""
        scope = SigningScope("20130523", "us-east-1", "s3")
        with pytest.raises(InvalidTimestampError, match="does not match"):
            build_string_to_sign(EXAMPLE_AMZ_DATE, scope, "x")

    def test_malformed_timestamp(self) -> None:
        with pytest.raises(InvalidTimestampError):
            build_string_to_sign("2013-05-24T00:00:00Z", _SCOPE, "x")
