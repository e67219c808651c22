# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Timestamp handling and the SigV4 string to sign."""

from __future__ import annotations

import hashlib
import re
from datetime import UTC, datetime

from sigv4.canonical import CanonicalRequest
from sigv4.errors import InvalidTimestampError
from sigv4.types import ALGORITHM, SigningScope


#: strftime format of ``X-Amz-Date`` (ISO8601 basic, UTC).
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

_AMZ_DATE_RE = re.compile(r"^\d{8}T\d{6}Z$")
_DATESTAMP_RE = re.compile(r"^\d{8}$")


def format_amz_date(now: datetime) -> str:
    """Format a timezone-aware datetime as ``YYYYMMDDTHHMMSSZ``.

    Raises:
        InvalidTimestampError: If ``now`` is naive.
    """
    if now.tzinfo is None or now.utcoffset() is None:
        raise InvalidTimestampError(
            "Signing time must be timezone-aware (got naive datetime)"
        )
    return now.astimezone(UTC).strftime(AMZ_DATE_FORMAT)


def validate_amz_date(value: str) -> str:
    """Check that ``value`` is a fixed-width ISO8601 basic UTC timestamp.

    Returns:
        The value unchanged.

    Raises:
        InvalidTimestampError: If the format or the calendar date is wrong.
    """
    if not _AMZ_DATE_RE.match(value):
        raise InvalidTimestampError(f"Malformed timestamp: {value!r}")
    try:
        datetime.strptime(value, AMZ_DATE_FORMAT)
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid timestamp {value!r}: {e}") from e
    return value


def validate_datestamp(value: str) -> str:
    """Check that ``value`` is a valid ``YYYYMMDD`` date.

    Raises:
        InvalidTimestampError: If the format or the calendar date is wrong.
    """
    if not _DATESTAMP_RE.match(value):
        raise InvalidTimestampError(f"Malformed date: {value!r}")
    try:
        datetime.strptime(value, "%Y%m%d")
    except ValueError as e:
        raise InvalidTimestampError(f"Invalid date {value!r}: {e}") from e
    return value


def parse_amz_date(value: str) -> datetime:
    """Parse an ``X-Amz-Date`` value into an aware UTC datetime."""
    validate_amz_date(value)
    return datetime.strptime(value, AMZ_DATE_FORMAT).replace(tzinfo=UTC)


def scope_for(timestamp: str, region: str, service: str) -> SigningScope:
    """Build the signing scope for a validated timestamp."""
    return SigningScope(
        date=validate_amz_date(timestamp)[:8], region=region, service=service
    )


def build_string_to_sign(
    timestamp: str,
    scope: SigningScope,
    canonical_request: CanonicalRequest | str,
) -> str:
    """Build the SigV4 string to sign.

    Args:
        timestamp: ISO8601 basic timestamp (``20130524T000000Z``).
        scope: Credential scope; its date must match the timestamp.
        canonical_request: Canonical request (object or its text).

    Returns:
        String to sign.

    Raises:
        InvalidTimestampError: If the timestamp is malformed or its date
            differs from the scope date.
    """
    validate_amz_date(timestamp)
    if timestamp[:8] != scope.date:
        raise InvalidTimestampError(
            f"Scope date {scope.date!r} does not match timestamp {timestamp!r}"
        )
    if isinstance(canonical_request, CanonicalRequest):
        digest = canonical_request.hexdigest()
    else:
        digest = hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()
    return "\n".join([ALGORITHM, timestamp, scope.credential_scope, digest])
