# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Server-side verification of SigV4 signatures.

The verifier recomputes the signature from the received request using
the scope and signed header list the client declared, then compares in
constant time.  Malformed input is reported as a failed verification,
never as a partially trusted request.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import urllib.parse
from dataclasses import replace
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sigv4.canonical import SigningMode, canonicalize
from sigv4.config import DEFAULT_MAX_EXPIRES, SignerConfig
from sigv4.errors import SigningError
from sigv4.keys import derive_signing_key, sign
from sigv4.signer import check_expiry, parse_auth_header
from sigv4.string_to_sign import build_string_to_sign, parse_amz_date
from sigv4.types import (
    ALGORITHM,
    Credentials,
    HeaderInput,
    PayloadMarker,
    RequestDescriptor,
    SigningScope,
    url_host,
)


logger = logging.getLogger(__name__)

_SIGNATURE_RE = re.compile(r"[0-9a-f]{64}")


def check_clock_skew(
    amz_date: str, now: datetime, max_minutes: int = 5
) -> tuple[bool, int]:
    """Check whether a request timestamp is too far from ``now``.

    Args:
        amz_date: ISO8601 basic timestamp (``x-amz-date``).
        now: Timezone-aware reference time.
        max_minutes: Allowed drift in minutes.

    Returns:
        Tuple of (is_skewed, drift_minutes).

    Raises:
        InvalidTimestampError: If ``amz_date`` is malformed.
    """
    drift = abs((now - parse_amz_date(amz_date)).total_seconds())
    drift_minutes = int(drift / 60)
    return drift > max_minutes * 60, drift_minutes


def parse_presigned_url_params(query: str) -> dict[str, str] | None:
    """Parse presigned URL query parameters.

    Args:
        query: Query string (without leading ?).

    Returns:
        Dict of all query parameters if this is a presigned URL, None
        otherwise.
    """
    params = dict(urllib.parse.parse_qsl(query, keep_blank_values=True))
    if "X-Amz-Credential" not in params or "X-Amz-Signature" not in params:
        return None
    return params


def _apply_declared_payload(
    request: RequestDescriptor,
) -> RequestDescriptor | None:
    """Reconcile the body with ``x-amz-content-sha256``.

    Returns the request to canonicalize, or None if the declared hash
    contradicts the body.
    """
    declared = request.header_values("x-amz-content-sha256")
    if not declared:
        return request
    value = declared[0].strip()
    for marker in PayloadMarker:
        if value == marker.value:
            return replace(request, payload=marker)
    if isinstance(request.payload, bytes):
        if hashlib.sha256(request.payload).hexdigest() != value:
            return None
    return request


def _expected_signature(
    request: RequestDescriptor,
    mode: SigningMode,
    signed_headers: list[str],
    timestamp: str,
    scope: SigningScope,
    credentials: Credentials,
) -> str:
    creq = canonicalize(request, mode, signed_headers=signed_headers)
    string_to_sign = build_string_to_sign(timestamp, scope, creq)
    signing_key = derive_signing_key(
        credentials.secret_access_key, scope.date, scope.region, scope.service
    )
    return sign(signing_key, string_to_sign)


def verify_authorization(
    request: RequestDescriptor,
    authorization: str,
    credentials: Credentials,
    now: datetime,
    *,
    max_skew_minutes: int = 5,
) -> bool:
    """Verify a header-mode signature.

    Args:
        request: Received request, including its ``x-amz-date`` header
            and body.
        authorization: Received ``Authorization`` header value.
        credentials: Credentials of the claimed access key id.
        now: Timezone-aware reference time for the skew check.
        max_skew_minutes: Allowed clock drift.

    Returns:
        True if the signature is valid.
    """
    parsed = parse_auth_header(authorization)
    if parsed is None:
        logger.info("Rejected request: malformed Authorization header")
        return False
    if parsed.key_id != credentials.access_key_id:
        logger.info("Rejected request: unknown access key id")
        return False
    if "host" not in parsed.signed_headers:
        logger.info("Rejected request: host header not signed")
        return False
    if "x-amz-date" not in parsed.signed_headers:
        logger.info("Rejected request: x-amz-date header not signed")
        return False

    dates = request.header_values("x-amz-date")
    if not dates:
        logger.info("Rejected request: missing x-amz-date header")
        return False
    timestamp = dates[0].strip()

    try:
        skewed, drift = check_clock_skew(timestamp, now, max_skew_minutes)
        if skewed:
            logger.info("Rejected request: clock skew of %d minutes", drift)
            return False
        prepared = _apply_declared_payload(request)
        if prepared is None:
            logger.info("Rejected request: payload hash mismatch")
            return False
        expected = _expected_signature(
            prepared,
            SigningMode.HEADER,
            parsed.signed_headers,
            timestamp,
            parsed.scope,
            credentials,
        )
    except SigningError as e:
        logger.info("Rejected request: %s", e)
        return False

    return hmac.compare_digest(expected, parsed.signature)


def verify_presigned_url(
    method: str,
    url: str,
    headers: HeaderInput | None,
    credentials: Credentials,
    now: datetime,
    *,
    max_expires: int = DEFAULT_MAX_EXPIRES,
    max_skew_minutes: int = 5,
) -> bool:
    """Verify a presigned URL.

    Args:
        method: HTTP method the URL is used with.
        url: Full URL as received.
        headers: Received headers; ``host`` defaults to the URL's host.
        credentials: Credentials of the claimed access key id.
        now: Timezone-aware reference time.
        max_expires: Largest accepted ``X-Amz-Expires``.
        max_skew_minutes: How far in the future ``X-Amz-Date`` may be.

    Returns:
        True if the URL is valid and not expired.
    """
    parts = urllib.parse.urlsplit(url)
    params = parse_presigned_url_params(parts.query)
    if params is None:
        return False
    if params.get("X-Amz-Algorithm") != ALGORITHM:
        logger.info("Rejected URL: unsupported algorithm")
        return False
    signature = params["X-Amz-Signature"]
    if not _SIGNATURE_RE.fullmatch(signature):
        logger.info("Rejected URL: malformed signature")
        return False

    key_id, _, scope_str = params["X-Amz-Credential"].partition("/")
    if key_id != credentials.access_key_id:
        logger.info("Rejected URL: unknown access key id")
        return False

    try:
        scope = SigningScope.from_string(scope_str)
        timestamp = params.get("X-Amz-Date", "")
        issued = parse_amz_date(timestamp)
        expires = check_expiry(
            int(params.get("X-Amz-Expires", "")), max_expires
        )
    except (SigningError, ValueError) as e:
        logger.info("Rejected URL: %s", e)
        return False

    expiry = issued + timedelta(seconds=expires)
    if now > expiry:
        logger.info("Rejected URL: expired at %s", expiry.isoformat())
        return False
    if issued > now + timedelta(minutes=max_skew_minutes):
        logger.info("Rejected URL: issued in the future")
        return False

    signed_headers = params.get("X-Amz-SignedHeaders", "").split(";")
    if "host" not in signed_headers:
        logger.info("Rejected URL: host header not signed")
        return False

    query = [
        (k, v)
        for k, v in urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
        if k != "X-Amz-Signature"
    ]
    request = RequestDescriptor.create(
        method,
        urllib.parse.unquote(parts.path),
        query=query,
        headers=headers,
        payload=PayloadMarker.UNSIGNED,
    )
    try:
        if request.host is None:
            request = request.with_headers({"host": url_host(parts)})
        expected = _expected_signature(
            request,
            SigningMode.PRESIGNED,
            signed_headers,
            timestamp,
            scope,
            credentials,
        )
    except SigningError as e:
        logger.info("Rejected URL: %s", e)
        return False

    return hmac.compare_digest(expected, signature)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SigV4Verifier:
    """Verifier bound to credentials and policy settings.

    Applies the config's ``clock_skew_minutes`` and ``max_expires`` to
    every check.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        config: SignerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.credentials = credentials
        self.config = config or SignerConfig()
        self._clock = clock or _utc_now

    def verify_authorization(
        self,
        request: RequestDescriptor,
        authorization: str,
        now: datetime | None = None,
    ) -> bool:
        """Verify a header-mode signature."""
        return verify_authorization(
            request,
            authorization,
            self.credentials,
            now or self._clock(),
            max_skew_minutes=self.config.clock_skew_minutes,
        )

    def verify_presigned_url(
        self,
        method: str,
        url: str,
        headers: HeaderInput | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Verify a presigned URL."""
        return verify_presigned_url(
            method,
            url,
            headers,
            self.credentials,
            now or self._clock(),
            max_expires=self.config.max_expires,
            max_skew_minutes=self.config.clock_skew_minutes,
        )
