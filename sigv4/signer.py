# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SigV4 header signing and presigned URL generation.

Two entry points share one pipeline::

    canonicalize -> build_string_to_sign -> derive_signing_key -> sign

``sign_header`` renders the result as an ``Authorization`` header value.
``sign_presigned_url`` moves the authentication parameters into the
query string and appends ``X-Amz-Signature``.

Session tokens are never added implicitly.  Callers that hold temporary
credentials use ``add_signing_headers`` (header mode) or
``add_presign_token`` (presigned mode) before signing, so signing never
alters the caller's request behind their back.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime

from sigv4.canonical import (
    CanonicalRequest,
    SigningMode,
    canonical_query_string,
    canonical_uri,
    canonicalize,
    hashed_payload,
    select_signed_headers,
)
from sigv4.config import DEFAULT_MAX_EXPIRES, SignerConfig
from sigv4.errors import (
    EncodingError,
    InvalidExpiryError,
    InvalidTimestampError,
    UnsupportedMethodError,
)
from sigv4.keys import SigningKeyCache, derive_signing_key, sign
from sigv4.logging import SecretFilter
from sigv4.string_to_sign import (
    build_string_to_sign,
    format_amz_date,
    scope_for,
)
from sigv4.types import (
    ALGORITHM,
    SUPPORTED_METHODS,
    Credentials,
    RequestDescriptor,
    SigningScope,
)


logger = logging.getLogger(__name__)

#: Query parameters that carry presigned URL authentication.
PRESIGN_PARAMS = frozenset(
    {
        "X-Amz-Algorithm",
        "X-Amz-Credential",
        "X-Amz-Date",
        "X-Amz-Expires",
        "X-Amz-SignedHeaders",
        "X-Amz-Signature",
    }
)

# Accepts both "," and ", " separators (SDKs differ)
_AUTH_HEADER_RE = re.compile(
    r"^(?P<algorithm>AWS4-HMAC-SHA256)\s+"
    r"Credential=(?P<key_id>[^/,\s]+)/(?P<scope>[^,\s]+),\s*"
    r"SignedHeaders=(?P<signed_headers>[^,\s]+),\s*"
    r"Signature=(?P<signature>[0-9a-f]{64})$"
)


# ---------------------------------------------------------------------------
# Authorization header rendering and parsing
# ---------------------------------------------------------------------------


def render_authorization(
    access_key_id: str, scope: SigningScope, signed_headers: str, signature: str
) -> str:
    """Render the ``Authorization`` header value."""
    return (
        f"{ALGORITHM} "
        f"Credential={access_key_id}/{scope.credential_scope},"
        f"SignedHeaders={signed_headers},"
        f"Signature={signature}"
    )


class ParsedAuth:
    """Parsed SigV4 Authorization header."""

    __slots__ = (
        "algorithm",
        "key_id",
        "scope",
        "signed_headers",
        "signature",
    )

    def __init__(
        self,
        algorithm: str,
        key_id: str,
        scope: SigningScope,
        signed_headers: list[str],
        signature: str,
    ) -> None:
        self.algorithm = algorithm
        self.key_id = key_id
        self.scope = scope
        self.signed_headers = signed_headers
        self.signature = signature


def parse_auth_header(auth_value: str) -> ParsedAuth | None:
    """Parse a SigV4 Authorization header.

    Args:
        auth_value: Full Authorization header value.

    Returns:
        ParsedAuth if the value is a well-formed SigV4 header, None
        otherwise.
    """
    m = _AUTH_HEADER_RE.match(auth_value.strip())
    if not m:
        return None
    try:
        scope = SigningScope.from_string(m.group("scope"))
    except EncodingError:
        return None
    return ParsedAuth(
        algorithm=m.group("algorithm"),
        key_id=m.group("key_id"),
        scope=scope,
        signed_headers=m.group("signed_headers").split(";"),
        signature=m.group("signature"),
    )


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def check_method(method: str) -> None:
    """Raise ``UnsupportedMethodError`` for unrecognized methods."""
    if method not in SUPPORTED_METHODS:
        raise UnsupportedMethodError(
            f"Unsupported HTTP method {method!r}; expected one of "
            f"{', '.join(sorted(SUPPORTED_METHODS))}"
        )


def check_expiry(
    expires_seconds: object, max_expires: int = DEFAULT_MAX_EXPIRES
) -> int:
    """Validate a presigned URL expiry.

    Returns:
        The expiry as an int.

    Raises:
        InvalidExpiryError: If not an int in ``1..max_expires``.
    """
    if isinstance(expires_seconds, bool) or not isinstance(
        expires_seconds, int
    ):
        raise InvalidExpiryError(
            f"Expiry must be an integer number of seconds, "
            f"got {expires_seconds!r}"
        )
    if expires_seconds <= 0:
        raise InvalidExpiryError(
            f"Expiry must be positive, got {expires_seconds}"
        )
    if expires_seconds > max_expires:
        raise InvalidExpiryError(
            f"Expiry {expires_seconds}s exceeds maximum of {max_expires}s"
        )
    return expires_seconds


def _check_date_header(request: RequestDescriptor, timestamp: str) -> None:
    """Reject an ``x-amz-date`` header that disagrees with the signing time.

    The server builds its string to sign from the header, so a mismatch
    would produce a signature that can never verify.
    """
    for value in request.header_values("x-amz-date"):
        if value.strip() != timestamp:
            raise InvalidTimestampError(
                f"x-amz-date header {value.strip()!r} does not match "
                f"signing time {timestamp!r}"
            )


# ---------------------------------------------------------------------------
# Caller-driven request preparation
# ---------------------------------------------------------------------------


def add_signing_headers(
    request: RequestDescriptor, credentials: Credentials, now: datetime
) -> RequestDescriptor:
    """Return a copy of ``request`` with the SigV4 companion headers.

    Adds ``x-amz-date``, ``x-amz-content-sha256`` and, for temporary
    credentials, ``x-amz-security-token``.  Existing headers of the same
    names are replaced.
    """
    headers = {
        "x-amz-date": format_amz_date(now),
        "x-amz-content-sha256": hashed_payload(request.payload),
    }
    if credentials.session_token:
        headers["x-amz-security-token"] = credentials.session_token
    return request.with_headers(headers)


def add_presign_token(
    request: RequestDescriptor, credentials: Credentials
) -> RequestDescriptor:
    """Return a copy with ``X-Amz-Security-Token`` in the query.

    Returns the request unchanged for long-term credentials.

    Raises:
        EncodingError: If the query already carries a session token.
    """
    if not credentials.session_token:
        return request
    if any(k == "X-Amz-Security-Token" for k, _ in request.query):
        raise EncodingError("Request already carries X-Amz-Security-Token")
    return request.with_query(
        [("X-Amz-Security-Token", credentials.session_token)]
    )


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def _signing_key(
    credentials: Credentials,
    scope: SigningScope,
    key_cache: SigningKeyCache | None,
) -> bytes:
    if key_cache is not None:
        return key_cache.get(credentials.secret_access_key, scope)
    return derive_signing_key(
        credentials.secret_access_key, scope.date, scope.region, scope.service
    )


def _finish(
    creq: CanonicalRequest,
    timestamp: str,
    scope: SigningScope,
    credentials: Credentials,
    key_cache: SigningKeyCache | None,
) -> str:
    """Hash, derive and sign; returns the hex signature."""
    string_to_sign = build_string_to_sign(timestamp, scope, creq)
    signing_key = _signing_key(credentials, scope, key_cache)
    signature = sign(signing_key, string_to_sign)
    logger.debug(
        "Signed %s %s scope=%s signed_headers=%s creq_sha256=%s",
        creq.method,
        creq.uri,
        scope.credential_scope,
        creq.signed_headers,
        creq.hexdigest(),
    )
    return signature


def sign_header(
    request: RequestDescriptor,
    credentials: Credentials,
    region: str,
    service: str,
    now: datetime,
    *,
    key_cache: SigningKeyCache | None = None,
) -> str:
    """Sign a request and return the ``Authorization`` header value.

    Args:
        request: Request to sign.  Must carry a ``host`` header; an
            ``x-amz-date`` header, if present, must equal ``now``.
        credentials: Signing credentials.
        region: Region of the credential scope.
        service: Service of the credential scope.
        now: Timezone-aware signing time.
        key_cache: Optional signing key cache.

    Returns:
        ``AWS4-HMAC-SHA256 Credential=...,SignedHeaders=...,Signature=...``

    Raises:
        SigningError: Any validation or canonicalization failure.
    """
    credentials.validate()
    check_method(request.method)
    timestamp = format_amz_date(now)
    _check_date_header(request, timestamp)
    scope = scope_for(timestamp, region, service)

    creq = canonicalize(request, SigningMode.HEADER)
    signature = _finish(creq, timestamp, scope, credentials, key_cache)
    return render_authorization(
        credentials.access_key_id, scope, creq.signed_headers, signature
    )


def _presign(
    request: RequestDescriptor,
    credentials: Credentials,
    region: str,
    service: str,
    now: datetime,
    expires_seconds: int,
    max_expires: int,
    key_cache: SigningKeyCache | None,
) -> tuple[RequestDescriptor, str]:
    """Add the presign parameters and sign.

    Returns:
        The request with the five ``X-Amz-*`` parameters added, and the
        hex signature.
    """
    expires_seconds = check_expiry(expires_seconds, max_expires)
    credentials.validate()
    check_method(request.method)

    present = {k for k, _ in request.query} & PRESIGN_PARAMS
    if present:
        raise EncodingError(
            f"Request already carries presign parameters: {sorted(present)}"
        )

    timestamp = format_amz_date(now)
    scope = scope_for(timestamp, region, service)
    signed_headers = select_signed_headers(request, SigningMode.PRESIGNED)

    presigned = request.with_query(
        [
            ("X-Amz-Algorithm", ALGORITHM),
            (
                "X-Amz-Credential",
                f"{credentials.access_key_id}/{scope.credential_scope}",
            ),
            ("X-Amz-Date", timestamp),
            ("X-Amz-Expires", str(expires_seconds)),
            ("X-Amz-SignedHeaders", ";".join(signed_headers)),
        ]
    )
    creq = canonicalize(
        presigned, SigningMode.PRESIGNED, signed_headers=signed_headers
    )
    signature = _finish(creq, timestamp, scope, credentials, key_cache)
    return presigned, signature


def presign_query(
    request: RequestDescriptor,
    credentials: Credentials,
    region: str,
    service: str,
    now: datetime,
    expires_seconds: int,
    *,
    max_expires: int = DEFAULT_MAX_EXPIRES,
    key_cache: SigningKeyCache | None = None,
) -> list[tuple[str, str]]:
    """Compute the full presigned query parameter list.

    Returns:
        The request's own parameters, the five presign parameters and
        ``X-Amz-Signature`` last.  Values are not percent-encoded.
    """
    presigned, signature = _presign(
        request,
        credentials,
        region,
        service,
        now,
        expires_seconds,
        max_expires,
        key_cache,
    )
    return [*presigned.query, ("X-Amz-Signature", signature)]


def sign_presigned_url(
    request: RequestDescriptor,
    credentials: Credentials,
    region: str,
    service: str,
    now: datetime,
    expires_seconds: int,
    *,
    max_expires: int = DEFAULT_MAX_EXPIRES,
    scheme: str = "https",
    key_cache: SigningKeyCache | None = None,
) -> str:
    """Create a presigned URL.

    The payload of ``request`` is ignored; the canonical request uses
    ``UNSIGNED-PAYLOAD``.  Expiry is validated before any hashing.

    Returns:
        ``<scheme>://<host><path>?<sorted query>&X-Amz-Signature=<hex>``

    Raises:
        InvalidExpiryError: If the expiry is not in ``1..max_expires``.
        SigningError: Any other validation or canonicalization failure.
    """
    presigned, signature = _presign(
        request,
        credentials,
        region,
        service,
        now,
        expires_seconds,
        max_expires,
        key_cache,
    )
    return (
        f"{scheme}://{presigned.host}{canonical_uri(presigned.path)}"
        f"?{canonical_query_string(presigned.query)}"
        f"&X-Amz-Signature={signature}"
    )


# ---------------------------------------------------------------------------
# Signer bound to credentials and policy
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SigV4Signer:
    """Signer bound to credentials, a scope and policy settings.

    Registers the credentials' secret parts with ``SecretFilter`` and,
    unless disabled in the config, caches derived signing keys.
    """

    def __init__(
        self,
        credentials: Credentials,
        region: str,
        service: str,
        *,
        config: SignerConfig | None = None,
        key_cache: SigningKeyCache | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        credentials.validate()
        self.credentials = credentials
        self.region = region
        self.service = service
        self.config = config or SignerConfig()
        if key_cache is None and self.config.key_cache_enabled:
            key_cache = SigningKeyCache(self.config.key_cache_max_entries)
        self.key_cache = key_cache
        self._clock = clock or _utc_now
        SecretFilter.register_credentials(credentials)

    @classmethod
    def from_config(
        cls, credentials: Credentials, config: SignerConfig, **kwargs: object
    ) -> SigV4Signer:
        """Create a signer using the config's region and service.

        Raises:
            ValueError: If the config has no region or service.
        """
        if not config.region or not config.service:
            raise ValueError("Config must define both region and service")
        return cls(
            credentials,
            config.region,
            config.service,
            config=config,
            **kwargs,  # type: ignore[arg-type]
        )

    def sign_header(
        self, request: RequestDescriptor, now: datetime | None = None
    ) -> str:
        """Return the ``Authorization`` header value for ``request``."""
        return sign_header(
            request,
            self.credentials,
            self.region,
            self.service,
            now or self._clock(),
            key_cache=self.key_cache,
        )

    def add_auth(
        self, request: RequestDescriptor, now: datetime | None = None
    ) -> RequestDescriptor:
        """Return a fully signed copy of ``request``.

        Adds the companion headers (see ``add_signing_headers``) and the
        ``Authorization`` header, all computed from one clock read.
        """
        now = now or self._clock()
        prepared = add_signing_headers(request, self.credentials, now)
        return prepared.with_headers(
            {"Authorization": self.sign_header(prepared, now)}
        )

    def presign_query(
        self,
        request: RequestDescriptor,
        expires_seconds: int | None = None,
        now: datetime | None = None,
    ) -> list[tuple[str, str]]:
        """Return presigned query parameters for ``request``."""
        return presign_query(
            add_presign_token(request, self.credentials),
            self.credentials,
            self.region,
            self.service,
            now or self._clock(),
            self._expires(expires_seconds),
            max_expires=self.config.max_expires,
            key_cache=self.key_cache,
        )

    def presign_url(
        self,
        request: RequestDescriptor,
        expires_seconds: int | None = None,
        now: datetime | None = None,
    ) -> str:
        """Return a presigned URL for ``request``.

        Temporary credentials add ``X-Amz-Security-Token`` to the query.
        """
        return sign_presigned_url(
            add_presign_token(request, self.credentials),
            self.credentials,
            self.region,
            self.service,
            now or self._clock(),
            self._expires(expires_seconds),
            max_expires=self.config.max_expires,
            scheme=self.config.scheme,
            key_cache=self.key_cache,
        )

    def _expires(self, expires_seconds: int | None) -> int:
        if expires_seconds is None:
            return self.config.default_expires
        return expires_seconds
