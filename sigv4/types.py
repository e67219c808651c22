# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Value types passed between the signing stages.

All types are immutable.  Signing functions never modify a
``RequestDescriptor``; helpers that add headers or query parameters
return a new instance.
"""

from __future__ import annotations

import urllib.parse
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum

from sigv4.errors import EncodingError, MissingCredentialError


ALGORITHM = "AWS4-HMAC-SHA256"

#: Terminator of every credential scope.
SCOPE_TERMINATOR = "aws4_request"

SUPPORTED_METHODS = frozenset(
    {"GET", "HEAD", "PUT", "POST", "DELETE", "PATCH", "OPTIONS"}
)


class PayloadMarker(Enum):
    """Sentinel payloads that are not hashed.

    The enum value is the literal placed in the canonical request.
    """

    UNSIGNED = "UNSIGNED-PAYLOAD"
    STREAMING = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"


UNSIGNED_PAYLOAD = PayloadMarker.UNSIGNED
STREAMING_PAYLOAD = PayloadMarker.STREAMING

HeaderInput = Mapping[str, str | Iterable[str]] | Iterable[tuple[str, str]]
QueryInput = Mapping[str, str | Iterable[str]] | Iterable[tuple[str, str]]


def url_host(parts: urllib.parse.SplitResult) -> str:
    """Return the ``host`` header value for a split URL.

    Raises:
        EncodingError: If the URL has no host or carries userinfo.
    """
    if not parts.netloc:
        raise EncodingError(f"URL has no host: {parts.geturl()!r}")
    if "@" in parts.netloc:
        raise EncodingError("URL must not contain userinfo")
    return parts.netloc


@dataclass(frozen=True)
class Credentials:
    """AWS credential tuple.

    The secret and session token are excluded from ``repr`` so the
    object can be logged safely.

    Attributes:
        access_key_id: Access key id (e.g. ``AKIA...``).
        secret_access_key: Secret access key.
        session_token: STS session token, if the credentials are temporary.
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)

    def validate(self) -> None:
        """Raise ``MissingCredentialError`` if a required field is empty."""
        if not self.access_key_id:
            raise MissingCredentialError("access_key_id is required")
        if not self.secret_access_key:
            raise MissingCredentialError("secret_access_key is required")


@dataclass(frozen=True)
class SigningScope:
    """Credential scope: date, region and service.

    Attributes:
        date: UTC date (YYYYMMDD).
        region: AWS region, e.g. ``us-east-1``.
        service: Service signing name, e.g. ``s3``.
    """

    date: str
    region: str
    service: str

    @property
    def credential_scope(self) -> str:
        """Scope string ``date/region/service/aws4_request``."""
        return "/".join(
            [self.date, self.region, self.service, SCOPE_TERMINATOR]
        )

    @classmethod
    def from_string(cls, scope: str) -> SigningScope:
        """Parse a ``date/region/service/aws4_request`` string.

        Raises:
            EncodingError: If the string does not have four parts or does
                not end with ``aws4_request``.
        """
        parts = scope.split("/")
        if len(parts) != 4 or parts[3] != SCOPE_TERMINATOR:
            raise EncodingError(f"Malformed credential scope: {scope!r}")
        return cls(date=parts[0], region=parts[1], service=parts[2])


def _pairs(
    values: HeaderInput | QueryInput | None,
) -> tuple[tuple[str, str], ...]:
    """Flatten a mapping or pair iterable into a tuple of pairs.

    Mapping values may be a single string or an iterable of strings,
    which yields one pair per value.
    """
    if values is None:
        return ()
    items: Iterable[tuple[str, object]]
    if isinstance(values, Mapping):
        items = values.items()
    else:
        items = values
    result: list[tuple[str, str]] = []
    for name, value in items:
        if isinstance(value, str):
            result.append((name, value))
        else:
            result.extend((name, str(v)) for v in value)  # type: ignore
    return tuple(result)


@dataclass(frozen=True)
class RequestDescriptor:
    """Structured description of an HTTP request to sign.

    Attributes:
        method: HTTP method, stored upper-case.
        path: Decoded request path.  Must start with ``/`` unless empty.
        query: Query parameters as (key, value) pairs.  Duplicate keys
            are allowed; order does not affect the signature.
        headers: Headers as (name, value) pairs.  A name may repeat for a
            multi-valued header.
        payload: Request body, or a ``PayloadMarker`` when the body is
            not hashed.
    """

    method: str
    path: str = "/"
    query: tuple[tuple[str, str], ...] = ()
    headers: tuple[tuple[str, str], ...] = ()
    payload: bytes | PayloadMarker = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    @classmethod
    def create(
        cls,
        method: str,
        path: str = "/",
        *,
        query: QueryInput | None = None,
        headers: HeaderInput | None = None,
        payload: bytes | str | PayloadMarker = b"",
    ) -> RequestDescriptor:
        """Build a descriptor from mappings or pair lists.

        A ``str`` payload is encoded as UTF-8.
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return cls(
            method=method,
            path=path,
            query=_pairs(query),
            headers=_pairs(headers),
            payload=payload,
        )

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        *,
        headers: HeaderInput | None = None,
        payload: bytes | str | PayloadMarker = b"",
    ) -> RequestDescriptor:
        """Build a descriptor from an absolute URL.

        The path is percent-decoded (it is re-encoded once during
        canonicalization) and a ``host`` header is taken from the URL
        unless the caller already supplied one.

        Raises:
            EncodingError: If the URL has no host or carries userinfo.
        """
        parsed = urllib.parse.urlsplit(url)
        host = url_host(parsed)
        request = cls.create(
            method,
            urllib.parse.unquote(parsed.path),
            query=urllib.parse.parse_qsl(parsed.query, keep_blank_values=True),
            headers=headers,
            payload=payload,
        )
        if request.host is None:
            request = request.with_headers({"host": host})
        return request

    def header_values(self, name: str) -> list[str]:
        """Return all values of a header (case-insensitive name)."""
        lname = name.lower()
        return [v for k, v in self.headers if k.lower() == lname]

    @property
    def host(self) -> str | None:
        """Value of the ``host`` header, or None if absent."""
        values = self.header_values("host")
        return values[0].strip() if values else None

    def with_headers(self, extra: HeaderInput) -> RequestDescriptor:
        """Return a copy with headers set, replacing same-named ones."""
        added = _pairs(extra)
        names = {k.lower() for k, _ in added}
        kept = tuple((k, v) for k, v in self.headers if k.lower() not in names)
        return replace(self, headers=kept + added)

    def with_query(self, extra: QueryInput) -> RequestDescriptor:
        """Return a copy with query parameters appended."""
        return replace(self, query=self.query + _pairs(extra))
