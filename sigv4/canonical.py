# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Canonical request construction.

The canonical request is six newline-joined lines::

    HTTPMethod
    CanonicalURI
    CanonicalQueryString
    CanonicalHeaders      (one "name:value\\n" per signed header)
    SignedHeaders
    HashedPayload

Any deviation (ordering, escaping, whitespace) yields a signature the
server rejects, so every rule lives in its own small function that can be
tested on its own.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum

from sigv4.errors import EncodingError
from sigv4.types import PayloadMarker, RequestDescriptor


#: SHA-256 of the empty byte string.
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

_AWS_UNRESERVED = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)

# Headers that proxies and clients rewrite in flight.
UNSIGNABLE_HEADERS = frozenset(
    {
        "authorization",
        "expect",
        "transfer-encoding",
        "user-agent",
        "x-amzn-trace-id",
    }
)

# RFC 7230 token characters
_HEADER_NAME_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

# Printable ASCII plus horizontal tab
_HEADER_VALUE_RE = re.compile(r"[\t\x20-\x7e]*")


class SigningMode(Enum):
    """Where the signature is carried."""

    HEADER = "header"
    PRESIGNED = "presigned"


# ---------------------------------------------------------------------------
# URI encoding (AWS-specific RFC 3986 subset)
# ---------------------------------------------------------------------------


def uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """URI-encode a value using AWS's rules.

    - Unreserved characters are not encoded: A-Z, a-z, 0-9, -, _, ., ~
    - Every other byte of the UTF-8 encoding becomes %XX (uppercase hex)
    - Forward slashes are optionally preserved

    Args:
        value: String to encode.
        encode_slash: If True, encode '/'; if False, preserve '/'.

    Returns:
        URI-encoded string.

    Raises:
        EncodingError: If the value cannot be encoded as UTF-8.
    """
    try:
        raw = value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(f"Cannot encode {value!r} as UTF-8: {e}") from e
    result: list[str] = []
    for byte in raw:
        if byte in _AWS_UNRESERVED:
            result.append(chr(byte))
        elif byte == 0x2F and not encode_slash:
            result.append("/")
        else:
            result.append(f"%{byte:02X}")
    return "".join(result)


# ---------------------------------------------------------------------------
# Canonical request lines
# ---------------------------------------------------------------------------


def canonical_uri(path: str) -> str:
    """Build the canonical URI from a decoded request path.

    Each segment is encoded exactly once; slashes, empty segments and
    dot segments are kept as given.

    Raises:
        EncodingError: If the path does not start with '/'.
    """
    if not path:
        return "/"
    if not path.startswith("/"):
        raise EncodingError(f"Path must start with '/': {path!r}")
    return uri_encode(path, encode_slash=False)


def canonical_query_string(params: tuple[tuple[str, str], ...]) -> str:
    """Build the canonical query string.

    Keys and values are encoded individually (``/`` becomes ``%2F``),
    then sorted by encoded key and, for equal keys, by encoded value.

    Returns:
        ``k=v`` pairs joined with ``&``; empty string for no parameters.
    """
    encoded = sorted((uri_encode(k), uri_encode(v)) for k, v in params)
    return "&".join(f"{k}={v}" for k, v in encoded)


def normalize_header_value(value: str) -> str:
    """Trim a header value and collapse inner whitespace runs."""
    return " ".join(value.split())


def _check_header(name: str, value: str) -> None:
    if not _HEADER_NAME_RE.fullmatch(name):
        raise EncodingError(f"Invalid header name: {name!r}")
    if not _HEADER_VALUE_RE.fullmatch(value):
        raise EncodingError(
            f"Header {name!r} has a value that is not printable ASCII"
        )


def select_signed_headers(
    request: RequestDescriptor, mode: SigningMode
) -> list[str]:
    """Choose which headers to sign.

    Header mode signs every header except those in
    ``UNSIGNABLE_HEADERS``.  Presigned mode signs ``host`` and every
    ``x-amz-*`` header the request carries.

    Returns:
        Sorted, de-duplicated, lower-cased header names.
    """
    names = {"host"}
    for name, _ in request.headers:
        lname = name.lower()
        if mode is SigningMode.HEADER:
            if lname not in UNSIGNABLE_HEADERS:
                names.add(lname)
        elif lname.startswith("x-amz-"):
            names.add(lname)
    return sorted(names)


def canonical_headers(
    request: RequestDescriptor, signed_headers: list[str]
) -> str:
    """Build the canonical headers block.

    Values of a repeated header are joined with ',' in the order given,
    which is the same text a single comma-separated value produces.

    Raises:
        EncodingError: If a signed header is missing, or a name or value
            cannot be represented.
    """
    wanted = set(signed_headers)
    grouped: dict[str, list[str]] = {}
    for name, value in request.headers:
        if name.lower() not in wanted:
            continue
        _check_header(name, value)
        grouped.setdefault(name.lower(), []).append(
            normalize_header_value(value)
        )

    lines: list[str] = []
    for name in sorted(signed_headers):
        if name not in grouped:
            raise EncodingError(f"Signed header {name!r} is not present")
        lines.append(f"{name}:{','.join(grouped[name])}\n")
    return "".join(lines)


def hashed_payload(
    payload: bytes | PayloadMarker, mode: SigningMode = SigningMode.HEADER
) -> str:
    """Return the payload line of the canonical request.

    Presigned URLs never hash the payload since it is unknown when the
    URL is created.
    """
    if mode is SigningMode.PRESIGNED:
        return PayloadMarker.UNSIGNED.value
    if isinstance(payload, PayloadMarker):
        return payload.value
    return hashlib.sha256(payload).hexdigest()


# ---------------------------------------------------------------------------
# Canonical request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalRequest:
    """The six lines of a canonical request.

    ``str()`` yields the exact text that is hashed into the string to
    sign.
    """

    method: str
    uri: str
    query: str
    headers: str
    signed_headers: str
    payload_hash: str

    def __str__(self) -> str:
        return "\n".join(
            [
                self.method,
                self.uri,
                self.query,
                self.headers,
                self.signed_headers,
                self.payload_hash,
            ]
        )

    def hexdigest(self) -> str:
        """Lowercase hex SHA-256 of the canonical request text."""
        return hashlib.sha256(str(self).encode("utf-8")).hexdigest()


def canonicalize(
    request: RequestDescriptor,
    mode: SigningMode = SigningMode.HEADER,
    *,
    signed_headers: list[str] | None = None,
) -> CanonicalRequest:
    """Build the canonical request for a descriptor.

    Args:
        request: Request to canonicalize.  In presigned mode its query
            must already contain the ``X-Amz-*`` parameters.
        mode: Header or presigned signing.
        signed_headers: Explicit header list (as taken from a received
            ``Authorization`` header).  Defaults to
            ``select_signed_headers(request, mode)``.

    Returns:
        The canonical request.

    Raises:
        EncodingError: If the request cannot be canonicalized.
    """
    if request.host is None:
        raise EncodingError("Request has no host header")
    if signed_headers is None:
        signed_headers = select_signed_headers(request, mode)
    else:
        signed_headers = sorted({h.lower() for h in signed_headers})

    return CanonicalRequest(
        method=request.method,
        uri=canonical_uri(request.path),
        query=canonical_query_string(request.query),
        headers=canonical_headers(request, signed_headers),
        signed_headers=";".join(signed_headers),
        payload_hash=hashed_payload(request.payload, mode),
    )
