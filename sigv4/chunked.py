# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Signing of ``aws-chunked`` streaming payloads.

With ``x-amz-content-sha256: STREAMING-AWS4-HMAC-SHA256-PAYLOAD`` the
body is not hashed up front.  It is sent as a series of chunks::

    {hex size};chunk-signature={sig}\\r\\n{data}\\r\\n
    ...
    0;chunk-signature={sig}\\r\\n\\r\\n

Each chunk signature covers the previous one, starting from the seed
signature of the ``Authorization`` header, so chunks cannot be
reordered, dropped or replaced.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator
from datetime import datetime

from sigv4.canonical import EMPTY_SHA256
from sigv4.errors import EncodingError
from sigv4.keys import derive_signing_key, sign
from sigv4.signer import parse_auth_header
from sigv4.string_to_sign import format_amz_date, validate_amz_date
from sigv4.types import STREAMING_PAYLOAD, Credentials, SigningScope


CHUNK_ALGORITHM = "AWS4-HMAC-SHA256-PAYLOAD"

#: S3 rejects non-final chunks smaller than 8 KiB.
MIN_CHUNK_SIZE = 8 * 1024
DEFAULT_CHUNK_SIZE = 64 * 1024

_CHUNK_SIGNATURE = b";chunk-signature="
_CRLF = b"\r\n"

# ";chunk-signature=" + 64 hex chars + two CRLFs
_CHUNK_OVERHEAD = len(_CHUNK_SIGNATURE) + 64 + 2 * len(_CRLF)


def chunk_string_to_sign(
    timestamp: str,
    scope: SigningScope,
    previous_signature: str,
    chunk_data: bytes,
) -> str:
    """Build the string to sign for one chunk.

    Args:
        timestamp: ISO8601 timestamp of the seed request.
        scope: Credential scope of the seed request.
        previous_signature: Previous chunk's (or seed) signature.
        chunk_data: Raw chunk bytes (empty for the terminal chunk).

    Returns:
        String to sign for this chunk.
    """
    return "\n".join(
        [
            CHUNK_ALGORITHM,
            timestamp,
            scope.credential_scope,
            previous_signature,
            EMPTY_SHA256,
            hashlib.sha256(chunk_data).hexdigest(),
        ]
    )


def encode_chunk(chunk_data: bytes, signature: str) -> bytes:
    """Frame chunk data with its size and signature."""
    header = f"{len(chunk_data):x}".encode() + _CHUNK_SIGNATURE
    return header + signature.encode() + _CRLF + chunk_data + _CRLF


def encoded_content_length(
    payload_length: int, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> int:
    """Return the ``Content-Length`` of the chunk-encoded body.

    Args:
        payload_length: Length of the decoded payload.
        chunk_size: Size of every non-final chunk.
    """
    if payload_length < 0:
        raise ValueError("payload_length cannot be negative")
    full, remainder = divmod(payload_length, chunk_size)
    sizes = [chunk_size] * full
    if remainder:
        sizes.append(remainder)
    sizes.append(0)
    return sum(len(f"{s:x}") + _CHUNK_OVERHEAD + s for s in sizes)


def streaming_headers(
    payload_length: int, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> dict[str, str]:
    """Headers a chunked upload must carry (and sign) in the seed request."""
    encoded_length = encoded_content_length(payload_length, chunk_size)
    return {
        "content-encoding": "aws-chunked",
        "content-length": str(encoded_length),
        "x-amz-content-sha256": STREAMING_PAYLOAD.value,
        "x-amz-decoded-content-length": str(payload_length),
    }


class ChunkedSigner:
    """Produces a signed ``aws-chunked`` body.

    Holds the chain state (the last signature), so one instance encodes
    exactly one body and is not safe to share between threads.
    """

    def __init__(
        self,
        *,
        signing_key: bytes,
        seed_signature: str,
        timestamp: str,
        scope: SigningScope,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the signer.

        Args:
            signing_key: Signing key derived for ``scope``.
            seed_signature: Signature of the seed (Authorization) request.
            timestamp: ``x-amz-date`` of the seed request.
            scope: Credential scope of the seed request.
            chunk_size: Size of every non-final chunk.
        """
        if chunk_size < MIN_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be at least {MIN_CHUNK_SIZE}")
        self._signing_key = signing_key
        self._previous_signature = seed_signature
        self._timestamp = validate_amz_date(timestamp)
        self._scope = scope
        self.chunk_size = chunk_size
        self._finished = False

    @classmethod
    def from_authorization(
        cls,
        authorization: str,
        credentials: Credentials,
        now: datetime,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> ChunkedSigner:
        """Start a chain from a seed ``Authorization`` header.

        Args:
            authorization: Header value returned by ``sign_header``.
            credentials: Credentials the seed was signed with.
            now: Signing time of the seed request.
            chunk_size: Size of every non-final chunk.

        Raises:
            EncodingError: If the header is not a SigV4 header.
        """
        parsed = parse_auth_header(authorization)
        if parsed is None:
            raise EncodingError("Not a SigV4 Authorization header")
        scope = parsed.scope
        signing_key = derive_signing_key(
            credentials.secret_access_key,
            scope.date,
            scope.region,
            scope.service,
        )
        return cls(
            signing_key=signing_key,
            seed_signature=parsed.signature,
            timestamp=format_amz_date(now),
            scope=scope,
            chunk_size=chunk_size,
        )

    @property
    def previous_signature(self) -> str:
        """Signature of the last chunk produced (seed before the first)."""
        return self._previous_signature

    def sign_chunk(self, chunk_data: bytes) -> bytes:
        """Sign and frame one data chunk.

        Raises:
            ValueError: If the data is empty or the body is finished.
        """
        if not chunk_data:
            raise ValueError("Use finish() for the terminal chunk")
        return self._emit(chunk_data)

    def finish(self) -> bytes:
        """Sign and frame the terminal zero-length chunk."""
        framed = self._emit(b"")
        self._finished = True
        return framed

    def _emit(self, chunk_data: bytes) -> bytes:
        if self._finished:
            raise ValueError("Chunked body already finished")
        string_to_sign = chunk_string_to_sign(
            self._timestamp, self._scope, self._previous_signature, chunk_data
        )
        signature = sign(self._signing_key, string_to_sign)
        self._previous_signature = signature
        return encode_chunk(chunk_data, signature)

    def iter_chunks(self, stream: Iterable[bytes]) -> Iterator[bytes]:
        """Re-buffer ``stream`` into fixed-size signed chunks.

        Yields framed chunks followed by the terminal chunk.
        """
        buffer = b""
        for data in stream:
            buffer += data
            while len(buffer) >= self.chunk_size:
                yield self.sign_chunk(buffer[: self.chunk_size])
                buffer = buffer[self.chunk_size :]
        if buffer:
            yield self.sign_chunk(buffer)
        yield self.finish()

    def encode(self, payload: bytes) -> bytes:
        """Encode a complete payload as a signed chunked body."""
        return b"".join(self.iter_chunks([payload]))
