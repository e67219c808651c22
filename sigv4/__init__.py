# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""AWS Signature Version 4 request signing.

Signs a structured request description with a credential tuple and
returns either an ``Authorization`` header value or a presigned URL.
Stateless apart from an optional signing key cache; no HTTP transport.
"""

from sigv4.canonical import CanonicalRequest, SigningMode, canonicalize
from sigv4.chunked import ChunkedSigner
from sigv4.config import ConfigError, SignerConfig
from sigv4.errors import (
    EncodingError,
    InvalidExpiryError,
    InvalidTimestampError,
    MissingCredentialError,
    SigningError,
    UnsupportedMethodError,
)
from sigv4.keys import SigningKeyCache, derive_signing_key
from sigv4.signer import (
    SigV4Signer,
    add_presign_token,
    add_signing_headers,
    parse_auth_header,
    presign_query,
    sign_header,
    sign_presigned_url,
)
from sigv4.string_to_sign import build_string_to_sign
from sigv4.types import (
    STREAMING_PAYLOAD,
    UNSIGNED_PAYLOAD,
    Credentials,
    PayloadMarker,
    RequestDescriptor,
    SigningScope,
)
from sigv4.verify import (
    SigV4Verifier,
    verify_authorization,
    verify_presigned_url,
)


__all__ = [
    "STREAMING_PAYLOAD",
    "UNSIGNED_PAYLOAD",
    "CanonicalRequest",
    "ChunkedSigner",
    "ConfigError",
    "Credentials",
    "EncodingError",
    "InvalidExpiryError",
    "InvalidTimestampError",
    "MissingCredentialError",
    "PayloadMarker",
    "RequestDescriptor",
    "SigV4Signer",
    "SigV4Verifier",
    "SignerConfig",
    "SigningError",
    "SigningKeyCache",
    "SigningMode",
    "SigningScope",
    "UnsupportedMethodError",
    "add_presign_token",
    "add_signing_headers",
    "build_string_to_sign",
    "canonicalize",
    "derive_signing_key",
    "parse_auth_header",
    "presign_query",
    "sign_header",
    "sign_presigned_url",
    "verify_authorization",
    "verify_presigned_url",
]
