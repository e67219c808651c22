# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exceptions raised while building a SigV4 signature.

Every error is raised before the final signature is computed, so a
caller either receives a complete artifact or an exception, never a
partially signed request.
"""


class SigningError(Exception):
    """Base exception for signing failures."""


class EncodingError(SigningError, ValueError):
    """Request path, query or header cannot be canonicalized."""


class InvalidTimestampError(SigningError, ValueError):
    """Malformed or non-UTC date/time input."""


class MissingCredentialError(SigningError, ValueError):
    """Access key id or secret access key is empty."""


class InvalidExpiryError(SigningError, ValueError):
    """Presigned URL expiry is out of range."""


class UnsupportedMethodError(SigningError, ValueError):
    """HTTP method is not in the recognized set."""
