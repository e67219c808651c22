# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Signing key derivation and an optional per-scope key cache."""

from __future__ import annotations

import hashlib
import hmac
import logging
import threading
from collections import OrderedDict

from sigv4.errors import MissingCredentialError
from sigv4.string_to_sign import validate_datestamp
from sigv4.types import SCOPE_TERMINATOR, SigningScope


logger = logging.getLogger(__name__)


def hmac_sha256(key: bytes, msg: str | bytes) -> bytes:
    """HMAC-SHA256 helper returning the raw digest."""
    if isinstance(msg, str):
        msg = msg.encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).digest()


def derive_signing_key(
    secret_key: str, date: str, region: str, service: str
) -> bytes:
    """Derive the SigV4 signing key.

    Each stage keys the next with its raw 32-byte digest::

        kDate    = HMAC("AWS4" + secret, date)
        kRegion  = HMAC(kDate, region)
        kService = HMAC(kRegion, service)
        kSigning = HMAC(kService, "aws4_request")

    Args:
        secret_key: AWS secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        Derived signing key bytes.

    Raises:
        MissingCredentialError: If the secret is empty.
        InvalidTimestampError: If the date is malformed.
    """
    if not secret_key:
        raise MissingCredentialError("secret_access_key is required")
    validate_datestamp(date)
    k_date = hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, SCOPE_TERMINATOR)


def sign(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the hex-encoded SigV4 signature."""
    return hmac.new(
        signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()


class SigningKeyCache:
    """Thread-safe cache of derived signing keys.

    Keys are looked up by (secret digest, date, region, service), so a
    cached key is only ever returned for the exact scope it was derived
    for.  When a request arrives for a later date than any seen before,
    entries for earlier dates are dropped.  Raw secrets are never stored.
    """

    def __init__(self, max_entries: int = 64) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: OrderedDict[tuple[str, str, str, str], bytes] = (
            OrderedDict()
        )
        self._latest_date = ""
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def _cache_key(
        secret_key: str, scope: SigningScope
    ) -> tuple[str, str, str, str]:
        digest = hashlib.sha256(secret_key.encode("utf-8")).hexdigest()
        return (digest, scope.date, scope.region, scope.service)

    def get(self, secret_key: str, scope: SigningScope) -> bytes:
        """Return the signing key for a scope, deriving it on a miss.

        Raises:
            MissingCredentialError: If the secret is empty.
            InvalidTimestampError: If the scope date is malformed.
        """
        if not secret_key:
            raise MissingCredentialError("secret_access_key is required")
        validate_datestamp(scope.date)
        cache_key = self._cache_key(secret_key, scope)

        with self._lock:
            if scope.date > self._latest_date:
                self._latest_date = scope.date
                self._evict_before(scope.date)
            key = self._entries.get(cache_key)
            if key is not None:
                self._entries.move_to_end(cache_key)
                self.hits += 1
                return key
            self.misses += 1

        key = derive_signing_key(
            secret_key, scope.date, scope.region, scope.service
        )

        with self._lock:
            self._entries[cache_key] = key
            self._entries.move_to_end(cache_key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return key

    def _evict_before(self, date: str) -> None:
        """Drop entries older than ``date``.  Caller holds the lock."""
        stale = [k for k in self._entries if k[1] < date]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug(
                "Evicted %d signing key(s) older than %s", len(stale), date
            )

    def clear(self) -> None:
        """Remove all cached keys."""
        with self._lock:
            self._entries.clear()
            self._latest_date = ""
