# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for sigv4/canonical.py."""

import hashlib

import pytest

from sigv4.canonical import (
    EMPTY_SHA256,
    SigningMode,
    canonical_headers,
    canonical_query_string,
    canonical_uri,
    canonicalize,
    hashed_payload,
    normalize_header_value,
    select_signed_headers,
    uri_encode,
)
from sigv4.errors import EncodingError
from sigv4.types import PayloadMarker, RequestDescriptor
from tests.vectors import (
    GET_OBJECT_CANONICAL_REQUEST,
    GET_OBJECT_CANONICAL_REQUEST_SHA256,
    GET_OBJECT_REQUEST,
)


def _request(**kwargs: object) -> RequestDescriptor:
    headers = kwargs.pop("headers", {"Host": "example.com"})
    return RequestDescriptor.create(
        kwargs.pop("method", "GET"),  # type: ignore[arg-type]
        kwargs.pop("path", "/"),  # type: ignore[arg-type]
        headers=headers,  # type: ignore[arg-type]
        **kwargs,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# URI encoding
# ---------------------------------------------------------------------------


class TestUriEncode:
    """Tests for uri_encode."""

    def test_unreserved_chars_not_encoded(self) -> None:
        """Unreserved characters pass through unchanged."""
        assert uri_encode("abcXYZ019-_.~") == "abcXYZ019-_.~"

    def test_space_encoded_as_percent20(self) -> None:
        """Spaces are encoded as %20, not +."""
        assert uri_encode("hello world") == "hello%20world"

    def test_slash_encoded_by_default(self) -> None:
        """Forward slashes are encoded by default."""
        assert uri_encode("a/b") == "a%2Fb"

    def test_slash_preserved_when_requested(self) -> None:
        """Forward slashes preserved when encode_slash=False."""
        assert uri_encode("a/b", encode_slash=False) == "a/b"

    def test_uppercase_hex(self) -> None:
        """Hex digits in encoding are uppercase."""
        assert uri_encode("@=*") == "%40%3D%2A"

    def test_non_ascii_encoded_as_utf8(self) -> None:
        """Non-ASCII characters are encoded byte by byte as UTF-8."""
        assert uri_encode("é") == "%C3%A9"

    def test_percent_encoded_once(self) -> None:
        """A literal percent sign is encoded, not interpreted."""
        assert uri_encode("50%") == "50%25"

    def test_lone_surrogate_raises(self) -> None:
        """Strings that are not valid UTF-8 raise EncodingError."""
        with pytest.raises(EncodingError):
            uri_encode("\ud800")


# ---------------------------------------------------------------------------
# Canonical URI
# ---------------------------------------------------------------------------


class TestCanonicalUri:
    """Tests for canonical_uri."""

    def test_empty_path_becomes_slash(self) -> None:
        """Empty path returns /."""
        assert canonical_uri("") == "/"

    def test_simple_path(self) -> None:
        """Simple path is unchanged."""
        assert canonical_uri("/bucket/key") == "/bucket/key"

    def test_special_characters_encoded_once(self) -> None:
        """Reserved characters in segments are single-encoded."""
        assert canonical_uri("/test$file.text") == "/test%24file.text"

    def test_space_in_path(self) -> None:
        """Spaces become %20 (no double encoding)."""
        assert canonical_uri("/my path/file") == "/my%20path/file"

    def test_double_slashes_and_dots_preserved(self) -> None:
        """Segments are not normalized."""
        assert canonical_uri("/a//b/../c") == "/a//b/../c"

    def test_relative_path_raises(self) -> None:
        """Paths must start with a slash."""
        with pytest.raises(EncodingError, match="must start with"):
            canonical_uri("bucket/key")


# ---------------------------------------------------------------------------
# Canonical query string
# ---------------------------------------------------------------------------


class TestCanonicalQueryString:
    """Tests for canonical_query_string."""

    def test_empty_query(self) -> None:
        """No parameters yields an empty string."""
        assert canonical_query_string(()) == ""

    def test_sorted_by_key(self) -> None:
        """Parameters are sorted by encoded key."""
        result = canonical_query_string((("b", "2"), ("a", "1")))
        assert result == "a=1&b=2"

    def test_equal_keys_sorted_by_value(self) -> None:
        """Duplicate keys are ordered by encoded value."""
        result = canonical_query_string((("k", "z"), ("k", "a")))
        assert result == "k=a&k=z"

    def test_slash_in_value_encoded(self) -> None:
        """A '/' inside a value becomes %2F."""
        result = canonical_query_string((("prefix", "a/b"),))
        assert result == "prefix=a%2Fb"

    def test_blank_value_kept(self) -> None:
        """Valueless parameters render as 'key='."""
        assert canonical_query_string((("lifecycle", ""),)) == "lifecycle="

    def test_sort_uses_encoded_form(self) -> None:
        """Sorting happens after encoding ('%' sorts before letters)."""
        result = canonical_query_string((("z", "1"), ("\u00e9", "2")))
        assert result == "%C3%A9=2&z=1"


# ---------------------------------------------------------------------------
# Canonical headers
# ---------------------------------------------------------------------------


class TestCanonicalHeaders:
    """Tests for canonical_headers."""

    def test_basic_headers(self) -> None:
        """Names are lower-cased and lines end with a newline."""
        request = _request(
            headers={"Host": "example.com", "X-Amz-Date": "20260101T000000Z"}
        )
        result = canonical_headers(request, ["host", "x-amz-date"])
        assert result == "host:example.com\nx-amz-date:20260101T000000Z\n"

    def test_whitespace_trimming(self) -> None:
        """Leading/trailing whitespace and sequential spaces collapsed."""
        request = _request(
            headers={"Host": "  example.com  ", "X-Custom": "a   b \t c"}
        )
        result = canonical_headers(request, ["host", "x-custom"])
        assert result == "host:example.com\nx-custom:a b c\n"

    def test_sorted_output(self) -> None:
        """Headers are sorted by name."""
        request = _request(
            headers={"host": "h", "z-header": "z", "a-header": "a"}
        )
        result = canonical_headers(request, ["z-header", "host", "a-header"])
        assert result == "a-header:a\nhost:h\nz-header:z\n"

    def test_multiple_values_match_comma_joined_value(self) -> None:
        """Repeated headers canonicalize like one comma-separated value."""
        repeated = _request(
            headers=[("host", "h"), ("x-list", "a"), ("X-List", "b")]
        )
        single = _request(headers=[("host", "h"), ("x-list", "a,b")])
        assert canonical_headers(
            repeated, ["host", "x-list"]
        ) == canonical_headers(single, ["host", "x-list"])

    def test_missing_signed_header_raises(self) -> None:
        """Every signed header must be present."""
        with pytest.raises(EncodingError, match="x-amz-date"):
            canonical_headers(_request(), ["host", "x-amz-date"])

    def test_non_ascii_value_raises(self) -> None:
        """Non-ASCII values cannot be represented."""
        request = _request(headers={"host": "h", "x-meta": "café"})
        with pytest.raises(EncodingError, match="x-meta"):
            canonical_headers(request, ["host", "x-meta"])

    def test_control_character_raises(self) -> None:
        """Control characters (e.g. newline) are rejected."""
        request = _request(headers={"host": "h", "x-meta": "a\nb"})
        with pytest.raises(EncodingError):
            canonical_headers(request, ["host", "x-meta"])

    def test_trailing_newline_raises(self) -> None:
        request = _request(headers={"host": "h", "x-meta": "ab\n"})
        with pytest.raises(EncodingError):
            canonical_headers(request, ["host", "x-meta"])

    def test_invalid_header_name_raises(self) -> None:
        """Header names must be HTTP tokens."""
        request = _request(headers={"host": "h", "bad name": "v"})
        with pytest.raises(EncodingError, match="Invalid header name"):
            canonical_headers(request, ["host", "bad name"])

    def test_unsigned_header_not_validated(self) -> None:
        """Headers outside the signed set are ignored entirely."""
        request = _request(headers={"host": "h", "user-agent": "café"})
        assert canonical_headers(request, ["host"]) == "host:h\n"


class TestNormalizeHeaderValue:
    """Tests for normalize_header_value."""

    def test_collapses_runs(self) -> None:
        assert normalize_header_value("  a  b   c ") == "a b c"

    def test_empty(self) -> None:
        assert normalize_header_value("   ") == ""


# ---------------------------------------------------------------------------
# Signed header selection
# ---------------------------------------------------------------------------


class TestSelectSignedHeaders:
    """Tests for select_signed_headers."""

    def test_header_mode_signs_all_but_unsignable(self) -> None:
        """Header mode skips headers proxies rewrite."""
        request = _request(
            headers={
                "Host": "h",
                "Content-Type": "text/plain",
                "User-Agent": "client/1.0",
                "Expect": "100-continue",
                "X-Amzn-Trace-Id": "Root=1",
            }
        )
        assert select_signed_headers(request, SigningMode.HEADER) == [
            "content-type",
            "host",
        ]

    def test_presigned_mode_signs_host_and_amz_headers(self) -> None:
        """Presigned mode signs host plus x-amz-* only."""
        request = _request(
            headers={
                "Host": "h",
                "Content-Type": "text/plain",
                "x-amz-acl": "private",
            }
        )
        assert select_signed_headers(request, SigningMode.PRESIGNED) == [
            "host",
            "x-amz-acl",
        ]

    def test_duplicates_collapsed(self) -> None:
        """A repeated header is listed once."""
        request = _request(headers=[("Host", "h"), ("x-a", "1"), ("X-A", "2")])
        assert select_signed_headers(request, SigningMode.HEADER) == [
            "host",
            "x-a",
        ]


# ---------------------------------------------------------------------------
# Payload hash
# ---------------------------------------------------------------------------


class TestHashedPayload:
    """Tests for hashed_payload."""

    def test_empty_body(self) -> None:
        """Empty body hashes to the well-known empty SHA-256."""
        assert hashed_payload(b"") == EMPTY_SHA256
        assert EMPTY_SHA256.startswith("e3b0c442")

    def test_body_hashed(self) -> None:
        assert hashed_payload(b"abc") == hashlib.sha256(b"abc").hexdigest()

    def test_unsigned_marker(self) -> None:
        assert hashed_payload(PayloadMarker.UNSIGNED) == "UNSIGNED-PAYLOAD"

    def test_streaming_marker(self) -> None:
        assert (
            hashed_payload(PayloadMarker.STREAMING)
            == "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
        )

    def test_presigned_mode_never_hashes(self) -> None:
        """Presigned mode always uses UNSIGNED-PAYLOAD."""
        assert (
            hashed_payload(b"body", SigningMode.PRESIGNED) == "UNSIGNED-PAYLOAD"
        )


# ---------------------------------------------------------------------------
# Full canonical request
# ---------------------------------------------------------------------------


class TestCanonicalize:
    """Tests for canonicalize."""

    def test_reference_get_object(self) -> None:
        """Canonical request matches the documented S3 GET example."""
        creq = canonicalize(GET_OBJECT_REQUEST)
        assert str(creq) == GET_OBJECT_CANONICAL_REQUEST
        assert creq.hexdigest() == GET_OBJECT_CANONICAL_REQUEST_SHA256
        assert creq.signed_headers == (
            "host;range;x-amz-content-sha256;x-amz-date"
        )

    def test_deterministic(self) -> None:
        """Repeated calls yield byte-identical output."""
        first = str(canonicalize(GET_OBJECT_REQUEST))
        for _ in range(3):
            assert str(canonicalize(GET_OBJECT_REQUEST)) == first

    def test_query_and_header_order_irrelevant(self) -> None:
        """Re-ordering inputs does not change the canonical request."""
        a = RequestDescriptor.create(
            "GET",
            "/",
            query=[("b", "2"), ("a", "1"), ("a", "0")],
            headers=[("Host", "h"), ("X-B", "b"), ("x-a", "a")],
        )
        b = RequestDescriptor.create(
            "GET",
            "/",
            query=[("a", "0"), ("a", "1"), ("b", "2")],
            headers=[("x-a", "a"), ("host", "h"), ("X-B", "b")],
        )
        assert str(canonicalize(a)) == str(canonicalize(b))

    def test_no_query_yields_empty_line(self) -> None:
        """The query line is present even when empty."""
        lines = str(canonicalize(_request())).split("\n")
        assert lines[0] == "GET"
        assert lines[1] == "/"
        assert lines[2] == ""

    def test_missing_host_raises(self) -> None:
        """A request without a host header cannot be signed."""
        request = RequestDescriptor.create("GET", "/", headers={"x-a": "1"})
        with pytest.raises(EncodingError, match="host"):
            canonicalize(request)

    def test_explicit_signed_headers(self) -> None:
        """An explicit header list overrides selection."""
        request = _request(headers={"Host": "h", "Content-Type": "text/plain"})
        creq = canonicalize(request, signed_headers=["Host"])
        assert creq.signed_headers == "host"
        assert creq.headers == "host:h\n"

    def test_presigned_mode_uses_unsigned_payload(self) -> None:
        creq = canonicalize(
            _request(payload=b"ignored"), SigningMode.PRESIGNED
        )
        assert creq.payload_hash == "UNSIGNED-PAYLOAD"

    def test_method_upper_cased(self) -> None:
        assert canonicalize(_request(method="get")).method == "GET"
