"""Tests for signature header parsing, HMAC verification and freshness."""

from __future__ import annotations

import hashlib
import hmac

import pytest

from payhook.webhooks.errors import (
    ExpiredTimestampError,
    MalformedHeaderError,
    SignatureMismatchError,
    WebhookError,
)
from payhook.webhooks.signature import (
    SignatureHeader,
    check_freshness,
    compute_signature,
    generate_signature_header,
    parse_signature_header,
    verify_signature,
)

SECRET = "whsec_test"
BODY = b'{"id":"evt_1","type":"payment_intent.succeeded"}'


def _sign(secret: str, timestamp: int, body: bytes) -> str:
    return hmac.new(
        secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256
    ).hexdigest()


class TestParseSignatureHeader:
    """Tests for parse_signature_header."""

    def test_single_signature(self):
        """Test timestamp and one v1 candidate."""
        header = parse_signature_header("t=1700000000 v1=abc123")
        assert header == SignatureHeader(timestamp=1700000000, candidates=("abc123",))

    def test_multiple_signatures_keep_order(self):
        """Test rotated secrets produce several candidates in header order."""
        header = parse_signature_header("t=1 v1=aaa v1=bbb v1=ccc")
        assert header.candidates == ("aaa", "bbb", "ccc")

    def test_comma_separated(self):
        """Test the comma-separated form Stripe sends on the wire."""
        header = parse_signature_header("t=1700000000,v1=abc,v0=legacy")
        assert header.timestamp == 1700000000
        assert header.candidates == ("abc",)

    def test_unknown_keys_ignored(self):
        """Test unknown schemes and stray tokens are skipped."""
        header = parse_signature_header("t=5 v0=old scheme=x junk v1=new")
        assert header.candidates == ("new",)

    def test_value_may_contain_equals(self):
        """Test values are split on the first '=' only."""
        header = parse_signature_header("t=5 v1=abc=def")
        assert header.candidates == ("abc=def",)

    def test_negative_timestamp(self):
        """Test signed timestamps parse; freshness rejects them later."""
        header = parse_signature_header("t=-5 v1=ab")
        assert header == SignatureHeader(timestamp=-5, candidates=("ab",))
        with pytest.raises(ExpiredTimestampError):
            check_freshness(header.timestamp, 300, now=1700000000)

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "   ",
            "v1=abc",
            "t=abc v1=abc",
            "t=1.5 v1=abc",
            "t=+5 v1=abc",
            "t=- v1=abc",
            "t=--5 v1=abc",
            "t=1",
            "t=1 v1=",
            "t=1 t=2 v1=abc",
        ],
    )
    def test_malformed(self, value):
        """Test malformed headers are rejected."""
        with pytest.raises(MalformedHeaderError):
            parse_signature_header(value)

    def test_malformed_is_webhook_error(self):
        """Test the error belongs to the common taxonomy and is not retryable."""
        with pytest.raises(WebhookError) as exc_info:
            parse_signature_header("")
        assert exc_info.value.code == "malformed_header"
        assert exc_info.value.retryable is False


class TestComputeSignature:
    """Tests for compute_signature."""

    def test_matches_reference_hmac(self):
        """Test HMAC-SHA256 over '{t}.{body}' as lowercase hex."""
        assert compute_signature(SECRET, 1700000000, BODY) == _sign(SECRET, 1700000000, BODY)

    def test_accepts_str_and_bytes(self):
        """Test str and bytes inputs give the same result."""
        assert compute_signature(SECRET, 1, BODY) == compute_signature(
            SECRET.encode(), 1, BODY.decode()
        )


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_valid_signature(self):
        """Test a correct signature passes."""
        header = SignatureHeader(1700000000, (_sign(SECRET, 1700000000, BODY),))
        verify_signature(BODY, header, SECRET)

    def test_any_candidate_matches(self):
        """Test that a single matching candidate among several is enough."""
        good = _sign(SECRET, 10, BODY)
        header = SignatureHeader(10, ("deadbeef", good, "0" * 64))
        verify_signature(BODY, header, SECRET)

    def test_no_candidate_matches(self):
        """Test a wrong signature raises SignatureMismatchError."""
        header = SignatureHeader(10, ("deadbeef", _sign("other", 10, BODY)))
        with pytest.raises(SignatureMismatchError):
            verify_signature(BODY, header, SECRET)

    def test_timestamp_is_signed(self):
        """Test that changing the timestamp invalidates the signature."""
        header = SignatureHeader(11, (_sign(SECRET, 10, BODY),))
        with pytest.raises(SignatureMismatchError):
            verify_signature(BODY, header, SECRET)

    def test_tampered_body(self):
        """Test that a single byte change invalidates the signature."""
        header = SignatureHeader(10, (_sign(SECRET, 10, BODY),))
        with pytest.raises(SignatureMismatchError):
            verify_signature(BODY.replace(b"evt_1", b"evt_2"), header, SECRET)

    def test_non_ascii_candidate(self):
        """Test that odd candidate bytes do not crash the comparison."""
        header = SignatureHeader(10, ("é" * 64,))
        with pytest.raises(SignatureMismatchError):
            verify_signature(BODY, header, SECRET)


class TestCheckFreshness:
    """Tests for check_freshness."""

    def test_within_tolerance(self):
        """Test timestamps inside the window pass."""
        check_freshness(1700000000, 300, now=1700000010)
        check_freshness(1700000000, 300, now=1699999990)

    def test_boundary_is_inclusive(self):
        """Test a skew equal to the tolerance passes."""
        check_freshness(1700000000, 300, now=1700000300)
        check_freshness(1700000000, 300, now=1699999700)

    def test_too_old(self):
        """Test old timestamps are rejected."""
        with pytest.raises(ExpiredTimestampError) as exc_info:
            check_freshness(1700000000, 300, now=1700000301)
        assert exc_info.value.timestamp == 1700000000
        assert exc_info.value.tolerance == 300

    def test_too_far_in_future(self):
        """Test future timestamps beyond the window are rejected."""
        with pytest.raises(ExpiredTimestampError):
            check_freshness(1700000000, 300, now=1699999699)

    def test_zero_tolerance(self):
        """Test a zero tolerance accepts only the exact second."""
        check_freshness(100, 0, now=100)
        with pytest.raises(ExpiredTimestampError):
            check_freshness(100, 0, now=101)

    def test_negative_tolerance_rejected(self):
        """Test that a negative tolerance is a configuration error."""
        with pytest.raises(ValueError):
            check_freshness(100, -1, now=100)


class TestGenerateSignatureHeader:
    """Tests for generate_signature_header."""

    def test_generated_header_verifies(self):
        """Test a generated header parses and verifies."""
        value = generate_signature_header(SECRET, BODY, timestamp=1700000000)
        assert value.startswith("t=1700000000 v1=")

        header = parse_signature_header(value)
        verify_signature(BODY, header, SECRET)

    def test_defaults_to_current_time(self):
        """Test the timestamp defaults to the wall clock."""
        header = parse_signature_header(generate_signature_header(SECRET, BODY))
        check_freshness(header.timestamp, 5)
