"""Signature header parsing, HMAC verification and freshness checks.

Building blocks for providers that sign payloads with a shared secret.

Security Features:
- HMAC-SHA256 over "{timestamp}.{body}"
- Constant-time comparison against every candidate signature
- Multiple candidates per header (secret rotation)
- Timestamp tolerance window (replay attack prevention)

Usage:
    from payhook.webhooks.signature import (
        check_freshness,
        parse_signature_header,
        verify_signature,
    )

    header = parse_signature_header(request.headers["Stripe-Signature"])
    verify_signature(request_body, header, secret="whsec_...")
    check_freshness(header.timestamp, tolerance=300)
"""

from __future__ import annotations

import hashlib
import hmac
import re
import time
from dataclasses import dataclass

from payhook.webhooks.errors import (
    ExpiredTimestampError,
    MalformedHeaderError,
    SignatureMismatchError,
)

DEFAULT_TOLERANCE = 300
"""Default maximum age of a signed notification, in seconds."""

TIMESTAMP_KEY = "t"
SIGNATURE_SCHEME = "v1"

_TOKEN_SEPARATOR = re.compile(r"[\s,]+")
_TIMESTAMP = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class SignatureHeader:
    """Parsed signature header."""

    timestamp: int
    """Unix timestamp the provider signed."""

    candidates: tuple[str, ...]
    """Candidate signatures, in header order."""


def _secret_bytes(secret: str | bytes) -> bytes:
    if isinstance(secret, bytes):
        return secret
    return secret.encode("utf-8")


def _body_bytes(body: str | bytes) -> bytes:
    if isinstance(body, bytes):
        return body
    return body.encode("utf-8")


def parse_signature_header(header_value: str | None) -> SignatureHeader:
    """Parse a ``t=<ts> v1=<sig> [v1=<sig> ...]`` signature header.

    Tokens may be separated by whitespace or commas. Unknown keys are
    ignored so that new signature schemes do not break parsing.

    Args:
        header_value: Raw header value.

    Returns:
        SignatureHeader with the timestamp and candidate signatures.

    Raises:
        MalformedHeaderError: If the timestamp is missing, duplicated or not
            an integer, or no ``v1`` signature is present.
    """
    if not header_value or not header_value.strip():
        raise MalformedHeaderError("Empty signature header")

    timestamp: int | None = None
    candidates: list[str] = []

    for token in _TOKEN_SEPARATOR.split(header_value.strip()):
        if "=" not in token:
            continue
        key, value = token.split("=", 1)

        if key == TIMESTAMP_KEY:
            if timestamp is not None:
                raise MalformedHeaderError("Signature header has more than one timestamp")
            if not _TIMESTAMP.fullmatch(value):
                raise MalformedHeaderError("Signature header timestamp is not an integer")
            timestamp = int(value)
        elif key == SIGNATURE_SCHEME and value:
            candidates.append(value)

    if timestamp is None:
        raise MalformedHeaderError("Signature header is missing a timestamp")
    if not candidates:
        raise MalformedHeaderError(
            f"Signature header has no {SIGNATURE_SCHEME} signatures"
        )

    return SignatureHeader(timestamp=timestamp, candidates=tuple(candidates))


def compute_signature(secret: str | bytes, timestamp: int, body: str | bytes) -> str:
    """Compute the hex HMAC-SHA256 of ``"{timestamp}.{body}"``."""
    signed_payload = f"{timestamp}.".encode() + _body_bytes(body)
    return hmac.new(_secret_bytes(secret), signed_payload, hashlib.sha256).hexdigest()


def verify_signature(
    body: str | bytes,
    header: SignatureHeader,
    secret: str | bytes,
) -> None:
    """Verify that at least one candidate signature matches.

    Every candidate is compared in constant time, so the total time does not
    depend on which candidate (if any) matched.

    Raises:
        SignatureMismatchError: If no candidate matches.
    """
    expected = compute_signature(secret, header.timestamp, body).encode("ascii")

    matched = False
    for candidate in header.candidates:
        if hmac.compare_digest(candidate.encode("utf-8"), expected):
            matched = True

    if not matched:
        raise SignatureMismatchError("No signatures found matching the expected signature")


def check_freshness(
    timestamp: int,
    tolerance: int = DEFAULT_TOLERANCE,
    now: float | None = None,
) -> None:
    """Reject timestamps further than ``tolerance`` seconds from ``now``.

    Args:
        timestamp: Verified unix timestamp from the notification.
        tolerance: Maximum allowed skew in seconds.
        now: Current unix time; the wall clock is read when omitted.

    Raises:
        ExpiredTimestampError: If the timestamp is outside the window.
        ValueError: If tolerance is negative.
    """
    if tolerance < 0:
        raise ValueError("tolerance must be non-negative")

    current_time = time.time() if now is None else now
    if abs(current_time - timestamp) > tolerance:
        raise ExpiredTimestampError(timestamp, tolerance)


def generate_signature_header(
    secret: str | bytes,
    body: str | bytes,
    timestamp: int | None = None,
) -> str:
    """Build a signature header for ``body``, as the provider would send it.

    Useful for tests and for replaying captured payloads locally.
    """
    if timestamp is None:
        timestamp = int(time.time())
    signature = compute_signature(secret, timestamp, body)
    return f"{TIMESTAMP_KEY}={timestamp} {SIGNATURE_SCHEME}={signature}"
