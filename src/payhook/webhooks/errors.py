"""Webhook verification errors.

Every verification failure raises a subclass of WebhookError. Only
RemoteUnavailableError is retryable: it reports an infrastructure problem
rather than a forged or stale notification. All other kinds are terminal for
the notification and must not be retried.
"""

from __future__ import annotations


class WebhookError(Exception):
    """Base class for webhook verification failures."""

    code: str = "webhook_error"
    """Stable machine-readable error code."""

    retryable: bool = False
    """Whether the caller may retry the same notification."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class MalformedHeaderError(WebhookError):
    """The signature header could not be parsed."""

    code = "malformed_header"


class MissingHeaderError(WebhookError):
    """A required transmission header is absent."""

    code = "missing_header"

    def __init__(self, field: str, header: str | None = None) -> None:
        self.field = field
        self.header = header or field
        super().__init__(f"Missing required header: {self.header}")


class SignatureMismatchError(WebhookError):
    """No candidate signature matched the expected value."""

    code = "signature_mismatch"


class ExpiredTimestampError(WebhookError):
    """The notification timestamp is outside the tolerance window."""

    code = "expired_timestamp"

    def __init__(self, timestamp: int, tolerance: int) -> None:
        self.timestamp = timestamp
        self.tolerance = tolerance
        super().__init__(
            f"Timestamp {timestamp} is outside the {tolerance}s tolerance window"
        )


class UntrustedCertificateSourceError(WebhookError):
    """The certificate URL does not point at the provider's own domain."""

    code = "untrusted_certificate_source"


class RemoteVerificationFailedError(WebhookError):
    """The provider's verification endpoint rejected the notification."""

    code = "remote_verification_failed"


class RemoteUnavailableError(WebhookError):
    """The provider's verification endpoint could not be reached."""

    code = "remote_unavailable"
    retryable = True


class DeserializationError(WebhookError):
    """The verified payload is not a well-formed event."""

    code = "deserialization"


class RegistryFrozenError(RuntimeError):
    """Raised when registering a handler after the setup phase ended."""
