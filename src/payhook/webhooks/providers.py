"""payhook Webhook Providers.

Provider-specific verification strategies. Each provider turns a raw body and
its request headers into a VerifiedEvent, or raises a WebhookError.

Supported Providers:
- Stripe: Stripe-Signature (HMAC-SHA256 with timestamp, secret rotation)
- Square: x-square-hmacsha256-signature (HMAC-SHA256 over URL + body)
- PayPal: transmission headers verified by PayPal's own API

Providers are independent implementations of the WebhookProvider protocol
rather than subclasses of a common base: the local-secret and remote
attestation trust models share no verification logic beyond the primitives
in payhook.webhooks.signature.

Usage:
    from payhook.webhooks.providers import StripeWebhookProvider

    provider = StripeWebhookProvider(secret="whsec_...")
    event = await provider.verify(request_body, dict(request.headers))
    print(event.event_type, event.object_id)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from payhook.webhooks.envelope import (
    VerifiedEvent,
    parse_paypal_event,
    parse_square_event,
    parse_stripe_event,
)
from payhook.webhooks.errors import (
    DeserializationError,
    MissingHeaderError,
    SignatureMismatchError,
)
from payhook.webhooks.events import (
    PayPalEventType,
    SquareEventType,
    StripeEventType,
    classify,
)
from payhook.webhooks.remote import (
    PAYPAL_LIVE_URL,
    PAYPAL_SANDBOX_URL,
    RemoteAttestationVerifier,
    create_paypal_session,
)
from payhook.webhooks.signature import (
    DEFAULT_TOLERANCE,
    check_freshness,
    parse_signature_header,
    verify_signature,
)

if TYPE_CHECKING:
    from payhook.core.config import PayhookConfig


class WebhookProvider(Protocol):
    """Common verification contract."""

    @property
    def name(self) -> str:
        """Provider name."""
        ...

    async def verify(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> VerifiedEvent:
        """Verify a notification and return the typed event.

        Raises:
            WebhookError: On any verification failure.
        """
        ...


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


@dataclass
class StripeWebhookProvider:
    """Stripe webhook verification.

    Stripe sends: Stripe-Signature: t=<timestamp>,v1=<signature>[,v1=...]

    The signature is checked before the timestamp, so a forged notification
    is always reported as a signature mismatch.
    """

    secret: str | bytes = field(repr=False)
    """Webhook signing secret from the Stripe dashboard."""

    signature_header: str = "Stripe-Signature"
    """Header containing the signature."""

    tolerance_seconds: int = DEFAULT_TOLERANCE
    """Maximum age of timestamp (default 5 minutes)."""

    clock: Callable[[], float] = field(default=time.time, repr=False)
    """Source of the current unix time."""

    @property
    def name(self) -> str:
        return "stripe"

    def construct_event(
        self,
        payload: str | bytes,
        signature_header: str | None,
    ) -> VerifiedEvent:
        """Verify ``payload`` against a signature header value and parse it.

        Raises:
            MalformedHeaderError, SignatureMismatchError,
            ExpiredTimestampError, DeserializationError
        """
        header = parse_signature_header(signature_header)
        verify_signature(payload, header, self.secret)
        check_freshness(header.timestamp, self.tolerance_seconds, now=self.clock())

        envelope = parse_stripe_event(payload)
        return VerifiedEvent(
            envelope=envelope,
            event_type=classify(envelope.event_type, StripeEventType),
        )

    async def verify(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> VerifiedEvent:
        signature = get_header(headers, self.signature_header)
        if signature is None:
            raise MissingHeaderError(self.signature_header)
        return self.construct_event(payload, signature)


@dataclass
class SquareWebhookProvider:
    """Square webhook verification.

    Square sends: x-square-hmacsha256-signature: <base64 signature>

    Signature is base64(HMAC-SHA256(key, notification_url + body)). Freshness
    is checked against the event's own created_at field.
    """

    signature_key: str | bytes = field(repr=False)
    """Signature key from the Square developer dashboard."""

    notification_url: str
    """URL the subscription delivers to, exactly as registered."""

    signature_header: str = "x-square-hmacsha256-signature"
    """Header containing the signature."""

    tolerance_seconds: int = 60
    """Maximum age of created_at."""

    live_mode: bool = True
    """Whether the subscription belongs to a production application."""

    clock: Callable[[], float] = field(default=time.time, repr=False)
    """Source of the current unix time."""

    def __post_init__(self) -> None:
        if not self.notification_url or not self.notification_url.strip():
            raise ValueError("Square notification_url must not be empty")

    @property
    def name(self) -> str:
        return "square"

    def compute_signature(self, payload: str | bytes) -> str:
        """Compute the base64 signature Square would send for ``payload``."""
        key = (
            self.signature_key
            if isinstance(self.signature_key, bytes)
            else self.signature_key.encode("utf-8")
        )
        body = payload if isinstance(payload, bytes) else payload.encode("utf-8")
        digest = hmac.new(key, self.notification_url.encode("utf-8") + body, hashlib.sha256)
        return base64.b64encode(digest.digest()).decode("ascii")

    def construct_event(
        self,
        payload: str | bytes,
        signature: str | None,
    ) -> VerifiedEvent:
        """Verify ``payload`` against a signature value and parse it.

        Raises:
            SignatureMismatchError, DeserializationError, ExpiredTimestampError
        """
        expected = self.compute_signature(payload)
        if not signature or not hmac.compare_digest(
            signature.strip().encode("utf-8"), expected.encode("ascii")
        ):
            raise SignatureMismatchError("Square signature mismatch")

        envelope = parse_square_event(payload, live_mode=self.live_mode)
        if not envelope.created_at:
            raise DeserializationError("Square event has no created_at timestamp")
        check_freshness(envelope.created_at, self.tolerance_seconds, now=self.clock())

        return VerifiedEvent(
            envelope=envelope,
            event_type=classify(envelope.event_type, SquareEventType),
        )

    async def verify(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> VerifiedEvent:
        signature = get_header(headers, self.signature_header)
        if signature is None:
            raise MissingHeaderError(self.signature_header)
        return self.construct_event(payload, signature)


@dataclass
class PayPalWebhookProvider:
    """PayPal webhook verification.

    PayPal sends paypal-auth-algo, paypal-cert-url, paypal-transmission-id,
    paypal-transmission-sig and paypal-transmission-time. The transmission is
    verified by PayPal's verify-webhook-signature API; there is no local
    freshness check on this path.
    """

    webhook_id: str
    """Webhook id registered in the PayPal developer dashboard."""

    session: httpx.AsyncClient = field(repr=False)
    """Authenticated session, see create_paypal_session()."""

    sandbox: bool = False
    """Use the sandbox API and mark events as test events."""

    timeout: float | None = None
    """Per-request timeout override for the verification call."""

    _verifier: RemoteAttestationVerifier = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._verifier = RemoteAttestationVerifier(
            session=self.session,
            webhook_id=self.webhook_id,
            base_url=PAYPAL_SANDBOX_URL if self.sandbox else PAYPAL_LIVE_URL,
            timeout=self.timeout,
        )

    @property
    def name(self) -> str:
        return "paypal"

    async def verify(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> VerifiedEvent:
        await self._verifier.verify(payload, headers)

        envelope = parse_paypal_event(payload, live_mode=not self.sandbox)
        return VerifiedEvent(
            envelope=envelope,
            event_type=classify(envelope.event_type, PayPalEventType),
        )

    async def close(self) -> None:
        await self._verifier.close()


# Provider registry
WEBHOOK_PROVIDERS: dict[str, type[Any]] = {
    "stripe": StripeWebhookProvider,
    "square": SquareWebhookProvider,
    "paypal": PayPalWebhookProvider,
}

PROVIDER_TAXONOMIES = {
    "stripe": StripeEventType,
    "square": SquareEventType,
    "paypal": PayPalEventType,
}


def get_provider(
    provider_name: str,
    **kwargs: Any,
) -> WebhookProvider:
    """Get a webhook provider by name.

    Args:
        provider_name: Name of the provider.
        **kwargs: Provider-specific configuration.

    Returns:
        Configured provider instance.

    Raises:
        ValueError: If provider is not found.
    """
    provider_class = WEBHOOK_PROVIDERS.get(provider_name.lower())
    if not provider_class:
        raise ValueError(f"Unknown webhook provider: {provider_name}")
    return provider_class(**kwargs)


def build_provider(provider_name: str, config: PayhookConfig) -> WebhookProvider:
    """Build a provider from application settings.

    Raises:
        ValueError: If the provider is unknown or its settings are incomplete.
    """
    provider_name = provider_name.lower()

    if provider_name == "stripe":
        stripe = config.stripe
        if not stripe.signing_secret:
            raise ValueError("PAYHOOK_STRIPE_SIGNING_SECRET is not set")
        return StripeWebhookProvider(
            secret=stripe.signing_secret,
            tolerance_seconds=stripe.tolerance_seconds,
        )

    elif provider_name == "square":
        square = config.square
        if not square.signature_key or not square.notification_url:
            raise ValueError(
                "PAYHOOK_SQUARE_SIGNATURE_KEY and PAYHOOK_SQUARE_NOTIFICATION_URL are required"
            )
        return SquareWebhookProvider(
            signature_key=square.signature_key,
            notification_url=square.notification_url,
            tolerance_seconds=square.tolerance_seconds,
            live_mode=not square.sandbox,
        )

    elif provider_name == "paypal":
        paypal = config.paypal
        if not (paypal.webhook_id and paypal.client_id and paypal.client_secret):
            raise ValueError(
                "PAYHOOK_PAYPAL_WEBHOOK_ID, PAYHOOK_PAYPAL_CLIENT_ID and "
                "PAYHOOK_PAYPAL_CLIENT_SECRET are required"
            )
        session = create_paypal_session(
            paypal.client_id,
            paypal.client_secret,
            sandbox=paypal.sandbox,
            timeout=paypal.timeout,
        )
        return PayPalWebhookProvider(
            webhook_id=paypal.webhook_id,
            session=session,
            sandbox=paypal.sandbox,
        )

    else:
        raise ValueError(
            f"Unknown webhook provider: {provider_name}. "
            "Supported: 'stripe', 'square', 'paypal'"
        )
