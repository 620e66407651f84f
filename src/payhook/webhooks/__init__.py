"""payhook Webhook Verification Module.

Verifies that an inbound notification really came from a payment provider,
has not been tampered with and is not a replay, then parses it into a typed
event and routes it to a registered handler.

Supported Providers:
- Stripe: Stripe-Signature with timestamp validation and secret rotation
- Square: x-square-hmacsha256-signature over notification URL + body
- PayPal: transmission headers verified by the PayPal API

Usage:
    from payhook.webhooks import (
        HandlerRegistry,
        StripeEventType,
        StripeWebhookProvider,
        WebhookReceiver,
    )

    registry = HandlerRegistry()

    @registry.on(StripeEventType.PAYMENT_INTENT_SUCCEEDED)
    async def on_paid(event):
        ...

    receiver = WebhookReceiver(StripeWebhookProvider(secret="whsec_..."), registry)
    event = await receiver.handle(request_body, dict(request.headers))

Configuration example:
    from payhook.webhooks import build_provider
    from payhook.core.config import get_config

    provider = build_provider("paypal", get_config())
"""

from payhook.webhooks.dispatch import HandlerRegistry
from payhook.webhooks.envelope import (
    RequestMetadata,
    VerifiedEvent,
    WebhookEnvelope,
    parse_paypal_event,
    parse_square_event,
    parse_stripe_event,
)
from payhook.webhooks.errors import (
    DeserializationError,
    ExpiredTimestampError,
    MalformedHeaderError,
    MissingHeaderError,
    RegistryFrozenError,
    RemoteUnavailableError,
    RemoteVerificationFailedError,
    SignatureMismatchError,
    UntrustedCertificateSourceError,
    WebhookError,
)
from payhook.webhooks.events import (
    OtherEventType,
    PayPalEventType,
    SquareEventType,
    StripeEventType,
    classify,
    object_id,
)
from payhook.webhooks.providers import (
    WEBHOOK_PROVIDERS,
    PayPalWebhookProvider,
    SquareWebhookProvider,
    StripeWebhookProvider,
    WebhookProvider,
    build_provider,
    get_provider,
)
from payhook.webhooks.receiver import WebhookReceiver
from payhook.webhooks.remote import RemoteAttestationVerifier, create_paypal_session
from payhook.webhooks.signature import (
    SignatureHeader,
    check_freshness,
    compute_signature,
    generate_signature_header,
    parse_signature_header,
    verify_signature,
)

__all__ = [
    # Errors
    "WebhookError",
    "MalformedHeaderError",
    "MissingHeaderError",
    "SignatureMismatchError",
    "ExpiredTimestampError",
    "UntrustedCertificateSourceError",
    "RemoteVerificationFailedError",
    "RemoteUnavailableError",
    "DeserializationError",
    "RegistryFrozenError",
    # Signatures
    "SignatureHeader",
    "parse_signature_header",
    "compute_signature",
    "verify_signature",
    "check_freshness",
    "generate_signature_header",
    # Remote attestation
    "RemoteAttestationVerifier",
    "create_paypal_session",
    # Events
    "WebhookEnvelope",
    "RequestMetadata",
    "VerifiedEvent",
    "parse_stripe_event",
    "parse_paypal_event",
    "parse_square_event",
    "StripeEventType",
    "PayPalEventType",
    "SquareEventType",
    "OtherEventType",
    "classify",
    "object_id",
    # Providers
    "WebhookProvider",
    "StripeWebhookProvider",
    "SquareWebhookProvider",
    "PayPalWebhookProvider",
    "WEBHOOK_PROVIDERS",
    "get_provider",
    "build_provider",
    # Dispatch
    "HandlerRegistry",
    "WebhookReceiver",
]
