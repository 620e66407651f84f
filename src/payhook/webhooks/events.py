"""Event type taxonomies.

Each provider has a closed enum of well-known event names. Strings that are
not (yet) part of a taxonomy classify to OtherEventType, which keeps the
original string: providers add event types without notice, and an unknown
type must never abort processing.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from payhook.webhooks.envelope import WebhookEnvelope


class StripeEventType(str, Enum):
    """Well-known Stripe event types."""

    # Payment intents
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
    PAYMENT_INTENT_PROCESSING = "payment_intent.processing"
    PAYMENT_INTENT_REQUIRES_ACTION = "payment_intent.requires_action"

    # Charges
    CHARGE_SUCCEEDED = "charge.succeeded"
    CHARGE_FAILED = "charge.failed"
    CHARGE_REFUNDED = "charge.refunded"
    CHARGE_DISPUTED = "charge.dispute.created"

    # Customers and subscriptions
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"
    CUSTOMER_SUBSCRIPTION_CREATED = "customer.subscription.created"
    CUSTOMER_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    CUSTOMER_SUBSCRIPTION_DELETED = "customer.subscription.deleted"

    # Invoices
    INVOICE_CREATED = "invoice.created"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    INVOICE_FINALIZED = "invoice.finalized"

    # Subscription schedules
    SUBSCRIPTION_SCHEDULE_CREATED = "subscription_schedule.created"
    SUBSCRIPTION_SCHEDULE_UPDATED = "subscription_schedule.updated"
    SUBSCRIPTION_SCHEDULE_CANCELED = "subscription_schedule.canceled"

    # Payouts
    PAYOUT_CREATED = "payout.created"
    PAYOUT_PAID = "payout.paid"
    PAYOUT_FAILED = "payout.failed"

    ACCOUNT_UPDATED = "account.updated"


class PayPalEventType(str, Enum):
    """Well-known PayPal event types."""

    PAYMENT_CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
    PAYMENT_CAPTURE_DENIED = "PAYMENT.CAPTURE.DENIED"
    PAYMENT_CAPTURE_REFUNDED = "PAYMENT.CAPTURE.REFUNDED"
    PAYMENT_CAPTURE_PENDING = "PAYMENT.CAPTURE.PENDING"

    CHECKOUT_ORDER_COMPLETED = "CHECKOUT.ORDER.COMPLETED"
    CHECKOUT_ORDER_APPROVED = "CHECKOUT.ORDER.APPROVED"
    CHECKOUT_ORDER_SAVED = "CHECKOUT.ORDER.SAVED"

    BILLING_SUBSCRIPTION_CREATED = "BILLING.SUBSCRIPTION.CREATED"
    BILLING_SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
    BILLING_SUBSCRIPTION_UPDATED = "BILLING.SUBSCRIPTION.UPDATED"
    BILLING_SUBSCRIPTION_EXPIRED = "BILLING.SUBSCRIPTION.EXPIRED"
    BILLING_SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
    BILLING_SUBSCRIPTION_SUSPENDED = "BILLING.SUBSCRIPTION.SUSPENDED"
    BILLING_SUBSCRIPTION_PAYMENT_FAILED = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"

    BILLING_PLAN_CREATED = "BILLING.PLAN.CREATED"
    BILLING_PLAN_UPDATED = "BILLING.PLAN.UPDATED"
    BILLING_PLAN_ACTIVATED = "BILLING.PLAN.ACTIVATED"
    BILLING_PLAN_DEACTIVATED = "BILLING.PLAN.DEACTIVATED"


class SquareEventType(str, Enum):
    """Well-known Square event types."""

    PAYMENT_CREATED = "payment.created"
    PAYMENT_UPDATED = "payment.updated"

    REFUND_CREATED = "refund.created"
    REFUND_UPDATED = "refund.updated"

    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_FULFILLMENT_UPDATED = "order.fulfillment.updated"

    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"

    CARD_CREATED = "card.created"
    CARD_UPDATED = "card.updated"
    CARD_DELETED = "card.deleted"
    CARD_DISABLED = "card.disabled"

    INVOICE_CREATED = "invoice.created"
    INVOICE_SENT = "invoice.sent"
    INVOICE_SCHEDULED_CHARGE_STARTED = "invoice.scheduled_charge_started"
    INVOICE_SCHEDULED_CHARGE_FAILED = "invoice.scheduled_charge_failed"
    INVOICE_PAYMENT_MADE = "invoice.payment_made"
    INVOICE_UPDATED = "invoice.updated"
    INVOICE_DELETED = "invoice.deleted"

    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    SUBSCRIPTION_PAUSED = "subscription.paused"
    SUBSCRIPTION_RESUMED = "subscription.resumed"

    CATALOG_VERSION_UPDATED = "catalog.version.updated"
    INVENTORY_COUNT_UPDATED = "inventory.count.updated"

    DISPUTE_CREATED = "dispute.created"
    DISPUTE_EVIDENCE_ADDED = "dispute.evidence.added"
    DISPUTE_EVIDENCE_REMOVED = "dispute.evidence.removed"
    DISPUTE_STATE_CHANGED = "dispute.state.changed"

    PAYOUT_SENT = "payout.sent"
    PAYOUT_FAILED = "payout.failed"

    OAUTH_AUTHORIZATION_REVOKED = "oauth.authorization.revoked"


@dataclass(frozen=True)
class OtherEventType:
    """An event type outside the known taxonomy."""

    value: str
    """The provider's original type string."""

    def __str__(self) -> str:
        return self.value


KnownEventType = Union[StripeEventType, PayPalEventType, SquareEventType]
EventType = Union[KnownEventType, OtherEventType]


def classify(event_type: str, taxonomy: type[Enum] = StripeEventType) -> EventType:
    """Map a provider type string onto ``taxonomy``.

    Matching is exact. Unmatched strings map to OtherEventType.
    """
    try:
        return taxonomy(event_type)
    except ValueError:
        return OtherEventType(event_type)


def event_type_key(event_type: EventType | str) -> str:
    """Return the registry key for an event type or plain string."""
    if isinstance(event_type, Enum):
        return str(event_type.value)
    return str(event_type)


def object_id(envelope: WebhookEnvelope | Mapping[str, Any]) -> str | None:
    """Return the nested resource's ``id``, or None when it has none.

    Envelopes fall back to their ``entity_id`` when the resource itself has no
    string ``id``.
    """
    resource = envelope if isinstance(envelope, Mapping) else envelope.resource
    value = resource.get("id") if isinstance(resource, Mapping) else None
    if isinstance(value, str):
        return value
    if isinstance(envelope, Mapping):
        return None
    return envelope.entity_id
