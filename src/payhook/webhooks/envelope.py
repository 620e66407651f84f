"""Event envelope parsing.

Turns a verified payload into a provider-agnostic WebhookEnvelope. Parsing
only happens after the signature has been verified; a payload that fails here
is reported as DeserializationError and never reaches a handler.

Providers add fields over time, so unknown fields are ignored. Only the event
id and type are required.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from payhook.webhooks.errors import DeserializationError
from payhook.webhooks.events import EventType, object_id


@dataclass(frozen=True)
class RequestMetadata:
    """API request that triggered the event."""

    request_id: str
    idempotency_key: str | None = None


@dataclass(frozen=True)
class WebhookEnvelope:
    """Verified notification metadata and its nested resource.

    ``resource`` and ``previous_attributes`` are deeply read-only: mappings
    are exposed as MappingProxyType and lists as tuples.
    """

    provider: str
    id: str
    event_type: str
    created_at: int = 0
    live_mode: bool = False
    pending_count: int = 0
    api_version: str | None = None
    resource: Mapping[str, Any] = field(default_factory=dict)
    previous_attributes: Mapping[str, Any] | None = None
    request_metadata: RequestMetadata | None = None
    entity_id: str | None = None
    """Provider-supplied id of the affected entity, when sent outside the resource."""
    merchant_id: str | None = None
    location_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "resource", freeze(self.resource))
        if self.previous_attributes is not None:
            object.__setattr__(self, "previous_attributes", freeze(self.previous_attributes))

    def to_dict(self) -> dict[str, Any]:
        """Return a plain, JSON-serializable copy."""
        return {
            "provider": self.provider,
            "id": self.id,
            "event_type": self.event_type,
            "created_at": self.created_at,
            "live_mode": self.live_mode,
            "pending_count": self.pending_count,
            "api_version": self.api_version,
            "resource": thaw(self.resource),
            "previous_attributes": thaw(self.previous_attributes),
            "request_metadata": (
                {
                    "request_id": self.request_metadata.request_id,
                    "idempotency_key": self.request_metadata.idempotency_key,
                }
                if self.request_metadata
                else None
            ),
            "entity_id": self.entity_id,
            "merchant_id": self.merchant_id,
            "location_id": self.location_id,
        }


def freeze(value: Any) -> Any:
    """Recursively convert mappings and lists to read-only equivalents."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze(): plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


def _to_unix(value: datetime | None) -> int:
    if value is None:
        return 0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


# Wire models. Only used for structural validation.


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _StripeRequest(_WireModel):
    id: str | None = None
    idempotency_key: str | None = None


class _StripeData(_WireModel):
    object: dict[str, Any] = Field(default_factory=dict)
    previous_attributes: dict[str, Any] | None = None


class _StripeEvent(_WireModel):
    id: StrictStr
    type: StrictStr
    created: int | None = None
    livemode: bool = False
    pending_webhooks: int | None = None
    api_version: str | None = None
    data: _StripeData = Field(default_factory=_StripeData)
    request: _StripeRequest | str | None = None


class _PayPalEvent(_WireModel):
    id: StrictStr
    event_type: StrictStr
    create_time: datetime | None = None
    event_version: str | None = None
    resource: dict[str, Any] = Field(default_factory=dict)


class _SquareData(_WireModel):
    type: str | None = None
    id: str | None = None
    object: dict[str, Any] = Field(default_factory=dict)


class _SquareEvent(_WireModel):
    event_id: StrictStr
    type: StrictStr
    merchant_id: str | None = None
    location_id: str | None = None
    created_at: datetime | None = None
    data: _SquareData = Field(default_factory=_SquareData)


def _validate(model: type[_WireModel], payload: str | bytes) -> Any:
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        # Report field locations only; values may hold customer data.
        fields = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()})
        raise DeserializationError(
            f"Invalid event payload ({', '.join(fields)})"
        ) from e


def parse_stripe_event(payload: str | bytes) -> WebhookEnvelope:
    """Parse a Stripe event payload.

    Raises:
        DeserializationError: If the payload is not a JSON object with string
            ``id`` and ``type`` fields.
    """
    event: _StripeEvent = _validate(_StripeEvent, payload)

    request_metadata = None
    if isinstance(event.request, str):
        # API versions before 2017-05-25 sent the request id as a bare string
        request_metadata = RequestMetadata(request_id=event.request)
    elif event.request is not None and event.request.id:
        request_metadata = RequestMetadata(
            request_id=event.request.id,
            idempotency_key=event.request.idempotency_key,
        )

    return WebhookEnvelope(
        provider="stripe",
        id=event.id,
        event_type=event.type,
        created_at=event.created or 0,
        live_mode=event.livemode,
        pending_count=event.pending_webhooks or 0,
        api_version=event.api_version,
        resource=event.data.object,
        previous_attributes=event.data.previous_attributes,
        request_metadata=request_metadata,
    )


def parse_paypal_event(payload: str | bytes, live_mode: bool = True) -> WebhookEnvelope:
    """Parse a PayPal event payload.

    PayPal does not mark events as live or sandbox, so the caller passes the
    environment the webhook was registered in.
    """
    event: _PayPalEvent = _validate(_PayPalEvent, payload)
    return WebhookEnvelope(
        provider="paypal",
        id=event.id,
        event_type=event.event_type,
        created_at=_to_unix(event.create_time),
        live_mode=live_mode,
        api_version=event.event_version,
        resource=event.resource,
    )


def parse_square_event(payload: str | bytes, live_mode: bool = True) -> WebhookEnvelope:
    """Parse a Square event payload.

    Square nests the resource under ``data.object.<data.type>``; that inner
    object becomes the envelope resource when present. ``data.id`` is kept as
    the entity id for resources that carry no ``id`` of their own.
    """
    event: _SquareEvent = _validate(_SquareEvent, payload)

    resource: dict[str, Any] = event.data.object
    nested = resource.get(event.data.type or "")
    if len(resource) == 1 and isinstance(nested, dict):
        resource = nested

    return WebhookEnvelope(
        provider="square",
        id=event.event_id,
        event_type=event.type,
        created_at=_to_unix(event.created_at),
        live_mode=live_mode,
        resource=resource,
        entity_id=event.data.id,
        merchant_id=event.merchant_id,
        location_id=event.location_id,
    )


@dataclass(frozen=True)
class VerifiedEvent:
    """A notification that passed verification, with its classification."""

    envelope: WebhookEnvelope
    event_type: EventType

    @property
    def object_id(self) -> str | None:
        """Identifier of the nested resource, if it has one."""
        return object_id(self.envelope)
