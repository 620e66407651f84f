"""Tests for event envelope parsing and classification."""

from __future__ import annotations

import json

import pytest

from payhook.webhooks.envelope import (
    RequestMetadata,
    VerifiedEvent,
    WebhookEnvelope,
    freeze,
    parse_paypal_event,
    parse_square_event,
    parse_stripe_event,
    thaw,
)
from payhook.webhooks.errors import DeserializationError
from payhook.webhooks.events import (
    OtherEventType,
    PayPalEventType,
    SquareEventType,
    StripeEventType,
    classify,
    event_type_key,
    object_id,
)


def stripe_payload(**overrides) -> bytes:
    event = {
        "id": "evt_1",
        "object": "event",
        "type": "payment_intent.succeeded",
        "created": 1700000000,
        "livemode": False,
        "pending_webhooks": 2,
        "api_version": "2023-10-16",
        "data": {"object": {"id": "pi_1", "amount": 1000, "charges": [{"id": "ch_1"}]}},
        "request": {"id": "req_1", "idempotency_key": "key-1"},
    }
    event.update(overrides)
    return json.dumps(event).encode()


class TestParseStripeEvent:
    """Tests for parse_stripe_event."""

    def test_full_event(self):
        """Test all envelope fields are populated."""
        envelope = parse_stripe_event(stripe_payload())

        assert envelope.provider == "stripe"
        assert envelope.id == "evt_1"
        assert envelope.event_type == "payment_intent.succeeded"
        assert envelope.created_at == 1700000000
        assert envelope.live_mode is False
        assert envelope.pending_count == 2
        assert envelope.api_version == "2023-10-16"
        assert envelope.resource["id"] == "pi_1"
        assert envelope.previous_attributes is None
        assert envelope.request_metadata == RequestMetadata("req_1", "key-1")

    def test_minimal_event(self):
        """Test only id and type are required."""
        envelope = parse_stripe_event(b'{"id":"evt_2","type":"charge.succeeded"}')

        assert envelope.id == "evt_2"
        assert envelope.created_at == 0
        assert envelope.pending_count == 0
        assert envelope.api_version is None
        assert dict(envelope.resource) == {}
        assert envelope.request_metadata is None

    def test_unknown_fields_ignored(self):
        """Test new provider fields do not break parsing."""
        envelope = parse_stripe_event(stripe_payload(brand_new_field={"x": 1}))
        assert envelope.id == "evt_1"

    def test_previous_attributes(self):
        """Test previous_attributes is carried for update events."""
        payload = stripe_payload(
            type="customer.updated",
            data={"object": {"id": "cus_1"}, "previous_attributes": {"email": "old@example.com"}},
        )
        envelope = parse_stripe_event(payload)
        assert envelope.previous_attributes["email"] == "old@example.com"

    def test_legacy_string_request(self):
        """Test the bare-string request id of older API versions."""
        envelope = parse_stripe_event(stripe_payload(request="req_legacy"))
        assert envelope.request_metadata == RequestMetadata("req_legacy")

    def test_request_without_id(self):
        """Test automatic events (request.id null) carry no request metadata."""
        envelope = parse_stripe_event(stripe_payload(request={"id": None, "idempotency_key": None}))
        assert envelope.request_metadata is None

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[]",
            b'"evt_1"',
            b'{"type":"charge.succeeded"}',
            b'{"id":"evt_1"}',
            b'{"id":1,"type":"charge.succeeded"}',
            b'{"id":"evt_1","type":"x","created":"yesterday"}',
            b'{"id":"evt_1","type":"x","data":[]}',
        ],
    )
    def test_invalid_payloads(self, payload):
        """Test structurally invalid payloads raise DeserializationError."""
        with pytest.raises(DeserializationError) as exc_info:
            parse_stripe_event(payload)
        assert exc_info.value.code == "deserialization"

    def test_error_does_not_echo_values(self):
        """Test validation errors name fields but not their values."""
        with pytest.raises(DeserializationError) as exc_info:
            parse_stripe_event(b'{"id":"evt_1","type":"x","created":"card-4242"}')
        assert "created" in str(exc_info.value)
        assert "card-4242" not in str(exc_info.value)


class TestEnvelopeImmutability:
    """Tests for read-only envelopes."""

    def test_fields_are_frozen(self):
        """Test envelope attributes cannot be reassigned."""
        envelope = parse_stripe_event(stripe_payload())
        with pytest.raises(AttributeError):
            envelope.id = "evt_other"

    def test_resource_is_read_only(self):
        """Test nested mappings and lists are read-only."""
        envelope = parse_stripe_event(stripe_payload())

        with pytest.raises(TypeError):
            envelope.resource["amount"] = 1
        assert isinstance(envelope.resource["charges"], tuple)
        with pytest.raises(TypeError):
            envelope.resource["charges"][0]["id"] = "ch_2"

    def test_source_dict_not_shared(self):
        """Test mutating the input mapping does not change the envelope."""
        resource = {"id": "pi_1"}
        envelope = WebhookEnvelope(provider="stripe", id="evt_1", event_type="x", resource=resource)
        resource["id"] = "pi_2"
        assert envelope.resource["id"] == "pi_1"

    def test_to_dict_round_trips_to_plain_types(self):
        """Test to_dict returns JSON-serializable data."""
        envelope = parse_stripe_event(stripe_payload())
        data = envelope.to_dict()

        assert data["resource"]["charges"] == [{"id": "ch_1"}]
        assert data["request_metadata"] == {"request_id": "req_1", "idempotency_key": "key-1"}
        json.dumps(data)

    def test_freeze_thaw(self):
        """Test freeze and thaw are inverses on JSON data."""
        value = {"a": [1, {"b": 2}], "c": None}
        assert thaw(freeze(value)) == value


class TestParsePayPalEvent:
    """Tests for parse_paypal_event."""

    def test_event(self):
        """Test PayPal fields map onto the envelope."""
        payload = json.dumps(
            {
                "id": "WH-1",
                "event_type": "PAYMENT.CAPTURE.COMPLETED",
                "create_time": "2023-11-14T22:13:20Z",
                "event_version": "1.0",
                "resource": {"id": "CAP-1", "status": "COMPLETED"},
            }
        )
        envelope = parse_paypal_event(payload, live_mode=False)

        assert envelope.provider == "paypal"
        assert envelope.id == "WH-1"
        assert envelope.event_type == "PAYMENT.CAPTURE.COMPLETED"
        assert envelope.created_at == 1700000000
        assert envelope.live_mode is False
        assert envelope.api_version == "1.0"
        assert object_id(envelope) == "CAP-1"

    def test_missing_event_type(self):
        """Test PayPal events require event_type."""
        with pytest.raises(DeserializationError):
            parse_paypal_event(b'{"id":"WH-1"}')


class TestParseSquareEvent:
    """Tests for parse_square_event."""

    def test_nested_resource_unwrapped(self):
        """Test data.object.<type> becomes the resource."""
        payload = json.dumps(
            {
                "merchant_id": "M1",
                "type": "payment.created",
                "event_id": "sq-evt-1",
                "created_at": "2023-11-14T22:13:20.000Z",
                "data": {
                    "type": "payment",
                    "id": "PAY-1",
                    "object": {"payment": {"id": "PAY-1", "status": "APPROVED"}},
                },
            }
        )
        envelope = parse_square_event(payload)

        assert envelope.provider == "square"
        assert envelope.id == "sq-evt-1"
        assert envelope.event_type == "payment.created"
        assert envelope.created_at == 1700000000
        assert envelope.live_mode is True
        assert envelope.resource["status"] == "APPROVED"
        assert object_id(envelope) == "PAY-1"

    def test_resource_kept_when_not_wrapped(self):
        """Test objects without the type wrapper are kept as-is."""
        payload = json.dumps(
            {
                "type": "oauth.authorization.revoked",
                "event_id": "sq-evt-2",
                "data": {"type": "revocation", "object": {"revocation": {"revoked_at": "x"}, "id": "R1"}},
            }
        )
        envelope = parse_square_event(payload)
        assert envelope.resource["id"] == "R1"

    def test_entity_id_used_when_resource_has_no_id(self):
        """Test data.id identifies resources without their own id."""
        payload = json.dumps(
            {
                "merchant_id": "M1",
                "location_id": "L1",
                "type": "inventory.count.updated",
                "event_id": "sq-evt-3",
                "data": {
                    "type": "inventory",
                    "id": "INV-9",
                    "object": {"inventory_counts": [{"catalog_object_id": "C1", "quantity": "3"}]},
                },
            }
        )
        envelope = parse_square_event(payload)

        assert envelope.entity_id == "INV-9"
        assert object_id(envelope) == "INV-9"
        assert envelope.merchant_id == "M1"
        assert envelope.location_id == "L1"
        data = envelope.to_dict()
        assert data["merchant_id"] == "M1"
        assert data["location_id"] == "L1"
        assert data["entity_id"] == "INV-9"

    def test_resource_id_preferred_over_entity_id(self):
        """Test the resource's own id wins over data.id."""
        payload = json.dumps(
            {
                "type": "payment.updated",
                "event_id": "sq-evt-4",
                "data": {"type": "payment", "id": "OUTER", "object": {"payment": {"id": "INNER"}}},
            }
        )
        envelope = parse_square_event(payload)

        assert object_id(envelope) == "INNER"
        assert envelope.merchant_id is None


class TestClassify:
    """Tests for classify and object_id."""

    def test_known_stripe_type(self):
        """Test a known type maps to its enum member."""
        assert classify("payment_intent.succeeded") is StripeEventType.PAYMENT_INTENT_SUCCEEDED

    def test_unknown_type_preserved(self):
        """Test unknown types keep the original string."""
        result = classify("some.future.event")
        assert result == OtherEventType("some.future.event")
        assert str(result) == "some.future.event"

    def test_matching_is_exact(self):
        """Test classification is case and whitespace sensitive."""
        assert isinstance(classify("Payment_Intent.Succeeded"), OtherEventType)
        assert isinstance(classify(" payment_intent.succeeded"), OtherEventType)

    def test_other_taxonomies(self):
        """Test PayPal and Square taxonomies."""
        assert classify("PAYMENT.CAPTURE.COMPLETED", PayPalEventType) is (
            PayPalEventType.PAYMENT_CAPTURE_COMPLETED
        )
        assert classify("payment.created", SquareEventType) is SquareEventType.PAYMENT_CREATED
        assert isinstance(classify("payment_intent.succeeded", SquareEventType), OtherEventType)

    def test_classification_is_deterministic(self):
        """Test repeated classification yields equal results."""
        assert classify("x.y") == classify("x.y")
        assert classify("charge.failed") == classify("charge.failed")

    def test_event_type_key(self):
        """Test registry keys for enums, others and plain strings agree."""
        assert event_type_key(StripeEventType.CHARGE_FAILED) == "charge.failed"
        assert event_type_key(OtherEventType("a.b")) == "a.b"
        assert event_type_key("a.b") == "a.b"

    @pytest.mark.parametrize(
        "resource,expected",
        [
            ({"id": "pi_1"}, "pi_1"),
            ({"amount": 5}, None),
            ({"id": 42}, None),
            ({}, None),
        ],
    )
    def test_object_id(self, resource, expected):
        """Test object_id returns only string ids."""
        assert object_id(resource) == expected

    def test_verified_event_object_id(self):
        """Test VerifiedEvent exposes the resource id."""
        envelope = parse_stripe_event(stripe_payload())
        event = VerifiedEvent(envelope=envelope, event_type=classify(envelope.event_type))
        assert event.object_id == "pi_1"
        assert event.event_type is StripeEventType.PAYMENT_INTENT_SUCCEEDED
