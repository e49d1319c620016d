"""
Payment provider client tests.

Verifies:
- create_intent request encoding and idempotency key
- non-2xx responses and timeouts become ProviderError
- webhook signature verification: match, mismatch, staleness, format
"""

import time

import httpx
import pytest

from marketplace.errors import BadSignature, ProviderError
from marketplace.services import payment_service
from marketplace.services.payment_service import (
    PaymentClient,
    compute_signature,
    parse_signature_header,
    supported_event,
)

from conftest import PROVIDER_URL, WEBHOOK_SECRET

PAYLOAD = b'{"id":"evt_1","type":"payment_intent.succeeded"}'


class TestCreateIntent:
    def test_request_shape(self, app, provider):
        client = payment_service.get_client()
        intent = client.create_intent(12345, 3698, "usd")

        assert intent.id.startswith("pi_")
        assert intent.client_secret.startswith(intent.id)
        assert intent.amount == 3698

        (call,) = provider.calls("/payment_intents")
        assert call["method"] == "POST"
        assert call["headers"]["idempotency-key"] == "order-12345"
        assert call["headers"]["authorization"] == "Bearer sk_test_123"
        assert call["headers"]["content-type"] == "application/x-www-form-urlencoded"
        assert call["form"] == {
            "amount": "3698",
            "currency": "usd",
            "automatic_payment_methods[enabled]": "true",
            "metadata[order_id]": "12345",
        }

    def test_same_order_returns_same_intent(self, app, provider):
        client = payment_service.get_client()
        first = client.create_intent(7, 1000, "usd")
        second = client.create_intent(7, 1000, "usd")
        assert first.id == second.id
        assert len(provider.intents) == 1

    def test_error_status_carries_upstream_details(self, app, provider):
        provider.errors["/payment_intents"] = 402
        with pytest.raises(ProviderError) as excinfo:
            payment_service.get_client().create_intent(7, 1000, "usd")
        assert excinfo.value.upstream_status == 402
        assert "provider failure" in excinfo.value.body
        assert excinfo.value.retryable is False

    def test_timeout_is_retryable(self, app, provider):
        provider.errors["/payment_intents"] = httpx.ReadTimeout("slow")
        with pytest.raises(ProviderError) as excinfo:
            payment_service.get_client().create_intent(7, 1000, "usd")
        assert excinfo.value.retryable is True

    def test_cancel_intent(self, app, provider):
        intent = payment_service.get_client().cancel_intent("pi_99")
        assert intent.status == "canceled"
        assert provider.calls("/payment_intents/pi_99/cancel")


class TestSignatures:
    @pytest.fixture
    def client(self):
        return PaymentClient(PROVIDER_URL, "sk", WEBHOOK_SECRET, tolerance=300)

    def test_valid_signature(self, client):
        now = int(time.time())
        header = f"t={now},v1={compute_signature(now, PAYLOAD, WEBHOOK_SECRET)}"
        client.verify_signature(PAYLOAD, header)

    def test_any_matching_v1_accepted(self, client):
        now = int(time.time())
        good = compute_signature(now, PAYLOAD, WEBHOOK_SECRET)
        header = f"t={now},v1={'0' * 64},v1={good}"
        client.verify_signature(PAYLOAD, header)

    def test_wrong_secret_rejected(self, client):
        now = int(time.time())
        header = f"t={now},v1={compute_signature(now, PAYLOAD, 'whsec_other')}"
        with pytest.raises(BadSignature):
            client.verify_signature(PAYLOAD, header)

    def test_modified_body_rejected(self, client):
        now = int(time.time())
        header = f"t={now},v1={compute_signature(now, PAYLOAD, WEBHOOK_SECRET)}"
        with pytest.raises(BadSignature):
            client.verify_signature(PAYLOAD + b" ", header)

    @pytest.mark.parametrize("offset,accepted", [(299, True), (-299, True), (301, False), (-301, False)])
    def test_tolerance_window(self, client, offset, accepted):
        signed_at = 1_700_000_000
        header = f"t={signed_at},v1={compute_signature(signed_at, PAYLOAD, WEBHOOK_SECRET)}"
        if accepted:
            client.verify_signature(PAYLOAD, header, now=signed_at + offset)
        else:
            with pytest.raises(BadSignature):
                client.verify_signature(PAYLOAD, header, now=signed_at + offset)

    @pytest.mark.parametrize(
        "header",
        ["", "garbage", "t=123", "v1=abc", "t=abc,v1=def", "t=1,v1=ünïcode"],
    )
    def test_malformed_headers(self, client, header):
        with pytest.raises(BadSignature):
            client.verify_signature(PAYLOAD, header)

    def test_parse_header(self):
        assert parse_signature_header("t=10, v1=aa ,v0=zz,v1=bb") == (10, ["aa", "bb"])


@pytest.mark.parametrize(
    "event_type,expected",
    [
        ("payment_intent.succeeded", True),
        ("payment_intent.payment_failed", True),
        ("payment_intent.canceled", True),
        ("payment_intent.requires_action", True),
        ("payment_intent.processing", True),
        ("refund.created", True),
        ("refund.failed", True),
        ("refund.updated", True),
        ("charge.succeeded", False),
        ("customer.created", False),
    ],
)
def test_supported_events(event_type, expected):
    assert supported_event(event_type) is expected
