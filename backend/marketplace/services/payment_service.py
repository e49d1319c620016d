# Overview: Client for the payment provider's HTTP API and webhook signature checks.

"""
Payment provider client.

Talks to a Stripe-compatible API: form-encoded requests, JSON responses,
bearer authentication with the secret key. One client (and one pooled
httpx.Client) is built per app in create_app() and stored in
app.extensions["payment_client"]; services fetch it with get_client().

Failure semantics:
- non-2xx response -> ProviderError(upstream_status, body)
- timeout or transport failure -> ProviderError(retryable=True); retrying
  with the same idempotency key returns the original object
"""

from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass

import httpx
from flask import current_app

from ..errors import BadSignature, ProviderError

SUPPORTED_EVENTS = frozenset({
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
    "payment_intent.requires_action",
    "payment_intent.processing",
    "refund.created",
    "refund.failed",
    "refund.updated",
})


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str | None
    status: str
    amount: int
    currency: str

    @classmethod
    def from_json(cls, data: dict) -> "PaymentIntent":
        return cls(
            id=data["id"],
            client_secret=data.get("client_secret"),
            status=data.get("status", ""),
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or ""),
        )


def supported_event(event_type: str) -> bool:
    return event_type in SUPPORTED_EVENTS


def compute_signature(timestamp: int | str, payload: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of "<timestamp>.<payload>" under secret."""
    signed = str(timestamp).encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def signature_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a "t=...,v1=..." header the way the provider sends it."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(timestamp, payload, secret)}"


def parse_signature_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for part in (header or "").split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise BadSignature(f"non-numeric timestamp {value!r}")
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise BadSignature("signature header missing t or v1")
    return timestamp, signatures


class PaymentClient:
    def __init__(
        self,
        base_url: str,
        secret_key: str,
        webhook_secret: str,
        *,
        tolerance: int = 300,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self._http = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {secret_key}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config, transport: httpx.BaseTransport | None = None) -> "PaymentClient":
        return cls(
            config["STRIPE_BASE_URL"],
            config["STRIPE_SECRET_KEY"],
            config["STRIPE_WEBHOOK_SIGNING_SECRET"],
            tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
            timeout=config.get("PROVIDER_TIMEOUT", 10),
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def post_form(self, path: str, data: dict, *, idempotency_key: str | None = None) -> dict:
        """POST form-encoded data and return the decoded JSON body."""
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        try:
            response = self._http.post(path, data=data, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"timeout calling {path}", retryable=True, cause=exc)
        except httpx.TransportError as exc:
            raise ProviderError(f"transport error calling {path}: {exc}", retryable=True, cause=exc)

        if response.is_error:
            raise ProviderError(
                f"{path} returned {response.status_code}",
                upstream_status=response.status_code,
                body=response.text,
                retryable=response.status_code >= 500,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{path} returned invalid JSON", body=response.text, cause=exc)

    def create_intent(self, order_id: int, amount: int, currency: str) -> PaymentIntent:
        """
        Create (or, on retry, fetch back) the payment intent for an order.

        Idempotency-Key is derived from the order id, so any retry for the
        same order returns the same intent.
        """
        data = self.post_form(
            "/payment_intents",
            {
                "amount": str(amount),
                "currency": currency,
                "automatic_payment_methods[enabled]": "true",
                "metadata[order_id]": str(order_id),
            },
            idempotency_key=f"order-{order_id}",
        )
        return PaymentIntent.from_json(data)

    def cancel_intent(self, intent_id: str) -> PaymentIntent:
        data = self.post_form(f"/payment_intents/{intent_id}/cancel", {})
        return PaymentIntent.from_json(data)

    def verify_signature(self, payload: bytes, header: str, *, now: float | None = None) -> None:
        """
        Accept iff some v1 signature matches and the timestamp is within
        tolerance of now. Raises BadSignature otherwise.
        """
        if not self.webhook_secret:
            raise BadSignature("webhook signing secret is not configured")
        timestamp, signatures = parse_signature_header(header)
        now = time.time() if now is None else now
        if abs(now - timestamp) > self.tolerance:
            raise BadSignature(f"timestamp {timestamp} outside tolerance")

        expected = compute_signature(timestamp, payload, self.webhook_secret).encode("ascii")
        if not any(hmac.compare_digest(expected, candidate.encode("utf-8")) for candidate in signatures):
            raise BadSignature("no matching v1 signature")


def get_client() -> PaymentClient:
    return current_app.extensions["payment_client"]
