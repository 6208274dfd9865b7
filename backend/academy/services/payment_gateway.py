# Overview: Stripe adapter: hosted checkout sessions, payment links and webhook signature checks.

"""
Payment gateway

One StripeGateway is built per app (init_payment_gateway) and kept in
app.extensions so services never read API keys themselves. Everything
Stripe raises is turned into PaymentGatewayError or WebhookSignatureError
at this boundary.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import stripe
from flask import current_app


class PaymentGatewayError(Exception):
    """The provider call failed or the gateway is not configured."""
    pass


class WebhookSignatureError(Exception):
    """Missing, malformed or mismatching webhook signature."""
    pass


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class HostedPaymentLink:
    id: str
    url: str


@dataclass
class LineItem:
    name: str
    amount: int  # pence
    quantity: int = 1


def _stringify_metadata(metadata: dict | None) -> dict:
    # Stripe metadata values must be strings
    return {k: "" if v is None else str(v) for k, v in (metadata or {}).items()}


class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: str, *, currency: str = "gbp", tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.tolerance = tolerance

    @property
    def webhooks_configured(self) -> bool:
        return bool(self.webhook_secret)

    def _require_key(self):
        if not self.secret_key:
            raise PaymentGatewayError("Stripe is not configured (STRIPE_SECRET_KEY missing)")

    def create_checkout_session(
        self,
        *,
        line_items: list[LineItem],
        customer_email: str,
        metadata: dict,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        self._require_key()
        meta = _stringify_metadata(metadata)
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {"name": item.name},
                            "unit_amount": item.amount,
                        },
                        "quantity": item.quantity,
                    }
                    for item in line_items
                ],
                customer_email=customer_email,
                metadata=meta,
                payment_intent_data={"metadata": meta},
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            current_app.logger.warning("Stripe checkout session create failed: %s", exc)
            raise PaymentGatewayError(str(exc)) from exc
        return CheckoutSession(id=session.id, url=session.url)

    def create_payment_link(self, *, name: str, amount: int, metadata: dict) -> HostedPaymentLink:
        self._require_key()
        meta = _stringify_metadata(metadata)
        try:
            price = stripe.Price.create(
                api_key=self.secret_key,
                currency=self.currency,
                unit_amount=amount,
                product_data={"name": name},
            )
            link = stripe.PaymentLink.create(
                api_key=self.secret_key,
                line_items=[{"price": price.id, "quantity": 1}],
                metadata=meta,
                payment_intent_data={"metadata": meta},
            )
        except stripe.StripeError as exc:
            current_app.logger.warning("Stripe payment link create failed: %s", exc)
            raise PaymentGatewayError(str(exc)) from exc
        return HostedPaymentLink(id=link.id, url=link.url)

    def verify_event(self, payload: bytes, signature: str | None) -> dict:
        """
        Check the signature over the raw body and return the parsed event.

        Stripe's header carries a timestamp; events older than the
        tolerance are rejected as replays.
        """
        if not self.webhook_secret:
            raise PaymentGatewayError("Webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing signature header")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookSignatureError("Payload is not valid UTF-8")

        try:
            stripe.WebhookSignature.verify_header(text, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc)) from exc

        try:
            event = json.loads(text)
        except ValueError:
            raise WebhookSignatureError("Payload is not valid JSON")
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise WebhookSignatureError("Payload is not a provider event")
        return event


def init_payment_gateway(app) -> StripeGateway:
    gateway = StripeGateway(
        app.config.get("STRIPE_SECRET_KEY", ""),
        app.config.get("STRIPE_WEBHOOK_SECRET", ""),
        currency=app.config.get("CURRENCY", "gbp"),
        tolerance=int(app.config.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300)),
    )
    app.extensions["payment_gateway"] = gateway
    return gateway


def get_payment_gateway() -> StripeGateway:
    return current_app.extensions["payment_gateway"]
