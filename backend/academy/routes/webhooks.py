# Overview: Payment provider webhook endpoint.

from flask import Blueprint, current_app, jsonify, request

from ..services import webhook_service
from ..services.payment_gateway import PaymentGatewayError, WebhookSignatureError, get_payment_gateway

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.post("/payment")
def payment_webhook_route():
    """
    Receive a signed provider event.

    The raw body is verified before anything is parsed. Once verified the
    event is always acknowledged with 200, including when applying it
    failed; failures are stored on the webhook_events row for replay.
    """
    payload = request.get_data(cache=False)
    signature = request.headers.get("Stripe-Signature") or request.headers.get("Signature")

    try:
        event = get_payment_gateway().verify_event(payload, signature)
    except PaymentGatewayError:
        current_app.logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        return jsonify({"error": "Webhook not configured"}), 500
    except WebhookSignatureError as e:
        current_app.logger.warning("Rejected webhook: %s", e)
        return jsonify({"error": "Invalid signature"}), 400

    outcome = webhook_service.process_event(event)
    current_app.logger.info("Webhook %s (%s): %s", outcome.event_id, event.get("type"), outcome.status)
    return jsonify({"received": True}), 200
