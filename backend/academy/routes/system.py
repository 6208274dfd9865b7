# Overview: Health endpoint for load balancers and deploy checks.

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import WebhookEvent
from ..services.payment_gateway import get_payment_gateway
from ..services.notification_service import get_mailer

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        failed_events = db.session.query(WebhookEvent).filter_by(status="failed").count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"failed_webhook_events": failed_events},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    gateway = get_payment_gateway()
    checks = {
        "database": database,
        "payments": {
            "status": "healthy" if gateway.secret_key and gateway.webhooks_configured else "degraded",
            "checkout_configured": bool(gateway.secret_key),
            "webhooks_configured": gateway.webhooks_configured,
        },
        "email": {
            "status": "healthy" if not get_mailer().dev_mode else "degraded",
            "dev_mode": get_mailer().dev_mode,
        },
    }
    status = "unhealthy" if database["status"] == "unhealthy" else (
        "degraded" if any(c["status"] != "healthy" for c in checks.values()) else "healthy"
    )
    return jsonify({"status": status, "checks": checks}), 503 if status == "unhealthy" else 200
