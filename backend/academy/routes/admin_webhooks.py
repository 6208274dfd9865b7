# Overview: Review and replay of stored payment webhook events.

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..responses import domain_error, ok
from ..services import webhook_service
from ..services.auth_service import ROLE_ADMIN
from ..validation import DomainError

admin_webhooks_bp = Blueprint("admin_webhooks", __name__, url_prefix="/api/admin/webhook-events")


@admin_webhooks_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_webhook_events_route():
    events = webhook_service.list_events(
        status=request.args.get("status") or None,
        limit=min(request.args.get("limit", 100, type=int), 500),
    )
    return ok([e.to_dict() for e in events], count=len(events))


@admin_webhooks_bp.post("/<event_id>/replay")
@require_auth
@require_role(ROLE_ADMIN)
def replay_webhook_event_route(event_id: str):
    try:
        outcome = webhook_service.replay_event(event_id)
    except DomainError as e:
        return domain_error(e)
    return ok(outcome.to_dict())
