from __future__ import annotations

from ..extensions import db
from academy.time_utils import to_utc_z


class WebhookEvent(db.Model):
    """
    One row per provider event id, inserted before any side effect.

    The primary key on the provider id is the dedup: a retried delivery
    fails the insert and is acknowledged without processing.

    STATUSES: processing, processed, ignored, failed
    Failed rows keep the verified payload so they can be replayed
    (flask webhooks replay / POST /api/admin/webhook-events/<id>/replay).
    """
    __tablename__ = "webhook_events"

    id = db.Column(db.String(255), primary_key=True)
    event_type = db.Column(db.String(128), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="processing", index=True)
    payload = db.Column(db.Text, nullable=False)
    error = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.event_type,
            "status": self.status,
            "error": self.error,
            "attempts": self.attempts,
            "receivedAt": to_utc_z(self.received_at),
            "processedAt": to_utc_z(self.processed_at),
        }
