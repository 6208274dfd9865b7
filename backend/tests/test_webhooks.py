"""
Payment webhook tests.

Verifies:
- Signature is checked before anything is read or written
- checkout.session.completed confirms a booking exactly once
- Repeated event ids are acknowledged and skipped
- Failed / refunded / expired events move only the states they may move
- Handler failures are acknowledged, stored and replayable
- Payment links settle once whatever order their events arrive in
"""

import json

from academy.extensions import db
from academy.models import Booking, CouponUse, Payment, PaymentLink, TrainingSession, WebhookEvent
from academy.services import capacity_ledger

from conftest import (
    checkout_completed,
    make_booking,
    make_coupon,
    make_event,
    make_session,
    post_event,
    sign_payload,
)


def _enrolled(session_id):
    return db.session.get(TrainingSession, session_id).enrolled


def _booking(booking_id):
    return db.session.get(Booking, booking_id)


# =============================================================================
# SIGNATURE VERIFICATION
# =============================================================================


class TestSignature:
    def test_missing_signature_is_rejected_without_mutation(self, client, db_session):
        session = make_session()
        booking = make_booking(session)
        payload = json.dumps(checkout_completed(booking))

        resp = client.post('/webhooks/payment', data=payload, content_type='application/json')

        assert resp.status_code == 400
        assert _booking(booking.id).payment_status == "pending"
        assert _enrolled(session.id) == 0
        assert db.session.query(WebhookEvent).count() == 0

    def test_wrong_secret_is_rejected_without_mutation(self, client, db_session):
        session = make_session()
        booking = make_booking(session)

        resp = post_event(client, checkout_completed(booking), secret="whsec_someone_else")

        assert resp.status_code == 400
        assert _booking(booking.id).payment_status == "pending"
        assert _enrolled(session.id) == 0
        assert db.session.query(Payment).count() == 0

    def test_tampered_body_is_rejected(self, client, db_session):
        session = make_session()
        booking = make_booking(session)
        payload = json.dumps(checkout_completed(booking))
        header = sign_payload(payload)
        tampered = payload.replace('"amount_total": 5000', '"amount_total": 1')

        resp = client.post('/webhooks/payment', data=tampered, headers={'Stripe-Signature': header},
                           content_type='application/json')

        assert resp.status_code == 400
        assert _booking(booking.id).payment_status == "pending"

    def test_stale_timestamp_is_rejected(self, client, db_session):
        payload = json.dumps(make_event("checkout.session.completed", {"metadata": {}}))
        header = sign_payload(payload, timestamp=1_000_000)

        resp = client.post('/webhooks/payment', data=payload, headers={'Stripe-Signature': header},
                           content_type='application/json')

        assert resp.status_code == 400

    def test_generic_signature_header_is_accepted(self, client, db_session):
        session = make_session()
        booking = make_booking(session)

        resp = post_event(client, checkout_completed(booking), header="Signature")

        assert resp.status_code == 200
        assert _booking(booking.id).payment_status == "paid"

    def test_missing_webhook_secret_is_server_error(self, client, gateway):
        gateway.webhook_secret = ""
        resp = post_event(client, make_event("checkout.session.completed", {}))

        assert resp.status_code == 500
        assert db.session.query(WebhookEvent).count() == 0


# =============================================================================
# CHECKOUT COMPLETED
# =============================================================================


class TestCheckoutCompleted:
    def test_confirms_booking_and_enrolls_once(self, client, mailer):
        session = make_session(capacity=10)
        booking = make_booking(session)

        resp = post_event(client, checkout_completed(booking))

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        confirmed = _booking(booking.id)
        assert confirmed.payment_status == "paid"
        assert confirmed.status == "confirmed"
        assert confirmed.stripe_payment_intent_id == "pi_1"
        assert confirmed.enrollment_applied_at is not None
        assert _enrolled(session.id) == 1
        assert mailer.subjects() == [f"Booking Confirmed - {booking.booking_ref}"]

    def test_provider_retry_does_not_double_enroll(self, client, mailer):
        session = make_session()
        booking = make_booking(session)
        event = checkout_completed(booking, event_id="evt_retry")

        first = post_event(client, event)
        second = post_event(client, event)

        assert first.status_code == 200
        assert second.status_code == 200
        assert _enrolled(session.id) == 1
        assert db.session.query(Payment).count() == 1
        assert len(mailer.sent) == 1

    def test_same_payment_under_new_event_id_does_not_double_enroll(self, client, db_session):
        session = make_session()
        booking = make_booking(session)

        post_event(client, checkout_completed(booking, event_id="evt_a"))
        post_event(client, checkout_completed(booking, event_id="evt_b"))

        assert _enrolled(session.id) == 1
        assert db.session.query(Payment).filter_by(booking_id=booking.id).count() == 1
        events = {e.id: e.status for e in db.session.query(WebhookEvent).all()}
        assert events == {"evt_a": "processed", "evt_b": "processed"}

    def test_multi_session_booking_enrolls_each_session(self, client, db_session):
        first = make_session("Saturday Juniors")
        second = make_session("Sunday Seniors", price=4000)
        booking = make_booking([first, second])

        post_event(client, checkout_completed(booking))

        assert _enrolled(first.id) == 1
        assert _enrolled(second.id) == 1

    def test_coupon_use_recorded_once(self, client, db_session):
        session = make_session(price=5000)
        coupon = make_coupon("SAVE10")
        booking = make_booking(session, discount=500, coupon=coupon)

        post_event(client, checkout_completed(booking, event_id="evt_a"))
        post_event(client, checkout_completed(booking, event_id="evt_b", intent="pi_again"))

        assert db.session.query(CouponUse).filter_by(booking_id=booking.id).count() == 1
        db.session.refresh(coupon)
        assert coupon.used_count == 1

    def test_deposit_payment_marks_partial(self, client, mailer):
        session = make_session(price=6000)
        booking = make_booking(session)

        post_event(client, checkout_completed(
            booking, amount=3000, payment_type="deposit", balanceDueDate="2026-12-01",
        ))

        updated = _booking(booking.id)
        assert updated.payment_status == "partial"
        assert updated.status == "confirmed"
        assert updated.deposit_paid == 3000
        assert updated.balance_due == 3000
        assert updated.balance_due_date.isoformat() == "2026-12-01"
        assert _enrolled(session.id) == 1
        assert mailer.subjects() == [f"Deposit Received - {booking.booking_ref}"]

    def test_balance_payment_completes_booking_without_reenrolling(self, client, mailer):
        session = make_session(price=6000)
        booking = make_booking(session)
        post_event(client, checkout_completed(booking, event_id="evt_dep", amount=3000, payment_type="deposit"))

        post_event(client, checkout_completed(
            booking, event_id="evt_bal", amount=3000, payment_type="balance", intent="pi_balance",
        ))

        updated = _booking(booking.id)
        assert updated.payment_status == "paid"
        assert updated.balance_due == 0
        assert updated.balance_paid_at is not None
        # Deposit intent stays on the booking for refunds
        assert updated.stripe_payment_intent_id == "pi_1"
        assert _enrolled(session.id) == 1
        assert mailer.subjects()[-1] == f"Payment Complete - {booking.booking_ref}"

    def test_missing_booking_metadata_is_a_noop(self, client, db_session):
        resp = post_event(client, make_event("checkout.session.completed", {
            "id": "cs_x", "payment_intent": "pi_x", "amount_total": 100, "metadata": {},
        }))

        assert resp.status_code == 200
        assert db.session.query(Payment).count() == 0
        assert db.session.get(WebhookEvent, "evt_1").status == "processed"

    def test_email_failure_does_not_undo_confirmation(self, client, mailer):
        mailer.fail = True
        session = make_session()
        booking = make_booking(session)

        resp = post_event(client, checkout_completed(booking))

        assert resp.status_code == 200
        assert _booking(booking.id).payment_status == "paid"
        assert _enrolled(session.id) == 1


# =============================================================================
# OTHER EVENT TYPES
# =============================================================================


class TestOtherEvents:
    def test_unknown_event_type_is_acknowledged_and_ignored(self, client, db_session):
        resp = post_event(client, make_event("customer.created", {"id": "cus_1"}, "evt_unknown"))

        assert resp.status_code == 200
        assert db.session.get(WebhookEvent, "evt_unknown").status == "ignored"

    def test_payment_failed_marks_pending_booking_failed(self, client, mailer):
        session = make_session()
        booking = make_booking(session)

        post_event(client, make_event("payment_intent.payment_failed", {
            "id": "pi_1",
            "metadata": {"bookingId": str(booking.id)},
            "last_payment_error": {"message": "Your card was declined."},
        }))

        updated = _booking(booking.id)
        assert updated.payment_status == "failed"
        assert updated.failure_reason == "Your card was declined."
        assert _enrolled(session.id) == 0
        assert mailer.subjects() == [f"Payment Issue - {booking.booking_ref}"]

    def test_late_payment_failed_does_not_override_paid_booking(self, client, db_session):
        session = make_session()
        booking = make_booking(session)
        post_event(client, checkout_completed(booking, event_id="evt_paid"))

        post_event(client, make_event("payment_intent.payment_failed", {
            "id": "pi_1", "metadata": {"bookingId": str(booking.id)},
        }, "evt_failed"))

        assert _booking(booking.id).payment_status == "paid"

    def test_payment_intent_succeeded_is_status_only(self, client, db_session):
        session = make_session()
        booking = make_booking(session)

        post_event(client, make_event("payment_intent.succeeded", {
            "id": "pi_9", "metadata": {"bookingId": str(booking.id), "paymentType": "full"},
        }))

        updated = _booking(booking.id)
        assert updated.payment_status == "paid"
        assert updated.stripe_payment_intent_id == "pi_9"
        assert _enrolled(session.id) == 0

    def test_payment_intent_without_metadata_is_a_noop(self, client, db_session):
        resp = post_event(client, make_event("payment_intent.succeeded", {"id": "pi_9"}))
        assert resp.status_code == 200

    def test_charge_refunded_full_and_partial(self, client, mailer):
        session = make_session(price=5000)
        booking = make_booking(session)
        post_event(client, checkout_completed(booking, event_id="evt_paid"))

        post_event(client, make_event("charge.refunded", {
            "id": "ch_1", "payment_intent": "pi_1", "amount": 5000, "amount_refunded": 2000,
        }, "evt_ref_1"))
        assert _booking(booking.id).payment_status == "partially_refunded"
        assert _booking(booking.id).refunded_amount == 2000

        post_event(client, make_event("charge.refunded", {
            "id": "ch_1", "payment_intent": "pi_1", "amount": 5000, "amount_refunded": 5000,
        }, "evt_ref_2"))
        updated = _booking(booking.id)
        assert updated.payment_status == "refunded"
        assert updated.refunded_amount == 5000
        # Refunds are money only; seats stay until the booking is cancelled
        assert _enrolled(session.id) == 1
        assert mailer.subjects().count(f"Refund Processed - {booking.booking_ref}") == 2

    def test_checkout_expired_marks_pending_booking_expired(self, client, mailer):
        session = make_session()
        booking = make_booking(session)

        post_event(client, make_event("checkout.session.expired", {
            "id": "cs_1", "metadata": {"bookingId": str(booking.id)},
        }))

        assert _booking(booking.id).payment_status == "expired"
        assert len(mailer.sent) == 1

    def test_checkout_expired_leaves_paid_booking_alone(self, client, mailer):
        session = make_session()
        booking = make_booking(session)
        post_event(client, checkout_completed(booking, event_id="evt_paid"))

        post_event(client, make_event("checkout.session.expired", {
            "id": "cs_1", "metadata": {"bookingId": str(booking.id)},
        }, "evt_expired"))

        assert _booking(booking.id).payment_status == "paid"
        assert len(mailer.sent) == 1


# =============================================================================
# FAILURES & REPLAY
# =============================================================================


class TestFailureAndReplay:
    def test_handler_failure_is_acknowledged_and_stored(self, client, db_session):
        resp = post_event(client, make_event("checkout.session.completed", {
            "id": "cs_1", "payment_intent": "pi_1", "amount_total": 5000,
            "metadata": {"bookingId": "999"},
        }, "evt_missing"))

        assert resp.status_code == 200
        event = db.session.get(WebhookEvent, "evt_missing")
        assert event.status == "failed"
        assert "Booking not found" in event.error

    def test_replay_failed_event_via_admin(self, client, admin_headers):
        session = make_session()
        booking = make_booking(session)
        event = checkout_completed(booking, event_id="evt_replay")
        event["data"]["object"]["metadata"]["bookingId"] = "999"
        post_event(client, event)
        assert db.session.get(WebhookEvent, "evt_replay").status == "failed"

        # Fix the stored payload the way an operator would after diagnosis
        row = db.session.get(WebhookEvent, "evt_replay")
        stored = json.loads(row.payload)
        stored["data"]["object"]["metadata"]["bookingId"] = str(booking.id)
        row.payload = json.dumps(stored)
        db.session.commit()

        resp = client.post('/api/admin/webhook-events/evt_replay/replay', headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "processed"
        assert db.session.get(WebhookEvent, "evt_replay").attempts == 2
        assert _enrolled(session.id) == 1

    def test_replay_of_processed_event_is_conflict(self, client, admin_headers):
        session = make_session()
        booking = make_booking(session)
        post_event(client, checkout_completed(booking, event_id="evt_done"))

        resp = client.post('/api/admin/webhook-events/evt_done/replay', headers=admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["success"] is False

    def test_list_failed_events(self, client, admin_headers):
        post_event(client, make_event("checkout.session.completed", {
            "id": "cs_1", "metadata": {"bookingId": "999"},
        }, "evt_bad"))
        post_event(client, make_event("customer.created", {}, "evt_other"))

        resp = client.get('/api/admin/webhook-events?status=failed', headers=admin_headers)

        assert resp.status_code == 200
        assert [e["id"] for e in resp.get_json()["data"]] == ["evt_bad"]


# =============================================================================
# PAYMENT LINK EVENTS
# =============================================================================


class TestPaymentLinkEvents:
    def _link(self, client, admin_headers, booking, amount):
        resp = client.post('/api/admin/payment-links', headers=admin_headers, json={
            "customerEmail": booking.parent_email, "amount": amount,
            "description": "Part payment", "bookingId": booking.id,
        })
        assert resp.status_code == 201
        return resp.get_json()["data"]

    def _completed(self, link_id, intent_id, amount, event_id):
        return make_event("checkout.session.completed", {
            "id": f"cs_{intent_id}",
            "object": "checkout.session",
            "payment_link": link_id,
            "payment_intent": intent_id,
            "amount_total": amount,
            "metadata": {},
        }, event_id)

    def test_intent_before_completion_records_partial_payment(self, client, admin_headers, gateway):
        session = make_session(price=10000)
        booking = make_booking(session)
        link = self._link(client, admin_headers, booking, 2000)
        metadata = gateway.payment_links[0]["metadata"]
        assert metadata["paymentType"] == "payment_link"

        post_event(client, make_event("payment_intent.succeeded", {
            "id": "pi_link", "metadata": {k: str(v) for k, v in metadata.items()},
        }, "evt_intent"))
        assert _booking(booking.id).payment_status == "pending"

        post_event(client, self._completed("plink_test_1", "pi_link", 2000, "evt_cs"))

        updated = _booking(booking.id)
        assert updated.payment_status == "partial"
        assert updated.balance_due == 8000
        assert [p.amount for p in db.session.query(Payment).filter_by(booking_id=booking.id)] == [2000]
        assert db.session.get(PaymentLink, link["id"]).status == "completed"
        assert db.session.get(WebhookEvent, "evt_intent").status == "processed"
        assert db.session.get(WebhookEvent, "evt_cs").status == "processed"

    def test_second_link_settles_the_balance(self, client, admin_headers, gateway):
        session = make_session(price=10000)
        booking = make_booking(session)
        self._link(client, admin_headers, booking, 2000)
        self._link(client, admin_headers, booking, 8000)

        post_event(client, self._completed("plink_test_1", "pi_a", 2000, "evt_a"))
        post_event(client, self._completed("plink_test_2", "pi_b", 8000, "evt_b"))

        updated = _booking(booking.id)
        assert updated.payment_status == "paid"
        assert updated.balance_due == 0
        assert _enrolled(session.id) == 1

    def test_failed_completion_leaves_link_open_for_replay(self, client, admin_headers, gateway, monkeypatch):
        session = make_session(price=5000)
        booking = make_booking(session)
        link = self._link(client, admin_headers, booking, 5000)

        original = capacity_ledger.apply_booking_enrollment
        calls = []

        def flaky_enrollment(target):
            calls.append(target.id)
            if len(calls) == 1:
                raise RuntimeError("ledger unavailable")
            return original(target)

        monkeypatch.setattr(capacity_ledger, "apply_booking_enrollment", flaky_enrollment)

        post_event(client, self._completed("plink_test_1", "pi_link", 5000, "evt_cs"))

        assert db.session.get(WebhookEvent, "evt_cs").status == "failed"
        assert db.session.get(PaymentLink, link["id"]).status == "active"
        assert db.session.query(Payment).count() == 0

        resp = client.post('/api/admin/webhook-events/evt_cs/replay', headers=admin_headers)

        assert resp.get_json()["data"]["status"] == "processed"
        assert _booking(booking.id).payment_status == "paid"
        assert db.session.query(Payment).count() == 1
        assert db.session.get(PaymentLink, link["id"]).status == "completed"
        assert _enrolled(session.id) == 1
        assert len(calls) == 2
