"""
Admin catalog tests: coupons, payment plans, programs and sessions,
payment links and dashboard figures.
"""

from academy.extensions import db
from academy.models import Booking, PaymentLink, TrainingSession
from academy.services import booking_service

from conftest import make_booking, make_coupon, make_event, make_payment_plan, make_session, post_event


# =============================================================================
# COUPONS
# =============================================================================


class TestCoupons:
    def test_create_normalises_code(self, client, admin_headers):
        resp = client.post('/api/admin/coupons', headers=admin_headers, json={
            "code": " summer-10 ",
            "discountType": "percentage",
            "discountValue": 10,
            "maxUses": 50,
        })

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["code"] == "SUMMER-10"
        assert data["usedCount"] == 0
        assert data["maxUses"] == 50

    def test_create_validation(self, client, admin_headers):
        make_coupon("TAKEN")

        def create(**body):
            base = {"code": "NEW", "discountType": "percentage", "discountValue": 10}
            return client.post('/api/admin/coupons', headers=admin_headers, json={**base, **body})

        assert create(code="BAD CODE").status_code == 400
        assert create(code="taken").status_code == 409
        assert create(discountValue=150).status_code == 400
        assert create(discountType="bogof").status_code == 400
        assert create(discountType="fixed", discountValue=0).status_code == 400
        assert create(validFrom="2026-06-01", validUntil="2026-05-01").status_code == 400

    def test_deactivate_makes_coupon_invalid(self, client, admin_headers):
        coupon = make_coupon("SAVE10")

        resp = client.patch(f'/api/admin/coupons/{coupon.id}', headers=admin_headers, json={"isActive": False})
        assert resp.status_code == 200

        check = client.post('/api/checkout/validate-coupon', json={"code": "SAVE10", "cartTotal": 5000})
        assert check.get_json()["error"] == "This coupon is no longer active"

    def test_used_count_is_not_editable(self, client, admin_headers):
        coupon = make_coupon("SAVE10")
        resp = client.patch(f'/api/admin/coupons/{coupon.id}', headers=admin_headers, json={"usedCount": 0})
        assert resp.status_code == 400

    def test_uses_listed_after_redemption(self, client, admin_headers):
        coupon = make_coupon("SAVE10")
        booking = make_booking(make_session(), discount=500, coupon=coupon)
        booking_service.mark_paid(booking.id, "pi_1")

        resp = client.get(f'/api/admin/coupons/{coupon.id}/uses', headers=admin_headers)

        body = resp.get_json()
        assert body["count"] == 1
        assert body["data"][0]["bookingId"] == booking.id
        assert body["data"][0]["discountApplied"] == 500
        assert client.get('/api/admin/coupons/999/uses', headers=admin_headers).status_code == 404


# =============================================================================
# PAYMENT PLANS
# =============================================================================


class TestPaymentPlans:
    def test_create_and_toggle(self, client, admin_headers):
        resp = client.post('/api/admin/payment-plans', headers=admin_headers,
                           json={"name": "Pay in three", "installmentCount": 3, "intervalDays": 14})
        assert resp.status_code == 201
        plan_id = resp.get_json()["data"]["id"]

        off = client.post(f'/api/admin/payment-plans/{plan_id}/active', headers=admin_headers, json={"isActive": False})
        assert off.status_code == 200

        active = client.get('/api/admin/payment-plans?active=true', headers=admin_headers).get_json()["data"]
        assert active == []

    def test_single_instalment_rejected(self, client, admin_headers):
        resp = client.post('/api/admin/payment-plans', headers=admin_headers,
                           json={"name": "One go", "installmentCount": 1})
        assert resp.status_code == 400

    def test_toggle_requires_boolean(self, client, admin_headers):
        plan = make_payment_plan()
        resp = client.post(f'/api/admin/payment-plans/{plan.id}/active', headers=admin_headers, json={"isActive": "no"})
        assert resp.status_code == 400


# =============================================================================
# PROGRAMS & SESSIONS
# =============================================================================


class TestSessions:
    def test_create_program_and_session(self, client, admin_headers):
        program = client.post('/api/admin/programs', headers=admin_headers,
                              json={"name": "Easter Camp", "location": "Riverside Park"}).get_json()["data"]

        resp = client.post('/api/admin/sessions', headers=admin_headers, json={
            "programId": program["id"],
            "name": "Camp Day",
            "dayOfWeek": 1,
            "startTime": "09:00",
            "endTime": "15:00",
            "price": 3000,
            "capacity": 20,
        })

        assert resp.status_code == 201
        session = db.session.get(TrainingSession, resp.get_json()["data"]["id"])
        assert session.enrolled == 0
        assert session.program_id == program["id"]

        listed = client.get(f'/api/admin/sessions?programId={program["id"]}', headers=admin_headers).get_json()
        assert listed["count"] == 1

    def test_session_validation(self, client, admin_headers):
        def create(**body):
            base = {"name": "Juniors", "price": 5000, "capacity": 10}
            return client.post('/api/admin/sessions', headers=admin_headers, json={**base, **body})

        assert create(startTime="9am").status_code == 400
        assert create(dayOfWeek=7).status_code == 400
        assert create(price=49.99).status_code == 400
        assert create(programId=999).status_code == 404

    def test_enrolled_is_owned_by_ledger(self, client, admin_headers):
        session = make_session(capacity=10, enrolled=6)

        assert client.patch(f'/api/admin/sessions/{session.id}', headers=admin_headers,
                            json={"enrolled": 0}).status_code == 400
        assert client.patch(f'/api/admin/sessions/{session.id}', headers=admin_headers,
                            json={"capacity": 5}).status_code == 400

        ok = client.patch(f'/api/admin/sessions/{session.id}', headers=admin_headers, json={"capacity": 12})
        assert ok.status_code == 200
        assert db.session.get(TrainingSession, session.id).capacity == 12


# =============================================================================
# PAYMENT LINKS
# =============================================================================


class TestPaymentLinks:
    def test_create_sends_link(self, client, admin_headers, gateway, mailer):
        resp = client.post('/api/admin/payment-links', headers=admin_headers, json={
            "customerEmail": "Jo@Example.com",
            "amount": 4500,
            "description": "Easter camp",
        })

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["url"] == "https://buy.stripe.test/plink_test_1"
        assert data["status"] == "active"
        assert data["customerEmail"] == "jo@example.com"
        assert gateway.payment_links[0]["amount"] == 4500
        assert mailer.subjects() == ["Payment Request - Easter camp"]

    def test_validation(self, client, admin_headers, gateway):
        def create(**body):
            base = {"customerEmail": "jo@example.com", "amount": 4500, "description": "Camp"}
            return client.post('/api/admin/payment-links', headers=admin_headers, json={**base, **body})

        assert create(amount=0).status_code == 400
        assert create(expiryDays=91).status_code == 400
        assert create(bookingId=999).status_code == 404
        assert gateway.payment_links == []

    def test_paid_link_settles_booking_once(self, client, admin_headers, gateway, mailer):
        session = make_session(price=5000)
        booking = make_booking(session)
        client.post('/api/admin/payment-links', headers=admin_headers, json={
            "customerEmail": booking.parent_email, "amount": 5000,
            "description": "Saturday Juniors", "bookingId": booking.id,
        })
        event = make_event("checkout.session.completed", {
            "id": "cs_link_1",
            "object": "checkout.session",
            "payment_link": "plink_test_1",
            "payment_intent": "pi_link_1",
            "amount_total": 5000,
            "metadata": {},
        }, "evt_link_1")

        assert post_event(client, event).status_code == 200
        assert post_event(client, {**event, "id": "evt_link_2"}).status_code == 200

        booking = db.session.get(Booking, booking.id)
        assert booking.payment_status == "paid"
        assert booking.payment_method == "payment_link"
        assert db.session.get(TrainingSession, session.id).enrolled == 1
        assert db.session.query(PaymentLink).one().status == "completed"
        assert mailer.subjects().count(f"Booking Confirmed - {booking.booking_ref}") == 1


# =============================================================================
# DASHBOARD
# =============================================================================


class TestDashboard:
    def _paid_booking(self, session):
        booking = make_booking(session)
        booking_service.mark_paid(booking.id, f"pi_{booking.id}")
        return booking

    def test_figures_are_memoized_until_refresh(self, client, admin_headers):
        session = make_session(price=5000, capacity=10)
        self._paid_booking(session)

        first = client.get('/api/admin/dashboard/stats', headers=admin_headers).get_json()["data"]
        assert first["totalBookings"] == 1
        assert first["totalRevenue"] == 5000
        assert first["sessionFill"][0]["spotsLeft"] == 9

        self._paid_booking(session)
        cached = client.get('/api/admin/dashboard/stats', headers=admin_headers).get_json()["data"]
        assert cached["totalBookings"] == 1

        fresh = client.get('/api/admin/dashboard/stats?refresh=true', headers=admin_headers).get_json()["data"]
        assert fresh["totalBookings"] == 2
        assert fresh["totalRevenue"] == 10000
        assert fresh["bookingsByPaymentStatus"] == {"paid": 2}
        assert len(fresh["recentBookings"]) == 2

    def test_admin_cancel_invalidates(self, client, admin_headers):
        session = make_session()
        booking = self._paid_booking(session)
        client.get('/api/admin/dashboard/stats', headers=admin_headers)

        client.post(f'/api/admin/bookings/{booking.id}/cancel', headers=admin_headers, json={"notify": False})

        stats = client.get('/api/admin/dashboard/stats', headers=admin_headers).get_json()["data"]
        assert stats["sessionFill"][0]["enrolled"] == 0
