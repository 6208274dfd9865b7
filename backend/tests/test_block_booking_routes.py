"""
Admin block booking API tests.
"""

import pytest

from academy.extensions import db
from academy.models import BlockBooking, BlockBookingRefund

from conftest import make_block_booking

BASE = '/api/admin/block-bookings'


class TestAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", BASE),
            ("POST", BASE),
            ("GET", f"{BASE}/1"),
            ("POST", f"{BASE}/1/deduct"),
            ("POST", f"{BASE}/1/refund"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path, json={})
        assert resp.status_code == 401
        assert resp.get_json()["success"] is False

    def test_parent_is_denied(self, client, parent_headers):
        resp = client.get(BASE, headers=parent_headers)
        assert resp.status_code == 403


class TestCreateAndList:
    def test_create_computes_price_per_session(self, client, admin_headers):
        resp = client.post(BASE, headers=admin_headers, json={
            "studentName": "Sam Taylor",
            "parentName": "Pat Taylor",
            "parentEmail": "Parent@Example.com",
            "totalSessions": 3,
            "totalPaid": 5000,
            "paymentMethod": "cash",
        })

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["remainingSessions"] == 3
        assert data["pricePerSession"] == 1667
        assert data["parentEmail"] == "parent@example.com"
        assert data["status"] == "active"

    def test_create_requires_fields(self, client, admin_headers):
        resp = client.post(BASE, headers=admin_headers, json={"studentName": "Sam"})

        assert resp.status_code == 400
        assert "Missing required fields" in resp.get_json()["error"]

    def test_list_filters_by_remaining(self, client, admin_headers):
        make_block_booking(student_name="Alex", total_sessions=4)
        make_block_booking(student_name="Billie", total_sessions=2, remaining_sessions=0, status="completed")

        resp = client.get(f"{BASE}?hasRemaining=true", headers=admin_headers)

        body = resp.get_json()["data"]
        assert body["total"] == 1
        assert body["blockBookings"][0]["studentName"] == "Alex"
        assert body["hasMore"] is False

    def test_detail_includes_history(self, client, admin_headers):
        block = make_block_booking()
        client.post(f"{BASE}/{block.id}/deduct", headers=admin_headers, json={"sessionDate": "2026-03-14"})

        resp = client.get(f"{BASE}/{block.id}", headers=admin_headers)

        data = resp.get_json()["data"]
        assert len(data["usageHistory"]) == 1
        assert data["usageHistory"][0]["sessionDate"] == "2026-03-14"
        assert data["valueRemaining"] == 3 * 1500

    def test_detail_not_found(self, client, admin_headers):
        resp = client.get(f"{BASE}/999", headers=admin_headers)
        assert resp.status_code == 404


class TestDeductRoute:
    def test_deduct_then_duplicate(self, client, admin_headers, admin_user):
        block = make_block_booking(total_sessions=4, price_per_session=1000)

        first = client.post(f"{BASE}/{block.id}/deduct", headers=admin_headers,
                            json={"sessionDate": "2026-03-14", "coachId": "c1"})
        second = client.post(f"{BASE}/{block.id}/deduct", headers=admin_headers,
                             json={"sessionDate": "2026-03-14"})

        assert first.status_code == 200
        data = first.get_json()["data"]
        assert data["remainingSessions"] == 3
        assert data["newStatus"] == "active"
        assert data["usage"]["coachId"] == "c1"
        assert data["usage"]["deductedBy"] == admin_user.id

        assert second.status_code == 409
        assert second.get_json() == {"success": False, "error": "Session already deducted for this date"}
        assert db.session.get(BlockBooking, block.id).remaining_sessions == 3

    @pytest.mark.parametrize("body", [{}, {"sessionDate": "14/03/2026"}, {"sessionDate": "2026-02-30"}])
    def test_bad_session_date(self, client, admin_headers, body):
        block = make_block_booking()

        resp = client.post(f"{BASE}/{block.id}/deduct", headers=admin_headers, json=body)

        assert resp.status_code == 400
        assert db.session.get(BlockBooking, block.id).remaining_sessions == 4


class TestRefundRoute:
    def test_refund_everything(self, client, admin_headers):
        block = make_block_booking(total_sessions=4, price_per_session=1000)

        resp = client.post(f"{BASE}/{block.id}/refund", headers=admin_headers, json={"reason": "Injury"})

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["sessionsRefunded"] == 4
        assert data["amountRefunded"] == 4000
        assert data["newStatus"] == "refunded"

    def test_refund_over_value_is_rejected(self, client, admin_headers):
        block = make_block_booking(total_sessions=4, price_per_session=1000)

        resp = client.post(f"{BASE}/{block.id}/refund", headers=admin_headers,
                           json={"sessionsToRefund": 1, "refundAmount": 5000})

        assert resp.status_code == 400
        assert db.session.get(BlockBooking, block.id).remaining_sessions == 4

    def test_negative_refund_amount(self, client, admin_headers):
        block = make_block_booking()

        resp = client.post(f"{BASE}/{block.id}/refund", headers=admin_headers, json={"refundAmount": -1})

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Refund amount cannot be negative"

    def test_long_reason_is_cut_to_column_length(self, client, admin_headers):
        block = make_block_booking(total_sessions=4, price_per_session=1000)

        resp = client.post(f"{BASE}/{block.id}/refund", headers=admin_headers,
                           json={"sessionsToRefund": 1, "reason": "x" * 3000})

        assert resp.status_code == 200
        refund = db.session.query(BlockBookingRefund).one()
        assert len(refund.reason) == 255
