"""
Capacity ledger tests: session enrolment and block booking credits.
"""

from datetime import date, timedelta

import pytest

from academy.extensions import db
from academy.models import BlockBooking, BlockBookingUsage, TrainingSession
from academy.services import booking_service, capacity_ledger
from academy.time_utils import utcnow
from academy.validation import ConflictError, NotFoundError, ValidationError

from conftest import make_block_booking, make_booking, make_session


def _block(block_id):
    return db.session.get(BlockBooking, block_id)


# =============================================================================
# SESSION ENROLMENT
# =============================================================================


class TestEnrollment:
    def test_increment_and_decrement(self, db_session):
        session = make_session(enrolled=2)

        assert capacity_ledger.increment_enrollment(session.id)
        assert capacity_ledger.decrement_enrollment(session.id, by=4) is False
        assert capacity_ledger.decrement_enrollment(session.id)
        db.session.commit()

        assert db.session.get(TrainingSession, session.id).enrolled == 2

    def test_decrement_never_goes_below_zero(self, db_session):
        session = make_session(enrolled=0)

        assert capacity_ledger.decrement_enrollment(session.id) is False
        db.session.commit()

        assert db.session.get(TrainingSession, session.id).enrolled == 0

    def test_increment_missing_session(self, db_session):
        assert capacity_ledger.increment_enrollment(4242) is False

    def test_mark_paid_twice_enrolls_once(self, db_session):
        session = make_session()
        booking = make_booking(session)

        first = booking_service.mark_paid(booking.id, "pi_dup")
        second = booking_service.mark_paid(booking.id, "pi_dup")

        assert first.applied and first.newly_enrolled
        assert second.applied is False
        assert db.session.get(TrainingSession, session.id).enrolled == 1

    def test_cancel_releases_seats_once(self, db_session):
        session = make_session()
        booking = make_booking(session)
        booking_service.mark_paid(booking.id, "pi_1")

        booking_service.cancel_booking(booking.id, "Moving away")
        with pytest.raises(ConflictError):
            booking_service.cancel_booking(booking.id)

        assert db.session.get(TrainingSession, session.id).enrolled == 0

    def test_cancel_unpaid_booking_leaves_counter_alone(self, db_session):
        session = make_session(enrolled=3)
        booking = make_booking(session)

        booking_service.cancel_booking(booking.id)

        assert db.session.get(TrainingSession, session.id).enrolled == 3


# =============================================================================
# DEDUCTION
# =============================================================================


class TestDeduct:
    def test_deduct_then_duplicate_is_rejected(self, db_session):
        block = make_block_booking(total_sessions=4, price_per_session=1000, total_paid=4000)
        session_date = date(2026, 3, 14)

        result = capacity_ledger.deduct_block_session(block.id, session_date)
        assert result.remaining_sessions == 3
        assert result.status == "active"

        with pytest.raises(ConflictError, match="already deducted"):
            capacity_ledger.deduct_block_session(block.id, session_date)

        assert _block(block.id).remaining_sessions == 3
        assert db.session.query(BlockBookingUsage).count() == 1

    def test_different_slots_on_same_date(self, db_session):
        block = make_block_booking(total_sessions=4)
        session_date = date(2026, 3, 14)

        capacity_ledger.deduct_block_session(block.id, session_date, timetable_slot_id="sat-10")
        result = capacity_ledger.deduct_block_session(block.id, session_date, timetable_slot_id="sat-14")

        assert result.remaining_sessions == 2
        with pytest.raises(ConflictError):
            capacity_ledger.deduct_block_session(block.id, session_date, timetable_slot_id="sat-14")

    def test_slotless_deduction_conflicts_with_any_slot(self, db_session):
        block = make_block_booking(total_sessions=4)
        session_date = date(2026, 3, 14)
        capacity_ledger.deduct_block_session(block.id, session_date, timetable_slot_id="sat-10")

        with pytest.raises(ConflictError):
            capacity_ledger.deduct_block_session(block.id, session_date)

    def test_last_credit_completes_block(self, db_session):
        block = make_block_booking(total_sessions=1)

        result = capacity_ledger.deduct_block_session(block.id, date(2026, 3, 14), coach_name="Sam")

        assert result.remaining_sessions == 0
        assert result.status == "completed"
        assert _block(block.id).status == "completed"
        with pytest.raises(ValidationError):
            capacity_ledger.deduct_block_session(block.id, date(2026, 3, 21))

    def test_expired_block_cannot_be_used(self, db_session):
        block = make_block_booking(status="expired", expires_at=utcnow() - timedelta(days=1))

        with pytest.raises(ValidationError):
            capacity_ledger.deduct_block_session(block.id, date(2026, 3, 14))

        assert _block(block.id).remaining_sessions == 4

    def test_unknown_block(self, db_session):
        with pytest.raises(NotFoundError):
            capacity_ledger.deduct_block_session(999, date(2026, 3, 14))


# =============================================================================
# REFUNDS
# =============================================================================


class TestRefund:
    def test_refund_all_remaining_marks_refunded(self, db_session):
        block = make_block_booking(total_sessions=4, total_paid=4000, price_per_session=1000)
        capacity_ledger.deduct_block_session(block.id, date(2026, 3, 14))

        result = capacity_ledger.refund_block_sessions(block.id, reason="Moving away")

        assert result.sessions_refunded == 3
        assert result.amount_refunded == 3000
        assert result.status == "refunded"
        updated = _block(block.id)
        assert updated.remaining_sessions == 0
        assert updated.status == "refunded"

    def test_partial_refund_keeps_block_active(self, db_session):
        block = make_block_booking(total_sessions=4, total_paid=4000, price_per_session=1000)

        result = capacity_ledger.refund_block_sessions(block.id, sessions_to_refund=1)

        assert result.remaining_sessions == 3
        assert result.status == "active"
        assert result.amount_refunded == 1000

    def test_refund_amount_capped_by_remaining_value(self, db_session):
        block = make_block_booking(total_sessions=4, total_paid=4000, price_per_session=1000)

        with pytest.raises(ValidationError, match="exceeds the remaining value of 4000"):
            capacity_ledger.refund_block_sessions(block.id, refund_amount=4001)

        assert _block(block.id).remaining_sessions == 4

    def test_cannot_refund_more_sessions_than_remain(self, db_session):
        block = make_block_booking(total_sessions=2)

        with pytest.raises(ValidationError, match="Only 2 remaining"):
            capacity_ledger.refund_block_sessions(block.id, sessions_to_refund=3)

    def test_refund_twice_is_conflict(self, db_session):
        block = make_block_booking(total_sessions=2)
        capacity_ledger.refund_block_sessions(block.id)

        with pytest.raises(ConflictError, match="already been refunded"):
            capacity_ledger.refund_block_sessions(block.id)

    def test_cancelled_block_cannot_be_refunded(self, db_session):
        block = make_block_booking(status="cancelled")

        with pytest.raises(ConflictError):
            capacity_ledger.refund_block_sessions(block.id)

    def test_card_paid_block_flags_provider_refund(self, db_session):
        block = make_block_booking(stripe_payment_intent_id="pi_block")

        result = capacity_ledger.refund_block_sessions(block.id, sessions_to_refund=1)

        assert result.requires_provider_refund is True
