"""
Pytest fixtures for the academy backend tests.

Provides the app on in-memory SQLite, a per-test table wipe, a fake
payment gateway (real webhook signature checks, fake hosted pages), a
recording mailer, auth helpers and small factories.
"""

import hashlib
import hmac
import json
import time

import pytest

from academy import create_app
from academy.extensions import db
from academy.models import BlockBooking, Coupon, PaymentPlan, Program, TrainingSession
from academy.services import booking_service, session_service
from academy.services.auth_service import ROLE_ADMIN, ROLE_PARENT, create_user
from academy.services.notification_service import Mailer, SendResult
from academy.services.payment_gateway import (
    CheckoutSession,
    HostedPaymentLink,
    PaymentGatewayError,
    StripeGateway,
)
from academy.services.stats_service import CACHE_KEY

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "Password123!"


class FakeGateway(StripeGateway):
    """Keeps the real verify_event; hosted pages are recorded instead of created."""

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET)
        self.checkout_sessions = []
        self.payment_links = []
        self.fail_next = False

    def create_checkout_session(self, **kwargs):
        if self.fail_next:
            self.fail_next = False
            raise PaymentGatewayError("Stripe is unavailable")
        session = CheckoutSession(
            id=f"cs_test_{len(self.checkout_sessions) + 1}",
            url=f"https://checkout.stripe.test/cs_test_{len(self.checkout_sessions) + 1}",
        )
        self.checkout_sessions.append({"id": session.id, **kwargs})
        return session

    def create_payment_link(self, **kwargs):
        link = HostedPaymentLink(
            id=f"plink_test_{len(self.payment_links) + 1}",
            url=f"https://buy.stripe.test/plink_test_{len(self.payment_links) + 1}",
        )
        self.payment_links.append({"id": link.id, **kwargs})
        return link


class RecordingMailer(Mailer):
    def __init__(self):
        super().__init__("re_test", "TTNTS <test@ttnts.local>")
        self.sent = []
        self.fail = False

    def send(self, to, subject, html, cc=None):
        if self.fail:
            return SendResult(success=False, error="Resend unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return SendResult(success=True, id=f"email_{len(self.sent)}")

    def subjects(self):
        return [m["subject"] for m in self.sent]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STRIPE_SECRET_KEY': 'sk_test_fake',
        'STRIPE_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'RESEND_API_KEY': '',
        'PUBLIC_BASE_URL': 'http://academy.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables, fresh fakes and no memoized stats for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.extensions['payment_gateway'] = FakeGateway()
        app.extensions['mailer'] = RecordingMailer()
        app.extensions.pop(CACHE_KEY, None)

        yield db.session

        db.session.rollback()


@pytest.fixture
def gateway(app, db_session):
    return app.extensions['payment_gateway']


@pytest.fixture
def mailer(app, db_session):
    return app.extensions['mailer']


# =============================================================================
# AUTH
# =============================================================================

def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_user(db_session):
    return create_user("admin@ttnts.local", PASSWORD, role=ROLE_ADMIN, first_name="Ada")


@pytest.fixture
def parent_user(db_session):
    return create_user("parent@example.com", PASSWORD, role=ROLE_PARENT, first_name="Pat")


@pytest.fixture
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture
def parent_headers(parent_user):
    _, token = session_service.create_session(parent_user.id)
    return auth_headers(token)


# =============================================================================
# WEBHOOKS
# =============================================================================

def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def post_event(client, event: dict, secret: str = WEBHOOK_SECRET, header: str = "Stripe-Signature"):
    payload = json.dumps(event)
    return client.post(
        '/webhooks/payment',
        data=payload,
        headers={header: sign_payload(payload, secret)},
        content_type='application/json',
    )


def checkout_completed(booking, event_id: str = "evt_1", amount: int | None = None,
                       payment_type: str = "full", intent: str = "pi_1", **metadata) -> dict:
    return make_event("checkout.session.completed", {
        "id": f"cs_{event_id}",
        "object": "checkout.session",
        "payment_intent": intent,
        "amount_total": booking.amount if amount is None else amount,
        "metadata": {"bookingId": str(booking.id), "bookingRef": booking.booking_ref,
                     "paymentType": payment_type, **metadata},
    }, event_id)


# =============================================================================
# FACTORIES
# =============================================================================

CUSTOMER = {
    "childFirstName": "Sam",
    "childLastName": "Taylor",
    "childDOB": "2016-05-04",
    "parentFirstName": "Pat",
    "parentLastName": "Taylor",
    "parentEmail": "parent@example.com",
    "parentPhone": "07123 456789",
    "emergencyContact": {"name": "Jo Taylor", "phone": "07000 111222", "relationship": "Aunt"},
    "termsAccepted": True,
}


def make_session(name: str = "Saturday Juniors", price: int = 5000, capacity: int = 10,
                 enrolled: int = 0, **kwargs) -> TrainingSession:
    program = db.session.query(Program).first()
    if program is None:
        program = Program(name="Spring Term", is_active=True)
        db.session.add(program)
        db.session.flush()
    session = TrainingSession(
        program_id=program.id,
        name=name,
        price=price,
        capacity=capacity,
        enrolled=enrolled,
        day_of_week=kwargs.pop("day_of_week", 6),
        start_time=kwargs.pop("start_time", "10:00"),
        end_time=kwargs.pop("end_time", "11:00"),
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    db.session.add(session)
    db.session.commit()
    return session


def make_booking(sessions, discount: int = 0, coupon=None, payment_plan=None, **customer):
    sessions = sessions if isinstance(sessions, (list, tuple)) else [sessions]
    return booking_service.create_pending_booking(
        {**CUSTOMER, **customer},
        [s.id for s in sessions],
        subtotal=sum(s.price for s in sessions),
        discount=discount,
        coupon=coupon,
        payment_plan=payment_plan,
        program_id=sessions[0].program_id,
    )


def make_coupon(code: str = "SAVE10", discount_type: str = "percentage", discount_value: int = 10,
                **kwargs) -> Coupon:
    coupon = Coupon(code=code, discount_type=discount_type, discount_value=discount_value,
                    used_count=kwargs.pop("used_count", 0), is_active=kwargs.pop("is_active", True), **kwargs)
    db.session.add(coupon)
    db.session.commit()
    return coupon


def make_payment_plan(installment_count: int = 2, interval_days: int = 30, **kwargs) -> PaymentPlan:
    plan = PaymentPlan(name=kwargs.pop("name", "Pay in two"), installment_count=installment_count,
                       interval_days=interval_days, is_active=kwargs.pop("is_active", True), **kwargs)
    db.session.add(plan)
    db.session.commit()
    return plan


def make_block_booking(total_sessions: int = 4, total_paid: int = 6000, **kwargs) -> BlockBooking:
    block = BlockBooking(
        student_name=kwargs.pop("student_name", "Sam Taylor"),
        parent_name=kwargs.pop("parent_name", "Pat Taylor"),
        parent_email=kwargs.pop("parent_email", "parent@example.com"),
        total_sessions=total_sessions,
        remaining_sessions=kwargs.pop("remaining_sessions", total_sessions),
        total_paid=total_paid,
        price_per_session=kwargs.pop("price_per_session", total_paid // total_sessions),
        status=kwargs.pop("status", "active"),
        **kwargs,
    )
    db.session.add(block)
    db.session.commit()
    return block
