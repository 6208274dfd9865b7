from .auth import User, SessionToken
from .sessions import Program, TrainingSession
from .coupons import Coupon, CouponUse
from .payments import Payment, PaymentLink, PaymentPlan
from .bookings import Booking
from .block_bookings import BlockBooking, BlockBookingUsage, BlockBookingRefund
from .webhooks import WebhookEvent

__all__ = [
    'User', 'SessionToken',
    'Program', 'TrainingSession',
    'Coupon', 'CouponUse',
    'Payment', 'PaymentLink', 'PaymentPlan',
    'Booking',
    'BlockBooking', 'BlockBookingUsage', 'BlockBookingRefund',
    'WebhookEvent',
]
