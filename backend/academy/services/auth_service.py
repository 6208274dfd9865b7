# Overview: Account creation, bcrypt password handling and credential checks.

"""
Authentication Service

WHY: Admin actions (manual payments, refunds, deductions) are recorded
against the user who made them, and parents only see their own bookings.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..validation import ConflictError, ValidationError, clean_str, parse_email
from academy.time_utils import utcnow


ROLE_ADMIN = "admin"
ROLE_COACH = "coach"
ROLE_PARENT = "parent"
ROLES = (ROLE_ADMIN, ROLE_COACH, ROLE_PARENT)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt with cost factor 12."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(email: str, password: str, role: str = ROLE_PARENT,
                first_name: str | None = None, last_name: str | None = None) -> User:
    """
    Raises:
        ValidationError: bad email/role
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}. Must be one of {list(ROLES)}")
    email = parse_email(email)

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name=clean_str(first_name, 120),
        last_name=clean_str(last_name, 120),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the active User for valid credentials, else None.
    Updates last_login_at on success.
    """
    if not email or not password:
        return None
    user = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
