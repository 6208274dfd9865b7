# Overview: Login, logout and token validation.

from flask import Blueprint, current_app, g, request

from ..decorators import bearer_token, require_auth
from ..responses import domain_error, fail, ok
from ..services import auth_service, session_service
from ..validation import DomainError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """Returns a bearer token; send it as `Authorization: Bearer <token>`."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            return fail("email and password required", 400)

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.info("Failed login for %s from %s", email, request.remote_addr)
            return fail("Invalid credentials", 401)

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return ok({
            "user": user.to_dict(),
            "token": token,
            "expiresAt": session.expires_at.isoformat() + "Z",
        })
    except Exception:
        current_app.logger.exception("Failed to login user")
        return fail("Internal server error", 500)


@auth_bp.post("/logout")
def logout_route():
    token = bearer_token()
    if not token:
        return fail("Authorization header required", 401)
    if not session_service.revoke_session(token, reason="User logout"):
        return fail("Invalid or expired token", 401)
    return ok(message="Logout successful")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok({"user": g.current_user.to_dict()})


@auth_bp.post("/register")
def register_route():
    """Parent self-registration. Portal access covers bookings made with this email."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            data.get("email"),
            data.get("password"),
            role=auth_service.ROLE_PARENT,
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
        )
    except DomainError as e:
        return domain_error(e)
    return ok({"user": user.to_dict()}, status=201)
