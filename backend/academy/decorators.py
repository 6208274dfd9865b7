# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .responses import fail
from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets g.current_user and g.session_context. Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return fail("Authentication required", 401)

        context = session_service.validate_session(token)
        if not context:
            return fail("Invalid or expired token", 401)

        g.current_user = context.user
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user to hold one of `roles`.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return fail("Authentication required", 401)
            if user.role not in roles:
                return fail("Access denied", 403)
            return f(*args, **kwargs)

        return decorated_function

    return decorator
