# Overview: Admin programs and timetable sessions.

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..responses import domain_error, ok
from ..services import catalog_service
from ..services.auth_service import ROLE_ADMIN, ROLE_COACH
from ..validation import DomainError

admin_sessions_bp = Blueprint("admin_sessions", __name__, url_prefix="/api/admin")


@admin_sessions_bp.get("/programs")
@require_auth
@require_role(ROLE_ADMIN, ROLE_COACH)
def list_programs_route():
    active_only = request.args.get("active", "false").lower() == "true"
    return ok(catalog_service.list_programs(active_only=active_only))


@admin_sessions_bp.post("/programs")
@require_auth
@require_role(ROLE_ADMIN)
def create_program_route():
    try:
        program = catalog_service.create_program(request.get_json(silent=True))
    except DomainError as e:
        return domain_error(e)
    return ok(program.to_dict(), status=201)


@admin_sessions_bp.get("/sessions")
@require_auth
@require_role(ROLE_ADMIN, ROLE_COACH)
def list_sessions_route():
    sessions = catalog_service.list_sessions(
        program_id=request.args.get("programId", type=int),
        active_only=request.args.get("active", "false").lower() == "true",
    )
    return ok(sessions, count=len(sessions))


@admin_sessions_bp.post("/sessions")
@require_auth
@require_role(ROLE_ADMIN)
def create_session_route():
    try:
        session = catalog_service.create_session(request.get_json(silent=True))
    except DomainError as e:
        return domain_error(e)
    return ok(session.to_dict(), status=201)


@admin_sessions_bp.patch("/sessions/<int:session_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_session_route(session_id: int):
    try:
        session = catalog_service.update_session(session_id, request.get_json(silent=True) or {})
    except DomainError as e:
        return domain_error(e)
    return ok(session.to_dict())
