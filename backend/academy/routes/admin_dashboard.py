# Overview: Admin dashboard statistics.

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..responses import ok
from ..services import stats_service
from ..services.auth_service import ROLE_ADMIN

admin_dashboard_bp = Blueprint("admin_dashboard", __name__, url_prefix="/api/admin/dashboard")


@admin_dashboard_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN)
def dashboard_stats_route():
    """Figures are memoized for DASHBOARD_STATS_TTL_SECONDS; ?refresh=true recomputes."""
    force = request.args.get("refresh", "false").lower() == "true"
    return ok(stats_service.get_dashboard_stats(force_refresh=force))
