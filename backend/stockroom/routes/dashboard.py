# Overview: Flask API routes for dashboard KPIs and reports.

from flask import Blueprint, request, g

from ..extensions import db
from ..permissions import Permission
from ..decorators import require_auth, require_permission
from ..services.dashboard_service import DashboardService

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
@require_permission(Permission.DASHBOARD_READ)
def stats():
    return DashboardService(db.session).stats(g.org_id)


@dashboard_bp.get("/low-stock")
@require_auth
@require_permission(Permission.DASHBOARD_READ)
def low_stock():
    limit = min(max(request.args.get("limit", default=20, type=int), 1), 100)
    items = DashboardService(db.session).low_stock(g.org_id, limit=limit)
    return {"items": items, "count": len(items)}


@dashboard_bp.get("/profit-by-arrivage")
@require_auth
@require_permission(Permission.REPORTS_READ)
def profit_by_arrivage():
    items = DashboardService(db.session).profit_by_arrivage(g.org_id)
    return {"items": items, "count": len(items)}
