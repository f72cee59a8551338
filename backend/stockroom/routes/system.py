# backend/stockroom/routes/system.py
"""
System health endpoint.

Unauthenticated; reports database reachability, token counts and whether
the stored arrivage totals still match a fresh recalculation.

Overall status:
- "unhealthy" (503) when a check could not run
- "degraded" (200) when the data is reachable but some totals have drifted
- "healthy" (200) otherwise
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Arrivage, Organization, User, SessionToken
from ..services.cost_aggregator import ArrivageCostAggregator
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")

# Most recent arrivages compared against a fresh recalculation per request
DRIFT_SCAN_LIMIT = 200


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        user_count = db.session.query(User).count()
        arrivage_count = db.session.query(Arrivage).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "organizations": org_count,
                "users": user_count,
                "arrivages": arrivage_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_service_health() -> dict:
    """Count live and expired-but-unrevoked session tokens."""
    start_time = time.time()
    try:
        now = utcnow()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked == False,  # noqa: E712
            SessionToken.expires_at >= now,
        ).count()
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < now,
            SessionToken.is_revoked == False,  # noqa: E712
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error"
        }


def check_arrivage_totals_health() -> dict:
    """Compare stored arrivage totals with a fresh computation, newest first."""
    start_time = time.time()
    try:
        limit = current_app.config.get("HEALTH_DRIFT_SCAN_LIMIT", DRIFT_SCAN_LIMIT)
        arrivages = (
            db.session.query(Arrivage)
            .order_by(Arrivage.id.desc())
            .limit(limit)
            .all()
        )
        aggregator = ArrivageCostAggregator(db.session)
        drifted = [a.id for a in arrivages if aggregator.drift(a)]

        elapsed_ms = (time.time() - start_time) * 1000
        if drifted:
            current_app.logger.warning("arrivage totals drifted ids=%s", drifted)

        return {
            "status": "degraded" if drifted else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "scanned": len(arrivages),
                "drifted": len(drifted),
                "drifted_arrivage_ids": drifted,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Arrivage totals health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Arrivage totals check error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: every check healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_service_health()
    totals_health = check_arrivage_totals_health()

    statuses = {check["status"] for check in (database_health, session_health, totals_health)}
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "degraded" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "session_service": session_health,
            "arrivage_totals": totals_health,
        }
    }

    return response, 503 if overall == "unhealthy" else 200
