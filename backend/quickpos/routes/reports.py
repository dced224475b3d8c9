from flask import Blueprint, jsonify, request, g

from quickpos.decorators import require_auth, require_role
from quickpos.models.auth import ROLE_MANAGER
from quickpos.services import reporting_service
from quickpos.validation import ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_report():
    """Sales summary; cashiers always get their own branch."""
    ctx = g.session_context
    period = request.args.get("period", "today")
    branch_id = request.args.get("branch_id", type=int)
    if not ctx.is_manager and ctx.branch_id is not None:
        branch_id = ctx.branch_id

    try:
        report = reporting_service.dashboard_stats(period, branch_id=branch_id)
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/branches")
@require_auth
@require_role(ROLE_MANAGER)
def branches_report():
    time_range = request.args.get("time_range", "today")
    try:
        stats = reporting_service.branch_stats(time_range=time_range)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify({
        "time_range": time_range,
        "branches": stats,
        "alerts": reporting_service.alerts(stats, time_range),
    }), 200


@reports_bp.get("/trends")
@require_auth
@require_role(ROLE_MANAGER)
def trends_report():
    days = request.args.get("days", 30, type=int)
    try:
        return jsonify({"days": days, "trends": reporting_service.revenue_trends(days=days)}), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/categories")
@require_auth
@require_role(ROLE_MANAGER)
def categories_report():
    return jsonify({"categories": reporting_service.category_sales()}), 200
