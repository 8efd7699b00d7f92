"""Stats blueprint: per-telecaller call statistics and call limits.

Route Map:
  GET /api/stats/daily                      One day's row (default today)
  GET /api/stats                            Date range rows + totals + averages
  GET /api/users/<id>/call-limits           Current limits
  PUT /api/users/<id>/call-limits           Update limits (admin tier)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from leadcrm.decorators import admin_required, scoped_telecaller_id
from leadcrm.errors import PermissionDenied
from leadcrm.extensions import db
from leadcrm.models.audit import AuditEvent
from leadcrm.services import stats_service

stats_bp = Blueprint("stats", __name__, url_prefix="/api")


@stats_bp.route("/stats/daily", methods=["GET"])
@login_required
def daily_stats():
    telecaller_id = scoped_telecaller_id(request.args.get("telecallerId"))
    row = stats_service.get_daily_stats(telecaller_id, request.args.get("date"))
    return jsonify(row.to_dict())


@stats_bp.route("/stats", methods=["GET"])
@login_required
def stats_range():
    args = request.args
    telecaller_id = scoped_telecaller_id(args.get("telecallerId"))
    result = stats_service.get_stats(
        telecaller_id,
        start_date=args.get("startDate"),
        end_date=args.get("endDate"),
        limit=args.get("limit"),
        offset=args.get("offset"),
    )
    return jsonify({
        "stats": [row.to_dict() for row in result["stats"]],
        "totals": result["totals"],
        "averages": result["averages"],
    })


# ─── Call limits ────────────────────────────────────────────

@stats_bp.route("/users/<int:user_id>/call-limits", methods=["GET"])
@login_required
def get_call_limits(user_id):
    if not current_user.is_admin and user_id != current_user.id:
        raise PermissionDenied("You can only view your own call limits.")
    return jsonify(stats_service.get_call_limits(user_id))


@stats_bp.route("/users/<int:user_id>/call-limits", methods=["PUT"])
@admin_required
def set_call_limits(user_id):
    data = request.get_json(silent=True) or {}
    limits = stats_service.set_call_limits(
        user_id,
        daily_call_limit=data.get("dailyCallLimit"),
        monthly_call_limit=data.get("monthlyCallLimit"),
    )
    db.session.add(AuditEvent(
        actor_user_id=current_user.id,
        action="user.call_limits_changed",
        metadata_={
            "user_id": user_id,
            "daily_call_limit": limits["dailyCallLimit"],
            "monthly_call_limit": limits["monthlyCallLimit"],
        },
    ))
    db.session.commit()
    return jsonify(limits)
