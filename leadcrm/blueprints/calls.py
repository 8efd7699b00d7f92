"""Calls blueprint: /api/calls/*

Call logging. Recording a call also moves the lead's stage and rolls the
call into the caller's daily stats (see call_service).

Route Map:
  POST /api/calls                         Record a call (201, or 202 if effects pending)
  GET  /api/calls                         Call history with filters
  GET  /api/calls/<id>                    Single call log
  POST /api/calls/<id>/apply-effects      Retry pending stage/stats effects
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from leadcrm.errors import CallEffectsPending, PermissionDenied, ValidationError
from leadcrm.extensions import db, limiter
from leadcrm.models.audit import AuditEvent
from leadcrm.services import call_service

calls_bp = Blueprint("calls", __name__, url_prefix="/api/calls")


def _call_rate_limit():
    return current_app.config["CALL_RATE_LIMIT"]


def _audit_call(call_log, effects_pending):
    db.session.add(AuditEvent(
        actor_user_id=current_user.id,
        action="call.recorded",
        metadata_={
            "call_log_id": call_log.id,
            "lead_id": call_log.lead_id,
            "caller_id": call_log.caller_id,
            "outcome": call_log.call_outcome,
            "effects_pending": effects_pending,
        },
    ))


def _effects_body(call_log, lead, stats):
    return {
        "callLog": call_log.to_dict(),
        "lead": lead.to_dict() if lead else None,
        "stats": stats.to_dict() if stats else None,
    }


# ──────────────────────────────────────────────
# POST /api/calls
# ──────────────────────────────────────────────

@calls_bp.route("", methods=["POST"])
@login_required
@limiter.limit(_call_rate_limit)
def record_call():
    """Record one call attempt.

    Body: leadId, callDate, callOutcome, and optionally callerId,
    callDurationSeconds, nextFollowupDate, notes, newLeadStage.
    callerId defaults to the logged-in user. Telecallers may only log calls
    against leads assigned to them.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.", code="INVALID_BODY")

    caller_id = data.get("callerId")
    if caller_id is None or caller_id == "":
        caller_id = current_user.id
    if not current_user.is_elevated and str(caller_id) != str(current_user.id):
        raise PermissionDenied("You can only record calls made by yourself.")

    try:
        call_log, lead, stats = call_service.record_call(
            lead_id=data.get("leadId"),
            caller_id=caller_id,
            call_date=data.get("callDate"),
            call_outcome=data.get("callOutcome"),
            call_duration_seconds=data.get("callDurationSeconds"),
            next_followup_date=data.get("nextFollowupDate"),
            notes=data.get("notes"),
            new_lead_stage=data.get("newLeadStage"),
            assigned_only=current_user.role == "telecaller",
            enforce_limits=current_app.config["ENFORCE_CALL_LIMITS"],
        )
    except CallEffectsPending as e:
        # The call itself is kept; only the bookkeeping is retried later.
        _audit_call(e.call_log, effects_pending=True)
        db.session.commit()
        body = e.to_dict()
        body["callLog"] = e.call_log.to_dict()
        body["statsPending"] = True
        return jsonify(body), 202

    _audit_call(call_log, effects_pending=False)
    db.session.commit()
    return jsonify(_effects_body(call_log, lead, stats)), 201


@calls_bp.route("", methods=["GET"])
@login_required
def list_calls():
    """Telecallers see only their own calls."""
    args = request.args
    caller_id = args.get("callerId")
    if current_user.role == "telecaller":
        caller_id = current_user.id

    call_logs, total = call_service.list_call_logs(
        lead_id=args.get("leadId"),
        caller_id=caller_id,
        call_outcome=args.get("callOutcome"),
        from_date=args.get("fromDate"),
        to_date=args.get("toDate"),
        limit=args.get("limit"),
        offset=args.get("offset"),
    )
    return jsonify({"callLogs": [c.to_dict() for c in call_logs], "total": total})


@calls_bp.route("/<int:call_log_id>", methods=["GET"])
@login_required
def get_call(call_log_id):
    call_log = call_service.get_call_log(call_log_id)
    if current_user.role == "telecaller" and call_log.caller_id != current_user.id:
        raise PermissionDenied("Telecallers can only access their own calls.")
    return jsonify(call_log.to_dict())


@calls_bp.route("/<int:call_log_id>/apply-effects", methods=["POST"])
@login_required
def apply_effects(call_log_id):
    """Idempotent retry; appliedNow is False when nothing was left to do."""
    try:
        call_log, lead, stats, applied_now = call_service.apply_call_effects(call_log_id)
    except CallEffectsPending as e:
        db.session.rollback()
        return jsonify(e.to_dict()), 202

    db.session.commit()
    body = _effects_body(call_log, lead, stats)
    body["appliedNow"] = applied_now
    return jsonify(body)
