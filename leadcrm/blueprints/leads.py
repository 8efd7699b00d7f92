"""Leads blueprint: /api/leads/*

Lead CRUD, bulk intake and pipeline statistics. Request and response bodies
use camelCase keys; the registry works in snake_case.

Route Map:
  GET    /api/leads                   Filtered, paginated list
  POST   /api/leads                   Create (409 DUPLICATE_PHONE on conflict)
  GET    /api/leads/statistics        Counts by stage/status/source
  POST   /api/leads/import            Bulk intake of parsed rows
  GET    /api/leads/<id>              Single lead
  PATCH  /api/leads/<id>              Partial update (field-scoped by role)
  POST   /api/leads/<id>/stage        Stage-only change
  DELETE /api/leads/<id>              Delete (admin tier)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from leadcrm.decorators import check_lead_scope, roles_required
from leadcrm.errors import ValidationError
from leadcrm.extensions import db
from leadcrm.models.audit import AuditEvent
from leadcrm.models.user import User
from leadcrm.services import lead_service

leads_bp = Blueprint("leads", __name__, url_prefix="/api/leads")

FIELD_MAP = {
    "name": "name",
    "phone": "phone",
    "email": "email",
    "whatsappNumber": "whatsapp_number",
    "leadSource": "lead_source",
    "leadStage": "lead_stage",
    "leadStatus": "lead_status",
    "courseInterestId": "course_interest_id",
    "assignedTelecallerId": "assigned_telecaller_id",
    "assignedCounselorId": "assigned_counselor_id",
    "city": "city",
    "state": "state",
    "country": "country",
    "educationLevel": "education_level",
    "currentOccupation": "current_occupation",
    "notes": "notes",
    "conversionDate": "conversion_date",
    "lostReason": "lost_reason",
}


def _json_object():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.", code="INVALID_BODY")
    return data


def _to_fields(data):
    """camelCase body -> snake_case registry fields. Unknown keys pass through
    untouched so the registry can reject them by name."""
    return {FIELD_MAP.get(key, key): value for key, value in data.items()}


def _audit(action, **metadata):
    db.session.add(AuditEvent(
        actor_user_id=current_user.id,
        action=action,
        metadata_=metadata,
    ))


# ─── Collection ──────────────────────────────────────────────────

@leads_bp.route("", methods=["GET"])
@login_required
def list_leads():
    """Telecallers only ever see leads assigned to them."""
    args = request.args
    telecaller_id = args.get("assignedTelecallerId")
    if current_user.role == "telecaller":
        telecaller_id = current_user.id

    leads, total = lead_service.list_leads(
        limit=args.get("limit"),
        offset=args.get("offset"),
        search=args.get("search"),
        lead_stage=args.get("leadStage"),
        lead_status=args.get("leadStatus"),
        lead_source=args.get("leadSource"),
        assigned_telecaller_id=telecaller_id,
        assigned_counselor_id=args.get("assignedCounselorId"),
    )
    return jsonify({"leads": [lead.to_dict() for lead in leads], "total": total})


@leads_bp.route("", methods=["POST"])
@roles_required(*User.ELEVATED_ROLES)
def create_lead():
    lead = lead_service.create_lead(_to_fields(_json_object()))
    _audit("lead.created", lead_id=lead.id, phone=lead.phone, source=lead.lead_source)
    db.session.commit()
    return jsonify(lead.to_dict()), 201


@leads_bp.route("/statistics", methods=["GET"])
@roles_required(*User.ELEVATED_ROLES, "auditor")
def statistics():
    args = request.args
    stats = lead_service.lead_statistics(
        from_date=args.get("fromDate"),
        to_date=args.get("toDate"),
        assigned_telecaller_id=args.get("assignedTelecallerId"),
        assigned_counselor_id=args.get("assignedCounselorId"),
    )
    return jsonify({
        "totalLeads": stats["total_leads"],
        "leadsByStage": stats["leads_by_stage"],
        "leadsByStatus": stats["leads_by_status"],
        "leadsBySource": stats["leads_by_source"],
        "conversionRate": stats["conversion_rate"],
        "recentLeadsCount": stats["recent_leads_count"],
    })


@leads_bp.route("/import", methods=["POST"])
@roles_required(*User.ELEVATED_ROLES)
def import_leads():
    """Bulk intake. Body: {"rows": [{...lead fields...}], "defaultTelecallerId": 3}"""
    data = _json_object()
    rows = data.get("rows")
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list of lead objects.", code="INVALID_ROWS")

    result = lead_service.import_leads(
        [_to_fields(row) if isinstance(row, dict) else row for row in rows],
        default_telecaller_id=data.get("defaultTelecallerId"),
    )
    _audit(
        "lead.imported",
        created=len(result["created"]),
        duplicates=len(result["duplicates"]),
        errors=len(result["errors"]),
    )
    db.session.commit()
    return jsonify(result)


# ─── Single lead ─────────────────────────────────────────────────

@leads_bp.route("/<int:lead_id>", methods=["GET"])
@login_required
def get_lead(lead_id):
    lead = check_lead_scope(lead_service.get_lead(lead_id))
    return jsonify(lead.to_dict())


@leads_bp.route("/<int:lead_id>", methods=["PATCH", "PUT"])
@login_required
def update_lead(lead_id):
    patch = _to_fields(_json_object())
    old_stage = check_lead_scope(lead_service.get_lead(lead_id)).lead_stage
    lead = lead_service.update_lead(lead_id, patch, elevated=current_user.is_elevated)
    _audit("lead.updated", lead_id=lead.id, fields=sorted(patch))
    if lead.lead_stage != old_stage:
        _audit("lead.stage_changed", lead_id=lead.id, old_stage=old_stage, new_stage=lead.lead_stage)
    db.session.commit()
    return jsonify(lead.to_dict())


@leads_bp.route("/<int:lead_id>/stage", methods=["POST"])
@login_required
def set_stage(lead_id):
    data = _json_object()
    old_stage = check_lead_scope(lead_service.get_lead(lead_id)).lead_stage
    lead = lead_service.set_lead_stage(
        lead_id,
        data.get("leadStage"),
        conversion_date=data.get("conversionDate"),
        lost_reason=data.get("lostReason"),
    )
    if lead.lead_stage != old_stage:
        _audit("lead.stage_changed", lead_id=lead.id, old_stage=old_stage, new_stage=lead.lead_stage)
    db.session.commit()
    return jsonify(lead.to_dict())


@leads_bp.route("/<int:lead_id>", methods=["DELETE"])
@login_required
def delete_lead(lead_id):
    snapshot = lead_service.delete_lead(lead_id, is_admin=current_user.is_admin)
    _audit("lead.deleted", lead_id=snapshot["id"], phone=snapshot["phone"])
    db.session.commit()
    return jsonify({"message": "Lead deleted successfully", "lead": snapshot})
