"""Counselor notes blueprint: /api/counselor-notes/*

Route Map:
  GET    /api/counselor-notes            Filtered list (leadId, counselorId, noteType, isImportant)
  POST   /api/counselor-notes            Add a note to a lead (201)
  GET    /api/counselor-notes/<id>       Single note
  PATCH  /api/counselor-notes/<id>       Edit type/content/importance (author or admin)
  DELETE /api/counselor-notes/<id>       Delete (author or admin)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from leadcrm.decorators import roles_required
from leadcrm.errors import PermissionDenied, ValidationError
from leadcrm.extensions import db
from leadcrm.models.audit import AuditEvent
from leadcrm.models.user import User
from leadcrm.services import note_service

notes_bp = Blueprint("notes", __name__, url_prefix="/api/counselor-notes")

READ_ROLES = [*User.ELEVATED_ROLES, "auditor"]

NOTE_FIELDS = {
    "noteType": "note_type",
    "content": "content",
    "isImportant": "is_important",
}


def _json_object():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.", code="INVALID_BODY")
    return data


def _audit(action, **metadata):
    db.session.add(AuditEvent(
        actor_user_id=current_user.id,
        action=action,
        metadata_=metadata,
    ))


@notes_bp.route("", methods=["GET"])
@roles_required(*READ_ROLES)
def list_notes():
    args = request.args
    notes, total = note_service.list_notes(
        lead_id=args.get("leadId"),
        counselor_id=args.get("counselorId"),
        note_type=args.get("noteType"),
        is_important=args.get("isImportant"),
        limit=args.get("limit"),
        offset=args.get("offset"),
    )
    return jsonify({"notes": [note.to_dict() for note in notes], "total": total})


@notes_bp.route("", methods=["POST"])
@roles_required(*User.ELEVATED_ROLES)
def create_note():
    """counselorId defaults to the logged-in user; only admins may name someone else."""
    data = _json_object()
    counselor_id = data.get("counselorId")
    if counselor_id is None or counselor_id == "":
        counselor_id = current_user.id
    if not current_user.is_admin and str(counselor_id) != str(current_user.id):
        raise PermissionDenied("You can only write notes as yourself.")

    note = note_service.create_note(
        lead_id=data.get("leadId"),
        counselor_id=counselor_id,
        note_type=data.get("noteType"),
        content=data.get("content"),
        is_important=data.get("isImportant"),
    )
    _audit("note.created", note_id=note.id, lead_id=note.lead_id, note_type=note.note_type)
    db.session.commit()
    return jsonify(note.to_dict()), 201


@notes_bp.route("/<int:note_id>", methods=["GET"])
@roles_required(*READ_ROLES)
def get_note(note_id):
    return jsonify(note_service.get_note(note_id).to_dict())


@notes_bp.route("/<int:note_id>", methods=["PATCH", "PUT"])
@roles_required(*User.ELEVATED_ROLES)
def update_note(note_id):
    patch = {NOTE_FIELDS.get(key, key): value for key, value in _json_object().items()}
    note = note_service.update_note(
        note_id, patch, actor_id=current_user.id, is_admin=current_user.is_admin
    )
    _audit("note.updated", note_id=note.id, fields=sorted(patch))
    db.session.commit()
    return jsonify(note.to_dict())


@notes_bp.route("/<int:note_id>", methods=["DELETE"])
@roles_required(*User.ELEVATED_ROLES)
def delete_note(note_id):
    snapshot = note_service.delete_note(
        note_id, actor_id=current_user.id, is_admin=current_user.is_admin
    )
    _audit("note.deleted", note_id=snapshot["id"], lead_id=snapshot["leadId"])
    db.session.commit()
    return jsonify({"message": "Counselor note deleted successfully", "note": snapshot})
