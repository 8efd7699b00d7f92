"""Counselor notes: per-lead records of demos, meetings and follow-ups.

Notes never change the lead itself; stage moves still go through
stage_service. Only the author or an admin may edit or delete a note, and
callers pass that capability in (`actor_id`, `is_admin`).

Functions flush but do NOT commit: the caller commits.
"""

import logging
from datetime import datetime, timezone

from leadcrm.errors import LeadNotFound, NotFound, PermissionDenied, ValidationError
from leadcrm.extensions import db
from leadcrm.models.counselor_note import CounselorNote
from leadcrm.models.lead import Lead
from leadcrm.models.user import User
from leadcrm.services.validators import (
    clean_optional,
    page_window,
    parse_bool,
    parse_int,
    require_choice,
    sanitize,
)

logger = logging.getLogger(__name__)


def _note_type(value):
    note_type = clean_optional(value)
    if note_type is None:
        raise ValidationError("noteType is required.", code="MISSING_NOTE_TYPE")
    return require_choice(note_type, CounselorNote.NOTE_TYPES, "note type", "INVALID_NOTE_TYPE")


def _content(value):
    content = sanitize(value)
    if content is None:
        raise ValidationError("content is required and cannot be empty.", code="MISSING_CONTENT")
    return content


def get_note(note_id):
    note_id = parse_int(note_id, "Note ID", "INVALID_ID")
    note = db.session.get(CounselorNote, note_id)
    if note is None:
        raise NotFound(f"Counselor note {note_id} not found.", code="NOTE_NOT_FOUND")
    return note


def create_note(lead_id, counselor_id, note_type, content, is_important=False):
    """Attach a note to a lead.

    Raises:
        ValidationError: Bad ids, unknown note type, empty content, or a
            counselor id that is not a counselor or admin.
        LeadNotFound: Unknown lead.
        NotFound: Unknown counselor (code COUNSELOR_NOT_FOUND).
    """
    lead_id = parse_int(lead_id, "leadId", "INVALID_LEAD_ID")
    counselor_id = parse_int(counselor_id, "counselorId", "INVALID_COUNSELOR_ID")
    note_type = _note_type(note_type)
    content = _content(content)
    is_important = parse_bool(is_important, "isImportant", "INVALID_IS_IMPORTANT", allow_none=True)

    if db.session.get(Lead, lead_id) is None:
        raise LeadNotFound(lead_id)
    counselor = db.session.get(User, counselor_id)
    if counselor is None:
        raise NotFound(f"Counselor {counselor_id} not found.", code="COUNSELOR_NOT_FOUND")
    if not counselor.is_elevated:
        raise ValidationError(
            f"User {counselor_id} is not a counselor.", code="INVALID_COUNSELOR"
        )

    now = datetime.now(timezone.utc)
    note = CounselorNote(
        lead_id=lead_id,
        counselor_id=counselor_id,
        note_type=note_type,
        content=content,
        is_important=bool(is_important),
        created_at=now,
        updated_at=now,
    )
    db.session.add(note)
    db.session.flush()
    logger.info(f"Note {note.id} ({note_type}) added to lead {lead_id} by {counselor_id}")
    return note


def _check_author(note, actor_id, is_admin):
    if not is_admin and note.counselor_id != actor_id:
        raise PermissionDenied("Only the note's author or an admin can change it.")


def update_note(note_id, patch, actor_id=None, is_admin=False):
    """Change note_type, content and/or is_important. Other keys are rejected."""
    note = get_note(note_id)
    _check_author(note, actor_id, is_admin)

    unknown = set(patch) - {"note_type", "content", "is_important"}
    if unknown:
        raise ValidationError(
            f"Unknown note field(s): {', '.join(sorted(unknown))}", code="UNKNOWN_FIELD"
        )

    changes = {}
    if "note_type" in patch:
        changes["note_type"] = _note_type(patch["note_type"])
    if "content" in patch:
        changes["content"] = _content(patch["content"])
    if "is_important" in patch:
        changes["is_important"] = parse_bool(
            patch["is_important"], "isImportant", "INVALID_IS_IMPORTANT"
        )

    for field, value in changes.items():
        setattr(note, field, value)
    if changes:
        note.updated_at = datetime.now(timezone.utc)
        db.session.flush()
    return note


def delete_note(note_id, actor_id=None, is_admin=False):
    """Returns the deleted note's dict form."""
    note = get_note(note_id)
    _check_author(note, actor_id, is_admin)
    snapshot = note.to_dict()
    db.session.delete(note)
    db.session.flush()
    logger.info(f"Note {snapshot['id']} deleted from lead {snapshot['leadId']}")
    return snapshot


def list_notes(lead_id=None, counselor_id=None, note_type=None, is_important=None,
               limit=None, offset=None):
    """Notes newest first.

    Returns:
        Tuple of (notes, total_matching).
    """
    limit, offset = page_window(limit, offset)
    query = CounselorNote.query
    if lead_id not in (None, ""):
        query = query.filter(
            CounselorNote.lead_id == parse_int(lead_id, "leadId", "INVALID_LEAD_ID")
        )
    if counselor_id not in (None, ""):
        query = query.filter(CounselorNote.counselor_id == parse_int(
            counselor_id, "counselorId", "INVALID_COUNSELOR_ID"
        ))
    if note_type:
        require_choice(note_type, CounselorNote.NOTE_TYPES, "note type", "INVALID_NOTE_TYPE")
        query = query.filter(CounselorNote.note_type == note_type)
    important = parse_bool(is_important, "isImportant", "INVALID_IS_IMPORTANT", allow_none=True)
    if important is not None:
        query = query.filter(CounselorNote.is_important == important)

    total = query.count()
    notes = (
        query.order_by(CounselorNote.created_at.desc(), CounselorNote.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return notes, total
