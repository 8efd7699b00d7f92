"""Lead registry: intake, duplicate detection, field-scoped updates, queries.

The registry is the only place that accepts or rejects a phone number.
Phones are compared after trimming; the `leads.phone` unique constraint
backs the application-level check so two concurrent inserts cannot both win.

Callers pass their capability in (`elevated`, `is_admin`); the registry never
looks at the session. Stage changes are delegated to stage_service.set_stage.

Functions flush but do NOT commit: the caller commits.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from leadcrm.errors import (
    DuplicatePhone,
    FieldRestricted,
    LeadNotFound,
    PermissionDenied,
    ValidationError,
)
from leadcrm.extensions import db
from leadcrm.models.course import Course
from leadcrm.models.lead import Lead
from leadcrm.models.user import User
from leadcrm.services import stage_service
from leadcrm.services.validators import (
    clean_optional,
    normalize_phone,
    page_window,
    parse_int,
    parse_timestamp,
    require_choice,
    require_text,
    sanitize,
    validate_email,
)

logger = logging.getLogger(__name__)

LEAD_FIELDS = {
    "name",
    "phone",
    "email",
    "whatsapp_number",
    "lead_source",
    "lead_stage",
    "lead_status",
    "course_interest_id",
    "assigned_telecaller_id",
    "assigned_counselor_id",
    "city",
    "state",
    "country",
    "education_level",
    "current_occupation",
    "notes",
    "conversion_date",
    "lost_reason",
}

# Everything a base-tier caller (telecaller, auditor) may patch.
BASE_TIER_FIELDS = {"notes", "lead_stage"}

_OPTIONAL_TEXT_FIELDS = [
    "whatsapp_number",
    "city",
    "state",
    "country",
    "education_level",
    "current_occupation",
]

RECENT_LEAD_DAYS = 7


# ─── Lookups ────────────────────────────────────────────────

def get_lead(lead_id):
    """Load a lead by id.

    Raises:
        LeadNotFound: If no such lead exists.
    """
    lead_id = parse_int(lead_id, "Lead ID", "INVALID_LEAD_ID")
    lead = db.session.get(Lead, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)
    return lead


def find_by_phone(phone, exclude_id=None):
    """Return the lead holding `phone` (already normalized), or None."""
    query = Lead.query.filter(Lead.phone == phone)
    if exclude_id is not None:
        query = query.filter(Lead.id != exclude_id)
    return query.first()


def _check_phone_available(phone, exclude_id=None):
    existing = find_by_phone(phone, exclude_id=exclude_id)
    if existing is not None:
        logger.warning(f"Duplicate phone {phone} rejected (existing lead {existing.id})")
        raise DuplicatePhone(phone, existing.summary())


def _reference(model, value, field, code):
    """Validate an optional integer foreign key to `model`."""
    ref_id = parse_int(value, field, code, allow_none=True)
    if ref_id is None:
        return None
    if db.session.get(model, ref_id) is None:
        raise ValidationError(f"{field} {ref_id} does not exist.", code=code)
    return ref_id


def _reject_unknown(fields):
    unknown = set(fields) - LEAD_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown lead field(s): {', '.join(sorted(unknown))}",
            code="UNKNOWN_FIELD",
        )


def _flush_guarding_phone(lead, phone):
    """Flush inside a savepoint; a unique-constraint hit becomes DuplicatePhone."""
    try:
        with db.session.begin_nested():
            db.session.add(lead)
            db.session.flush()
    except IntegrityError:
        existing = find_by_phone(phone, exclude_id=lead.id)
        if existing is None:
            raise
        logger.warning(f"Duplicate phone {phone} lost insert race to lead {existing.id}")
        raise DuplicatePhone(phone, existing.summary())


# ─── Create ─────────────────────────────────────────────────

def create_lead(fields):
    """Admit a new lead.

    Args:
        fields: dict of snake_case Lead attributes. `name`, `phone` and
            `lead_source` are required; stage defaults to "new" and status
            to "active".

    Returns:
        The created Lead.

    Raises:
        ValidationError: Missing/invalid fields or unknown references.
        DuplicatePhone: Another lead already has this phone.
    """
    _reject_unknown(fields)

    name = require_text(fields.get("name"), "Name", "MISSING_NAME")
    phone = normalize_phone(fields.get("phone"))
    source = require_text(fields.get("lead_source"), "Lead source", "MISSING_LEAD_SOURCE")
    require_choice(source, Lead.SOURCES, "lead source", "INVALID_LEAD_SOURCE")

    stage = clean_optional(fields.get("lead_stage")) or "new"
    require_choice(stage, Lead.STAGES, "lead stage", "INVALID_LEAD_STAGE")
    status = clean_optional(fields.get("lead_status")) or "active"
    require_choice(status, Lead.STATUSES, "lead status", "INVALID_LEAD_STATUS")

    email = validate_email(fields.get("email"))
    conversion_date = parse_timestamp(
        fields.get("conversion_date"), "conversionDate", "INVALID_CONVERSION_DATE",
        allow_none=True,
    )

    _check_phone_available(phone)

    now = datetime.now(timezone.utc)
    lead = Lead(
        name=name,
        phone=phone,
        email=email,
        lead_source=source,
        lead_stage="new",
        lead_status=status,
        course_interest_id=_reference(
            Course, fields.get("course_interest_id"), "Course", "INVALID_COURSE"
        ),
        assigned_telecaller_id=_reference(
            User, fields.get("assigned_telecaller_id"), "Telecaller", "INVALID_TELECALLER"
        ),
        assigned_counselor_id=_reference(
            User, fields.get("assigned_counselor_id"), "Counselor", "INVALID_COUNSELOR"
        ),
        notes=sanitize(fields.get("notes")),
        created_at=now,
        updated_at=now,
    )
    for field in _OPTIONAL_TEXT_FIELDS:
        setattr(lead, field, clean_optional(fields.get(field)))

    _flush_guarding_phone(lead, phone)

    if stage != "new":
        stage_service.set_stage(
            lead, stage,
            conversion_date=conversion_date,
            lost_reason=fields.get("lost_reason"),
        )

    logger.info(f"Lead {lead.id} created ({lead.lead_source})")
    return lead


# ─── Update ─────────────────────────────────────────────────

def update_lead(lead_id, patch, elevated=False):
    """Apply a partial update to a lead.

    Args:
        lead_id: Lead id.
        patch: dict of snake_case fields to change. Only keys present are
            touched; blank optional values clear the field.
        elevated: True for counselor/admin callers. Base-tier callers may
            only patch `notes` and `lead_stage`.

    Returns:
        The updated Lead.

    Raises:
        LeadNotFound, ValidationError, FieldRestricted, DuplicatePhone.
    """
    lead = get_lead(lead_id)
    _reject_unknown(patch)

    if not elevated:
        restricted = set(patch) - BASE_TIER_FIELDS
        if restricted:
            raise FieldRestricted(restricted)

    changes = {}

    if "name" in patch:
        changes["name"] = require_text(patch["name"], "Name", "INVALID_NAME")

    phone = None
    if "phone" in patch:
        phone = require_text(patch["phone"], "Phone", "INVALID_PHONE")
        if phone != lead.phone:
            _check_phone_available(phone, exclude_id=lead.id)
            changes["phone"] = phone
        else:
            phone = None

    if "email" in patch:
        changes["email"] = validate_email(patch["email"])
    if "lead_source" in patch:
        changes["lead_source"] = require_choice(
            clean_optional(patch["lead_source"]), Lead.SOURCES,
            "lead source", "INVALID_LEAD_SOURCE",
        )
    if "lead_status" in patch:
        changes["lead_status"] = require_choice(
            clean_optional(patch["lead_status"]), Lead.STATUSES,
            "lead status", "INVALID_LEAD_STATUS",
        )
    if "course_interest_id" in patch:
        changes["course_interest_id"] = _reference(
            Course, patch["course_interest_id"], "Course", "INVALID_COURSE"
        )
    if "assigned_telecaller_id" in patch:
        changes["assigned_telecaller_id"] = _reference(
            User, patch["assigned_telecaller_id"], "Telecaller", "INVALID_TELECALLER"
        )
    if "assigned_counselor_id" in patch:
        changes["assigned_counselor_id"] = _reference(
            User, patch["assigned_counselor_id"], "Counselor", "INVALID_COUNSELOR"
        )
    for field in _OPTIONAL_TEXT_FIELDS:
        if field in patch:
            changes[field] = clean_optional(patch[field])
    if "notes" in patch:
        changes["notes"] = sanitize(patch["notes"])
    if "lost_reason" in patch:
        changes["lost_reason"] = sanitize(patch["lost_reason"])

    conversion_date = None
    if "conversion_date" in patch:
        conversion_date = parse_timestamp(
            patch["conversion_date"], "conversionDate", "INVALID_CONVERSION_DATE",
            allow_none=True,
        )
        changes["conversion_date"] = conversion_date

    new_stage = None
    if "lead_stage" in patch:
        new_stage = require_choice(
            clean_optional(patch["lead_stage"]), Lead.STAGES,
            "lead stage", "INVALID_LEAD_STAGE",
        )
        stage_service.check_transition(lead, new_stage)

    if (
        "conversion_date" in patch
        and conversion_date is None
        and (new_stage or lead.lead_stage) == "converted"
    ):
        raise ValidationError(
            "A converted lead must keep its conversion date.",
            code="CONVERSION_DATE_REQUIRED",
        )

    # --- All input valid; apply ---
    for field, value in changes.items():
        setattr(lead, field, value)
    lead.updated_at = datetime.now(timezone.utc)

    if phone is not None:
        _flush_guarding_phone(lead, phone)
    else:
        db.session.flush()

    if new_stage is not None:
        stage_service.set_stage(
            lead, new_stage,
            conversion_date=conversion_date,
            lost_reason=patch.get("lost_reason"),
        )

    return lead


def set_lead_stage(lead_id, new_stage, conversion_date=None, lost_reason=None):
    """Narrow stage-only update for callers that should not patch anything else."""
    lead = get_lead(lead_id)
    conversion_date = parse_timestamp(
        conversion_date, "conversionDate", "INVALID_CONVERSION_DATE", allow_none=True
    )
    stage_service.set_stage(
        lead, new_stage, conversion_date=conversion_date, lost_reason=lost_reason
    )
    return lead


# ─── Delete ─────────────────────────────────────────────────

def delete_lead(lead_id, is_admin=False):
    """Hard-delete a lead. Admin tier only.

    Leads with call history are kept: call logs are never deleted, so the
    lead must be retired via lead_status instead.

    Returns:
        The deleted lead's dict form.

    Raises:
        PermissionDenied, LeadNotFound, ValidationError.
    """
    if not is_admin:
        raise PermissionDenied("Only admins can delete leads.")
    lead = get_lead(lead_id)
    if lead.call_logs.count() > 0:
        raise ValidationError(
            f"Lead {lead.id} has call history and cannot be deleted; "
            "set its status to inactive or junk instead.",
            code="LEAD_HAS_CALL_HISTORY",
        )
    snapshot = lead.to_dict()
    db.session.delete(lead)
    db.session.flush()
    logger.info(f"Lead {snapshot['id']} deleted")
    return snapshot


# ─── Queries ────────────────────────────────────────────────

def _apply_filters(query, search=None, lead_stage=None, lead_status=None,
                   lead_source=None, assigned_telecaller_id=None,
                   assigned_counselor_id=None):
    search = clean_optional(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Lead.name.ilike(pattern),
            Lead.email.ilike(pattern),
            Lead.phone.ilike(pattern),
        ))
    if lead_stage:
        require_choice(lead_stage, Lead.STAGES, "lead stage", "INVALID_LEAD_STAGE")
        query = query.filter(Lead.lead_stage == lead_stage)
    if lead_status:
        require_choice(lead_status, Lead.STATUSES, "lead status", "INVALID_LEAD_STATUS")
        query = query.filter(Lead.lead_status == lead_status)
    if lead_source:
        require_choice(lead_source, Lead.SOURCES, "lead source", "INVALID_LEAD_SOURCE")
        query = query.filter(Lead.lead_source == lead_source)
    if assigned_telecaller_id not in (None, ""):
        query = query.filter(Lead.assigned_telecaller_id == parse_int(
            assigned_telecaller_id, "assignedTelecallerId", "INVALID_TELECALLER_ID"
        ))
    if assigned_counselor_id not in (None, ""):
        query = query.filter(Lead.assigned_counselor_id == parse_int(
            assigned_counselor_id, "assignedCounselorId", "INVALID_COUNSELOR_ID"
        ))
    return query


def list_leads(limit=None, offset=None, **filters):
    """Filtered, paginated lead list, newest first.

    Filters: search (name/email/phone substring), lead_stage, lead_status,
    lead_source, assigned_telecaller_id, assigned_counselor_id.

    Returns:
        Tuple of (leads, total_matching).
    """
    limit, offset = page_window(limit, offset)
    query = _apply_filters(Lead.query, **filters)
    total = query.count()
    leads = (
        query.order_by(Lead.created_at.desc(), Lead.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return leads, total


def lead_statistics(from_date=None, to_date=None, assigned_telecaller_id=None,
                    assigned_counselor_id=None):
    """Pipeline counts by stage, status and source over leads created in range.

    Returns:
        dict with total_leads, leads_by_stage, leads_by_status,
        leads_by_source, conversion_rate (percent, 2 dp) and
        recent_leads_count (created in the last 7 days).
    """
    start = parse_timestamp(from_date, "fromDate", "INVALID_FROM_DATE", allow_none=True)
    end = parse_timestamp(to_date, "toDate", "INVALID_TO_DATE", allow_none=True)

    def scoped(query):
        query = _apply_filters(
            query,
            assigned_telecaller_id=assigned_telecaller_id,
            assigned_counselor_id=assigned_counselor_id,
        )
        if start is not None:
            query = query.filter(Lead.created_at >= start)
        if end is not None:
            query = query.filter(Lead.created_at <= end)
        return query

    def counts(column, keys):
        rows = scoped(db.session.query(column, func.count(Lead.id))).group_by(column).all()
        result = {key: 0 for key in keys}
        for value, count in rows:
            if value in result:
                result[value] += count
            elif "other" in result:
                result["other"] += count
        return result

    by_stage = counts(Lead.lead_stage, Lead.STAGES)
    by_status = counts(Lead.lead_status, Lead.STATUSES)
    by_source = counts(Lead.lead_source, Lead.SOURCES)
    total = sum(by_stage.values())

    conversion_rate = (
        round(by_stage["converted"] / total * 100, 2) if total > 0 else 0
    )

    since = datetime.now(timezone.utc) - timedelta(days=RECENT_LEAD_DAYS)
    recent = scoped(Lead.query).filter(Lead.created_at >= since).count()

    return {
        "total_leads": total,
        "leads_by_stage": by_stage,
        "leads_by_status": by_status,
        "leads_by_source": by_source,
        "conversion_rate": conversion_rate,
        "recent_leads_count": recent,
    }


# ─── Bulk intake ────────────────────────────────────────────

def import_leads(rows, default_telecaller_id=None):
    """Create leads from already-parsed rows, one at a time.

    Each row goes through create_lead, so the duplicate-phone rule is the
    same as for manual entry (including duplicates within the batch).
    A bad row never blocks the others.

    Returns:
        dict with "created" (lead ids), "duplicates" (row number + the
        conflicting lead) and "errors" (row number + message).
    """
    if not isinstance(rows, list):
        raise ValidationError("Rows must be a list.", code="INVALID_ROWS")

    created, duplicates, errors = [], [], []
    for index, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            errors.append({"row": index, "error": "Row must be an object.", "code": "INVALID_ROW"})
            continue
        fields = dict(row)
        if default_telecaller_id is not None and not fields.get("assigned_telecaller_id"):
            fields["assigned_telecaller_id"] = default_telecaller_id
        try:
            lead = create_lead(fields)
        except DuplicatePhone as e:
            duplicates.append({"row": index, "phone": e.phone, "existingLead": e.existing})
        except ValidationError as e:
            errors.append({"row": index, "error": e.message, "code": e.code})
        else:
            created.append(lead.id)

    logger.info(
        f"Lead import: {len(created)} created, {len(duplicates)} duplicates, "
        f"{len(errors)} invalid"
    )
    return {"created": created, "duplicates": duplicates, "errors": errors}
