"""Lead stage state machine.

Every stage change, whether it comes from a call event or a registry patch,
goes through set_stage(). Stage is operator-directed: moving "backward"
(negotiation -> new) is allowed so data-entry mistakes can be corrected.
With LEAD_STAGE_STRICT on, converted and lost become final.

Functions flush but do NOT commit: the caller commits.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from leadcrm.errors import ValidationError
from leadcrm.extensions import db
from leadcrm.models.lead import Lead
from leadcrm.services.validators import require_choice, sanitize

logger = logging.getLogger(__name__)


def resolve_call_stage(outcome, current_stage, requested_stage=None):
    """Stage a call event moves the lead to, or None for no change.

    A `converted` outcome always wins over whatever stage was requested.
    Otherwise the requested stage applies only when it differs from the
    current one.
    """
    if outcome == "converted":
        return "converted"
    if requested_stage and requested_stage != current_stage:
        return requested_stage
    return None


def check_transition(lead, new_stage):
    """Raise ValidationError if `lead` may not move to `new_stage`."""
    require_choice(new_stage, Lead.STAGES, "lead stage", "INVALID_LEAD_STAGE")
    old_stage = lead.lead_stage
    if (
        current_app.config.get("LEAD_STAGE_STRICT")
        and old_stage in Lead.TERMINAL_STAGES
        and new_stage != old_stage
    ):
        raise ValidationError(
            f"Cannot move lead {lead.id} out of terminal stage '{old_stage}'.",
            code="TERMINAL_STAGE",
        )


def set_stage(lead, new_stage, conversion_date=None, lost_reason=None):
    """Move `lead` to `new_stage`.

    Entering `converted` stamps conversion_date (the explicit value, else the
    stored one, else now). Entering `lost` records lost_reason when given.
    No other field is touched.

    Returns:
        The old stage.

    Raises:
        ValidationError: If the stage is unknown, or strict mode forbids
        leaving a terminal stage.
    """
    check_transition(lead, new_stage)
    old_stage = lead.lead_stage

    now = datetime.now(timezone.utc)
    lead.lead_stage = new_stage

    if new_stage == "converted":
        if conversion_date is not None:
            lead.conversion_date = conversion_date
        elif lead.conversion_date is None:
            lead.conversion_date = now
    elif new_stage == "lost":
        reason = sanitize(lost_reason)
        if reason is not None:
            lead.lost_reason = reason

    lead.updated_at = now
    db.session.flush()

    if old_stage != new_stage:
        logger.info(f"Lead {lead.id} stage {old_stage} -> {new_stage}")
    return old_stage
