"""Call event processor: the single entry point for recording a call attempt.

record_call() runs in three phases:

  1. Validate everything (input shape, lead and caller exist, stage allowed,
     call limits when asked) before writing anything.
  2. Insert the call log.
  3. In a savepoint: apply the stage transition, roll the call into the
     caller's daily stats, stamp effects_applied_at.

If phase 3 fails the savepoint is rolled back and CallEffectsPending is
raised with the call log attached. The caller should still commit: the call
happened, only the bookkeeping lags. apply_call_effects(call_log_id) replays
phase 3 and is a no-op for a log whose effects already landed, so retries
never double count.

Functions flush but do NOT commit: the caller commits.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from leadcrm.errors import (
    CallEffectsPending,
    CallerNotFound,
    LeadCrmError,
    LeadNotFound,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from leadcrm.extensions import db
from leadcrm.models.call_log import CallLog
from leadcrm.models.call_stats import DailyCallStats
from leadcrm.models.lead import Lead
from leadcrm.models.user import User
from leadcrm.services import stage_service, stats_service
from leadcrm.services.validators import (
    clean_optional,
    date_key_for,
    page_window,
    parse_int,
    parse_timestamp,
    require_choice,
    sanitize,
)

logger = logging.getLogger(__name__)


def record_call(lead_id, caller_id, call_date, call_outcome,
                call_duration_seconds=None, next_followup_date=None,
                notes=None, new_lead_stage=None, assigned_only=False,
                enforce_limits=False):
    """Record one call attempt and apply its stage and stats effects.

    Args:
        lead_id: Lead that was called.
        caller_id: Telecaller (user) who placed the call.
        call_date: ISO-8601 timestamp of the call.
        call_outcome: One of CallLog.OUTCOMES.
        call_duration_seconds: Optional non-negative integer.
        next_followup_date: Optional ISO-8601 timestamp.
        notes: Optional free text (HTML stripped).
        new_lead_stage: Optional stage the caller wants the lead moved to.
            Ignored when the outcome is "converted".
        assigned_only: Reject leads not assigned to the caller.
        enforce_limits: Check the caller's daily/monthly call limits once
            the lead and caller are known to exist.

    Returns:
        Tuple of (call_log, lead, daily_stats_row).

    Raises:
        ValidationError, LeadNotFound, CallerNotFound, PermissionDenied,
        CallLimitReached: nothing was written.
        CallEffectsPending: the call log was written, stage/stats were not.
    """
    # --- Phase 1: validate ---
    lead_id = parse_int(lead_id, "leadId", "INVALID_LEAD_ID")
    caller_id = parse_int(caller_id, "callerId", "INVALID_CALLER_ID")
    call_at = parse_timestamp(call_date, "callDate", "INVALID_CALL_DATE")
    call_outcome = clean_optional(call_outcome)
    if call_outcome is None:
        raise ValidationError("callOutcome is required.", code="MISSING_CALL_OUTCOME")
    require_choice(call_outcome, CallLog.OUTCOMES, "call outcome", "INVALID_CALL_OUTCOME")
    duration = parse_int(
        call_duration_seconds, "callDurationSeconds", "INVALID_CALL_DURATION",
        minimum=0, allow_none=True,
    )
    followup_at = parse_timestamp(
        next_followup_date, "nextFollowupDate", "INVALID_FOLLOWUP_DATE", allow_none=True
    )
    requested_stage = clean_optional(new_lead_stage)
    if requested_stage is not None:
        require_choice(requested_stage, Lead.STAGES, "lead stage", "INVALID_LEAD_STAGE")

    lead = db.session.get(Lead, lead_id)
    if lead is None:
        raise LeadNotFound(lead_id)
    if db.session.get(User, caller_id) is None:
        raise CallerNotFound(caller_id)
    if assigned_only and lead.assigned_telecaller_id != caller_id:
        raise PermissionDenied(f"Lead {lead_id} is not assigned to caller {caller_id}.")

    target = stage_service.resolve_call_stage(call_outcome, lead.lead_stage, requested_stage)
    if target is not None:
        stage_service.check_transition(lead, target)

    if enforce_limits:
        stats_service.check_call_limits(caller_id, date_key_for(call_at))

    # --- Phase 2: the call log ---
    call_log = CallLog(
        lead_id=lead_id,
        caller_id=caller_id,
        call_date=call_at,
        call_outcome=call_outcome,
        call_duration_seconds=duration,
        next_followup_date=followup_at,
        notes=sanitize(notes),
        requested_stage=requested_stage,
        stats_date=date_key_for(call_at),
        created_at=datetime.now(timezone.utc),
    )
    db.session.add(call_log)
    db.session.flush()

    # --- Phase 3: stage + stats ---
    lead, stats = _apply_effects_or_pending(call_log)
    logger.info(
        f"Call {call_log.id} recorded: lead {lead_id} by {caller_id} "
        f"({call_outcome}, {call_log.stats_date})"
    )
    return call_log, lead, stats


def _apply_effects_or_pending(call_log):
    try:
        return _apply_effects(call_log)
    except (SQLAlchemyError, LeadCrmError) as e:
        logger.error(
            f"Call {call_log.id} logged but stage/stats update failed: {e}",
            exc_info=True,
        )
        raise CallEffectsPending(call_log, str(e))


def _apply_effects(call_log):
    """Stage transition + stats upsert for one call log, inside a savepoint.

    The log is claimed with a conditional UPDATE on effects_applied_at, so
    only one request can ever apply a given log.

    Returns:
        (lead, stats_row), or None if the log was already applied.
    """
    now = datetime.now(timezone.utc)
    with db.session.begin_nested():
        claimed = db.session.execute(
            update(CallLog)
            .where(CallLog.id == call_log.id, CallLog.effects_applied_at.is_(None))
            .values(effects_applied_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not claimed:
            return None

        lead = db.session.get(Lead, call_log.lead_id)
        if lead is None:
            raise LeadNotFound(call_log.lead_id)

        target = stage_service.resolve_call_stage(
            call_log.call_outcome, lead.lead_stage, call_log.requested_stage
        )
        if target is not None:
            stage_service.set_stage(lead, target)
        else:
            lead.updated_at = now

        stats = stats_service.upsert_daily_stats(
            call_log.caller_id,
            call_log.stats_date,
            call_log.call_outcome,
            call_log.call_duration_seconds,
        )
        db.session.flush()

    db.session.refresh(call_log, ["effects_applied_at"])
    return lead, stats


def apply_call_effects(call_log_id):
    """Replay the stage/stats effects of a logged call. Safe to repeat.

    Returns:
        Tuple of (call_log, lead, daily_stats_row, applied_now).

    Raises:
        NotFound: Unknown call log.
        CallEffectsPending: The replay failed again.
    """
    call_log = get_call_log(call_log_id)
    applied_now = False
    if call_log.effects_pending:
        result = _apply_effects_or_pending(call_log)
        applied_now = result is not None
        if applied_now:
            logger.info(f"Applied pending effects for call {call_log.id}")

    lead = db.session.get(Lead, call_log.lead_id)
    stats = DailyCallStats.query.filter_by(
        telecaller_id=call_log.caller_id, date=call_log.stats_date
    ).first()
    return call_log, lead, stats, applied_now


# ─── Queries ────────────────────────────────────────────────

def get_call_log(call_log_id):
    call_log_id = parse_int(call_log_id, "Call log ID", "INVALID_ID")
    call_log = db.session.get(CallLog, call_log_id)
    if call_log is None:
        raise NotFound(f"Call log {call_log_id} not found.", code="CALL_LOG_NOT_FOUND")
    return call_log


def list_call_logs(lead_id=None, caller_id=None, call_outcome=None,
                   from_date=None, to_date=None, limit=None, offset=None):
    """Call history, newest first.

    Returns:
        Tuple of (call_logs, total_matching).
    """
    limit, offset = page_window(limit, offset)
    query = CallLog.query
    if lead_id not in (None, ""):
        query = query.filter(CallLog.lead_id == parse_int(lead_id, "leadId", "INVALID_LEAD_ID"))
    if caller_id not in (None, ""):
        query = query.filter(
            CallLog.caller_id == parse_int(caller_id, "callerId", "INVALID_CALLER_ID")
        )
    if call_outcome:
        require_choice(call_outcome, CallLog.OUTCOMES, "call outcome", "INVALID_CALL_OUTCOME")
        query = query.filter(CallLog.call_outcome == call_outcome)
    start = parse_timestamp(from_date, "fromDate", "INVALID_FROM_DATE", allow_none=True)
    if start is not None:
        query = query.filter(CallLog.call_date >= start)
    end = parse_timestamp(to_date, "toDate", "INVALID_TO_DATE", allow_none=True)
    if end is not None:
        query = query.filter(CallLog.call_date <= end)

    total = query.count()
    call_logs = (
        query.order_by(CallLog.created_at.desc(), CallLog.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return call_logs, total


def pending_call_logs(limit=500):
    """Call logs whose stage/stats effects have not been applied yet."""
    return (
        CallLog.query
        .filter(CallLog.effects_applied_at.is_(None))
        .order_by(CallLog.id.asc())
        .limit(limit)
        .all()
    )
