"""Telecaller work queue: which lead to call next.

The queue is a view, recomputed from the lead table on every request; there
is no stored cursor. Clients hold their own index and ask for the next one,
so a lead whose stage changed simply shows up in its new bucket on the next
fetch.

Ordering:
  1. stage "new"
  2. active engagement stages (contacted .. negotiation)
  3. everything else
Oldest lead first within a bucket; id breaks exact ties.
"""

from datetime import timezone

from leadcrm.errors import EmptyQueue
from leadcrm.models.lead import Lead
from leadcrm.services.validators import clean_optional, parse_int, require_choice


def priority_bucket(stage):
    if stage == "new":
        return 0
    if stage in Lead.ACTIVE_ENGAGEMENT_STAGES:
        return 1
    return 2


def queue_sort_key(lead):
    created_at = lead.created_at
    # SQLite hands timestamps back naive
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (priority_bucket(lead.lead_stage), created_at, lead.id)


def ordered_queue(telecaller_id, status_filter="active", stage_filter=None):
    """All leads assigned to a telecaller, in calling order.

    Args:
        telecaller_id: Assigned telecaller.
        status_filter: Lead status to include (default "active").
        stage_filter: Optional single stage to restrict to.
    """
    telecaller_id = parse_int(telecaller_id, "telecallerId", "INVALID_TELECALLER_ID")
    status_filter = clean_optional(status_filter) or "active"
    require_choice(status_filter, Lead.STATUSES, "lead status", "INVALID_LEAD_STATUS")

    query = Lead.query.filter(
        Lead.assigned_telecaller_id == telecaller_id,
        Lead.lead_status == status_filter,
    )
    stage_filter = clean_optional(stage_filter)
    if stage_filter:
        require_choice(stage_filter, Lead.STAGES, "lead stage", "INVALID_LEAD_STAGE")
        query = query.filter(Lead.lead_stage == stage_filter)

    return sorted(query.all(), key=queue_sort_key)


def current_lead(telecaller_id, index=0, status_filter="active", stage_filter=None):
    """Lead at `index` (wrapped) in the freshly computed queue.

    Returns:
        Tuple of (index, lead, queue_length).

    Raises:
        EmptyQueue: The telecaller has nothing queued.
    """
    queue = ordered_queue(telecaller_id, status_filter, stage_filter)
    if not queue:
        raise EmptyQueue(telecaller_id)
    index = parse_int(index, "index", "INVALID_INDEX", allow_none=True) or 0
    index %= len(queue)
    return index, queue[index], len(queue)


def advance_to_next(telecaller_id, current_index, status_filter="active", stage_filter=None):
    """Lead after `current_index`, wrapping to the front.

    Returns:
        Tuple of (next_index, lead, queue_length).

    Raises:
        EmptyQueue: The telecaller has nothing queued.
    """
    current_index = parse_int(current_index, "currentIndex", "INVALID_INDEX")
    queue = ordered_queue(telecaller_id, status_filter, stage_filter)
    if not queue:
        raise EmptyQueue(telecaller_id)
    next_index = (current_index + 1) % len(queue)
    return next_index, queue[next_index], len(queue)
