"""Daily call statistics: the per-telecaller, per-day rollup.

Counters are only ever incremented, never recomputed. The increment is a
single conditional UPDATE (col = col + delta), so two calls landing at the
same time for the same telecaller/day cannot lose each other's update. The
first call of the day INSERTs inside a savepoint; if another request won that
insert, the unique (telecaller_id, date) constraint fires and we fall back to
the UPDATE.

Ratios (answer rate, average duration, conversion rate) are derived at read
time and never stored.

Functions flush but do NOT commit: the caller commits.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from leadcrm.errors import CallLimitReached, StatsNotFound, UserNotFound, ValidationError
from leadcrm.extensions import db
from leadcrm.models.call_log import CallLog
from leadcrm.models.call_stats import DailyCallStats
from leadcrm.models.user import User
from leadcrm.services.validators import (
    page_window,
    parse_date_key,
    parse_int,
    require_choice,
    today_key,
)

logger = logging.getLogger(__name__)

DEFAULT_STATS_PAGE = 30


def stats_deltas(outcome, duration_seconds=None):
    """Per-event counter increments for one call outcome."""
    require_choice(outcome, CallLog.OUTCOMES, "call outcome", "INVALID_CALL_OUTCOME")
    return {
        "calls_made": 1,
        "calls_answered": 1 if outcome in CallLog.ANSWERED_OUTCOMES else 0,
        "total_duration_seconds": duration_seconds or 0,
        # One per call event, not per distinct lead.
        "leads_contacted": 1,
        "leads_converted": 1 if outcome == "converted" else 0,
    }


def _load_row(telecaller_id, date):
    return db.session.execute(
        select(DailyCallStats)
        .filter_by(telecaller_id=telecaller_id, date=date)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _increment(telecaller_id, date, deltas):
    """Atomically add `deltas` to an existing row. Returns the row or None."""
    values = {
        name: getattr(DailyCallStats, name) + amount
        for name, amount in deltas.items()
    }
    values["updated_at"] = datetime.now(timezone.utc)
    result = db.session.execute(
        update(DailyCallStats)
        .where(
            DailyCallStats.telecaller_id == telecaller_id,
            DailyCallStats.date == date,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return _load_row(telecaller_id, date)


def upsert_daily_stats(telecaller_id, date, outcome, duration_seconds=None):
    """Roll one call event into the (telecaller, date) row, creating it if needed.

    Args:
        telecaller_id: Caller user id.
        date: Pre-derived "YYYY-MM-DD" day key in the stats time zone.
        outcome: Call outcome (one of CallLog.OUTCOMES).
        duration_seconds: Call length, None counts as 0.

    Returns:
        The updated DailyCallStats row.
    """
    date = parse_date_key(date)
    deltas = stats_deltas(outcome, duration_seconds)

    row = _increment(telecaller_id, date, deltas)
    if row is not None:
        return row

    try:
        with db.session.begin_nested():
            row = DailyCallStats(telecaller_id=telecaller_id, date=date, **deltas)
            db.session.add(row)
            db.session.flush()
    except IntegrityError:
        logger.info(
            f"Stats row for telecaller {telecaller_id} on {date} created concurrently, "
            "retrying as update"
        )
        row = _increment(telecaller_id, date, deltas)
        if row is None:
            raise
    return row


# ─── Reads ──────────────────────────────────────────────────

def get_daily_stats(telecaller_id, date=None):
    """Single-day row; defaults to today in the stats time zone.

    Raises:
        StatsNotFound: If the telecaller made no calls that day.
    """
    telecaller_id = parse_int(telecaller_id, "telecallerId", "INVALID_TELECALLER_ID")
    date = parse_date_key(date, allow_none=True) or today_key()
    row = _load_row(telecaller_id, date)
    if row is None:
        raise StatsNotFound(telecaller_id, date)
    return row


def _ratio(numerator, denominator, scale=1):
    if not denominator:
        return 0
    return round(numerator / denominator * scale, 2)


def summarize(totals, day_count):
    """Derived averages for a totals dict. Zero denominators give exactly 0."""
    return {
        "callsPerDay": _ratio(totals["callsMade"], day_count),
        "answerRate": _ratio(totals["callsAnswered"], totals["callsMade"], 100),
        "avgDurationMinutes": _ratio(
            totals["totalDurationSeconds"], totals["callsAnswered"] * 60
        ),
        "conversionRate": _ratio(totals["leadsConverted"], totals["leadsContacted"], 100),
    }


def get_stats(telecaller_id, start_date=None, end_date=None, limit=None, offset=None):
    """Rows for a telecaller over an inclusive date range plus range totals.

    Returns:
        dict with "stats" (rows, newest day first, paginated), "totals"
        (sums over the whole range) and "averages" (see summarize()).
    """
    telecaller_id = parse_int(telecaller_id, "telecallerId", "INVALID_TELECALLER_ID")
    start_date = parse_date_key(start_date, "startDate", "INVALID_START_DATE_FORMAT", allow_none=True)
    end_date = parse_date_key(end_date, "endDate", "INVALID_END_DATE_FORMAT", allow_none=True)
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate.", code="INVALID_DATE_RANGE")
    limit, offset = page_window(limit, offset, default_limit=DEFAULT_STATS_PAGE)

    conditions = [DailyCallStats.telecaller_id == telecaller_id]
    if start_date:
        conditions.append(DailyCallStats.date >= start_date)
    if end_date:
        conditions.append(DailyCallStats.date <= end_date)

    rows = (
        DailyCallStats.query
        .filter(*conditions)
        .order_by(DailyCallStats.date.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )

    agg = db.session.query(
        func.coalesce(func.sum(DailyCallStats.calls_made), 0),
        func.coalesce(func.sum(DailyCallStats.calls_answered), 0),
        func.coalesce(func.sum(DailyCallStats.total_duration_seconds), 0),
        func.coalesce(func.sum(DailyCallStats.leads_contacted), 0),
        func.coalesce(func.sum(DailyCallStats.leads_converted), 0),
        func.count(DailyCallStats.id),
    ).filter(*conditions).one()

    totals = {
        "callsMade": int(agg[0]),
        "callsAnswered": int(agg[1]),
        "totalDurationSeconds": int(agg[2]),
        "leadsContacted": int(agg[3]),
        "leadsConverted": int(agg[4]),
    }
    return {
        "stats": rows,
        "totals": totals,
        "averages": summarize(totals, int(agg[5])),
    }


# ─── Call limits ────────────────────────────────────────────

def _get_user(user_id):
    user_id = parse_int(user_id, "User ID", "INVALID_USER_ID")
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def monthly_calls_made(telecaller_id, date):
    """Calls made in the calendar month containing `date` (YYYY-MM-DD)."""
    month_prefix = date[:7]
    total = (
        db.session.query(func.coalesce(func.sum(DailyCallStats.calls_made), 0))
        .filter(
            DailyCallStats.telecaller_id == telecaller_id,
            DailyCallStats.date.like(f"{month_prefix}-%"),
        )
        .scalar()
    )
    return int(total)


def get_call_limits(user_id):
    user = _get_user(user_id)
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "dailyCallLimit": user.daily_call_limit,
        "monthlyCallLimit": user.monthly_call_limit,
    }


def set_call_limits(user_id, daily_call_limit=None, monthly_call_limit=None):
    """Update a user's call limits. 0 means unlimited.

    Raises:
        ValidationError: If neither limit is given or a value is negative.
        UserNotFound: Unknown user.
    """
    if daily_call_limit is None and monthly_call_limit is None:
        raise ValidationError(
            "At least one of dailyCallLimit or monthlyCallLimit must be provided.",
            code="MISSING_REQUIRED_FIELDS",
        )
    daily = parse_int(
        daily_call_limit, "Daily call limit", "INVALID_DAILY_CALL_LIMIT",
        minimum=0, allow_none=True,
    )
    monthly = parse_int(
        monthly_call_limit, "Monthly call limit", "INVALID_MONTHLY_CALL_LIMIT",
        minimum=0, allow_none=True,
    )
    user = _get_user(user_id)
    if daily is not None:
        user.daily_call_limit = daily
    if monthly is not None:
        user.monthly_call_limit = monthly
    db.session.flush()
    return get_call_limits(user.id)


def check_call_limits(telecaller_id, date):
    """Raise CallLimitReached if the telecaller has used up today's or this month's calls."""
    user = _get_user(telecaller_id)
    date = parse_date_key(date)

    if user.daily_call_limit:
        row = _load_row(user.id, date)
        made = row.calls_made if row else 0
        if made >= user.daily_call_limit:
            logger.warning(f"Telecaller {user.id} hit daily call limit ({user.daily_call_limit})")
            raise CallLimitReached("daily", user.daily_call_limit, made)

    if user.monthly_call_limit:
        made = monthly_calls_made(user.id, date)
        if made >= user.monthly_call_limit:
            logger.warning(f"Telecaller {user.id} hit monthly call limit ({user.monthly_call_limit})")
            raise CallLimitReached("monthly", user.monthly_call_limit, made)
