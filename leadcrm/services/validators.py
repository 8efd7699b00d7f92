"""Input parsing shared by the services.

Every helper raises ValidationError with a machine-readable code, so the
HTTP layer can hand it straight back to the client.
"""

import re
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import bleach
from flask import current_app

from leadcrm.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DEFAULT_PAGE_SIZE = 10


def sanitize(text):
    """Strip all HTML tags from free text. Blank becomes None."""
    if text is None:
        return None
    cleaned = bleach.clean(str(text), tags=[], strip=True).strip()
    return cleaned or None


def clean_optional(value):
    """Trim an optional string field. Blank becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def require_text(value, field, code):
    """Trim a required string field; empty or missing is a ValidationError."""
    value = clean_optional(value)
    if value is None:
        raise ValidationError(f"{field} is required.", code=code)
    return value


def normalize_phone(phone):
    """Canonical phone form used for storage and the uniqueness check."""
    return require_text(phone, "Phone", "MISSING_PHONE")


def validate_email(email):
    email = clean_optional(email)
    if email is None:
        return None
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format.", code="INVALID_EMAIL")
    return email.lower()


def require_choice(value, choices, field, code):
    if value not in choices:
        raise ValidationError(
            f"Invalid {field} '{value}'. Must be one of: {', '.join(choices)}",
            code=code,
        )
    return value


def parse_int(value, field, code, minimum=None, allow_none=False):
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required.", code=code)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a valid integer.", code=code)
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be a valid integer.", code=code)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a valid integer.", code=code)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.", code=code)
    return number


def parse_bool(value, field, code, allow_none=False):
    """JSON booleans, or "true"/"false" from a query string."""
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required.", code=code)
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise ValidationError(f"{field} must be true or false.", code=code)


def parse_timestamp(value, field, code, allow_none=False):
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required.", code=code)
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(
                f"{field} must be a valid ISO date string.", code=code
            )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date_key(value, field="date", code="INVALID_DATE_FORMAT", allow_none=False):
    """Validate a YYYY-MM-DD calendar date string and return it unchanged."""
    if value is None or value == "":
        if allow_none:
            return None
        raise ValidationError(f"{field} is required.", code=code)
    text = str(value).strip()
    if not DATE_KEY_RE.match(text):
        raise ValidationError(f"{field} must be in YYYY-MM-DD format.", code=code)
    try:
        date.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} is not a valid date.", code=code)
    return text


def stats_timezone():
    name = current_app.config.get("STATS_TIMEZONE", "UTC")
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        raise RuntimeError(f"Unknown STATS_TIMEZONE '{name}'")


def date_key_for(moment):
    """Calendar day (YYYY-MM-DD) of `moment` in the stats reference zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(stats_timezone()).date().isoformat()


def today_key():
    return date_key_for(datetime.now(timezone.utc))


def page_window(limit, offset, default_limit=DEFAULT_PAGE_SIZE):
    """Clamp offset/limit pagination. Page size is capped at MAX_PAGE_SIZE."""
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    limit = parse_int(limit, "limit", "INVALID_LIMIT", minimum=1, allow_none=True)
    offset = parse_int(offset, "offset", "INVALID_OFFSET", minimum=0, allow_none=True)
    if limit is None:
        limit = default_limit
    return min(limit, max_size), offset or 0
