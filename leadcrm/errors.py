"""Error taxonomy for the lead engagement core.

Services raise these; the app factory turns any LeadCrmError into a JSON
response of the form {"error": message, "code": code, **payload}.
"""


class LeadCrmError(Exception):
    status_code = 400
    code = "ERROR"

    def __init__(self, message, code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.payload = payload or {}

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        body.update(self.payload)
        return body


class ValidationError(LeadCrmError, ValueError):
    """Malformed or missing input, or a value outside a closed enum."""

    code = "VALIDATION_ERROR"


class NotFound(LeadCrmError):
    status_code = 404
    code = "NOT_FOUND"


class LeadNotFound(NotFound):
    code = "LEAD_NOT_FOUND"

    def __init__(self, lead_id):
        super().__init__(f"Lead {lead_id} not found.")
        self.lead_id = lead_id


class CallerNotFound(NotFound):
    code = "CALLER_NOT_FOUND"

    def __init__(self, caller_id):
        super().__init__(f"Caller {caller_id} not found.")
        self.caller_id = caller_id


class StatsNotFound(NotFound):
    code = "STATS_NOT_FOUND"

    def __init__(self, telecaller_id, date):
        super().__init__(f"No statistics for telecaller {telecaller_id} on {date}.")


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found.")


class DuplicatePhone(LeadCrmError):
    """A lead with the same normalized phone already exists.

    `existing` is the conflicting lead's summary so the caller can decide to
    merge instead of retrying.
    """

    status_code = 409
    code = "DUPLICATE_PHONE"

    def __init__(self, phone, existing):
        super().__init__(
            f"A lead with phone {phone} already exists (id {existing['id']}).",
            payload={"existingLead": existing},
        )
        self.phone = phone
        self.existing = existing


class FieldRestricted(LeadCrmError):
    status_code = 403
    code = "FIELD_RESTRICTED"

    def __init__(self, fields):
        fields = sorted(fields)
        super().__init__(
            f"Not allowed to modify: {', '.join(fields)}",
            payload={"fields": fields},
        )
        self.fields = fields


class PermissionDenied(LeadCrmError):
    status_code = 403
    code = "FORBIDDEN"


class EmptyQueue(LeadCrmError):
    status_code = 404
    code = "EMPTY_QUEUE"

    def __init__(self, telecaller_id):
        super().__init__(f"No leads queued for telecaller {telecaller_id}.")
        self.telecaller_id = telecaller_id


class CallLimitReached(LeadCrmError):
    status_code = 429
    code = "CALL_LIMIT_REACHED"

    def __init__(self, period, limit, calls_made):
        super().__init__(
            f"{period.capitalize()} call limit reached ({limit} calls).",
            payload={"period": period, "limit": limit, "callsMade": calls_made},
        )
        self.period = period
        self.limit = limit


class CallEffectsPending(LeadCrmError):
    """The call log was written but the stage/stats bookkeeping failed.

    Carries the call log so the caller can commit it and retry the effects
    later with apply_call_effects(call_log.id).
    """

    status_code = 202
    code = "CALL_EFFECTS_PENDING"

    def __init__(self, call_log, reason):
        super().__init__(
            f"Call {call_log.id} was logged but stage/stats update failed: {reason}",
            payload={"callLogId": call_log.id},
        )
        self.call_log = call_log
        self.reason = reason
