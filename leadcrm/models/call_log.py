"""CallLog model: one row per call attempt.

Append-only. Besides what the telecaller reported, each row keeps the stage
it asked for and the stats day it rolls into, so the stage transition and the
daily rollup can be replayed for a row whose effects never landed.
effects_applied_at stays NULL until both have been applied exactly once.
"""

from leadcrm.extensions import db


class CallLog(db.Model):
    __tablename__ = "call_logs"

    OUTCOMES = [
        "no_answer",
        "busy",
        "answered",
        "callback_requested",
        "not_interested",
        "interested",
        "converted",
    ]
    # Outcomes that count toward calls_answered in the daily rollup
    ANSWERED_OUTCOMES = ["answered", "interested", "converted"]

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    lead_id = db.Column(
        db.Integer, db.ForeignKey("leads.id"), nullable=False, index=True
    )
    caller_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    call_date = db.Column(db.DateTime(timezone=True), nullable=False)
    call_outcome = db.Column(db.String(50), nullable=False)  # one of OUTCOMES
    call_duration_seconds = db.Column(db.Integer, nullable=True)
    next_followup_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    requested_stage = db.Column(db.String(50), nullable=True)
    stats_date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    effects_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    lead = db.relationship("Lead", back_populates="call_logs")
    caller = db.relationship("User", back_populates="call_logs")

    @property
    def effects_pending(self):
        return self.effects_applied_at is None

    def to_dict(self):
        return {
            "id": self.id,
            "leadId": self.lead_id,
            "callerId": self.caller_id,
            "callDate": self.call_date.isoformat() if self.call_date else None,
            "callOutcome": self.call_outcome,
            "callDurationSeconds": self.call_duration_seconds,
            "nextFollowupDate": (
                self.next_followup_date.isoformat() if self.next_followup_date else None
            ),
            "notes": self.notes,
            "requestedStage": self.requested_stage,
            "statsDate": self.stats_date,
            "effectsPending": self.effects_pending,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CallLog {self.call_outcome} lead={self.lead_id} caller={self.caller_id}>"
