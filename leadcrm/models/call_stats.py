"""DailyCallStats model: per-telecaller, per-day call rollup.

At most one row per (telecaller_id, date); counters only ever grow.
`date` is the YYYY-MM-DD calendar day in STATS_TIMEZONE.

leads_contacted counts call events, not distinct leads: three calls to the
same lead on one day add three. Dashboards rely on that.
"""

from leadcrm.extensions import db


class DailyCallStats(db.Model):
    __tablename__ = "telecaller_call_stats"
    __table_args__ = (
        db.UniqueConstraint(
            "telecaller_id", "date", name="uq_telecaller_call_stats_telecaller_date"
        ),
    )

    COUNTERS = [
        "calls_made",
        "calls_answered",
        "total_duration_seconds",
        "leads_contacted",
        "leads_converted",
    ]

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    telecaller_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    date = db.Column(db.String(10), nullable=False)
    calls_made = db.Column(db.Integer, default=0, nullable=False)
    calls_answered = db.Column(db.Integer, default=0, nullable=False)
    total_duration_seconds = db.Column(db.Integer, default=0, nullable=False)
    leads_contacted = db.Column(db.Integer, default=0, nullable=False)
    leads_converted = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    telecaller = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "telecallerId": self.telecaller_id,
            "date": self.date,
            "callsMade": self.calls_made,
            "callsAnswered": self.calls_answered,
            "totalDurationSeconds": self.total_duration_seconds,
            "leadsContacted": self.leads_contacted,
            "leadsConverted": self.leads_converted,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<DailyCallStats telecaller={self.telecaller_id} {self.date} made={self.calls_made}>"
