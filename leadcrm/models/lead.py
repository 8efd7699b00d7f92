"""Lead model.

A prospective student tracked through the sales pipeline.
Pipeline: new -> contacted -> qualified -> demo_scheduled -> proposal_sent
          -> negotiation -> converted, with lost reachable from any open stage.

Phone is unique across all leads (stored trimmed); the unique constraint
backs the registry's duplicate check against concurrent inserts.
"""

from leadcrm.extensions import db


class Lead(db.Model):
    __tablename__ = "leads"

    # -- Closed value sets --
    SOURCES = [
        "website",
        "referral",
        "social_media",
        "advertisement",
        "walk_in",
        "other",
    ]
    STAGES = [
        "new",
        "contacted",
        "qualified",
        "demo_scheduled",
        "proposal_sent",
        "negotiation",
        "converted",
        "lost",
    ]
    ACTIVE_ENGAGEMENT_STAGES = [
        "contacted",
        "qualified",
        "demo_scheduled",
        "proposal_sent",
        "negotiation",
    ]
    TERMINAL_STAGES = ["converted", "lost"]
    STATUSES = ["active", "inactive", "junk"]

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)
    whatsapp_number = db.Column(db.String(50), nullable=True)
    lead_source = db.Column(db.String(50), nullable=False)  # one of SOURCES
    lead_stage = db.Column(db.String(50), default="new", nullable=False, index=True)
    lead_status = db.Column(db.String(50), default="active", nullable=False)
    course_interest_id = db.Column(
        db.Integer, db.ForeignKey("courses.id"), nullable=True
    )
    assigned_telecaller_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True, index=True
    )
    assigned_counselor_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True, index=True
    )
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    country = db.Column(db.String(100), nullable=True)
    education_level = db.Column(db.String(100), nullable=True)
    current_occupation = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    conversion_date = db.Column(db.DateTime(timezone=True), nullable=True)  # set on entry to converted
    lost_reason = db.Column(db.Text, nullable=True)  # set on entry to lost
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    course_interest = db.relationship("Course", foreign_keys=[course_interest_id])
    assigned_telecaller = db.relationship("User", foreign_keys=[assigned_telecaller_id])
    assigned_counselor = db.relationship("User", foreign_keys=[assigned_counselor_id])
    call_logs = db.relationship(
        "CallLog",
        back_populates="lead",
        lazy="dynamic",
        order_by="CallLog.call_date.desc()",
    )
    counselor_notes = db.relationship(
        "CounselorNote",
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="CounselorNote.created_at.desc()",
    )

    def summary(self):
        """Short form handed back on duplicate-phone conflicts."""
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "leadStage": self.lead_stage,
            "leadStatus": self.lead_status,
            "assignedTelecallerId": self.assigned_telecaller_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "whatsappNumber": self.whatsapp_number,
            "leadSource": self.lead_source,
            "leadStage": self.lead_stage,
            "leadStatus": self.lead_status,
            "courseInterestId": self.course_interest_id,
            "assignedTelecallerId": self.assigned_telecaller_id,
            "assignedCounselorId": self.assigned_counselor_id,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "educationLevel": self.education_level,
            "currentOccupation": self.current_occupation,
            "notes": self.notes,
            "conversionDate": self.conversion_date.isoformat() if self.conversion_date else None,
            "lostReason": self.lost_reason,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Lead {self.name} ({self.lead_stage})>"
