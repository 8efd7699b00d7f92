"""CounselorNote model: a counselor's record of one interaction with a lead."""

from leadcrm.extensions import db


class CounselorNote(db.Model):
    __tablename__ = "counselor_notes"

    NOTE_TYPES = [
        "general",
        "demo",
        "meeting",
        "proposal",
        "followup",
    ]

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    lead_id = db.Column(
        db.Integer, db.ForeignKey("leads.id"), nullable=False, index=True
    )
    counselor_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    note_type = db.Column(db.String(50), nullable=False)  # one of NOTE_TYPES
    content = db.Column(db.Text, nullable=False)
    is_important = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    lead = db.relationship("Lead", back_populates="counselor_notes")
    counselor = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "leadId": self.lead_id,
            "counselorId": self.counselor_id,
            "noteType": self.note_type,
            "content": self.content,
            "isImportant": self.is_important,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<CounselorNote {self.note_type} lead={self.lead_id}>"
