"""User model.

Staff accounts (telecallers, counselors, admins, auditors).
Flask-Login integration via UserMixin.
"""

from flask_login import UserMixin

from leadcrm.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = [
        "super_admin",
        "admin",
        "telecaller",
        "counselor",
        "auditor",
    ]
    ADMIN_ROLES = ["super_admin", "admin"]
    # May patch every lead field; everyone else is limited to notes + stage.
    ELEVATED_ROLES = ["super_admin", "admin", "counselor"]

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(50), nullable=False)  # one of ROLES
    phone = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # 0 means unlimited
    daily_call_limit = db.Column(db.Integer, default=0, nullable=False)
    monthly_call_limit = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    call_logs = db.relationship(
        "CallLog", back_populates="caller", lazy="dynamic"
    )
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    @property
    def is_admin(self):
        return self.role in self.ADMIN_ROLES

    @property
    def is_elevated(self):
        return self.role in self.ELEVATED_ROLES

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "phone": self.phone,
            "isActive": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
