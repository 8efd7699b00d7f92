"""Auth blueprint: /auth/*

Session login for staff. Role resolution for the rest of the API comes from
current_user.role.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash

from leadcrm.extensions import db, limiter
from leadcrm.models.audit import AuditEvent
from leadcrm.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials():
    """Accept JSON or form-encoded credentials."""
    data = request.get_json(silent=True) or request.form
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    remember = bool(data.get("remember"))
    return email, password, remember


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    """Standard email + password login."""
    email, password, remember = _credentials()

    if not email or not password:
        return jsonify({
            "error": "Email and password are required.",
            "code": "MISSING_CREDENTIALS",
        }), 400

    user = User.query.filter_by(email=email).first()

    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify({
            "error": "Invalid email or password.",
            "code": "INVALID_CREDENTIALS",
        }), 401

    if not user.is_active:
        return jsonify({
            "error": "Your account has been deactivated.",
            "code": "ACCOUNT_INACTIVE",
        }), 403

    login_user(user, remember=remember)

    audit = AuditEvent(
        actor_user_id=user.id,
        action="user.logged_in",
        metadata_={"email": email},
    )
    db.session.add(audit)
    db.session.commit()

    return jsonify({"user": user.to_dict()})


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    """Current user plus the capability flags the UI gates on."""
    body = current_user.to_dict()
    body["isAdmin"] = current_user.is_admin
    body["canEditAllLeadFields"] = current_user.is_elevated
    return jsonify(body)


@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header on state-changing API calls."""
    return jsonify({"csrfToken": generate_csrf()})
