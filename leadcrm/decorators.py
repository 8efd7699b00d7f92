"""
Custom route decorators for access control.

- roles_required: ensures user is logged in AND holds one of the given roles.
- admin_required: ensures user is logged in AND is in the admin tier.
- scoped_telecaller_id: pins telecallers to their own id.
- check_lead_scope: keeps telecallers on their assigned leads.
"""

from functools import wraps

from flask import jsonify
from flask_login import current_user, login_required

from leadcrm.errors import PermissionDenied, ValidationError


def roles_required(*roles):
    """Require login + one of `roles`."""

    def wrapper(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            if current_user.role not in roles:
                return jsonify({"error": "Forbidden", "code": "FORBIDDEN"}), 403
            return f(*args, **kwargs)

        return decorated

    return wrapper


def admin_required(f):
    """Require login + admin tier role."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({"error": "Forbidden", "code": "FORBIDDEN"}), 403
        return f(*args, **kwargs)

    return decorated


def scoped_telecaller_id(requested):
    """Telecaller id a request may act on.

    Telecallers are pinned to themselves; everyone else must name one.
    """
    if current_user.role == "telecaller":
        if requested not in (None, "") and str(requested) != str(current_user.id):
            raise PermissionDenied("Telecallers can only access their own data.")
        return current_user.id
    if requested in (None, ""):
        raise ValidationError("telecallerId is required.", code="MISSING_TELECALLER_ID")
    return requested


def check_lead_scope(lead):
    """Telecallers may only touch leads assigned to them."""
    if current_user.role == "telecaller" and lead.assigned_telecaller_id != current_user.id:
        raise PermissionDenied(f"Lead {lead.id} is not assigned to you.")
    return lead
