"""Tests for the auth blueprint, JSON error handling, security headers and CLI.

Covers:
- Login with valid / invalid / missing credentials
- Login with deactivated account
- Logout, /auth/me capability flags, CSRF token endpoint
- Unauthenticated API access
- JSON 404/405 handlers and security headers
- seed-admin and apply-pending-call-effects commands
"""

import pytest
from sqlalchemy.exc import OperationalError

from leadcrm.errors import CallEffectsPending
from leadcrm.extensions import db
from leadcrm.models.audit import AuditEvent
from leadcrm.models.call_log import CallLog
from leadcrm.models.user import User
from leadcrm.services import call_service, lead_service, stats_service


def _login(client, email, password="password123"):
    return client.post("/auth/login", json={"email": email, "password": password})


def _stats_failure(*args, **kwargs):
    raise OperationalError("UPDATE telecaller_call_stats", {}, Exception("database is locked"))


class TestLogin:

    def test_login_success(self, client, app, seed_data):
        resp = _login(client, "admin@leadcrm.local")
        assert resp.status_code == 200
        assert resp.get_json()["user"]["role"] == "super_admin"

        with app.app_context():
            event = AuditEvent.query.filter_by(action="user.logged_in").first()
            assert event is not None
            assert event.metadata_["email"] == "admin@leadcrm.local"

    def test_login_is_case_insensitive_on_email(self, client, seed_data):
        resp = _login(client, "  Admin@LeadCRM.local ")
        assert resp.status_code == 200

    def test_login_with_form_data(self, client, seed_data):
        resp = client.post("/auth/login", data={
            "email": "tc1@leadcrm.local",
            "password": "password123",
        })
        assert resp.status_code == 200

    def test_wrong_password(self, client, seed_data):
        resp = _login(client, "admin@leadcrm.local", "wrong")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email(self, client, seed_data):
        resp = _login(client, "nobody@leadcrm.local")
        assert resp.status_code == 401

    def test_missing_credentials(self, client, seed_data):
        resp = client.post("/auth/login", json={"email": "admin@leadcrm.local"})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "MISSING_CREDENTIALS"

    def test_inactive_account(self, client, app, seed_data):
        with app.app_context():
            db.session.get(User, seed_data["telecaller_id"]).is_active = False
            db.session.commit()
        resp = _login(client, "tc1@leadcrm.local")
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "ACCOUNT_INACTIVE"


class TestSession:

    def test_me_for_telecaller(self, client, seed_data):
        _login(client, "tc1@leadcrm.local")
        data = client.get("/auth/me").get_json()
        assert data["id"] == seed_data["telecaller_id"]
        assert data["isAdmin"] is False
        assert data["canEditAllLeadFields"] is False

    def test_me_for_counselor(self, client, seed_data):
        _login(client, "counselor@leadcrm.local")
        data = client.get("/auth/me").get_json()
        assert data["isAdmin"] is False
        assert data["canEditAllLeadFields"] is True

    def test_logout(self, client, seed_data):
        _login(client, "admin@leadcrm.local")
        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401

    def test_csrf_token(self, client):
        resp = client.get("/auth/csrf-token")
        assert resp.status_code == 200
        assert resp.get_json()["csrfToken"]

    @pytest.mark.parametrize("method, path", [
        ("get", "/api/leads"),
        ("post", "/api/calls"),
        ("get", "/api/stats/daily"),
        ("get", "/api/queue"),
    ])
    def test_api_requires_login(self, client, method, path):
        resp = getattr(client, method)(path)
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "UNAUTHORIZED"


class TestErrorHandlersAndHeaders:

    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/nothing-here")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NOT_FOUND"

    def test_wrong_method_is_json(self, client):
        resp = client.delete("/api/leads")
        assert resp.status_code == 405
        assert resp.get_json()["code"] == "METHOD_NOT_ALLOWED"

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "frame-ancestors 'none'" in resp.headers["Content-Security-Policy"]

    def test_no_hsts_in_debug(self, client):
        resp = client.get("/health")
        assert "Strict-Transport-Security" not in resp.headers


class TestCli:

    def test_seed_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-admin", "--email", "Boss@Example.com"])
        assert result.exit_code == 0
        assert "boss@example.com" in result.output
        with app.app_context():
            user = User.query.filter_by(email="boss@example.com").first()
            assert user.role == "super_admin"

        result = runner.invoke(args=["seed-admin", "--email", "boss@example.com"])
        assert "already exists" in result.output

    def test_apply_pending_call_effects(self, app, seed_data, monkeypatch):
        with app.app_context():
            lead = lead_service.create_lead(
                {"name": "Asha", "phone": "9876543210", "lead_source": "website"}
            )
            with monkeypatch.context() as m:
                m.setattr(stats_service, "upsert_daily_stats", _stats_failure)
                with pytest.raises(CallEffectsPending):
                    call_service.record_call(
                        lead.id, seed_data["telecaller_id"], "2024-01-15T10:00:00Z", "answered"
                    )
            db.session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["apply-pending-call-effects", "--dry-run"])
        assert "1 call log(s) pending" in result.output
        assert "[DRY RUN]" in result.output

        result = runner.invoke(args=["apply-pending-call-effects"])
        assert result.exit_code == 0
        assert "Applied: 1, failed: 0" in result.output

        with app.app_context():
            assert CallLog.query.filter(CallLog.effects_applied_at.is_(None)).count() == 0
