"""Tests for the lead registry and the /api/leads blueprint.

Covers:
- Create with defaults, phone trimming, duplicate-phone rejection
- Field validation (source, email, unknown fields, references)
- Field-scoped updates (base tier vs elevated)
- Stage changes through the registry (conversion date, lost reason, strict mode)
- Delete rules
- Listing, filters and pagination cap
- Statistics
- Bulk import
"""

import pytest

from leadcrm.errors import (
    DuplicatePhone,
    FieldRestricted,
    LeadNotFound,
    PermissionDenied,
    ValidationError,
)
from leadcrm.extensions import db
from leadcrm.models.audit import AuditEvent
from leadcrm.models.lead import Lead
from leadcrm.services import call_service, lead_service


# ─── Helpers ───────────────────────────────────────────────

def _login(client, email, password="password123"):
    return client.post("/auth/login", json={"email": email, "password": password})


def _make_lead(phone="9876543210", **kwargs):
    fields = {"name": "Test Lead", "phone": phone, "lead_source": "website"}
    fields.update(kwargs)
    return lead_service.create_lead(fields)


# ═══════════════════════════════════════════════════════════
# Registry: create
# ═══════════════════════════════════════════════════════════

class TestCreateLead:

    def test_defaults(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            db.session.commit()
            assert lead.id is not None
            assert lead.lead_stage == "new"
            assert lead.lead_status == "active"
            assert lead.conversion_date is None

    def test_phone_is_trimmed(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(phone="  9876543210 ")
            assert lead.phone == "9876543210"

    def test_duplicate_phone_after_trim(self, app, seed_data):
        with app.app_context():
            first = _make_lead(phone="9876543210")
            db.session.commit()
            with pytest.raises(DuplicatePhone) as exc:
                _make_lead(phone=" 9876543210 ", name="Someone Else")
            assert exc.value.existing["id"] == first.id
            assert exc.value.status_code == 409
            assert Lead.query.count() == 1

    def test_concurrent_insert_becomes_duplicate(self, app, seed_data, monkeypatch):
        """Two inserts that both pass the pre-check: the unique constraint decides."""
        with app.app_context():
            first = _make_lead(phone="9876543210")
            db.session.commit()
            monkeypatch.setattr(lead_service, "_check_phone_available", lambda *a, **kw: None)

            with pytest.raises(DuplicatePhone) as exc:
                _make_lead(phone="9876543210", name="Second")
            assert exc.value.existing["id"] == first.id
            db.session.commit()
            assert Lead.query.count() == 1

    def test_missing_phone(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError, match="Phone is required"):
                _make_lead(phone="   ")

    def test_missing_name(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError) as exc:
                _make_lead(name="")
            assert exc.value.code == "MISSING_NAME"

    def test_invalid_source(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError) as exc:
                _make_lead(lead_source="billboard")
            assert exc.value.code == "INVALID_LEAD_SOURCE"

    def test_invalid_email(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError, match="Invalid email"):
                _make_lead(email="not-an-email")

    def test_email_lowercased(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(email="Asha@Example.COM")
            assert lead.email == "asha@example.com"

    def test_unknown_field_rejected(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError) as exc:
                _make_lead(favourite_colour="blue")
            assert exc.value.code == "UNKNOWN_FIELD"

    def test_unknown_course_rejected(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError) as exc:
                _make_lead(course_interest_id=9999)
            assert exc.value.code == "INVALID_COURSE"

    def test_references_accepted(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(
                course_interest_id=seed_data["course_id"],
                assigned_telecaller_id=seed_data["telecaller_id"],
                assigned_counselor_id=seed_data["counselor_id"],
            )
            assert lead.assigned_telecaller_id == seed_data["telecaller_id"]
            assert lead.course_interest.code == "DSB-101"

    def test_notes_sanitized(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(notes="<script>alert(1)</script>Call after 6pm")
            assert "<script>" not in lead.notes
            assert "Call after 6pm" in lead.notes

    def test_created_as_converted_gets_conversion_date(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(lead_stage="converted")
            assert lead.lead_stage == "converted"
            assert lead.conversion_date is not None


# ═══════════════════════════════════════════════════════════
# Registry: update
# ═══════════════════════════════════════════════════════════

class TestUpdateLead:

    def test_base_tier_can_patch_notes_and_stage(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            updated = lead_service.update_lead(
                lead.id, {"notes": "Wants weekend batch", "lead_stage": "contacted"}
            )
            assert updated.notes == "Wants weekend batch"
            assert updated.lead_stage == "contacted"

    def test_base_tier_field_restricted(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            with pytest.raises(FieldRestricted) as exc:
                lead_service.update_lead(lead.id, {"name": "New Name", "city": "Pune"})
            assert exc.value.fields == ["city", "name"]
            assert lead.name == "Test Lead"

    def test_elevated_can_patch_anything(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            updated = lead_service.update_lead(
                lead.id,
                {"name": "Asha Rao", "city": "Pune", "lead_status": "inactive"},
                elevated=True,
            )
            assert updated.name == "Asha Rao"
            assert updated.city == "Pune"
            assert updated.lead_status == "inactive"

    def test_phone_change_to_taken_phone(self, app, seed_data):
        with app.app_context():
            _make_lead(phone="1111111111")
            second = _make_lead(phone="2222222222", name="Second")
            with pytest.raises(DuplicatePhone):
                lead_service.update_lead(second.id, {"phone": " 1111111111"}, elevated=True)

    def test_phone_unchanged_is_not_a_duplicate(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(phone="1111111111")
            updated = lead_service.update_lead(lead.id, {"phone": "1111111111"}, elevated=True)
            assert updated.phone == "1111111111"

    def test_invalid_stage(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            with pytest.raises(ValidationError) as exc:
                lead_service.update_lead(lead.id, {"lead_stage": "won"})
            assert exc.value.code == "INVALID_LEAD_STAGE"

    def test_converted_sets_conversion_date(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            updated = lead_service.update_lead(lead.id, {"lead_stage": "converted"})
            assert updated.conversion_date is not None

    def test_explicit_conversion_date_wins(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            updated = lead_service.update_lead(
                lead.id,
                {"lead_stage": "converted", "conversion_date": "2024-03-01T10:00:00Z"},
                elevated=True,
            )
            assert updated.conversion_date.year == 2024
            assert updated.conversion_date.month == 3

    def test_converted_lead_keeps_conversion_date(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(lead_stage="converted")
            with pytest.raises(ValidationError) as exc:
                lead_service.update_lead(lead.id, {"conversion_date": None}, elevated=True)
            assert exc.value.code == "CONVERSION_DATE_REQUIRED"
            assert lead.conversion_date is not None

            with pytest.raises(ValidationError):
                lead_service.update_lead(
                    lead.id, {"lead_stage": "converted", "conversion_date": ""}, elevated=True
                )

    def test_conversion_date_cleared_when_leaving_converted(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(lead_stage="converted")
            updated = lead_service.update_lead(
                lead.id, {"lead_stage": "negotiation", "conversion_date": None}, elevated=True
            )
            assert updated.lead_stage == "negotiation"
            assert updated.conversion_date is None

    def test_lost_records_reason(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            updated = lead_service.update_lead(
                lead.id,
                {"lead_stage": "lost", "lost_reason": "Chose another institute"},
                elevated=True,
            )
            assert updated.lead_stage == "lost"
            assert updated.lost_reason == "Chose another institute"

    def test_backward_move_allowed_by_default(self, app, seed_data):
        with app.app_context():
            lead = _make_lead(lead_stage="negotiation")
            updated = lead_service.update_lead(lead.id, {"lead_stage": "new"})
            assert updated.lead_stage == "new"

    def test_strict_mode_freezes_terminal_stages(self, app, seed_data):
        app.config["LEAD_STAGE_STRICT"] = True
        with app.app_context():
            lead = _make_lead(lead_stage="converted")
            with pytest.raises(ValidationError) as exc:
                lead_service.update_lead(lead.id, {"lead_stage": "contacted", "notes": "x"})
            assert exc.value.code == "TERMINAL_STAGE"
            # nothing applied
            assert lead.notes is None

    def test_not_found(self, app, seed_data):
        with app.app_context():
            with pytest.raises(LeadNotFound):
                lead_service.update_lead(424242, {"notes": "hi"})


# ═══════════════════════════════════════════════════════════
# Registry: delete, list, statistics, import
# ═══════════════════════════════════════════════════════════

class TestDeleteLead:

    def test_requires_admin(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            with pytest.raises(PermissionDenied):
                lead_service.delete_lead(lead.id)

    def test_admin_delete(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            lead_id = lead.id
            snapshot = lead_service.delete_lead(lead_id, is_admin=True)
            db.session.commit()
            assert snapshot["id"] == lead_id
            assert db.session.get(Lead, lead_id) is None

    def test_lead_with_calls_is_kept(self, app, seed_data):
        with app.app_context():
            lead = _make_lead()
            call_service.record_call(
                lead.id, seed_data["telecaller_id"], "2024-01-15T10:00:00Z", "busy"
            )
            with pytest.raises(ValidationError) as exc:
                lead_service.delete_lead(lead.id, is_admin=True)
            assert exc.value.code == "LEAD_HAS_CALL_HISTORY"


class TestListLeads:

    def test_filters_and_total(self, app, seed_data):
        with app.app_context():
            _make_lead(phone="1", assigned_telecaller_id=seed_data["telecaller_id"])
            _make_lead(phone="2", assigned_telecaller_id=seed_data["telecaller2_id"])
            _make_lead(phone="3", lead_stage="contacted",
                       assigned_telecaller_id=seed_data["telecaller_id"])

            leads, total = lead_service.list_leads(
                assigned_telecaller_id=seed_data["telecaller_id"]
            )
            assert total == 2
            leads, total = lead_service.list_leads(lead_stage="contacted")
            assert total == 1
            assert leads[0].phone == "3"

    def test_search(self, app, seed_data):
        with app.app_context():
            _make_lead(phone="1", name="Asha Rao")
            _make_lead(phone="2", name="Vikram Shah")
            leads, total = lead_service.list_leads(search="asha")
            assert total == 1
            assert leads[0].name == "Asha Rao"

    def test_page_size_capped(self, app, seed_data):
        with app.app_context():
            for i in range(105):
                _make_lead(phone=f"90000{i:05d}")
            leads, total = lead_service.list_leads(limit=500)
            assert total == 105
            assert len(leads) == 100

    def test_default_page_size(self, app, seed_data):
        with app.app_context():
            for i in range(12):
                _make_lead(phone=f"80000{i:05d}")
            leads, _ = lead_service.list_leads()
            assert len(leads) == 10

    def test_invalid_limit(self, app, seed_data):
        with app.app_context():
            with pytest.raises(ValidationError):
                lead_service.list_leads(limit="lots")


class TestLeadStatistics:

    def test_counts_and_conversion_rate(self, app, seed_data):
        with app.app_context():
            _make_lead(phone="1")
            _make_lead(phone="2", lead_source="referral")
            _make_lead(phone="3", lead_stage="converted")
            _make_lead(phone="4", lead_stage="lost", lead_status="junk")

            stats = lead_service.lead_statistics()
            assert stats["total_leads"] == 4
            assert stats["leads_by_stage"]["new"] == 2
            assert stats["leads_by_stage"]["converted"] == 1
            assert stats["leads_by_stage"]["qualified"] == 0
            assert stats["leads_by_status"]["junk"] == 1
            assert stats["leads_by_source"]["referral"] == 1
            assert stats["conversion_rate"] == 25.0
            assert stats["recent_leads_count"] == 4

    def test_empty(self, app, seed_data):
        with app.app_context():
            stats = lead_service.lead_statistics()
            assert stats["total_leads"] == 0
            assert stats["conversion_rate"] == 0


class TestImportLeads:

    def test_mixed_batch(self, app, seed_data):
        with app.app_context():
            existing = _make_lead(phone="5555555555")
            rows = [
                {"name": "A", "phone": "1000000001", "lead_source": "walk_in"},
                {"name": "B", "phone": " 5555555555 ", "lead_source": "walk_in"},
                {"name": "", "phone": "1000000002", "lead_source": "walk_in"},
                {"name": "C", "phone": "1000000001", "lead_source": "walk_in"},
                "not a row",
            ]
            result = lead_service.import_leads(
                rows, default_telecaller_id=seed_data["telecaller_id"]
            )
            assert len(result["created"]) == 1
            assert [d["row"] for d in result["duplicates"]] == [2, 4]
            assert result["duplicates"][0]["existingLead"]["id"] == existing.id
            assert [e["row"] for e in result["errors"]] == [3, 5]

            created = db.session.get(Lead, result["created"][0])
            assert created.assigned_telecaller_id == seed_data["telecaller_id"]


# ═══════════════════════════════════════════════════════════
# HTTP: /api/leads
# ═══════════════════════════════════════════════════════════

class TestLeadRoutes:

    def test_requires_login(self, client, seed_data):
        resp = client.get("/api/leads")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "UNAUTHORIZED"

    def test_create_and_duplicate(self, client, seed_data):
        _login(client, "counselor@leadcrm.local")
        body = {"name": "Asha", "phone": "9876543210", "leadSource": "website"}
        resp = client.post("/api/leads", json=body)
        assert resp.status_code == 201
        lead = resp.get_json()
        assert lead["leadStage"] == "new"

        resp = client.post("/api/leads", json=dict(body, phone=" 9876543210 "))
        assert resp.status_code == 409
        data = resp.get_json()
        assert data["code"] == "DUPLICATE_PHONE"
        assert data["existingLead"]["id"] == lead["id"]

    def test_create_writes_audit_event(self, client, app, seed_data):
        _login(client, "admin@leadcrm.local")
        client.post("/api/leads", json={"name": "Asha", "phone": "1", "leadSource": "website"})
        with app.app_context():
            event = AuditEvent.query.filter_by(action="lead.created").first()
            assert event is not None
            assert event.actor_user_id == seed_data["admin_id"]

    def test_telecaller_cannot_create(self, client, seed_data):
        _login(client, "tc1@leadcrm.local")
        resp = client.post("/api/leads", json={"name": "A", "phone": "1", "leadSource": "website"})
        assert resp.status_code == 403

    def test_invalid_body(self, client, seed_data):
        _login(client, "admin@leadcrm.local")
        resp = client.post("/api/leads", data="nope", content_type="text/plain")
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_BODY"

    def test_telecaller_patch_restricted(self, client, app, seed_data):
        with app.app_context():
            lead_id = _make_lead(assigned_telecaller_id=seed_data["telecaller_id"]).id
            db.session.commit()
        _login(client, "tc1@leadcrm.local")
        resp = client.patch(f"/api/leads/{lead_id}", json={"name": "Changed"})
        assert resp.status_code == 403
        assert resp.get_json()["fields"] == ["name"]

        resp = client.patch(f"/api/leads/{lead_id}", json={"leadStage": "contacted"})
        assert resp.status_code == 200
        assert resp.get_json()["leadStage"] == "contacted"

    def test_telecaller_sees_only_assigned(self, client, app, seed_data):
        with app.app_context():
            _make_lead(phone="1", assigned_telecaller_id=seed_data["telecaller_id"])
            _make_lead(phone="2", assigned_telecaller_id=seed_data["telecaller2_id"])
            db.session.commit()
        _login(client, "tc1@leadcrm.local")
        resp = client.get(f"/api/leads?assignedTelecallerId={seed_data['telecaller2_id']}")
        data = resp.get_json()
        assert data["total"] == 1
        assert data["leads"][0]["phone"] == "1"

    def test_get_missing_lead(self, client, seed_data):
        _login(client, "admin@leadcrm.local")
        resp = client.get("/api/leads/999")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "LEAD_NOT_FOUND"

    def test_delete_needs_admin(self, client, app, seed_data):
        with app.app_context():
            lead_id = _make_lead().id
            db.session.commit()
        _login(client, "counselor@leadcrm.local")
        resp = client.delete(f"/api/leads/{lead_id}")
        assert resp.status_code == 403

    def test_admin_delete(self, client, app, seed_data):
        with app.app_context():
            lead_id = _make_lead().id
            db.session.commit()
        _login(client, "admin@leadcrm.local")
        resp = client.delete(f"/api/leads/{lead_id}")
        assert resp.status_code == 200
        assert resp.get_json()["lead"]["id"] == lead_id

    def test_statistics_camel_case(self, client, app, seed_data):
        with app.app_context():
            _make_lead(phone="1", lead_stage="converted")
            db.session.commit()
        _login(client, "auditor@leadcrm.local")
        resp = client.get("/api/leads/statistics")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["totalLeads"] == 1
        assert data["conversionRate"] == 100.0

    def test_import_route(self, client, seed_data):
        _login(client, "admin@leadcrm.local")
        resp = client.post("/api/leads/import", json={"rows": [
            {"name": "A", "phone": "1", "leadSource": "website"},
            {"name": "B", "phone": "1", "leadSource": "website"},
        ]})
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["created"]) == 1
        assert len(data["duplicates"]) == 1

    def test_stage_route(self, client, app, seed_data):
        with app.app_context():
            lead_id = _make_lead(assigned_telecaller_id=seed_data["telecaller_id"]).id
            db.session.commit()
        _login(client, "tc1@leadcrm.local")
        resp = client.post(
            f"/api/leads/{lead_id}/stage",
            json={"leadStage": "lost", "lostReason": "No budget"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["lostReason"] == "No budget"

    def test_telecaller_confined_to_assigned_leads(self, client, app, seed_data):
        with app.app_context():
            lead_id = _make_lead(assigned_telecaller_id=seed_data["telecaller2_id"]).id
            db.session.commit()
        _login(client, "tc1@leadcrm.local")
        assert client.get(f"/api/leads/{lead_id}").status_code == 403
        resp = client.patch(f"/api/leads/{lead_id}", json={"notes": "mine now"})
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "FORBIDDEN"
        resp = client.post(f"/api/leads/{lead_id}/stage", json={"leadStage": "lost"})
        assert resp.status_code == 403
        with app.app_context():
            lead = db.session.get(Lead, lead_id)
            assert lead.lead_stage == "new"
            assert lead.notes is None

    def test_counselor_reads_any_lead(self, client, app, seed_data):
        with app.app_context():
            lead_id = _make_lead(assigned_telecaller_id=seed_data["telecaller2_id"]).id
            db.session.commit()
        _login(client, "counselor@leadcrm.local")
        assert client.get(f"/api/leads/{lead_id}").status_code == 200
