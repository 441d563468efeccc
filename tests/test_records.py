"""Tests for record sanitization and validation."""

import pytest

from app.models.records import LeadRecord, SiteRecord
from app.services.record_service import clean_record, sanitize_text


class TestSanitize:

    def test_strips_html(self):
        assert sanitize_text("<script>alert(1)</script>Chantier <b>A</b>") == "alert(1)Chantier A"

    def test_none_passes_through(self):
        assert sanitize_text(None) is None


class TestSites:

    def test_defaults_on_create(self):
        site = clean_record("sites", {
            "name": "Cuisine", "start_date": "2025-06-01", "end_date": "2025-06-10",
        })
        assert site["status"] == SiteRecord.NEW
        assert site["progress"] == 0
        assert site["budget"] == 0

    def test_unknown_fields_are_dropped(self):
        site = clean_record("sites", {
            "name": "Cuisine", "start_date": "2025-06-01", "end_date": "2025-06-10",
            "company_id": "comp_other", "is_admin": True,
        })
        assert "company_id" not in site
        assert "is_admin" not in site

    def test_missing_required_fields(self):
        with pytest.raises(ValueError, match="start_date"):
            clean_record("sites", {"name": "Cuisine"})

    def test_partial_update_skips_required_and_defaults(self):
        assert clean_record("sites", {"progress": "50"}, partial=True) == {"progress": 50}

    @pytest.mark.parametrize("data", [
        {"status": "Unknown"},
        {"budget": -1},
        {"budget": "lots"},
        {"progress": 120},
        {"start_date": "someday"},
        {"budget": True},
    ])
    def test_invalid_values(self, data):
        with pytest.raises(ValueError):
            clean_record("sites", data, partial=True)


class TestLeads:

    def test_defaults_on_create(self):
        lead = clean_record("leads", {"contact_name": "Julie"})
        assert lead["status"] == LeadRecord.NEW
        assert lead["estimated_budget"] == 0
        assert lead["created_at"]

    def test_won_only_through_conversion(self):
        with pytest.raises(ValueError, match="converting"):
            clean_record("leads", {"status": LeadRecord.WON}, partial=True)


class TestOtherCollections:

    def test_team_members_must_be_a_list(self):
        with pytest.raises(ValueError):
            clean_record("teams", {"name": "Équipe A", "members": "Jean"})

    def test_team_members_are_sanitized(self):
        team = clean_record("teams", {"name": "Équipe A", "members": ["<i>Jean</i>", " "]})
        assert team["members"] == ["Jean"]

    def test_unknown_collection(self):
        with pytest.raises(ValueError):
            clean_record("invoices", {"name": "x"})

    def test_body_must_be_an_object(self):
        with pytest.raises(ValueError):
            clean_record("clients", ["not", "a", "dict"])
