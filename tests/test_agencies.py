"""
Tests for agencies, API keys and budget windows.
"""

from datetime import datetime, timedelta

import pytest

from seo_dashboard import agencies
from seo_dashboard.auth import hash_api_key, regenerate_api_key, verify_api_key
from seo_dashboard.errors import BudgetExceededError, NotFoundError, ValidationError
from seo_dashboard.models import execute_query, fetch_one


# ===================================================================
# Agencies and keys
# ===================================================================

class TestAgencies:

    def test_create_returns_key_once(self, agency):
        assert agency["api_key"].startswith("seo_")
        assert agency["plan_type"] == "starter"
        assert agency["monthly_budget"] == 50.0
        assert "api_key" not in agencies.get_agency(agency["id"])

    def test_key_is_stored_hashed(self, agency):
        row = fetch_one("SELECT api_key FROM agencies WHERE id = ?", (agency["id"],))
        assert row["api_key"] == hash_api_key(agency["api_key"])

    def test_duplicate_email(self, agency):
        with pytest.raises(ValidationError):
            agencies.create_agency("Other", "ops@acme.test")

    def test_unknown_plan(self):
        with pytest.raises(ValidationError):
            agencies.create_agency("Other", "other@acme.test", plan_type="platinum")

    def test_change_plan(self, agency):
        updated = agencies.change_plan(agency["id"], "agency")
        assert updated["plan_type"] == "agency"
        assert updated["monthly_budget"] == 250.0

    def test_change_plan_unknown_agency(self):
        with pytest.raises(NotFoundError):
            agencies.change_plan("missing", "agency")


class TestApiKeys:

    def test_verify(self, agency):
        assert verify_api_key(agency["api_key"])["id"] == agency["id"]

    def test_reject_malformed_and_unknown(self, agency):
        assert verify_api_key("not-a-key") is None
        assert verify_api_key("seo_unknown") is None
        assert verify_api_key("") is None

    def test_regenerate_invalidates_old_key(self, agency):
        new_key = regenerate_api_key(agency["id"])
        assert verify_api_key(agency["api_key"]) is None
        assert verify_api_key(new_key)["id"] == agency["id"]


# ===================================================================
# Billing window
# ===================================================================

class TestBillingWindow:

    def test_monthly_clamps_to_month_end(self):
        assert agencies.get_next_billing_date("2024-01-31T09:00:00") == "2024-02-29T09:00:00"
        assert agencies.get_next_billing_date("2023-12-15T00:00:00") == "2024-01-15T00:00:00"

    def test_yearly_from_leap_day(self):
        assert agencies.get_next_billing_date("2024-02-29T00:00:00", "yearly") == "2025-02-28T00:00:00"

    def test_window_rolls_and_resets_spend(self, agency):
        ended = (datetime.now() - timedelta(days=1)).isoformat()
        execute_query("UPDATE agencies SET spend = 42, billing_end = ? WHERE id = ?", (ended, agency["id"]))

        agencies.check_and_reset_spend(agency["id"])

        refreshed = agencies.get_agency(agency["id"])
        assert refreshed["spend"] == 0
        assert datetime.fromisoformat(refreshed["billing_end"]) > datetime.now()


# ===================================================================
# Spend
# ===================================================================

class TestSpend:

    def test_record_spend(self, agency):
        agencies.record_spend(agency["id"], None, "domain-analysis", 2.5)
        agencies.record_spend(agency["id"], None, "domain-analysis", 0.0)

        assert agencies.get_agency(agency["id"])["spend"] == 2.5
        summary = agencies.get_usage_summary(agency["id"])
        assert summary["by_endpoint"] == [{"endpoint": "domain-analysis", "calls": 2, "cost": 2.5}]
        assert summary["remaining"] == 47.5
        assert summary["percentage_used"] == 5.0

    def test_budget_allows_until_spent(self, agency):
        allowed, info = agencies.check_budget(agency["id"])
        assert allowed
        assert info["remaining"] == 50.0

        agencies.record_spend(agency["id"], None, "full-audit", 50.0)

        allowed, info = agencies.check_budget(agency["id"])
        assert not allowed
        assert info["error"] == "budget_exceeded"
        with pytest.raises(BudgetExceededError):
            agencies.require_budget(agency["id"])

    def test_inactive_subscription_blocks(self, agency):
        execute_query("UPDATE agencies SET subscription_status = 'past_due' WHERE id = ?", (agency["id"],))
        allowed, info = agencies.check_budget(agency["id"])
        assert not allowed
        assert info["error"] == "subscription_inactive"

    def test_require_budget_unknown_agency(self):
        with pytest.raises(NotFoundError):
            agencies.require_budget("missing")

    @pytest.mark.parametrize("spend,level", [(10, None), (40, "warning"), (50, "critical")])
    def test_usage_alerts(self, agency, spend, level):
        execute_query("UPDATE agencies SET spend = ? WHERE id = ?", (spend, agency["id"]))
        alerts = agencies.check_usage_alerts(agency["id"])
        assert [a["level"] for a in alerts] == ([level] if level else [])
