"""Tests for client management and the dashboard rollup."""

import pytest

from seo_dashboard import agencies, clients, tasks
from seo_dashboard.errors import LimitExceededError, NotFoundError, ValidationError
from seo_dashboard.models import execute_query, new_id, now_iso


def table_count(table, client_id):
    return execute_query(f"SELECT COUNT(*) FROM {table} WHERE client_id = ?", (client_id,), fetch=True)[0][0]


# ===================================================================
# CRUD
# ===================================================================

class TestClientCrud:

    def test_create_normalizes_domain(self, client_record):
        assert client_record["domain"] == "widgets.com"
        assert client_record["website"] == "https://www.widgets.com/"
        assert client_record["service_tier"] == "Starter"
        assert client_record["tier_limits"]["max_competitors"] == 3

    def test_duplicate_website(self, agency, client_record):
        with pytest.raises(ValidationError, match="already exists"):
            clients.create_client(agency["id"], "Again", "http://widgets.com")

    def test_unknown_tier(self, agency):
        with pytest.raises(ValidationError):
            clients.create_client(agency["id"], "X", "x.com", service_tier="Gold")

    def test_plan_client_cap(self, agency):
        for i in range(10):
            clients.create_client(agency["id"], f"Site {i}", f"site{i}.com")
        with pytest.raises(LimitExceededError):
            clients.create_client(agency["id"], "One too many", "site10.com")

    def test_scoped_to_agency(self, client_record):
        other = agencies.create_agency("Other", "other@agency.test")
        with pytest.raises(NotFoundError):
            clients.get_client(client_record["id"], other["id"])

    def test_list_filters(self, agency, client_record):
        clients.create_client(agency["id"], "Gears", "gears.com", service_tier="Pro", status="inactive")
        assert len(clients.list_clients(agency["id"])) == 2
        assert [c["name"] for c in clients.list_clients(agency["id"], status="inactive")] == ["Gears"]
        assert [c["name"] for c in clients.list_clients(agency["id"], service_tier="Starter")] == ["Widgets Co"]

    def test_update(self, agency, client_record):
        updated = clients.update_client(client_record["id"], agency["id"],
                                        {"service_tier": "Pro", "website": "https://widgets.co.uk", "agency_id": "x"})
        assert updated["service_tier"] == "Pro"
        assert updated["domain"] == "widgets.co.uk"
        assert updated["agency_id"] == agency["id"]
        assert updated["tier_limits"]["monthly_keywords"] == 200

    def test_update_rejects_bad_status(self, agency, client_record):
        with pytest.raises(ValidationError):
            clients.update_client(client_record["id"], agency["id"], {"status": "paused"})

    def test_delete_cascades(self, agency, client_record):
        tasks.create_task(client_record["id"], "Fix titles")
        execute_query(
            "INSERT INTO tracked_keywords (id, client_id, keyword, created_at) VALUES (?, ?, ?, ?)",
            (new_id(), client_record["id"], "widgets", now_iso())
        )

        clients.delete_client(client_record["id"], agency["id"])

        with pytest.raises(NotFoundError):
            clients.get_client(client_record["id"])
        assert table_count("tasks", client_record["id"]) == 0
        assert table_count("tracked_keywords", client_record["id"]) == 0


class TestTierLimits:

    def test_legacy_limits(self):
        limits = clients.get_tier_limits("Legacy")
        assert limits == {
            "monthly_keywords": 25,
            "audit_interval_days": 90,
            "rank_check_interval_days": 30,
            "max_competitors": 1,
        }

    def test_unknown_tier_falls_back_to_starter(self):
        assert clients.get_tier_limits("Gold") == clients.get_tier_limits("Starter")


# ===================================================================
# Dashboard
# ===================================================================

class TestDashboard:

    def test_rollup(self, agency, client_record):
        clients.create_client(agency["id"], "Gears", "gears.com", service_tier="Pro", status="inactive")
        execute_query(
            """INSERT INTO audit_runs (id, client_id, overall_score, technical_score, content_score,
                                       backlink_score, ux_score, pages_analyzed, source, created_at)
               VALUES (?, ?, 72, 70, 65, 0, 80, 1, 'api', ?)""",
            ("audit-1", client_record["id"], now_iso())
        )
        execute_query("UPDATE clients SET last_audit_score = 72 WHERE id = ?", (client_record["id"],))
        task = tasks.create_task(client_record["id"], "Fix titles")
        tasks.create_task(client_record["id"], "Add alt text")
        for status in ("approved", "in-progress", "completed"):
            tasks.update_task_status(task["id"], status)

        dashboard = clients.get_dashboard_analytics(agency["id"])

        assert dashboard["totalClients"] == 2
        assert dashboard["activeClients"] == 1
        assert dashboard["activeAudits"] == 1
        assert dashboard["pendingTasks"] == 1
        assert dashboard["completedTasksThisMonth"] == 1
        assert dashboard["averageAuditScore"] == 72
        assert dashboard["tierBreakdown"]["Pro"] == 1
        assert dashboard["recentAudits"][0]["client"] == "Widgets Co"
        assert dashboard["apiSpend"]["budget"] == 50.0
