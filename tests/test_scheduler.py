"""Tests for job discovery and the retrying job runner."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from seo_dashboard import clients, scheduler
from seo_dashboard.errors import NotFoundError
from seo_dashboard.models import execute_query, fetch_all, new_id, now_iso


def track(client_id, keyword="blue widgets"):
    execute_query(
        "INSERT INTO tracked_keywords (id, client_id, keyword, created_at) VALUES (?, ?, ?, ?)",
        (new_id(), client_id, keyword, now_iso())
    )


def job_types(jobs):
    return [j["job_type"] for j in jobs]


# ===================================================================
# Discovery
# ===================================================================

class TestFindDueJobs:

    def test_never_audited_client(self, client_record):
        assert scheduler.find_due_jobs() == [{"client_id": client_record["id"], "job_type": "audit"}]

    def test_future_audit_not_due(self, client_record):
        execute_query("UPDATE clients SET next_audit_at = ? WHERE id = ?",
                      ((datetime.now() + timedelta(days=3)).isoformat(), client_record["id"]))
        assert scheduler.find_due_jobs() == []

    def test_rank_check_for_tracked_keywords(self, client_record):
        execute_query("UPDATE clients SET next_audit_at = ? WHERE id = ?",
                      ((datetime.now() + timedelta(days=3)).isoformat(), client_record["id"]))
        track(client_record["id"])
        assert job_types(scheduler.find_due_jobs()) == ["rank-check"]

    def test_rank_check_respects_tier_interval(self, client_record):
        track(client_record["id"])
        clients.mark_rank_check(client_record["id"])

        assert job_types(scheduler.find_due_jobs()) == ["audit"]
        later = datetime.now() + timedelta(days=15)
        assert job_types(scheduler.find_due_jobs(later)) == ["audit", "rank-check"]

    def test_inactive_clients_and_agencies_skipped(self, agency, client_record):
        execute_query("UPDATE clients SET status = 'inactive' WHERE id = ?", (client_record["id"],))
        assert scheduler.find_due_jobs() == []

        execute_query("UPDATE clients SET status = 'active' WHERE id = ?", (client_record["id"],))
        execute_query("UPDATE agencies SET subscription_status = 'cancelled' WHERE id = ?", (agency["id"],))
        assert scheduler.find_due_jobs() == []


# ===================================================================
# Execution
# ===================================================================

class TestRunJob:

    @pytest.fixture
    def job(self, client_record):
        return {"client_id": client_record["id"], "job_type": "audit"}

    def test_retries_then_succeeds(self, job, fake_api):
        sleeps = []
        with patch("seo_dashboard.scheduler._execute", side_effect=[RuntimeError("timeout"), {"apiCost": 0.5}]):
            result = scheduler.run_job(job, fake_api, max_attempts=3, backoff=0.5, sleep=sleeps.append)

        assert result["status"] == "succeeded"
        assert result["attempts"] == 2
        assert result["apiCost"] == 0.5
        assert sleeps == [0.5]
        runs = fetch_all("SELECT status, attempt FROM job_runs ORDER BY attempt")
        assert runs == [{"status": "failed", "attempt": 1}, {"status": "succeeded", "attempt": 2}]

    def test_exponential_backoff_until_exhausted(self, job, fake_api):
        sleeps = []
        with patch("seo_dashboard.scheduler._execute", side_effect=RuntimeError("down")):
            result = scheduler.run_job(job, fake_api, max_attempts=3, backoff=0.5, sleep=sleeps.append)

        assert result["status"] == "failed"
        assert result["attempts"] == 3
        assert result["error"] == "down"
        assert sleeps == [0.5, 1.0]
        assert fake_api.reset_cost.call_count == 3

    def test_budget_exceeded_is_skipped(self, agency, job, fake_api):
        execute_query("UPDATE agencies SET spend = monthly_budget WHERE id = ?", (agency["id"],))

        result = scheduler.run_job(job, fake_api, max_attempts=3, sleep=lambda s: None)

        assert result["status"] == "skipped"
        assert result["attempts"] == 1
        assert fetch_all("SELECT status FROM job_runs") == [{"status": "skipped"}]

    def test_dashboard_errors_are_not_retried(self, job, fake_api):
        sleeps = []
        with patch("seo_dashboard.scheduler._execute", side_effect=NotFoundError("Client not found")):
            result = scheduler.run_job(job, fake_api, max_attempts=3, sleep=sleeps.append)

        assert result["status"] == "failed"
        assert result["attempts"] == 1
        assert sleeps == []

    def test_retried_audit_stores_one_run(self, job, api):
        with patch("seo_dashboard.tasks.generate_tasks_from_issues",
                   side_effect=[RuntimeError("database is locked"), []]):
            result = scheduler.run_job(job, api, max_attempts=2, sleep=lambda s: None)

        assert result["status"] == "succeeded"
        assert result["attempts"] == 2
        runs = fetch_all("SELECT id FROM audit_runs WHERE client_id = ?", (job["client_id"],))
        assert len(runs) == 1
        assert clients.get_client(job["client_id"])["last_audit_id"] == runs[0]["id"]


class TestRunDueJobs:

    def test_audits_due_clients(self, client_record, api):
        summary = scheduler.run_due_jobs(api, max_attempts=1)

        assert summary["total"] == 1
        assert summary["succeeded"] == 1
        assert clients.get_client(client_record["id"])["last_audit_score"] is not None
        assert scheduler.find_due_jobs() == []

    def test_nothing_due(self, api):
        summary = scheduler.run_due_jobs(api)
        assert summary == {"total": 0, "succeeded": 0, "failed": 0, "skipped": 0, "jobs": []}
