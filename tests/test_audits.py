"""Tests for running, storing and comparing site audits."""

from datetime import datetime
from unittest.mock import patch

import pytest

from seo_dashboard import audits, clients
from seo_dashboard.crawler import Crawler
from seo_dashboard.errors import NotFoundError, ValidationError
from seo_dashboard.models import fetch_all

PAGE = """
<html><head><title>Widgets</title></head>
<body><h1>Widgets</h1><p>Industrial widgets made to order.</p><img src="/a.png"></body></html>
"""


class TestRunFullAudit:

    def test_api_source(self, client_record, api):
        result = audits.run_full_audit(client_record, api)

        assert result["success"] is True
        assert result["source"] == "api"
        assert 0 <= result["overallScore"] <= 100
        assert result["apiCost"] == 0

        client = clients.get_client(client_record["id"])
        assert client["last_audit_id"] == result["auditId"]
        assert datetime.fromisoformat(client["next_audit_at"]) > datetime.now()
        assert fetch_all("SELECT endpoint FROM api_usage") == [{"endpoint": "full-audit"}]

    def test_crawl_source(self, client_record, api, crawler):
        crawler.crawl.return_value = [Crawler(delay=0).parse("https://www.widgets.com/", PAGE)]

        result = audits.run_full_audit(client_record, api, source="crawl", crawler=crawler, max_pages=5)

        assert result["pagesAnalyzed"] == 1
        crawler.crawl.assert_called_once_with("https://www.widgets.com/", max_pages=5)

    def test_unknown_source(self, client_record, api):
        with pytest.raises(ValidationError):
            audits.run_full_audit(client_record, api, source="ftp")

    def test_failed_write_leaves_nothing_behind(self, client_record, api):
        with patch("seo_dashboard.tasks.generate_tasks_from_issues", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                audits.run_full_audit(client_record, api)

        for table in ("audit_runs", "technical_issues", "meta_tags", "content_scores"):
            assert fetch_all(f"SELECT id FROM {table}") == []
        assert clients.get_client(client_record["id"])["last_audit_id"] is None
        # the upstream charge still happened
        assert fetch_all("SELECT endpoint FROM api_usage") == [{"endpoint": "full-audit"}]


class TestAuditHistory:

    def test_get_and_list(self, agency, client_record, api):
        first = audits.run_full_audit(client_record, api)
        audits.run_full_audit(client_record, api)

        audit = audits.get_audit(first["auditId"], agency["id"])
        assert audit["client"]["domain"] == "widgets.com"
        assert len(audit["technical_issues"]) == first["technicalIssuesCount"]
        assert len(audits.list_audits(client_record["id"])) == 2

    def test_missing(self):
        with pytest.raises(NotFoundError):
            audits.get_audit("nope")

    def test_compare_same_client(self, client_record, api):
        base = audits.run_full_audit(client_record, api)["auditId"]
        target = audits.run_full_audit(client_record, api)["auditId"]

        diff = audits.compare_audits(base, target)

        assert diff["clientId"] == client_record["id"]
        # mock responses are deterministic, so nothing changes
        assert set(diff["changes"].values()) == {0}
        assert diff["resolvedIssues"] == diff["newIssues"] == []

    def test_compare_across_clients(self, agency, client_record, api):
        other = clients.create_client(agency["id"], "Gears", "gears.com")
        base = audits.run_full_audit(client_record, api)["auditId"]
        target = audits.run_full_audit(other, api)["auditId"]

        with pytest.raises(ValidationError):
            audits.compare_audits(base, target)
