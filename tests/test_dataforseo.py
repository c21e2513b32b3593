"""
Tests for the DataForSEO client.

The HTTP session is a mock; no request leaves the process.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import requests
from urllib3.response import HTTPResponse

from seo_dashboard import mock_data
from seo_dashboard.config import Config
from seo_dashboard.dataforseo import TOOL_PREFIX, DataForSEOClient, build_session
from seo_dashboard.models import execute_query

OVERVIEW_RESULT = {"items": [{"keyword": "widgets", "keyword_info": {"search_volume": 900}}]}


def make_response(result=None, status_code=200, body=None):
    response = MagicMock()
    response.ok = 200 <= status_code < 400
    response.status_code = status_code
    response.json.return_value = body if body is not None else {"result": result}
    return response


def make_session(response):
    session = MagicMock()
    session.post.return_value = response
    return session


# ===================================================================
# Live calls
# ===================================================================

class TestLiveCalls:

    def test_posts_prefixed_tool_name(self):
        session = make_session(make_response(OVERVIEW_RESULT))
        client = DataForSEOClient(base_url="http://proxy/mcp/call", mode="live", session=session, cache_ttl=0)

        client.keyword_overview("widgets")

        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert url == "http://proxy/mcp/call"
        assert payload["method"] == f"{TOOL_PREFIX}dataforseo_labs_google_keyword_overview"
        assert payload["params"]["keywords"] == ["widgets"]
        assert payload["params"]["location_name"] == client.location

    def test_successful_call_is_charged(self):
        client = DataForSEOClient(mode="live", session=make_session(make_response(OVERVIEW_RESULT)), cache_ttl=0)

        item = client.keyword_overview("widgets")

        assert item["keyword_info"]["search_volume"] == 900
        assert client.total_cost == 0.02
        assert client.reset_cost() == 0.02
        assert client.total_cost == 0.0

    def test_cost_override(self):
        serp = {"items": [{"keyword": "widgets", "items": [{"type": "organic", "rank_group": 1}]}]}
        client = DataForSEOClient(mode="live", session=make_session(make_response(serp)), cache_ttl=0)

        items = client.serp_organic("widgets", depth=20, people_also_ask_click_depth=3, cost=1.5)

        assert items == [{"type": "organic", "rank_group": 1}]
        assert client.total_cost == 1.5

    def test_http_error_returns_none(self):
        client = DataForSEOClient(mode="live", session=make_session(make_response(status_code=500)), cache_ttl=0)

        assert client.serp_organic("widgets") is None
        assert client.total_cost == 0.0

    def test_missing_result_returns_none(self):
        session = make_session(make_response(body={"error": "quota"}))
        client = DataForSEOClient(mode="live", session=session, cache_ttl=0)

        assert client.domain_rank_overview("widgets.com") is None
        assert client.ranked_keywords("widgets.com") == []

    def test_connection_error_returns_none(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        client = DataForSEOClient(mode="live", session=session, cache_ttl=0)

        assert client.on_page_instant_pages("https://widgets.com/") is None


class TestSession:

    def test_retries_transient_statuses(self):
        retry = build_session(max_retries=4, backoff=0.25).get_adapter("https://api.dataforseo.com").max_retries

        assert retry.total == 4
        assert retry.backoff_factor == 0.25
        assert set(retry.status_forcelist) == {429, 500, 502, 503, 504}
        assert "POST" in retry.allowed_methods
        assert retry.raise_on_status is False

    def test_backoff_doubles_per_failed_attempt(self):
        retry = build_session(max_retries=4, backoff=0.25).get_adapter("https://api.dataforseo.com").max_retries

        waits = []
        for _ in range(3):
            retry = retry.increment(method="POST", url="/v3/tool", response=HTTPResponse(status=503))
            waits.append(retry.get_backoff_time())

        assert waits == [0, 0.5, 1.0]

    def test_defaults_from_config(self):
        session = build_session()

        for prefix in ("http://example.com", "https://example.com"):
            retry = session.get_adapter(prefix).max_retries
            assert retry.total == Config.MAX_RETRIES
            assert retry.backoff_factor == Config.RETRY_BACKOFF

    def test_client_builds_retrying_session(self):
        client = DataForSEOClient(mode="live", cache_ttl=0)
        assert client.session.get_adapter("https://api.dataforseo.com").max_retries.total == Config.MAX_RETRIES


# ===================================================================
# Modes
# ===================================================================

class TestModes:

    def test_auto_falls_back_to_mock_for_free(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        client = DataForSEOClient(mode="auto", session=session, cache_ttl=0)

        items = client.serp_organic("industrial widgets", depth=10)

        assert len(items) == 10
        assert client.total_cost == 0.0
        assert client.calls[-1]["source"] == "mock"

    def test_mock_mode_never_posts(self):
        session = MagicMock()
        client = DataForSEOClient(mode="mock", session=session, cache_ttl=0)

        assert client.competitors_domain("widgets.com")
        session.post.assert_not_called()

    def test_mock_data_is_deterministic(self):
        first = DataForSEOClient(mode="mock", cache_ttl=0).ranked_keywords("widgets.com", limit=5)
        second = DataForSEOClient(mode="mock", cache_ttl=0).ranked_keywords("widgets.com", limit=5)
        assert first == second


# ===================================================================
# Cache
# ===================================================================

class TestCache:

    def test_cache_hit_is_free(self):
        session = make_session(make_response(OVERVIEW_RESULT))
        client = DataForSEOClient(mode="live", session=session, cache_ttl=3600)

        first = client.keyword_overview("widgets")
        second = client.keyword_overview("widgets")

        assert first == second
        assert session.post.call_count == 1
        assert client.total_cost == 0.02
        assert client.calls[-1]["source"] == "cache"

    def test_purge_expired_cache(self):
        past = (datetime.now() - timedelta(hours=1)).isoformat()
        execute_query(
            "INSERT INTO api_cache (cache_key, method, response, created_at, expires_at) VALUES (?, ?, ?, ?, ?)",
            ("stale", "backlinks_bulk_ranks", "{}", past, past)
        )

        DataForSEOClient.purge_expired_cache()

        assert execute_query("SELECT COUNT(*) FROM api_cache", fetch=True)[0][0] == 0


# ===================================================================
# Mock filters
# ===================================================================

class TestMockFilters:

    def test_and_filters(self):
        items = [{"a": {"b": n}} for n in (5, 12, 20, 25)]
        filters = [["a.b", ">", 10], "and", ["a.b", "<=", 20]]
        assert [i["a"]["b"] for i in mock_data.apply_filters(items, filters)] == [12, 20]

    def test_or_filters(self):
        items = [{"v": n} for n in (1, 2, 3)]
        filters = [["v", "=", 1], "or", ["v", "=", 3]]
        assert [i["v"] for i in mock_data.apply_filters(items, filters)] == [1, 3]

    def test_ranked_keywords_respect_page_two_filter(self):
        result = mock_data.generate("dataforseo_labs_google_ranked_keywords", {
            "target": "widgets.com",
            "filters": [["ranked_serp_element.serp_item.rank_group", ">", 10], "and",
                        ["ranked_serp_element.serp_item.rank_group", "<=", 20]],
        })
        ranks = [i["ranked_serp_element"]["serp_item"]["rank_group"] for i in result["items"]]
        assert all(10 < r <= 20 for r in ranks)

    def test_unknown_method(self):
        assert mock_data.generate("no_such_tool", {}) is None
