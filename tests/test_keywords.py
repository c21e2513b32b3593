"""
Tests for rank tracking and opportunity finding.

Upstream payloads are scripted on a MagicMock so positions and volumes are exact.
"""

import pytest

from seo_dashboard import agencies, clients, keywords
from seo_dashboard.errors import LimitExceededError, NotFoundError, ValidationError
from seo_dashboard.models import fetch_all

OVERVIEW = {"keyword_info": {"search_volume": 1000, "competition": 0.45, "cpc": 2.5}}


def serp(position=4, domain="www.widgets.com", **features):
    items = [{"type": "featured_snippet", "domain": "encyclopedia.org"}]
    for rank in range(1, 11):
        own = rank == position
        item = {
            "type": "organic",
            "rank_group": rank,
            "domain": domain if own else f"rival{rank}.com",
            "url": f"https://{domain}/blue-widgets" if own else f"https://rival{rank}.com/",
        }
        if own:
            item.update(features)
        items.append(item)
    return items


@pytest.fixture
def ranking_api(fake_api):
    fake_api.keyword_overview.return_value = OVERVIEW
    fake_api.serp_organic.return_value = serp(4, faq={"items": []})
    fake_api.reset_cost.return_value = 0.52
    return fake_api


# ===================================================================
# Tracking
# ===================================================================

class TestTrackKeywords:

    def test_position_of_clients_own_domain(self, client_record, ranking_api):
        result = keywords.track_keywords(client_record, ["blue widgets"], ranking_api)

        entry, = result["results"]
        assert entry["position"] == 4
        assert entry["url"] == "https://www.widgets.com/blue-widgets"
        assert entry["serpFeatures"] == ["FAQ"]
        assert entry["difficulty"] == 45
        assert entry["estimatedTraffic"] == 72
        assert result["apiCost"] == 0.52
        assert result["keywordsChecked"] == 1
        ranking_api.serp_organic.assert_called_once_with("blue widgets", depth=50, location=None, language=None)

    def test_not_ranking_defaults_to_100(self, client_record, ranking_api):
        ranking_api.serp_organic.return_value = serp(position=0)

        entry, = keywords.track_keywords(client_record, ["blue widgets"], ranking_api)["results"]

        assert entry["position"] == 100
        assert entry["url"] == ""
        assert entry["estimatedTraffic"] == 5

    def test_spend_and_rank_check_recorded(self, agency, client_record, ranking_api):
        keywords.track_keywords(client_record, ["blue widgets"], ranking_api)

        assert agencies.get_agency(agency["id"])["spend"] == 0.52
        usage = fetch_all("SELECT endpoint, client_id FROM api_usage")
        assert usage == [{"endpoint": "keyword-tracking", "client_id": client_record["id"]}]
        assert clients.get_client(client_record["id"])["last_rank_check_at"] is not None

    def test_failed_keyword_does_not_abort_batch(self, client_record, ranking_api):
        def overview(keyword, location, language):
            if keyword == "broken":
                raise RuntimeError("upstream exploded")
            return OVERVIEW
        ranking_api.keyword_overview.side_effect = overview

        results = keywords.track_keywords(client_record, ["broken", "blue widgets"], ranking_api)["results"]

        assert results[0] == {"keyword": "broken", "error": "Failed to check ranking"}
        assert results[1]["position"] == 4

    def test_missing_serp_is_an_error_entry(self, client_record, ranking_api):
        ranking_api.serp_organic.return_value = None

        entry, = keywords.track_keywords(client_record, ["blue widgets"], ranking_api)["results"]

        assert entry == {"keyword": "blue widgets", "error": "Failed to check ranking"}
        assert keywords.list_tracked_keywords(client_record["id"]) == []

    def test_empty_list(self, client_record, ranking_api):
        with pytest.raises(ValidationError):
            keywords.track_keywords(client_record, ["", "  "], ranking_api)

    def test_duplicates_are_checked_once(self, client_record, ranking_api):
        result = keywords.track_keywords(client_record, ["blue widgets", " blue widgets "], ranking_api)
        assert result["keywordsChecked"] == 1

    def test_tier_keyword_cap(self, agency, ranking_api):
        legacy = clients.create_client(agency["id"], "Old Site", "old.com", service_tier="Legacy")
        with pytest.raises(LimitExceededError):
            keywords.track_keywords(legacy, [f"kw {i}" for i in range(26)], ranking_api)
        ranking_api.serp_organic.assert_not_called()

    def test_recheck_of_tracked_keywords_fits_cap(self, agency, ranking_api):
        legacy = clients.create_client(agency["id"], "Old Site", "old.com", service_tier="Legacy")
        batch = [f"kw {i}" for i in range(25)]
        keywords.track_keywords(legacy, batch, ranking_api)
        keywords.track_keywords(legacy, batch, ranking_api)
        assert len(keywords.list_tracked_keywords(legacy["id"])) == 25


# ===================================================================
# Tracked keyword views
# ===================================================================

class TestTrackedKeywords:

    def test_trend_from_last_two_checks(self, client_record, ranking_api):
        ranking_api.serp_organic.return_value = serp(8)
        keywords.track_keywords(client_record, ["blue widgets"], ranking_api)
        ranking_api.serp_organic.return_value = serp(4)
        keywords.track_keywords(client_record, ["blue widgets"], ranking_api)

        kw, = keywords.list_tracked_keywords(client_record["id"])

        assert kw["currentPosition"] == 4
        assert kw["previousPosition"] == 8
        assert kw["bestPosition"] == 4
        assert kw["trend"] == "up"
        assert kw["positionChange"] == 4
        assert kw["searchVolume"] == 1000

    def test_history_and_delete(self, agency, client_record, ranking_api):
        keywords.track_keywords(client_record, ["blue widgets"], ranking_api)
        kw, = keywords.list_tracked_keywords(client_record["id"])

        history = keywords.get_keyword_history(kw["id"], agency["id"])
        assert [h["rank"] for h in history["history"]] == [4]

        keywords.delete_keyword(kw["id"], agency["id"])
        with pytest.raises(NotFoundError):
            keywords.get_keyword_history(kw["id"])

    def test_history_scoped_to_agency(self, client_record, ranking_api):
        keywords.track_keywords(client_record, ["blue widgets"], ranking_api)
        kw, = keywords.list_tracked_keywords(client_record["id"])
        other = agencies.create_agency("Other", "other@agency.test")
        with pytest.raises(NotFoundError):
            keywords.get_keyword_history(kw["id"], other["id"])


# ===================================================================
# Opportunities
# ===================================================================

def ranked(keyword, volume, competition, cpc, rank):
    return {
        "keyword_data": {"keyword": keyword,
                         "keyword_info": {"search_volume": volume, "competition": competition, "cpc": cpc}},
        "ranked_serp_element": {"serp_item": {"rank_group": rank}},
    }


def idea(keyword, volume, competition, cpc):
    return {"keyword": keyword, "keyword_info": {"search_volume": volume, "competition": competition, "cpc": cpc}}


class TestOpportunities:

    def test_page_two_and_idea_opportunities(self, client_record, fake_api):
        fake_api.ranked_keywords.return_value = [
            ranked("industrial widgets", 40000, 0.2, 3.0, 12),
            ranked("tiny widgets", 40, 0.1, 9.0, 14),
            ranked("cheap widgets", 600, 0.9, 0.1, 15),
        ]
        fake_api.keyword_ideas.return_value = [
            idea("widget suppliers", 30000, 0.1, 2.0),
            idea("industrial widgets", 30000, 0.1, 2.0),
            idea("widget trivia", 150, 0.1, 0.2),
        ]
        fake_api.reset_cost.return_value = 3.0

        result = keywords.find_opportunities(client_record, fake_api)

        found = {o["keyword"]: o for o in result["opportunities"]}
        assert list(found) == ["industrial widgets", "widget suppliers"]

        page_two = found["industrial widgets"]
        assert page_two["opportunityScore"] == 94
        assert page_two["potentialTraffic"] == 7800
        assert page_two["trafficValue"] == 23400.0
        assert page_two["reason"] == "quick-win"
        assert page_two["currentPosition"] == 12

        gap = found["widget suppliers"]
        assert gap["opportunityScore"] == 47
        assert gap["potentialTraffic"] == 4500
        assert gap["reason"] == "competitor-gap"
        assert gap["currentPosition"] == 100

        assert result["apiCost"] == 3.0
        assert result["totalFound"] == 2
        seeds = fake_api.keyword_ideas.call_args.args[0]
        assert seeds == ["industrial widgets"]

    def test_seeds_from_domain_when_nothing_ranks(self, client_record, fake_api):
        fake_api.ranked_keywords.return_value = []
        fake_api.keyword_ideas.return_value = []

        result = keywords.find_opportunities(client_record, fake_api)

        assert result["opportunities"] == []
        assert fake_api.keyword_ideas.call_args.args[0] == ["widgets"]
