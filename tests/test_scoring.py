"""Tests for the keyword math shared by tracking, opportunities and gaps."""

import pytest

from seo_dashboard.scoring import (
    classify_gap, ctr_for_position, difficulty_from_competition, estimate_traffic,
    gap_opportunity_score, keyword_opportunity_score, normalize_domain,
    opportunity_reason, position_trend, slugify
)


# ===================================================================
# Traffic
# ===================================================================

class TestTraffic:

    def test_first_page_ctr_curve(self):
        assert ctr_for_position(1) == 0.315
        assert ctr_for_position(10) == 0.019

    def test_beyond_first_page_is_flat(self):
        assert ctr_for_position(11) == 0.005
        assert ctr_for_position(100) == 0.005

    @pytest.mark.parametrize("volume,position,expected", [
        (1000, 1, 315),
        (1000, 4, 72),
        (1000, 15, 5),
        (0, 1, 0),
    ])
    def test_estimate_traffic(self, volume, position, expected):
        assert estimate_traffic(volume, position) == expected

    def test_halves_round_up(self):
        assert estimate_traffic(100, 15) == 1
        assert difficulty_from_competition(0.125) == 13

    def test_difficulty_from_competition(self):
        assert difficulty_from_competition(0.456) == 46
        assert difficulty_from_competition(None) == 0


# ===================================================================
# Opportunity scoring
# ===================================================================

class TestOpportunityScore:

    def test_page_two_counts_double(self):
        # 5 volume points x2 x0.6 + 20 cpc bonus
        assert keyword_opportunity_score(5000, 15, 40, 2.0) == 26
        assert keyword_opportunity_score(5000, 5, 40, 2.0) == 23

    def test_capped_at_100(self):
        assert keyword_opportunity_score(200000, 12, 0, 10.0) == 100

    def test_cpc_bonus_capped(self):
        assert keyword_opportunity_score(0, 30, 0, 99.0) == 50

    def test_half_point_rounds_up(self):
        # 5 volume points x2 + 2.5 cpc bonus
        assert keyword_opportunity_score(5000, 11, 0, 0.25) == 13

    @pytest.mark.parametrize("args,reason", [
        ((15, 500, 90, 5000), "quick-win"),
        ((5, 500, 60, 150), "high-value"),
        ((5, 500, 30, 10), "low-hanging"),
        ((5, 2000, 60, 10), "high-value"),
        ((5, 500, 60, 10), "quick-win"),
    ])
    def test_reason_precedence(self, args, reason):
        assert opportunity_reason(*args) == reason


# ===================================================================
# Gaps
# ===================================================================

class TestGaps:

    def test_missing_keyword_gets_full_bonus(self):
        assert gap_opportunity_score(5000, 40, None, 3) == 80

    def test_behind_bonus_from_rank_difference(self):
        assert gap_opportunity_score(2000, 50, 12, 2) == 30

    def test_score_never_negative(self):
        assert gap_opportunity_score(0, 0, 1, 30) == 0

    def test_score_never_above_100(self):
        assert gap_opportunity_score(50000, 0, None, 1) == 100

    def test_half_point_rounds_up(self):
        assert gap_opportunity_score(50, 0, None, 1) == 51

    def test_classify(self):
        assert classify_gap(None, 3) == "missing"
        assert classify_gap(15, 3) == "behind"
        assert classify_gap(2, 3) == "ahead"
        assert classify_gap(3, 3) == "ahead"


# ===================================================================
# Helpers
# ===================================================================

class TestHelpers:

    def test_trend(self):
        assert position_trend(5, 8) == ("up", 3)
        assert position_trend(8, 5) == ("down", -3)
        assert position_trend(5, None) == ("stable", 0)

    @pytest.mark.parametrize("raw", [
        "https://www.Widgets.com/",
        "http://widgets.com/products/blue",
        "www.widgets.com",
        "  widgets.com  ",
    ])
    def test_normalize_domain(self, raw):
        assert normalize_domain(raw) == "widgets.com"

    def test_slugify(self):
        assert slugify("  Industrial  Pumps ") == "industrial-pumps"
