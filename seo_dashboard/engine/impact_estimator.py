BASE_SCORE = 50

# Score points a page earns for passing each optimization check
CHECK_POINTS = {
    "word_count": 10,
    "title_length": 8,
    "title_keyword": 10,
    "description_length": 7,
    "h2_count": 8,
    "internal_links": 5,
    "missing_alt": 2,
    "image_count": 0,
}


class ImpactEstimator:

    def estimate(self, recommendations):
        """Current and achievable page score given the failed checks"""

        failed = {rec["check"] for rec in recommendations}
        current = BASE_SCORE + sum(points for check, points in CHECK_POINTS.items() if check not in failed)
        uplift = sum(CHECK_POINTS.get(check, 0) for check in failed)
        high = sum(1 for rec in recommendations if rec.get("priority") == "high")

        return {
            "current_score": current,
            "potential_score": min(current + uplift, 100),
            "score_uplift": uplift,
            "high_priority_count": high,
            "risk_level": "low" if high < 3 else "medium",
        }
