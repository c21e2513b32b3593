"""
Keyword math shared by rank tracking, opportunity finding and gap analysis.

CTR values are organic click-through rates by SERP position (positions 1-10);
anything below the first page is treated as 0.5%.
"""

import math
import re
from typing import Optional, Tuple

CTR_BY_POSITION = {
    1: 0.315, 2: 0.159, 3: 0.101, 4: 0.072, 5: 0.053,
    6: 0.041, 7: 0.032, 8: 0.026, 9: 0.022, 10: 0.019,
}
DEEP_POSITION_CTR = 0.005
TOP_THREE_CTR = 0.20
UNRANKED_TOP_THREE_CTR = 0.15
NOT_RANKING = 100


def round_half_up(value: float) -> int:
    """Nearest integer, halves rounded up."""
    return math.floor(value + 0.5)


def ctr_for_position(position: int) -> float:
    if position <= 10:
        return CTR_BY_POSITION.get(position, 0.01)
    return DEEP_POSITION_CTR


def estimate_traffic(search_volume: int, position: int) -> int:
    """Monthly organic visits expected at a position."""
    return round_half_up(search_volume * ctr_for_position(position))


def difficulty_from_competition(competition: Optional[float]) -> int:
    return round_half_up((competition or 0) * 100)


def keyword_opportunity_score(search_volume: int, current_position: int,
                              difficulty: int, cpc: float) -> int:
    # striking distance (page two) counts double
    position_weight = 2 if 10 < current_position <= 20 else 1
    volume_score = min(search_volume / 1000, 100)
    difficulty_penalty = (100 - difficulty) / 100
    value_bonus = min(cpc * 10, 50)

    score = volume_score * position_weight * difficulty_penalty + value_bonus
    return min(round_half_up(score), 100)


def opportunity_reason(current_position: int, search_volume: int,
                       difficulty: int, traffic_value: float) -> str:
    if 10 < current_position <= 20:
        return "quick-win"
    if traffic_value > 100:
        return "high-value"
    if difficulty < 50:
        return "low-hanging"
    if search_volume > 1000:
        return "high-value"
    return "quick-win"


def gap_opportunity_score(search_volume: int, difficulty: int,
                          client_rank: Optional[int], competitor_rank: int) -> int:
    volume_score = min(search_volume / 100, 100)
    difficulty_penalty = (100 - difficulty) / 100

    if client_rank is None:
        rank_bonus = 50
    else:
        rank_bonus = min((client_rank - competitor_rank) * 2, 50)

    score = volume_score * difficulty_penalty + rank_bonus
    return min(max(round_half_up(score), 0), 100)


def classify_gap(client_rank: Optional[int], competitor_rank: int) -> str:
    if client_rank is None:
        return "missing"
    if client_rank > competitor_rank:
        return "behind"
    return "ahead"


def position_trend(current: int, previous: Optional[int]) -> Tuple[str, int]:
    """Trend label and position change; a smaller position number is better."""
    if previous is None:
        previous = current
    change = previous - current
    if change > 0:
        return "up", change
    if change < 0:
        return "down", change
    return "stable", 0


def normalize_domain(url: str) -> str:
    """Bare host from a URL or domain: no scheme, no www., no path."""
    domain = re.sub(r'^https?://', '', (url or '').strip(), flags=re.IGNORECASE)
    domain = re.sub(r'^www\.', '', domain, flags=re.IGNORECASE)
    return domain.split('/')[0].lower()


def slugify(text: str) -> str:
    return re.sub(r'\s+', '-', text.strip().lower())
