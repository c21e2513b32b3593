"""
Keyword rank tracking and opportunity finding
"""

import logging
from typing import List

from . import agencies, clients
from .errors import LimitExceededError, NotFoundError, ValidationError
from .models import execute_query, fetch_all, fetch_one, new_id, now_iso
from .scoring import (
    DEEP_POSITION_CTR, NOT_RANKING, TOP_THREE_CTR, UNRANKED_TOP_THREE_CTR,
    difficulty_from_competition, estimate_traffic, keyword_opportunity_score,
    normalize_domain, opportunity_reason, position_trend, round_half_up
)

logger = logging.getLogger(__name__)

RANK_CHECK_DEPTH = 50
HISTORY_WINDOW = 30

SERP_FEATURES = {
    'featured_snippet': 'Featured Snippet',
    'faq': 'FAQ',
    'recipes': 'Recipe',
}

# Opportunity finder thresholds
PAGE_TWO_FILTERS = [
    ["ranked_serp_element.serp_item.rank_group", ">", 10],
    "and",
    ["ranked_serp_element.serp_item.rank_group", "<=", 20],
]
IDEA_FILTERS = [
    ["keyword_info.search_volume", ">", 100],
    "and",
    ["keyword_info.competition", "<", 0.7],
]
MIN_RANKED_SCORE, MIN_RANKED_VOLUME = 30, 50
MIN_IDEA_SCORE, MIN_IDEA_VOLUME = 40, 200
IDEA_SCORING_POSITION = 50
EXPAND_BELOW = 20
MAX_OPPORTUNITIES = 50


# ============================================================================
# RANK TRACKING
# ============================================================================

def _find_ranking(serp_items: List[dict], domain: str):
    """Position, URL and SERP features of the domain's first organic result"""
    for index, item in enumerate(serp_items):
        if item.get('type') != 'organic':
            continue
        if normalize_domain(item.get('domain') or item.get('url') or '') != domain:
            continue
        features = [label for key, label in SERP_FEATURES.items() if item.get(key)]
        return item.get('rank_group') or index + 1, item.get('url') or '', features
    return NOT_RANKING, '', []


def _check_keyword_limit(client: dict, keywords: List[str]):
    limit = client['tier_limits']['monthly_keywords']
    tracked = {r['keyword'] for r in fetch_all(
        "SELECT keyword FROM tracked_keywords WHERE client_id = ?", (client['id'],))}
    new = {k for k in keywords if k not in tracked}
    if len(tracked) + len(new) > limit:
        raise LimitExceededError(
            f"{client['service_tier']} tier tracks at most {limit} keywords "
            f"({len(tracked)} tracked, {len(new)} new)"
        )


def track_keywords(client: dict, keywords: List[str], api, location: str = None,
                   language: str = None) -> dict:
    """Check current rankings for keywords and append them to the ranking history"""
    keywords = [k.strip() for k in keywords or [] if k and k.strip()]
    if not keywords:
        raise ValidationError("Keywords are required")
    keywords = list(dict.fromkeys(keywords))
    _check_keyword_limit(client, keywords)

    results = []
    for keyword in keywords:
        try:
            results.append(_track_keyword(client, keyword, api, location, language))
        except Exception:
            logger.exception("Error processing keyword %r for client %s", keyword, client['id'])
            results.append({'keyword': keyword, 'error': 'Failed to check ranking'})

    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'keyword-tracking', api_cost)
    clients.mark_rank_check(client['id'])

    return {
        'success': True,
        'results': results,
        'apiCost': api_cost,
        'keywordsChecked': len(keywords),
    }


def _track_keyword(client: dict, keyword: str, api, location: str, language: str) -> dict:
    overview = api.keyword_overview(keyword, location, language) or {}
    info = overview.get('keyword_info') or {}
    search_volume = info.get('search_volume') or 0
    difficulty = difficulty_from_competition(info.get('competition'))
    cpc = info.get('cpc') or 0

    serp = api.serp_organic(keyword, depth=RANK_CHECK_DEPTH, location=location, language=language)
    if serp is None:
        return {'keyword': keyword, 'error': 'Failed to check ranking'}

    position, url, features = _find_ranking(serp, client['domain'])
    traffic = estimate_traffic(search_volume, position)
    now = now_iso()

    tracked = fetch_one("SELECT id FROM tracked_keywords WHERE client_id = ? AND keyword = ?",
                        (client['id'], keyword))
    if tracked:
        keyword_id = tracked['id']
        execute_query(
            """UPDATE tracked_keywords SET volume = ?, difficulty = ?, cpc = ?, url = ?, updated_at = ?
               WHERE id = ?""",
            (search_volume, difficulty, cpc, url, now, keyword_id)
        )
    else:
        keyword_id = new_id()
        execute_query(
            """INSERT INTO tracked_keywords (id, client_id, keyword, volume, difficulty, cpc, url, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (keyword_id, client['id'], keyword, search_volume, difficulty, cpc, url, now)
        )

    execute_query(
        """INSERT INTO ranking_history (id, keyword_id, rank, url, serp_features, estimated_traffic, checked_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (new_id(), keyword_id, position, url, ', '.join(features) or None, traffic, now)
    )

    return {
        'keyword': keyword,
        'position': position,
        'url': url,
        'searchVolume': search_volume,
        'difficulty': difficulty,
        'cpc': cpc,
        'estimatedTraffic': traffic,
        'serpFeatures': features,
    }


def list_tracked_keywords(client_id: str) -> List[dict]:
    """Tracked keywords with current, previous and best positions"""
    tracked = fetch_all(
        """SELECT id, keyword, volume, difficulty, cpc, url, created_at
           FROM tracked_keywords WHERE client_id = ? ORDER BY keyword""",
        (client_id,)
    )

    keywords = []
    for kw in tracked:
        rankings = fetch_all(
            """SELECT rank, url, serp_features, estimated_traffic, checked_at
               FROM ranking_history WHERE keyword_id = ?
               ORDER BY checked_at DESC LIMIT ?""",
            (kw['id'], HISTORY_WINDOW)
        )
        latest = rankings[0] if rankings else None
        current = latest['rank'] if latest else NOT_RANKING
        previous = rankings[1]['rank'] if len(rankings) > 1 else None
        trend, change = position_trend(current, previous)

        keywords.append({
            'id': kw['id'],
            'keyword': kw['keyword'],
            'currentPosition': current,
            'previousPosition': current if previous is None else previous,
            'bestPosition': min([r['rank'] for r in rankings if r['rank'] > 0] + [current]),
            'url': (latest or {}).get('url') or kw['url'] or '',
            'searchVolume': kw['volume'],
            'difficulty': kw['difficulty'],
            'cpc': kw['cpc'],
            'traffic': (latest or {}).get('estimated_traffic') or 0,
            'trend': trend,
            'positionChange': change,
            'serpFeatures': [f for f in ((latest or {}).get('serp_features') or '').split(', ') if f],
            'lastChecked': (latest or {}).get('checked_at'),
        })

    return keywords


def _get_tracked_keyword(keyword_id: str, agency_id: str = None) -> dict:
    query = """SELECT k.id, k.client_id, k.keyword FROM tracked_keywords k
               JOIN clients c ON c.id = k.client_id WHERE k.id = ?"""
    params = [keyword_id]
    if agency_id:
        query += " AND c.agency_id = ?"
        params.append(agency_id)
    keyword = fetch_one(query, tuple(params))
    if not keyword:
        raise NotFoundError("Keyword not found")
    return keyword


def get_keyword_history(keyword_id: str, agency_id: str = None, limit: int = 90) -> dict:
    keyword = _get_tracked_keyword(keyword_id, agency_id)
    keyword['history'] = fetch_all(
        """SELECT rank, url, serp_features, estimated_traffic, checked_at
           FROM ranking_history WHERE keyword_id = ?
           ORDER BY checked_at DESC LIMIT ?""",
        (keyword_id, limit)
    )
    return keyword


def delete_keyword(keyword_id: str, agency_id: str = None):
    _get_tracked_keyword(keyword_id, agency_id)
    execute_query("DELETE FROM ranking_history WHERE keyword_id = ?", (keyword_id,))
    execute_query("DELETE FROM tracked_keywords WHERE id = ?", (keyword_id,))


# ============================================================================
# OPPORTUNITIES
# ============================================================================

def _opportunity(keyword, position, search_volume, difficulty, cpc, competition,
                 potential_traffic, score, reason) -> dict:
    return {
        'keyword': keyword,
        'currentPosition': position,
        'searchVolume': search_volume,
        'difficulty': difficulty,
        'cpc': cpc,
        'potentialTraffic': potential_traffic,
        'trafficValue': round(potential_traffic * cpc, 2),
        'competitorCount': difficulty_from_competition(competition),
        'opportunityScore': score,
        'reason': reason,
    }


def find_opportunities(client: dict, api) -> dict:
    """Page-two keywords worth pushing, topped up with unranked keyword ideas"""
    opportunities = []

    ranked = api.ranked_keywords(
        client['domain'],
        filters=PAGE_TWO_FILTERS,
        limit=50,
        order_by=["keyword_data.keyword_info.search_volume,desc"],
    )
    for item in ranked:
        data = item.get('keyword_data') or {}
        info = data.get('keyword_info') or {}
        search_volume = info.get('search_volume') or 0
        cpc = info.get('cpc') or 0
        competition = info.get('competition') or 0
        difficulty = difficulty_from_competition(competition)
        position = ((item.get('ranked_serp_element') or {}).get('serp_item') or {}).get('rank_group') or NOT_RANKING

        potential = round_half_up(search_volume * (TOP_THREE_CTR - DEEP_POSITION_CTR))
        score = keyword_opportunity_score(search_volume, position, difficulty, cpc)
        if score > MIN_RANKED_SCORE and search_volume > MIN_RANKED_VOLUME:
            opportunities.append(_opportunity(
                data.get('keyword') or '', position, search_volume, difficulty, cpc, competition,
                potential, score, opportunity_reason(position, search_volume, difficulty, potential * cpc)
            ))

    if len(opportunities) < EXPAND_BELOW:
        seeds = [o['keyword'] for o in opportunities[:3]]
        ideas = api.keyword_ideas(
            seeds or [client['domain'].split('.')[0]],
            filters=IDEA_FILTERS,
            limit=30,
            order_by=["keyword_info.search_volume,desc"],
        )
        known = {o['keyword'] for o in opportunities}
        for item in ideas:
            info = item.get('keyword_info') or {}
            search_volume = info.get('search_volume') or 0
            cpc = info.get('cpc') or 0
            competition = info.get('competition') or 0
            difficulty = difficulty_from_competition(competition)

            score = keyword_opportunity_score(search_volume, IDEA_SCORING_POSITION, difficulty, cpc)
            keyword = item.get('keyword') or ''
            if score > MIN_IDEA_SCORE and search_volume > MIN_IDEA_VOLUME and keyword not in known:
                opportunities.append(_opportunity(
                    keyword, NOT_RANKING, search_volume, difficulty, cpc, competition,
                    round_half_up(search_volume * UNRANKED_TOP_THREE_CTR), score, 'competitor-gap'
                ))

    opportunities.sort(key=lambda o: o['opportunityScore'], reverse=True)
    opportunities = opportunities[:MAX_OPPORTUNITIES]

    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'keyword-opportunities', api_cost)

    return {
        'opportunities': opportunities,
        'apiCost': api_cost,
        'totalFound': len(opportunities),
    }
