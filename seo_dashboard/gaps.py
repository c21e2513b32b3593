"""Keyword gap analysis between a client and one of its competitors."""

import logging
from typing import List

from . import agencies
from .models import execute_query, fetch_all, new_id, now_iso, transaction
from .scoring import (
    NOT_RANKING, classify_gap, difficulty_from_competition, gap_opportunity_score
)

logger = logging.getLogger(__name__)

COMPETITOR_MAX_RANK = 20
MIN_VOLUME = 50
MIN_OPPORTUNITY = 20
MAX_GAPS = 50


def _rank_of(item: dict) -> int:
    return ((item.get('ranked_serp_element') or {}).get('serp_item') or {}).get('rank_group') or NOT_RANKING


def _replace_gaps(client_id: str, competitor_id: str, gaps: List[dict]):
    """Swap the stored gaps for this competitor with the latest run"""
    created_at = now_iso()
    with transaction() as conn:
        execute_query("DELETE FROM keyword_gaps WHERE client_id = ? AND competitor_id = ?",
                      (client_id, competitor_id), conn=conn)
        for gap in gaps:
            execute_query(
                """INSERT INTO keyword_gaps (id, client_id, competitor_id, keyword, client_rank,
                                             competitor_rank, search_volume, difficulty, cpc,
                                             gap_type, opportunity, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (new_id(), client_id, competitor_id, gap['keyword'], gap['clientRank'],
                 gap['competitorRank'], gap['searchVolume'], gap['difficulty'], gap['cpc'],
                 gap['gapType'], gap['opportunity'], created_at),
                conn=conn
            )


def analyze_keyword_gaps(client: dict, competitor: dict, api) -> dict:
    """Keywords the competitor ranks for where the client is missing or behind"""
    competitor_items = api.ranked_keywords(
        competitor['domain'],
        filters=[["ranked_serp_element.serp_item.rank_group", "<=", COMPETITOR_MAX_RANK]],
        limit=100,
        order_by=["keyword_data.keyword_info.search_volume,desc"],
    )

    gaps = []
    if competitor_items:
        client_ranks = {}
        for item in api.ranked_keywords(client['domain'], limit=100):
            keyword = (item.get('keyword_data') or {}).get('keyword')
            if keyword:
                client_ranks[keyword] = _rank_of(item)

        for item in competitor_items:
            data = item.get('keyword_data') or {}
            info = data.get('keyword_info') or {}
            keyword = data.get('keyword') or ''
            search_volume = info.get('search_volume') or 0
            if not keyword or search_volume < MIN_VOLUME:
                continue

            competitor_rank = _rank_of(item)
            client_rank = client_ranks.get(keyword)
            difficulty = difficulty_from_competition(info.get('competition'))
            gap_type = classify_gap(client_rank, competitor_rank)
            opportunity = gap_opportunity_score(search_volume, difficulty, client_rank, competitor_rank)

            if gap_type == 'ahead' or opportunity <= MIN_OPPORTUNITY:
                continue

            gap = {
                'keyword': keyword,
                'clientRank': client_rank,
                'competitorRank': competitor_rank,
                'searchVolume': search_volume,
                'difficulty': difficulty,
                'cpc': info.get('cpc') or 0,
                'gapType': gap_type,
                'opportunity': opportunity,
            }
            gaps.append(gap)

    gaps.sort(key=lambda g: g['opportunity'], reverse=True)
    _replace_gaps(client['id'], competitor['id'], gaps)

    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'keyword-gap-analysis', api_cost)
    logger.info("Found %d keyword gaps for %s against %s", len(gaps), client['domain'], competitor['domain'])

    return {
        'success': True,
        'gaps': gaps[:MAX_GAPS],
        'totalGaps': len(gaps),
        'apiCost': api_cost,
    }


def list_gaps(client_id: str, competitor_id: str = None, gap_type: str = None) -> List[dict]:
    query = """SELECT id, competitor_id, keyword, client_rank, competitor_rank, search_volume,
                      difficulty, cpc, gap_type, opportunity, created_at
               FROM keyword_gaps WHERE client_id = ?"""
    params = [client_id]
    if competitor_id:
        query += " AND competitor_id = ?"
        params.append(competitor_id)
    if gap_type:
        query += " AND gap_type = ?"
        params.append(gap_type)

    query += " ORDER BY opportunity DESC, search_volume DESC"
    return fetch_all(query, tuple(params))
