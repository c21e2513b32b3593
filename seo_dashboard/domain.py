"""Standalone domain overview: traffic, top keywords, competitors and backlinks."""

import logging
from datetime import datetime

from .errors import ValidationError
from .scoring import (
    NOT_RANKING, difficulty_from_competition, estimate_traffic, normalize_domain
)

logger = logging.getLogger(__name__)

TOP_KEYWORDS = 20
TOP_COMPETITORS = 5


def analyze_domain(domain: str, api) -> dict:
    domain = normalize_domain(domain)
    if not domain:
        raise ValidationError("Domain is required")

    overview = api.domain_rank_overview(domain) or {}
    metrics = overview.get('metrics') or {}
    organic = metrics.get('organic') or {}
    paid = metrics.get('paid') or {}

    keywords = []
    ranked = api.ranked_keywords(domain, limit=TOP_KEYWORDS,
                                 order_by=["keyword_data.keyword_info.search_volume,desc"])
    for item in ranked:
        data = item.get('keyword_data') or {}
        info = data.get('keyword_info') or {}
        serp_item = (item.get('ranked_serp_element') or {}).get('serp_item') or {}
        position = serp_item.get('rank_group') or NOT_RANKING
        volume = info.get('search_volume') or 0
        keywords.append({
            'keyword': data.get('keyword') or '',
            'position': position,
            'volume': volume,
            'difficulty': difficulty_from_competition(info.get('competition')),
            'cpc': info.get('cpc') or 0,
            'traffic': estimate_traffic(volume, position),
            'url': serp_item.get('url') or '',
        })

    competitors = []
    for item in api.competitors_domain(domain, limit=TOP_COMPETITORS + 1):
        competitor = normalize_domain(item.get('domain') or '')
        if not competitor or competitor == domain:
            continue
        comp_organic = (item.get('full_domain_metrics') or {}).get('organic') or {}
        competitors.append({
            'domain': competitor,
            'commonKeywords': item.get('intersections') or 0,
            'avgPosition': item.get('avg_position'),
            'organicTraffic': comp_organic.get('etv') or 0,
            'organicKeywords': comp_organic.get('count') or 0,
        })

    ranks = api.backlinks_bulk_ranks([domain])
    links = ranks[0] if ranks else {}

    return {
        'domain': domain,
        'traffic': {
            'totalTraffic': organic.get('etv') or 0,
            'trafficValue': organic.get('estimated_paid_traffic_cost') or 0,
            'organicKeywords': organic.get('count') or 0,
            'paidKeywords': paid.get('count') or 0,
        },
        'keywords': keywords,
        'competitors': competitors[:TOP_COMPETITORS],
        'backlinks': {
            'totalBacklinks': links.get('backlinks') or 0,
            'referringDomains': links.get('referring_domains') or 0,
            'domainAuthority': links.get('rank') or 0,
        },
        'apiCost': api.reset_cost(),
        'lastUpdated': datetime.now().isoformat(),
    }
