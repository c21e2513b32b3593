"""
Single-page optimization against the pages ranking for its target keyword
"""

import json
import logging
from typing import List, Optional

from . import agencies
from .engine.context_builder import ContextBuilder
from .engine.impact_estimator import ImpactEstimator
from .errors import ValidationError
from .models import execute_query, fetch_all, new_id, now_iso
from .scoring import round_half_up

logger = logging.getLogger(__name__)

SERP_DEPTH = 10
SERP_COST = 1.0

# Competitor averages used when no ranking page could be analyzed
DEFAULT_AVERAGES = {
    'wordCount': 1500,
    'h2Count': 8,
    'internalLinks': 15,
    'images': 5,
    'titleLength': 60,
    'descLength': 155,
}


def _page_stats(item: Optional[dict]) -> dict:
    meta = (item or {}).get('meta') or {}
    htags = meta.get('htags') or {}
    return {
        'title': meta.get('title') or '',
        'wordCount': (meta.get('content') or {}).get('plain_text_word_count') or 0,
        'titleLength': len(meta.get('title') or ''),
        'descLength': len(meta.get('description') or ''),
        'headings': {
            'h1': len(htags.get('h1') or []),
            'h2': len(htags.get('h2') or []),
            'h3': len(htags.get('h3') or []),
        },
        'internalLinks': meta.get('internal_links_count') or 0,
        'externalLinks': meta.get('external_links_count') or 0,
        'images': meta.get('images_count') or 0,
        'missingAltTags': meta.get('images_without_alt') or 0,
    }


def competitor_averages(competitors: List[dict]) -> dict:
    if not competitors:
        return dict(DEFAULT_AVERAGES)

    def avg(values):
        return round_half_up(sum(values) / len(competitors))

    return {
        'wordCount': avg(c['wordCount'] for c in competitors),
        'h2Count': avg(c['headings']['h2'] for c in competitors),
        'internalLinks': avg(c['internalLinks'] for c in competitors),
        'images': avg(c['images'] for c in competitors),
        'titleLength': avg(c['titleLength'] for c in competitors),
        'descLength': avg(c['descLength'] for c in competitors),
    }


def _rec(check, category, priority, title, current, recommended, impact):
    return {
        'check': check,
        'category': category,
        'priority': priority,
        'title': title,
        'current': current,
        'recommended': recommended,
        'impact': impact,
    }


def build_recommendations(page: dict, averages: dict, target_keyword: str) -> List[dict]:
    recs = []

    if page['wordCount'] < averages['wordCount'] * 0.8:
        recs.append(_rec(
            'word_count', "Content Length", "high", "Increase word count to match competitors",
            f"{page['wordCount']} words",
            f"Target {averages['wordCount']} words (current top 10 average)",
            "+15% ranking potential"
        ))

    if page['titleLength'] < 30 or page['titleLength'] > 60:
        recs.append(_rec(
            'title_length', "Meta Tags", "high", "Optimize title tag length",
            f"{page['titleLength']} characters",
            f"50-60 characters (currently averaging {averages['titleLength']})",
            "+10% CTR"
        ))

    if target_keyword.lower() not in page['title'].lower():
        recs.append(_rec(
            'title_keyword', "Meta Tags", "high", "Include target keyword in title tag",
            f'Keyword "{target_keyword}" not found in title',
            f'Add "{target_keyword}" near the beginning of title',
            "+20% relevance score"
        ))

    if page['descLength'] < 120 or page['descLength'] > 160:
        recs.append(_rec(
            'description_length', "Meta Tags", "medium", "Optimize meta description length",
            f"{page['descLength']} characters",
            f"140-160 characters (currently averaging {averages['descLength']})",
            "+8% CTR"
        ))

    if page['headings']['h2'] < averages['h2Count'] * 0.7:
        recs.append(_rec(
            'h2_count', "Content Structure", "medium", "Add more H2 headings for better structure",
            f"{page['headings']['h2']} H2 headings",
            f"Target {averages['h2Count']} H2 headings",
            "+12% readability"
        ))

    if page['internalLinks'] < averages['internalLinks'] * 0.6:
        recs.append(_rec(
            'internal_links', "Internal Linking", "medium", "Increase internal linking",
            f"{page['internalLinks']} internal links",
            f"Target {averages['internalLinks']} internal links to related content",
            "+10% crawlability"
        ))

    if page['missingAltTags'] > 0:
        recs.append(_rec(
            'missing_alt', "Images", "medium", "Add alt text to all images",
            f"{page['missingAltTags']} images missing alt text",
            "Add descriptive alt text including target keyword where relevant",
            "+8% accessibility & SEO"
        ))

    if page['images'] < averages['images'] * 0.5:
        recs.append(_rec(
            'image_count', "Images", "low", "Add more relevant images",
            f"{page['images']} images",
            f"Target {averages['images']} images to improve engagement",
            "+5% user engagement"
        ))

    return recs


def optimize_page(client: dict, url: str, target_keyword: str, api) -> dict:
    if not url or not (target_keyword or '').strip():
        raise ValidationError("URL and target keyword are required")
    target_keyword = target_keyword.strip()

    page_item = api.on_page_instant_pages(url)
    page = _page_stats(page_item)

    competitors = []
    for item in (api.serp_organic(target_keyword, depth=SERP_DEPTH, cost=SERP_COST) or [])[:10]:
        if item.get('type') != 'organic' or not item.get('url'):
            continue
        comp_item = api.on_page_instant_pages(item['url'])
        if comp_item:
            stats = _page_stats(comp_item)
            stats.pop('title')
            stats.pop('missingAltTags')
            competitors.append({
                'url': item['url'],
                'rank': item.get('rank_group') or item.get('rank_absolute') or 0,
                **stats,
            })

    averages = competitor_averages(competitors)
    recommendations = build_recommendations(page, averages, target_keyword)
    impact = ImpactEstimator().estimate(recommendations)
    ctx = ContextBuilder().from_onpage(page_item) or {}

    execute_query(
        """INSERT INTO page_optimizations (id, client_id, url, target_keyword, current_score,
                                           recommendations, competitor_data, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (new_id(), client['id'], url, target_keyword, impact['current_score'],
         json.dumps(recommendations), json.dumps(competitors), now_iso())
    )

    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'page-optimization', api_cost)

    return {
        'url': url,
        'targetKeyword': target_keyword,
        'currentScore': impact['current_score'],
        'potentialScore': impact['potential_score'],
        'highPriorityCount': impact['high_priority_count'],
        'wordCount': page['wordCount'],
        'titleLength': page['titleLength'],
        'descLength': page['descLength'],
        'headings': page['headings'],
        'internalLinks': page['internalLinks'],
        'externalLinks': page['externalLinks'],
        'images': page['images'],
        'missingAltTags': page['missingAltTags'],
        'readabilityScore': ctx.get('readability', 0),
        'recommendations': recommendations,
        'competitors': competitors,
        'competitorAverages': averages,
        'apiCost': api_cost,
    }


def list_optimizations(client_id: str) -> List[dict]:
    rows = fetch_all(
        """SELECT id, url, target_keyword, current_score, recommendations, competitor_data, created_at
           FROM page_optimizations WHERE client_id = ? ORDER BY created_at DESC""",
        (client_id,)
    )
    for row in rows:
        row['recommendations'] = json.loads(row['recommendations'] or '[]')
        row['competitor_data'] = json.loads(row['competitor_data'] or '[]')
    return rows
