"""
Synthesized upstream responses for offline use.

Every generator returns data in the same shape the DataForSEO proxy returns
under ``result``, so analysis code runs unchanged against it. Generators are
seeded from the method name and parameters: the same query always yields the
same numbers.
"""

import hashlib
import json
import logging
import random
from typing import Any, Callable, Dict, List, Optional

from .scoring import normalize_domain, slugify

logger = logging.getLogger(__name__)

MODIFIERS = ['services', 'cost', 'near me', 'companies', 'guide', 'repair',
             'best', 'how to choose', 'vs', 'installation', 'suppliers', 'types of']
SITE_WORDS = ['industrial', 'pro', 'direct', 'hub', 'supply', 'experts',
              'solutions', 'works', 'group', 'central', 'depot', 'partners']
PAA_TEMPLATES = [
    'What is {kw}?',
    'How much does {kw} cost?',
    'How do I choose {kw}?',
    'What are the benefits of {kw}?',
    'Is {kw} worth it?',
    'How long does {kw} last?',
    'What is the difference between {kw} types?',
    'Who offers the best {kw}?',
]


def _rng(method: str, params: dict) -> random.Random:
    digest = hashlib.sha256(f"{method}:{json.dumps(params, sort_keys=True, default=str)}".encode()).hexdigest()
    return random.Random(int(digest[:16], 16))


def _keyword_info(rng: random.Random) -> dict:
    return {
        'search_volume': rng.choice([rng.randint(50, 900), rng.randint(900, 12000)]),
        'competition': round(rng.random(), 2),
        'cpc': round(rng.uniform(0.3, 12.0), 2),
    }


def _get_path(item: dict, path: str) -> Any:
    value = item
    for part in path.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _compare(value: Any, op: str, target: Any) -> bool:
    if value is None:
        return False
    if op == '>':
        return value > target
    if op == '>=':
        return value >= target
    if op == '<':
        return value < target
    if op == '<=':
        return value <= target
    if op == '=':
        return value == target
    if op == '<>':
        return value != target
    return True


def apply_filters(items: List[dict], filters: Optional[list]) -> List[dict]:
    """Evaluate DataForSEO-style filters, e.g. [[path, '>', 10], 'and', [path, '<=', 20]]"""
    if not filters:
        return items

    def passes(item):
        result = None
        joiner = 'and'
        for part in filters:
            if isinstance(part, str):
                joiner = part.lower()
                continue
            path, op, target = part
            ok = _compare(_get_path(item, path), op, target)
            if result is None:
                result = ok
            elif joiner == 'or':
                result = result or ok
            else:
                result = result and ok
        return True if result is None else result

    return [item for item in items if passes(item)]


def _order(items: List[dict], order_by: Optional[list]) -> List[dict]:
    if not order_by:
        return items
    path, _, direction = order_by[0].partition(',')
    return sorted(items, key=lambda i: _get_path(i, path) or 0, reverse=direction.strip() == 'desc')


def _seed_topic(target: str) -> str:
    base = normalize_domain(target).split('.')[0]
    return base.replace('-', ' ') or 'industrial equipment'


# ============================================================================
# GENERATORS
# ============================================================================

def keyword_overview(params: dict, rng: random.Random) -> dict:
    return {'items': [
        {'keyword': kw, 'keyword_info': _keyword_info(rng)} for kw in params.get('keywords', [])
    ]}


def serp_organic_live_advanced(params: dict, rng: random.Random) -> dict:
    keyword = params.get('keyword', '')
    depth = int(params.get('depth', 10))
    items = []
    for rank in range(1, depth + 1):
        domain = f"{rng.choice(SITE_WORDS)}{rng.choice(SITE_WORDS)}{rank}.com"
        items.append({
            'type': 'organic',
            'rank_group': rank,
            'rank_absolute': rank + (1 if rank > 3 else 0),
            'domain': domain,
            'url': f"https://{domain}/{slugify(keyword)}",
            'title': f"{keyword.title()} | {domain}",
            'description': f"Everything you need to know about {keyword}.",
        })
    if params.get('people_also_ask_click_depth'):
        questions = rng.sample(PAA_TEMPLATES, 4)
        items.insert(3, {
            'type': 'people_also_ask',
            'rank_group': 1,
            'items': [{'type': 'people_also_ask_element', 'title': q.format(kw=keyword)} for q in questions],
        })
    return {'items': [{'keyword': keyword, 'items': items}]}


def ranked_keywords(params: dict, rng: random.Random) -> dict:
    topic = _seed_topic(params.get('target', ''))
    target = normalize_domain(params.get('target', ''))
    items = []
    for modifier in MODIFIERS:
        keyword = f"{topic} {modifier}"
        items.append({
            'keyword_data': {'keyword': keyword, 'keyword_info': _keyword_info(rng)},
            'ranked_serp_element': {'serp_item': {
                'rank_group': rng.randint(1, 40),
                'url': f"https://{target}/{slugify(keyword)}",
            }},
        })
    items = _order(apply_filters(items, params.get('filters')), params.get('order_by'))
    return {'items': items[:int(params.get('limit', 100))]}


def keyword_ideas(params: dict, rng: random.Random) -> dict:
    seeds = params.get('keywords') or ['industrial services']
    items = []
    for seed in seeds:
        for modifier in rng.sample(MODIFIERS, 6):
            items.append({'keyword': f"{modifier} {seed}", 'keyword_info': _keyword_info(rng)})
    items = _order(apply_filters(items, params.get('filters')), params.get('order_by'))
    return {'items': items[:int(params.get('limit', 30))]}


def related_keywords(params: dict, rng: random.Random) -> dict:
    keyword = params.get('keyword', '')
    items = [{'keyword_data': {'keyword': keyword, 'keyword_info': _keyword_info(rng)}}]
    for modifier in MODIFIERS:
        items.append({'keyword_data': {'keyword': f"{keyword} {modifier}", 'keyword_info': _keyword_info(rng)}})
    return {'items': items[:int(params.get('limit', 20))]}


def competitors_domain(params: dict, rng: random.Random) -> dict:
    target = normalize_domain(params.get('target', ''))
    topic = target.split('.')[0]
    items = [{'domain': target, 'avg_position': 8.0, 'intersections': 0,
              'full_domain_metrics': {'organic': {'count': 0, 'etv': 0}}}]
    for word in rng.sample(SITE_WORDS, 8):
        items.append({
            'domain': f"{topic}{word}.com",
            'avg_position': round(rng.uniform(3, 30), 1),
            'intersections': rng.randint(20, 600),
            'full_domain_metrics': {'organic': {
                'count': rng.randint(500, 12000),
                'etv': round(rng.uniform(1000, 120000), 1),
            }},
        })
    return {'items': items[:int(params.get('limit', 10))]}


def domain_rank_overview(params: dict, rng: random.Random) -> dict:
    return {'items': [{
        'target': normalize_domain(params.get('target', '')),
        'metrics': {
            'organic': {'count': rng.randint(300, 8000), 'etv': round(rng.uniform(2000, 60000), 1),
                        'estimated_paid_traffic_cost': round(rng.uniform(1000, 90000), 1)},
            'paid': {'count': rng.randint(0, 250), 'etv': round(rng.uniform(0, 5000), 1)},
        },
    }]}


def backlinks_bulk_ranks(params: dict, rng: random.Random) -> dict:
    items = []
    for target in params.get('targets', []):
        backlinks = rng.randint(800, 40000)
        items.append({
            'target': target,
            'rank': rng.randint(15, 75),
            'backlinks': backlinks,
            'referring_domains': int(backlinks * rng.uniform(0.05, 0.3)),
        })
    return {'items': items}


def on_page_instant_pages(params: dict, rng: random.Random) -> dict:
    url = params.get('url', '')
    has_title = rng.random() > 0.1
    has_desc = rng.random() > 0.25
    has_h1 = rng.random() > 0.15
    title = f"{_seed_topic(url).title()} Services and Solutions" if has_title else None
    description = ("Trusted provider of industrial solutions with decades of experience, "
                   "nationwide service and fast quotes for every project.") if has_desc else None
    images = rng.randint(0, 14)
    return {'items': [{
        'url': url,
        'status_code': 200,
        'meta': {
            'title': title,
            'description': description,
            'canonical': url if rng.random() > 0.3 else None,
            'htags': {
                'h1': ['Welcome'] if has_h1 else [],
                'h2': [f"Section {i}" for i in range(rng.randint(0, 12))],
                'h3': [f"Detail {i}" for i in range(rng.randint(0, 8))],
            },
            'images_count': images,
            'images_without_alt': rng.randint(0, images),
            'internal_links_count': rng.randint(2, 60),
            'external_links_count': rng.randint(0, 20),
            'content': {
                'plain_text_word_count': rng.randint(150, 3200),
                'flesch_kincaid_readability_index': round(rng.uniform(30, 80), 1),
            },
        },
        'page_timing': {
            'time_to_interactive': rng.randint(900, 6500),
            'dom_complete': rng.randint(900, 7000),
        },
        'checks': {
            'no_title': not has_title,
            'no_description': not has_desc,
            'no_h1_tag': not has_h1,
            'is_https': url.startswith('https://'),
            'is_redirect': False,
            'canonical': rng.random() > 0.3,
        },
    }]}


def on_page_lighthouse(params: dict, rng: random.Random) -> dict:
    return {'items': [{
        'url': params.get('url', ''),
        'categories': {
            'performance': {'score': round(rng.uniform(0.35, 0.99), 2)},
            'accessibility': {'score': round(rng.uniform(0.6, 1.0), 2)},
            'best-practices': {'score': round(rng.uniform(0.6, 1.0), 2)},
            'seo': {'score': round(rng.uniform(0.6, 1.0), 2)},
        },
    }]}


GENERATORS: Dict[str, Callable[[dict, random.Random], dict]] = {
    'dataforseo_labs_google_keyword_overview': keyword_overview,
    'serp_organic_live_advanced': serp_organic_live_advanced,
    'dataforseo_labs_google_ranked_keywords': ranked_keywords,
    'dataforseo_labs_google_keyword_ideas': keyword_ideas,
    'dataforseo_labs_google_related_keywords': related_keywords,
    'dataforseo_labs_google_competitors_domain': competitors_domain,
    'dataforseo_labs_google_domain_rank_overview': domain_rank_overview,
    'backlinks_bulk_ranks': backlinks_bulk_ranks,
    'on_page_instant_pages': on_page_instant_pages,
    'on_page_lighthouse': on_page_lighthouse,
}


def generate(method: str, params: dict) -> Optional[dict]:
    """Synthesize a ``result`` payload for an upstream method"""
    generator = GENERATORS.get(method)
    if not generator:
        logger.warning("No mock generator for %s", method)
        return None
    return generator(params, _rng(method, params))
