"""
Content briefs

A brief is the outline handed to a writer for one keyword: what the top
ranking pages look like, which questions searchers ask, related terms to
cover, a target length and a fixed section skeleton.
"""

import json
import logging
from datetime import datetime
from typing import List

from . import agencies
from .errors import NotFoundError, ValidationError
from .models import execute_query, fetch_all, fetch_one, new_id, now_iso
from .scoring import round_half_up, slugify

logger = logging.getLogger(__name__)

BRIEF_STATUSES = ['draft', 'in-progress', 'approved', 'published']

SERP_DEPTH = 20
PAA_CLICK_DEPTH = 3
SERP_WITH_PAA_COST = 1.5
MAX_ANALYZED_COMPETITORS = 3
MAX_RELATED_KEYWORDS = 10
MAX_QUESTIONS = 8
DEFAULT_WORD_COUNT = 2000


def _strengths(word_count: int, h2_count: int, images: int, internal_links: int) -> List[str]:
    strengths = []
    if word_count > 2000:
        strengths.append("Comprehensive content")
    if h2_count > 8:
        strengths.append("Well-structured")
    if images > 5:
        strengths.append("Visual rich")
    if internal_links > 10:
        strengths.append("Strong internal linking")
    return strengths


def recommended_sections(keyword: str) -> List[dict]:
    return [
        {
            'title': "Introduction",
            'description': f'Open with the main problem/question. Include primary keyword "{keyword}" '
                           'in the first 100 words.',
            'priority': "high",
        },
        {
            'title': f"What is {keyword}?",
            'description': "Define the topic clearly for readers who may be unfamiliar.",
            'priority': "high",
        },
        {
            'title': "Key Benefits/Features",
            'description': "List the main advantages or important aspects. Use bullet points for readability.",
            'priority': "high",
        },
        {
            'title': "How-To / Step-by-Step Guide",
            'description': "Provide actionable steps or instructions. Include visuals where possible.",
            'priority': "high",
        },
        {
            'title': "Common Mistakes to Avoid",
            'description': "Address potential pitfalls or misconceptions.",
            'priority': "medium",
        },
        {
            'title': "Best Practices",
            'description': "Share expert tips and recommendations.",
            'priority': "medium",
        },
        {
            'title': "FAQs",
            'description': "Answer common questions (use PAA questions below).",
            'priority': "medium",
        },
        {
            'title': "Conclusion",
            'description': "Summarize key points and include a clear call-to-action.",
            'priority': "high",
        },
    ]


def internal_link_suggestions(keyword: str) -> List[str]:
    slug = slugify(keyword)
    head = keyword.strip().lower().split(' ')[0]
    return [
        f"/{slug}-guide",
        f"/{head}-services",
        f"/blog/{slug}",
        f"/resources/{head}",
        "/contact-us",
    ]


def _analyze_serp(keyword: str, api):
    """PAA questions and on-page stats for the top organic results"""
    questions = []
    top_competitors = []

    items = api.serp_organic(keyword, depth=SERP_DEPTH,
                             people_also_ask_click_depth=PAA_CLICK_DEPTH,
                             cost=SERP_WITH_PAA_COST) or []

    for item in items:
        if item.get('type') == 'people_also_ask':
            questions.extend(q['title'] for q in item.get('items') or [] if q.get('title'))

    for item in items[:10]:
        if item.get('type') != 'organic' or not item.get('url'):
            continue

        page = api.on_page_instant_pages(item['url'])
        if page:
            meta = page.get('meta') or {}
            word_count = (meta.get('content') or {}).get('plain_text_word_count') or 0
            h2_count = len((meta.get('htags') or {}).get('h2') or [])
            images = meta.get('images_count') or 0
            top_competitors.append({
                'url': item['url'],
                'rank': item.get('rank_group') or item.get('rank_absolute') or 0,
                'wordCount': word_count,
                'h2Count': h2_count,
                'imagesCount': images,
                'keyStrengths': _strengths(word_count, h2_count, images, meta.get('internal_links_count') or 0),
            })

        if len(top_competitors) >= MAX_ANALYZED_COMPETITORS:
            break

    return questions, top_competitors


def generate_brief(client: dict, keyword: str, api) -> dict:
    keyword = (keyword or '').strip()
    if not keyword:
        raise ValidationError("Keyword is required")

    questions, top_competitors = _analyze_serp(keyword, api)

    related = []
    for item in api.related_keywords(keyword, depth=1, limit=20):
        kw = (item.get('keyword_data') or {}).get('keyword')
        if kw and kw != keyword and kw not in related:
            related.append(kw)

    if top_competitors:
        target_word_count = round_half_up(sum(c['wordCount'] for c in top_competitors) / len(top_competitors))
    else:
        target_word_count = DEFAULT_WORD_COUNT

    structure = {
        'primaryKeyword': keyword,
        'relatedKeywords': related[:MAX_RELATED_KEYWORDS],
        'targetWordCount': target_word_count,
        'recommendedSections': recommended_sections(keyword),
        'questionsToAnswer': questions[:MAX_QUESTIONS],
        'internalLinkSuggestions': internal_link_suggestions(keyword),
        'metaRecommendations': {
            'title': f"{keyword} - Complete Guide | {datetime.now().year}",
            'description': f"Learn everything about {keyword}. Expert tips, best practices, and actionable "
                           f"advice. {target_word_count}+ word comprehensive guide.",
        },
        'competitorInsights': top_competitors,
    }

    brief_id = new_id()
    created_at = now_iso()
    execute_query(
        """INSERT INTO content_briefs (id, client_id, keyword, target_word_count, brief_data,
                                       serp_analysis, status, created_at)
           VALUES (?, ?, ?, ?, ?, ?, 'draft', ?)""",
        (brief_id, client['id'], keyword, target_word_count, json.dumps(structure),
         json.dumps(top_competitors), created_at)
    )

    api_cost = api.reset_cost()
    agencies.record_spend(client['agency_id'], client['id'], 'content-brief-generation', api_cost)
    logger.info("Generated brief %s for %r", brief_id, keyword)

    return {
        'id': brief_id,
        'keyword': keyword,
        'targetWordCount': target_word_count,
        'status': 'draft',
        'createdAt': created_at,
        'briefStructure': structure,
        'apiCost': api_cost,
    }


def _load(row: dict) -> dict:
    return {
        'id': row['id'],
        'clientId': row['client_id'],
        'keyword': row['keyword'],
        'targetWordCount': row['target_word_count'],
        'status': row['status'],
        'createdAt': row['created_at'],
        'updatedAt': row['updated_at'],
        'briefStructure': json.loads(row['brief_data']),
    }


def list_briefs(client_id: str, status: str = None) -> List[dict]:
    query = """SELECT id, client_id, keyword, target_word_count, brief_data, status, created_at, updated_at
               FROM content_briefs WHERE client_id = ?"""
    params = [client_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    query += " ORDER BY created_at DESC"
    return [_load(r) for r in fetch_all(query, tuple(params))]


def get_brief(brief_id: str, agency_id: str = None) -> dict:
    query = """SELECT b.id, b.client_id, b.keyword, b.target_word_count, b.brief_data, b.status,
                      b.created_at, b.updated_at
               FROM content_briefs b JOIN clients c ON c.id = b.client_id WHERE b.id = ?"""
    params = [brief_id]
    if agency_id:
        query += " AND c.agency_id = ?"
        params.append(agency_id)

    row = fetch_one(query, tuple(params))
    if not row:
        raise NotFoundError("Brief not found")
    return _load(row)


def update_brief_status(brief_id: str, status: str, agency_id: str = None) -> dict:
    if status not in BRIEF_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(BRIEF_STATUSES)}")
    get_brief(brief_id, agency_id)

    execute_query("UPDATE content_briefs SET status = ?, updated_at = ? WHERE id = ?",
                  (status, now_iso(), brief_id))
    return get_brief(brief_id)


def delete_brief(brief_id: str, agency_id: str = None):
    get_brief(brief_id, agency_id)
    execute_query("DELETE FROM content_briefs WHERE id = ?", (brief_id,))
