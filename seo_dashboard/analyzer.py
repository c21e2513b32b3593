"""Page-level audit scores and meta tag analysis."""

from typing import List, Optional

from .scoring import round_half_up

NO_DATA_SCORE = 50
DEFAULT_UX_SCORE = 85

TITLE_MIN, TITLE_MAX = 30, 60
DESC_MIN, DESC_MAX = 120, 160

PLACEHOLDER_TITLE = 'Add Your Page Title Here - Brand Name (30-60 chars)'
PLACEHOLDER_DESC = ('Write a compelling meta description that summarizes this page and includes '
                    'your target keyword. Aim for 120-160 characters to ensure it displays fully '
                    'in search results.')


def technical_score(ctx: Optional[dict]) -> int:
    if not ctx:
        return NO_DATA_SCORE

    score = 100
    if not ctx.get('title'):
        score -= 10
    if not ctx.get('description'):
        score -= 10
    if not ctx.get('h1'):
        score -= 5
    if ctx.get('is_https') is False:
        score -= 15
    if ctx.get('is_redirect') is True:
        score -= 5
    if ctx.get('has_canonical') is False:
        score -= 5

    load_time = ctx.get('time_to_interactive') or 5000
    if load_time > 3000:
        score -= 10
    if load_time > 5000:
        score -= 10

    return max(score, 0)


def content_score(ctx: Optional[dict]) -> int:
    if not ctx:
        return NO_DATA_SCORE

    score = 100

    word_count = ctx.get('word_count', 0)
    if word_count < 300:
        score -= 20
    elif word_count < 600:
        score -= 10

    title = ctx.get('title')
    if not title:
        score -= 15
    elif len(title) < TITLE_MIN:
        score -= 10
    elif len(title) > TITLE_MAX:
        score -= 5

    description = ctx.get('description')
    if not description:
        score -= 15
    elif len(description) < DESC_MIN:
        score -= 10
    elif len(description) > DESC_MAX:
        score -= 5

    if not ctx.get('h1'):
        score -= 10

    return max(score, 0)


def ux_score(lighthouse: Optional[dict]) -> int:
    performance = ((lighthouse or {}).get('categories') or {}).get('performance') or {}
    if performance.get('score') is None:
        return DEFAULT_UX_SCORE
    return round_half_up(performance['score'] * 100)


def overall_score(technical: int, content: int, ux: int) -> int:
    return round_half_up((technical + content + ux) / 3)


def average_score(scores: List[int]) -> int:
    return round_half_up(sum(scores) / len(scores)) if scores else NO_DATA_SCORE


def _length_status(text: Optional[str], low: int, high: int) -> str:
    if not text:
        return 'missing'
    if len(text) < low:
        return 'too-short'
    if len(text) > high:
        return 'too-long'
    return 'good'


def _trim(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(' ', 1)[0]
    return cut.rstrip(' ,.-|')


def analyze_meta_tags(ctx: dict) -> dict:
    """Current vs recommended title and description for one page"""
    title = ctx.get('title') or None
    desc = ctx.get('description') or None

    missing_tags = []
    if not title:
        missing_tags.append('title')
    if not desc:
        missing_tags.append('description')

    return {
        'page_url': ctx.get('url'),
        'current_title': title,
        'current_desc': desc,
        'recommended_title': _trim(title, TITLE_MAX) if title else PLACEHOLDER_TITLE,
        'recommended_desc': _trim(desc, DESC_MAX) if desc else PLACEHOLDER_DESC,
        'missing_tags': ','.join(missing_tags),
        'title_status': _length_status(title, TITLE_MIN, TITLE_MAX),
        'description_status': _length_status(desc, DESC_MIN, DESC_MAX),
    }
