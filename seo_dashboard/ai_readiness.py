"""
AI search readiness

Scores how well a page is prepared to be read, quoted and recommended by
LLM-based search and voice assistants. The page is fetched with the crawler
and four categories are scored from what is actually on it: structured data,
AI-friendly content, voice and conversational search, entity and authority
signals.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional

from .crawler import Crawler
from .engine.context_builder import flesch_reading_ease
from .errors import ValidationError
from .scoring import round_half_up

logger = logging.getLogger(__name__)

# schema.org type -> (points, aliases)
SCHEMA_POINTS = {
    'Organization': (5, {'Organization', 'Corporation'}),
    'FAQPage': (8, {'FAQPage'}),
    'HowTo': (6, {'HowTo'}),
    'Product': (5, {'Product'}),
    'Article': (4, {'Article', 'BlogPosting', 'NewsArticle', 'TechArticle'}),
    'LocalBusiness': (4, {'LocalBusiness', 'ProfessionalService', 'Store', 'HomeAndConstructionBusiness'}),
    'Review': (3, {'Review', 'AggregateRating'}),
}

DEFINITION_PATTERN = re.compile(r'\b(is an?|refers to|is defined as|means)\b', re.IGNORECASE)
CREDENTIAL_PATTERN = re.compile(
    r'\b(certified|licensed|accredited|ph\.?d|years of experience|award[- ]winning|iso \d+)\b',
    re.IGNORECASE
)
SENTENCE_SPLIT = re.compile(r'[.!?]+')

ANSWER_MIN_WORDS, ANSWER_MAX_WORDS = 40, 60
CONVERSATIONAL_SENTENCE_WORDS = 20
FAST_LOAD_MS = 3000
MIN_CITATIONS = 3

READINESS_LEVELS = [
    (85, 'AI-Ready'),
    (70, 'Partially Ready'),
    (50, 'Needs Work'),
    (0, 'Not Ready'),
]
MAX_PRIORITY_ACTIONS = 5


class CategoryScore:
    def __init__(self, category: str, max_score: int, description: str, thresholds):
        self.category = category
        self.max_score = max_score
        self.description = description
        self.thresholds = thresholds
        self.score = 0
        self.issues = []
        self.recommendations = []

    def add(self, points: int):
        self.score += points

    def issue(self, severity, title, description, impact):
        self.issues.append({'severity': severity, 'title': title, 'description': description, 'impact': impact})

    def recommend(self, priority, title, description, implementation, expected_impact):
        self.recommendations.append({
            'priority': priority,
            'title': title,
            'description': description,
            'implementation': implementation,
            'expectedImpact': expected_impact,
        })

    @property
    def status(self) -> str:
        excellent, good, fair = self.thresholds
        if self.score >= excellent:
            return 'excellent'
        if self.score >= good:
            return 'good'
        if self.score >= fair:
            return 'needs-improvement'
        return 'critical'

    def to_dict(self) -> dict:
        self.score = min(self.score, self.max_score)
        return {
            'category': self.category,
            'score': self.score,
            'maxScore': self.max_score,
            'status': self.status,
            'description': self.description,
            'issues': self.issues,
            'recommendations': self.recommendations,
        }


def _has_schema(page: dict, name: str) -> bool:
    return bool(SCHEMA_POINTS[name][1] & set(page.get('schema_types') or []))


def _text(page: dict) -> str:
    return ' '.join(page.get('paragraphs') or [])


def analyze_structured_data(page: dict) -> CategoryScore:
    result = CategoryScore('Structured Data & Schema', 35,
                           'How well your content is structured for AI and LLM understanding',
                           (28, 20, 12))

    if _has_schema(page, 'Organization'):
        result.add(SCHEMA_POINTS['Organization'][0])
    else:
        result.issue('high', 'Missing Organization Schema', 'No organization schema markup detected',
                     'LLMs cannot understand your business entity and authority')
        result.recommend('high', 'Add Organization Schema Markup',
                         'Implement schema.org Organization markup to help AI understand your business',
                         'Add JSON-LD script with organization details, contact info, and social profiles',
                         'Improved entity recognition in AI search results')

    if _has_schema(page, 'FAQPage'):
        result.add(SCHEMA_POINTS['FAQPage'][0])
    else:
        result.issue('high', 'Missing FAQ Schema', 'No FAQ schema markup found',
                     'AI cannot extract Q&A content for conversational search')
        result.recommend('high', 'Implement FAQ Schema',
                         'Add FAQ schema to help AI understand your Q&A content',
                         'Structure FAQ sections with schema.org FAQPage markup',
                         'Better visibility in AI-powered question answering')

    if _has_schema(page, 'HowTo'):
        result.add(SCHEMA_POINTS['HowTo'][0])
    else:
        result.recommend('medium', 'Add How-To Schema for Instructional Content',
                         'Structure step-by-step content for AI consumption',
                         'Use HowTo schema for process and tutorial content',
                         'Enhanced visibility in AI step-by-step responses')

    url = page.get('url') or ''
    if _has_schema(page, 'Product'):
        result.add(SCHEMA_POINTS['Product'][0])
    elif 'product' in url or 'shop' in url:
        result.issue('medium', 'Missing Product Schema', 'Product pages lack structured markup',
                     'AI cannot understand product details and specifications')

    if _has_schema(page, 'Article'):
        result.add(SCHEMA_POINTS['Article'][0])

    if _has_schema(page, 'LocalBusiness'):
        result.add(SCHEMA_POINTS['LocalBusiness'][0])

    if _has_schema(page, 'Review'):
        result.add(SCHEMA_POINTS['Review'][0])
    else:
        result.recommend('medium', 'Add Review Schema Markup',
                         'Structure review and rating data for AI understanding',
                         'Implement Review and AggregateRating schema',
                         'Better trust signals in AI recommendations')

    return result


def analyze_content(page: dict) -> CategoryScore:
    result = CategoryScore('AI-Friendly Content', 30,
                           'How well your content is formatted for AI consumption and citation',
                           (24, 18, 12))
    paragraphs = page.get('paragraphs') or []
    text = _text(page)

    if len(page.get('h1') or []) == 1 and page.get('h2'):
        result.add(5)
    else:
        result.issue('medium', 'Poor Heading Structure', 'Inconsistent or missing heading hierarchy',
                     'AI cannot properly parse content sections and topics')
        result.recommend('high', 'Improve Heading Hierarchy', 'Structure content with clear H1-H6 hierarchy',
                         'Use logical heading structure: H1 → H2 → H3, etc.',
                         'Better content understanding by AI systems')

    if any(ANSWER_MIN_WORDS <= len(p.split()) <= ANSWER_MAX_WORDS for p in paragraphs):
        result.add(8)
    else:
        result.recommend('high', 'Create Answer-Box Optimized Content',
                         'Add direct, concise answers to common questions',
                         'Include 40-60 word answers to key questions in your content',
                         'Higher likelihood of AI citing your content as source')

    if page.get('question_headings'):
        result.add(6)
    else:
        result.recommend('medium', 'Add Concise Answer Sections',
                         'Include brief, direct answers before detailed explanations',
                         'Start sections with 1-2 sentence answers, then elaborate',
                         'Better extraction for AI-generated responses')

    readability = flesch_reading_ease(text)
    if readability >= 80:
        result.add(6)
    elif readability >= 60:
        result.add(3)
    else:
        result.issue('medium', 'Low Readability Score', f'Readability score: {readability:.0f}/100',
                     'AI prefers clear, easily understood content for recommendations')

    if DEFINITION_PATTERN.search(text):
        result.add(3)

    if page.get('ordered_lists'):
        result.add(2)

    return result


def analyze_voice_search(page: dict, keyword: Optional[str] = None) -> CategoryScore:
    result = CategoryScore('Voice & Conversational Search', 25,
                           'Optimization for voice assistants and conversational AI',
                           (20, 15, 10))

    if keyword:
        result.add(5)
        result.recommend('high', 'Optimize for Conversational Queries',
                         'Target question-based and conversational search patterns',
                         f'Create content answering "how", "what", "why", "when", "where" questions about {keyword}',
                         'Better visibility in voice search and AI assistants')

    sentences = [s.split() for s in SENTENCE_SPLIT.split(_text(page)) if s.strip()]
    if sentences and sum(len(s) for s in sentences) / len(sentences) <= CONVERSATIONAL_SENTENCE_WORDS:
        result.add(6)
    else:
        result.issue('medium', 'Content Not Conversational',
                     'Content lacks natural, conversational language patterns',
                     'Voice assistants prefer natural, spoken language style')

    if len(page.get('question_headings') or []) >= 2 or _has_schema(page, 'FAQPage'):
        result.add(8)
    else:
        result.issue('high', 'Missing Q&A Format', 'No clear question-and-answer content structure',
                     'Voice search relies heavily on Q&A format for responses')

    if page.get('has_address') or _has_schema(page, 'LocalBusiness'):
        result.add(4)

    if page.get('has_viewport'):
        result.add(3)
    else:
        result.issue('high', 'Poor Mobile Experience', 'Site not optimized for mobile voice search',
                     'Most voice searches happen on mobile devices')

    if (page.get('load_time') or 0) < FAST_LOAD_MS:
        result.add(3)

    return result


def analyze_entity_authority(page: dict) -> CategoryScore:
    result = CategoryScore('Entity & Authority Signals', 20,
                           'Establishment of expertise, authority, and trustworthiness for AI',
                           (16, 12, 8))
    schema_types = set(page.get('schema_types') or [])
    external_links = [link for link in page.get('links') or [] if not link['internal']]

    if page.get('author') or 'Person' in schema_types:
        result.add(4)
    else:
        result.recommend('medium', 'Add Author Information', 'Include author bios and credentials',
                         'Add author bylines, bios, and expertise indicators',
                         'AI can better assess content authority and expertise')

    if CREDENTIAL_PATTERN.search(_text(page)):
        result.add(5)
    else:
        result.recommend('medium', 'Establish Expert Authority',
                         'Showcase credentials, certifications, and expertise',
                         'Add credentials, awards, certifications to author profiles',
                         'Higher trust scores in AI recommendation systems')

    if schema_types & {'Organization', 'Corporation', 'Person', 'Brand', 'Place'}:
        result.add(4)

    if len(external_links) >= MIN_CITATIONS:
        result.add(5)
    else:
        result.recommend('high', 'Add Citations and References', 'Include citations to authoritative sources',
                         'Link to research, studies, and authoritative sources',
                         'AI systems value content with credible source backing')

    if 'Person' in schema_types:
        result.add(2)

    return result


def readiness_level(overall_score: int) -> str:
    for threshold, level in READINESS_LEVELS:
        if overall_score >= threshold:
            return level
    return READINESS_LEVELS[-1][1]


def score_page(page: dict, keyword: Optional[str] = None) -> dict:
    """AI readiness report for a crawled page"""
    categories = [
        analyze_structured_data(page).to_dict(),
        analyze_content(page).to_dict(),
        analyze_voice_search(page, keyword).to_dict(),
        analyze_entity_authority(page).to_dict(),
    ]

    total = sum(c['score'] for c in categories)
    total_max = sum(c['maxScore'] for c in categories)
    overall = round_half_up(total / total_max * 100)

    def pct(category):
        return round_half_up(category['score'] / category['maxScore'] * 100)

    priority_actions: List[dict] = [
        rec for c in categories for rec in c['recommendations'] if rec['priority'] == 'high'
    ]

    return {
        'url': page.get('url'),
        'overallScore': overall,
        'aiReadinessLevel': readiness_level(overall),
        'categories': categories,
        'keyFindings': [
            f"Overall AI Readiness Score: {overall}/100",
            f"Structured Data Coverage: {pct(categories[0])}%",
            f"Content AI-Friendliness: {pct(categories[1])}%",
            f"Voice Search Optimization: {pct(categories[2])}%",
        ],
        'priorityActions': priority_actions[:MAX_PRIORITY_ACTIONS],
        'lastAnalyzed': datetime.now().isoformat(),
    }


def analyze_ai_readiness(url: str, keyword: Optional[str] = None, crawler: Crawler = None) -> dict:
    if not url:
        raise ValidationError("URL is required")

    page = (crawler or Crawler()).fetch_page(url)
    if not page:
        raise ValidationError(f"Could not fetch {url}")

    return score_page(page, keyword)
