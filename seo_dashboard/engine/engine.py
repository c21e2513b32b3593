import logging
import time

from .. import analyzer
from ..crawler import Crawler
from .context_builder import ContextBuilder
from .issue_detector import IssueDetector
from .issue_prioritizer import IssuePrioritizer
from .opportunity_detector import OpportunityDetector

logger = logging.getLogger(__name__)

FULL_AUDIT_ONPAGE_COST = 1.5
NO_RECOMMENDATIONS = "No specific recommendations available."


class AuditEngine:
    """Scores a site from on-page API data or from its own crawl."""

    def __init__(self, api, crawler: Crawler = None):
        self.api = api
        self.crawler = crawler
        self.builder = ContextBuilder()

    def run(self, website: str, source: str = "api", max_pages: int = None):
        start = time.monotonic()
        lighthouse = None

        if source == "crawl":
            crawler = self.crawler or Crawler()
            contexts = [self.builder.from_crawl(p) for p in crawler.crawl(website, max_pages=max_pages)]
        else:
            onpage = self.api.on_page_instant_pages(website, cost=FULL_AUDIT_ONPAGE_COST)
            lighthouse = self.api.on_page_lighthouse(website)
            contexts = [self.builder.from_onpage(onpage)]
        contexts = [c for c in contexts if c]

        technical = analyzer.average_score([analyzer.technical_score(c) for c in contexts])
        content = analyzer.average_score([analyzer.content_score(c) for c in contexts])
        ux = analyzer.ux_score(lighthouse)

        issues = []
        for ctx in contexts:
            issues.extend(IssueDetector().detect(ctx))

        content_scores = []
        for ctx in contexts:
            if not ctx.get("url"):
                continue
            recommendations = OpportunityDetector().detect(ctx)
            content_scores.append({
                "page_url": ctx["url"],
                "quality_score": analyzer.content_score(ctx),
                "readability": ctx["readability"],
                "word_count": ctx["word_count"],
                "internal_links": ctx["internal_links"],
                "external_links": ctx["external_links"],
                "images": ctx["images"],
                "missing_alt_tags": ctx["missing_alt"],
                "recommendations": "\n".join(recommendations) or NO_RECOMMENDATIONS,
            })

        return {
            "overall_score": analyzer.overall_score(technical, content, ux),
            "technical_score": technical,
            "content_score": content,
            "ux_score": ux,
            "backlink_score": 0,
            "pages_analyzed": len(contexts),
            "technical_issues": IssuePrioritizer().prioritize(issues),
            "meta_tags": [analyzer.analyze_meta_tags(c) for c in contexts],
            "content_scores": content_scores,
            "source": source,
            "duration_ms": int((time.monotonic() - start) * 1000),
        }
