import re

SENTENCE_END = re.compile(r'[.!?]+')
VOWEL_GROUPS = re.compile(r'[aeiouy]+')


def flesch_reading_ease(text: str) -> float:
    """Flesch reading ease (0-100, higher is easier); 0 for empty text"""
    words = re.findall(r"[A-Za-z']+", text or '')
    if not words:
        return 0.0
    sentences = max(1, len([s for s in SENTENCE_END.split(text) if s.strip()]))
    syllables = sum(max(1, len(VOWEL_GROUPS.findall(w.lower()))) for w in words)
    score = 206.835 - 1.015 * (len(words) / sentences) - 84.6 * (syllables / len(words))
    return round(min(max(score, 0.0), 100.0), 1)


class ContextBuilder:
    """Normalizes on-page API items and crawled pages into one page context."""

    def from_onpage(self, item: dict):
        if not item or not item.get("meta"):
            return None

        meta = item["meta"]
        checks = item.get("checks") or {}
        htags = meta.get("htags") or {}
        content = meta.get("content") or {}

        title = None if checks.get("no_title") else meta.get("title")
        description = None if checks.get("no_description") else meta.get("description")
        h1 = [] if checks.get("no_h1_tag") else (htags.get("h1") or [])

        return {
            "url": item.get("url"),
            "title": title,
            "description": description,
            "h1": h1,
            "h2": htags.get("h2") or [],
            "h3": htags.get("h3") or [],
            "word_count": content.get("plain_text_word_count") or 0,
            "readability": content.get("flesch_kincaid_readability_index") or 0,
            "internal_links": meta.get("internal_links_count") or 0,
            "external_links": meta.get("external_links_count") or 0,
            "images": meta.get("images_count") or 0,
            "missing_alt": meta.get("images_without_alt") or 0,
            "time_to_interactive": (item.get("page_timing") or {}).get("time_to_interactive"),
            "is_https": checks.get("is_https"),
            "is_redirect": checks.get("is_redirect"),
            "has_canonical": checks.get("canonical"),
        }

    def from_crawl(self, page: dict):
        if not page:
            return None

        links = page.get("links") or []
        images = page.get("images") or []

        return {
            "url": page.get("url"),
            "title": page.get("title"),
            "description": page.get("meta_description"),
            "h1": page.get("h1") or [],
            "h2": page.get("h2") or [],
            "h3": page.get("h3") or [],
            "word_count": page.get("word_count") or 0,
            "readability": flesch_reading_ease(" ".join(page.get("paragraphs") or [])),
            "internal_links": sum(1 for link in links if link["internal"]),
            "external_links": sum(1 for link in links if not link["internal"]),
            "images": len(images),
            "missing_alt": sum(1 for img in images if not img["has_alt"]),
            "time_to_interactive": page.get("load_time"),
            "is_https": page.get("is_https"),
            "is_redirect": page.get("is_redirect"),
            "has_canonical": bool(page.get("canonical")),
        }
