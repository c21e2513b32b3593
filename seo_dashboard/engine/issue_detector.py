SLOW_TTI_MS = 3000
VERY_SLOW_TTI_MS = 5000
THIN_CONTENT_WORDS = 300


class IssueDetector:
    """Technical issues for a single page context."""

    def detect(self, ctx: dict):

        issues = []

        if not ctx:
            return issues

        url = ctx.get("url")

        if not ctx.get("title"):
            issues.append(self._issue(
                "missing-title", "error", "Meta Tags", "Missing Title Tag",
                "This page does not have a title tag, which is critical for SEO.",
                url,
                "Add a <title> tag within the <head> section of your HTML. The title should be "
                "30-60 characters long and include your target keyword.\n\n"
                "Example:\n<title>Your Page Title - Brand Name</title>"
            ))

        if not ctx.get("description"):
            issues.append(self._issue(
                "missing-description", "error", "Meta Tags", "Missing Meta Description",
                "This page lacks a meta description, which impacts click-through rates from search results.",
                url,
                "Add a <meta name=\"description\"> tag within the <head> section. Keep it between "
                "120-160 characters.\n\nExample:\n<meta name=\"description\" content=\"Your compelling "
                "page description here that entices users to click.\">"
            ))

        if not ctx.get("h1"):
            issues.append(self._issue(
                "missing-h1", "warning", "Content Structure", "Missing H1 Heading",
                "This page does not have an H1 heading, which is important for content hierarchy.",
                url,
                "Add a single <h1> tag to your page that describes the main topic. There should only "
                "be one H1 per page.\n\nExample:\n<h1>Main Page Heading</h1>"
            ))

        if ctx.get("is_https") is False:
            issues.append(self._issue(
                "no-https", "error", "Security", "Not Using HTTPS",
                "This page is not served over HTTPS, which is a ranking factor and security issue.",
                url,
                "1. Purchase and install an SSL certificate from your hosting provider\n"
                "2. Update all internal links to use https://\n"
                "3. Set up 301 redirects from http:// to https://\n"
                "4. Update your sitemap and robots.txt"
            ))

        load_time = ctx.get("time_to_interactive") or 0
        if load_time > SLOW_TTI_MS:
            issues.append(self._issue(
                "slow-load", "error" if load_time > VERY_SLOW_TTI_MS else "warning",
                "Performance", "Slow Page Load Time",
                f"Page takes {load_time / 1000:.1f}s to become interactive, which may hurt user "
                "experience and rankings.",
                url,
                "1. Optimize and compress images\n2. Minify CSS and JavaScript\n"
                "3. Enable browser caching\n4. Use a CDN\n5. Reduce server response time\n"
                "6. Eliminate render-blocking resources"
            ))

        word_count = ctx.get("word_count", 0)
        if word_count < THIN_CONTENT_WORDS:
            issues.append(self._issue(
                "thin-content", "warning", "Content Quality", "Thin Content",
                f"Page has only {word_count} words, which may be considered thin content by search engines.",
                url,
                "Expand the content to at least 300-500 words by:\n1. Adding more detailed information\n"
                "2. Including relevant examples or case studies\n"
                "3. Answering common questions about the topic\n"
                "4. Adding unique insights or perspectives"
            ))

        if ctx.get("missing_alt", 0) > 0:
            issues.append(self._issue(
                "missing-alt", "notice", "Images", "Images Missing Alt Text",
                f"{ctx['missing_alt']} image(s) have no alt attribute.",
                url,
                "Add descriptive alt text to every meaningful image, including the target keyword where it fits."
            ))

        return issues

    def _issue(self, issue_type, severity, category, title, description, url, how_to_fix):
        return {
            "issue_type": issue_type,
            "severity": severity,
            "category": category,
            "title": title,
            "description": description,
            "url": url,
            "how_to_fix": how_to_fix,
        }
