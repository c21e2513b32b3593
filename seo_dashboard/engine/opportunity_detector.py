class OpportunityDetector:
    """Content recommendations for a single page context."""

    def detect(self, ctx: dict):

        recommendations = []

        if not ctx:
            return recommendations

        word_count = ctx.get("word_count", 0)
        if word_count < 600:
            recommendations.append(
                f"Expand content from {word_count} to at least 600 words for better topical coverage."
            )

        if len(ctx.get("h2", [])) < 3:
            recommendations.append(
                "Add more H2 subheadings to improve content structure and scannability."
            )

        if ctx.get("images", 0) < 2:
            recommendations.append(
                "Add relevant images to make content more engaging (aim for 2-5 images)."
            )

        if ctx.get("internal_links", 0) < 3:
            recommendations.append(
                "Add more internal links to related pages to improve site architecture."
            )

        return recommendations
