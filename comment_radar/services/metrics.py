"""Analytics calculations."""
from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Sequence

from comment_radar.models.common import AggregateResult, AnnotatedComment, SentimentCounts

DEFAULT_PLATFORMS = ("tiktok", "instagram", "youtube", "facebook")


class MetricsService:
    """Reduce annotated comments into dashboard counts."""

    def sentiment_distribution(self, comments: Sequence[AnnotatedComment]) -> SentimentCounts:
        counts = Counter(comment.sentiment or "neutral" for comment in comments)
        return SentimentCounts(
            positive=counts["positive"],
            negative=counts["negative"],
            neutral=counts["neutral"],
        )

    def platform_breakdown(self, comments: Sequence[AnnotatedComment]) -> Dict[str, int]:
        breakdown = {platform: 0 for platform in DEFAULT_PLATFORMS}
        for comment in comments:
            breakdown[comment.platform] = breakdown.get(comment.platform, 0) + 1
        return breakdown

    def unique_author_count(self, comments: Sequence[AnnotatedComment]) -> int:
        authors = {comment.author.identifier for comment in comments}
        authors.discard(None)
        return len(authors)

    def aggregate(self, comments: Sequence[AnnotatedComment], **context: Any) -> AggregateResult:
        """Build an :class:`AggregateResult`; ``context`` carries query-level fields."""

        bot_comments = sum(1 for comment in comments if comment.is_bot)
        return AggregateResult(
            comments=list(comments),
            total_comments=len(comments),
            real_comments=len(comments) - bot_comments,
            bot_comments=bot_comments,
            unique_author_count=self.unique_author_count(comments),
            sentiment_counts=self.sentiment_distribution(comments),
            platform_breakdown=self.platform_breakdown(comments),
            **context,
        )
