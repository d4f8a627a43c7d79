import pytest

from comment_radar.models.common import AnnotatedComment, Author
from comment_radar.services.metrics import MetricsService


def _annotated(cid, *, sentiment="neutral", is_bot=False, handle=None, user_id=None, platform="tiktok"):
    return AnnotatedComment(
        id=cid,
        text="text",
        author=Author(unique_handle=handle, user_id=user_id),
        platform=platform,
        is_bot=is_bot,
        bot_score=5 if is_bot else 0,
        sentiment=sentiment,
    )


@pytest.mark.parametrize(
    "labels,bots",
    [
        ([], []),
        (["positive"], [False]),
        (["positive", "negative", "neutral", "neutral"], [True, False, False, True]),
        (["negative"] * 7, [True] * 7),
    ],
)
def test_counts_reduce_consistently(labels, bots):
    comments = [
        _annotated(str(i), sentiment=label, is_bot=bot, handle=f"user.{i}")
        for i, (label, bot) in enumerate(zip(labels, bots))
    ]
    result = MetricsService().aggregate(comments, query_type="video", videos_analyzed=1)

    counts = result.sentiment_counts
    assert counts.positive + counts.negative + counts.neutral == len(comments)
    assert result.real_comments + result.bot_comments == result.total_comments == len(comments)
    assert result.bot_comments == sum(bots)


def test_missing_sentiment_counts_as_neutral():
    comment = _annotated("1", sentiment=None)
    counts = MetricsService().sentiment_distribution([comment])
    assert counts.neutral == 1


def test_unique_authors_fall_back_to_user_id():
    comments = [
        _annotated("1", handle="siti"),
        _annotated("2", handle="siti"),
        _annotated("3", user_id="6601"),
        _annotated("4", handle="6601"),
        _annotated("5"),
    ]
    assert MetricsService().unique_author_count(comments) == 2


def test_platform_breakdown_keeps_known_platforms():
    comments = [_annotated("1"), _annotated("2"), _annotated("3", platform="youtube")]
    breakdown = MetricsService().platform_breakdown(comments)
    assert breakdown == {"tiktok": 2, "instagram": 0, "youtube": 1, "facebook": 0}
