"""Shared Pydantic models."""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Sentiment = Literal["positive", "negative", "neutral"]
Cursor = Optional[Union[int, str]]


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys, accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Author(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    unique_handle: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def identifier(self) -> Optional[str]:
        """Handle, falling back to the provider's internal id."""

        return self.unique_handle or self.user_id


class RawComment(CamelModel):
    """A comment as normalised from the upstream provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    text: str = ""
    author: Author = Field(default_factory=Author)
    like_count: int = Field(default=0, ge=0)
    created_at: Optional[int] = None
    platform: str = "tiktok"
    video_id: Optional[str] = None
    video_url: Optional[str] = None

    @property
    def key(self) -> Tuple[Optional[str], str]:
        return (self.video_id, self.id)


class AnnotatedComment(RawComment):
    """Raw comment plus derived bot and sentiment fields."""

    is_bot: bool
    bot_score: int
    bot_signals: List[str] = Field(default_factory=list)
    sentiment: Optional[Sentiment] = None


class VideoStats(CamelModel):
    likes: int = 0
    shares: int = 0
    saves: int = 0
    views: int = 0
    comments: int = 0
    created_at: Optional[int] = None


class VideoRef(CamelModel):
    """A target video resolved from a query."""

    id: str
    url: str
    author_handle: Optional[str] = None
    description: str = ""
    created_at: Optional[int] = None
    stats: Optional[VideoStats] = None


class SentimentCounts(CamelModel):
    positive: int = 0
    negative: int = 0
    neutral: int = 0


class AggregateResult(CamelModel):
    """Result of one ingestion pass; every count is a reduction over ``comments``."""

    comments: List[AnnotatedComment]
    total_comments: int
    real_comments: int
    bot_comments: int
    unique_author_count: int
    sentiment_counts: SentimentCounts
    platform_breakdown: Dict[str, int]
    videos_analyzed: int
    cursor: Cursor = None
    has_more: bool = False

    query_type: Literal["username", "video", "keyword"]
    handle: Optional[str] = None
    keyword: Optional[str] = None
    video_url: Optional[str] = None
    video_stats: Optional[VideoStats] = None
    total_videos: int = 0
    successful_videos: int = 0
    failed_videos: int = 0
    partial: bool = False
    videos: List[VideoRef] = Field(default_factory=list)


class IngestResponse(CamelModel):
    success: bool
    data: Optional[AggregateResult] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None


class LoadMoreRequest(CamelModel):
    video_url: str
    cursor: Cursor = None


class CommentPage(CamelModel):
    comments: List[AnnotatedComment]
    cursor: Cursor = None
    has_more: bool = False


class LoadMoreResponse(CamelModel):
    success: bool
    data: Optional[CommentPage] = None
    error: Optional[str] = None


class NarrativeRequest(CamelModel):
    comments: List[AnnotatedComment]


class MainNarrative(CamelModel):
    title: str
    description: str
    sentiment: Sentiment
    keywords: List[str] = Field(default_factory=list)
    percentage: float = 0.0


class SecondaryNarrative(CamelModel):
    topic: str
    sentiment: Sentiment
    keywords: List[str] = Field(default_factory=list)
    comment_count: int = 0
    percentage: float = 0.0


class NarrativeSummary(CamelModel):
    main_narrative: MainNarrative
    secondary_narratives: List[SecondaryNarrative] = Field(default_factory=list, max_length=4)
    source: Literal["primary", "fallback", "manual"] = "manual"
