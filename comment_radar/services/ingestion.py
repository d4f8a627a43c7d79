"""Ingestion service resolving a query into a classified comment set."""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from comment_radar.config import Settings, get_settings
from comment_radar.integrations.scrapecreators import Endpoint, ScrapeCreatorsClient, UpstreamFailure
from comment_radar.logging import get_logger
from comment_radar.models.common import (
    AggregateResult,
    AnnotatedComment,
    CommentPage,
    Cursor,
    RawComment,
    VideoRef,
    VideoStats,
)
from comment_radar.services.bot_detection import BotClassifier
from comment_radar.services.metrics import MetricsService
from comment_radar.services.pagination import (
    Deadline,
    FetchBudget,
    PaginationResult,
    PaginationStatus,
    Paginator,
    Sleep,
)
from comment_radar.services.sentiment import SentimentClassifier
from comment_radar.utils.payload import (
    extract_video_info,
    normalize_comments,
    normalize_video_stats,
    normalize_videos,
)

logger = get_logger(__name__)

VIDEO_URL_RE = re.compile(r"tiktok\.com/@([^/?#\s]+)/video/(\d+)")
DEADLINE_MESSAGE = "Scan cut short by the ingestion deadline before any comments were collected."


class QueryType(str, Enum):
    USERNAME = "username"
    VIDEO = "video"
    KEYWORD = "keyword"


class IngestStatus(str, Enum):
    SUCCESS = "success"
    NO_DATA = "no_data"
    UPSTREAM_ERROR = "upstream_error"


class InvalidQueryError(ValueError):
    """Raised for queries rejected before any upstream request is made."""


@dataclass
class IngestOutcome:
    status: IngestStatus
    result: Optional[AggregateResult] = None
    error: Optional[str] = None
    debug: Dict[str, Any] = field(default_factory=dict)
    upstream_status: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status is IngestStatus.SUCCESS


@dataclass
class _VideoSweep:
    comments: List[RawComment] = field(default_factory=list)
    successful: int = 0
    failed: int = 0
    partial: bool = False

    @property
    def attempted(self) -> int:
        return self.successful + self.failed


def parse_video_url(url: str) -> Tuple[str, str]:
    """Return ``(handle, video_id)`` from a TikTok video URL."""

    match = VIDEO_URL_RE.search(url or "")
    if match is None:
        raise InvalidQueryError("Invalid TikTok video URL format")
    return match.group(1), match.group(2)


def clean_handle(query: str) -> str:
    return query[1:] if query.startswith("@") else query


def clean_keyword(query: str) -> str:
    return query[1:] if query.startswith("#") else query


def latest_video(videos: Sequence[VideoRef]) -> VideoRef:
    """Most recently created video; listing order breaks ties and missing dates."""

    return max(videos, key=lambda video: video.created_at or 0)


class IngestionService:
    """Resolve username, video or keyword queries and classify their comments.

    Videos and pages are fetched strictly one after another to stay inside the
    provider's rate limits.
    """

    def __init__(
        self,
        client: ScrapeCreatorsClient,
        settings: Optional[Settings] = None,
        *,
        bot_classifier: Optional[BotClassifier] = None,
        sentiment_classifier: Optional[SentimentClassifier] = None,
        metrics: Optional[MetricsService] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._sleep = sleep
        self._paginator = Paginator(
            client,
            retry_attempts=self._settings.retry_attempts,
            retry_base_delay_ms=self._settings.retry_base_delay_ms,
            sleep=sleep,
        )
        self._bots = bot_classifier or BotClassifier(self._settings.bot_score_threshold)
        self._sentiment = sentiment_classifier or SentimentClassifier()
        self._metrics = metrics or MetricsService()

    def budget(self, target_count: Optional[int] = None, max_pages: Optional[int] = None) -> FetchBudget:
        target = target_count or self._settings.default_target_comments
        return FetchBudget(
            target_count=min(target, self._settings.max_target_comments),
            max_pages=max_pages,
            per_request_delay_ms=self._settings.per_request_delay_ms,
        )

    async def ingest(
        self,
        query: Optional[str],
        query_type: Optional[str],
        *,
        latest_only: bool = False,
        target_count: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> IngestOutcome:
        query = (query or "").strip()
        if not query:
            raise InvalidQueryError("Query parameter is required")
        try:
            kind = QueryType(query_type)
        except ValueError:
            raise InvalidQueryError(
                "Invalid type parameter. Must be 'username', 'video', or 'keyword'"
            ) from None
        if target_count is not None and target_count <= 0:
            raise InvalidQueryError("targetData must be a positive integer")

        budget = self.budget(target_count)
        if deadline is None:
            deadline = Deadline(self._settings.ingest_deadline_seconds)
        logger.info(
            "Starting ingestion",
            query=query,
            type=kind.value,
            latest_only=latest_only,
            target=budget.target_count,
        )

        if kind is QueryType.VIDEO:
            return await self._ingest_video(query, budget, deadline)
        if kind is QueryType.USERNAME:
            handle = clean_handle(query)
            if not handle:
                raise InvalidQueryError("Query parameter is required")
            return await self._ingest_username(handle, latest_only, budget, deadline)
        keyword = clean_keyword(query)
        if not keyword:
            raise InvalidQueryError("Query parameter is required")
        return await self._ingest_keyword(keyword, latest_only, budget, deadline)

    def annotate(self, comments: Sequence[RawComment]) -> List[AnnotatedComment]:
        """Bot-score then sentiment-label a merged comment set."""

        return self._sentiment.annotate(self._bots.classify(comments))

    async def load_more(self, video_url: str, cursor: Cursor = None) -> CommentPage:
        """Fetch and classify the single comment page that follows ``cursor``."""

        _, video_id = parse_video_url(video_url)
        result = await self._paginator.collect(
            Endpoint.VIDEO_COMMENTS,
            self._comment_params(video_url),
            self.budget(self._settings.comments_page_size, max_pages=1),
            cursor=cursor,
        )
        if result.failed and not result.items and result.failure is not None:
            raise result.failure
        comments = normalize_comments(result.items, video_id=video_id, video_url=video_url)
        return CommentPage(
            comments=self.annotate(self._dedupe(comments)),
            cursor=result.next_cursor,
            has_more=result.has_more,
        )

    async def fetch_video_stats(self, video_url: str) -> Optional[VideoStats]:
        try:
            payload = await self._client.fetch_json(Endpoint.VIDEO_INFO, {"url": video_url})
        except UpstreamFailure as exc:
            logger.warning("Video info unavailable", video_url=video_url, status=exc.status, error=str(exc))
            return None
        item = extract_video_info(payload)
        return normalize_video_stats(item) if item is not None else None

    async def _ingest_video(self, video_url: str, budget: FetchBudget, deadline: Deadline) -> IngestOutcome:
        handle, video_id = parse_video_url(video_url)
        stats = await self.fetch_video_stats(video_url)
        video = VideoRef(
            id=video_id,
            url=video_url,
            author_handle=handle,
            created_at=stats.created_at if stats else None,
            stats=stats,
        )
        result = await self._collect_comments(video, budget, deadline)
        comments = self._dedupe(
            normalize_comments(result.items, video_id=video.id, video_url=video.url)
        )
        debug: Dict[str, Any] = {
            "query": video_url,
            "pagesFetched": result.pages_fetched,
            "paginationStatus": result.status.value,
        }

        if not comments:
            if result.failed and result.failure is not None:
                debug.update(apiError=result.failure.raw_body, status=result.failure.status)
                return IngestOutcome(
                    IngestStatus.UPSTREAM_ERROR,
                    error="Failed to fetch comments from video",
                    debug=debug,
                    upstream_status=result.failure.status,
                )
            if result.status is PaginationStatus.DEADLINE:
                debug["message"] = DEADLINE_MESSAGE
                return IngestOutcome(IngestStatus.NO_DATA, error="Ingestion deadline reached", debug=debug)
            debug["message"] = "The video has no comments or they are not publicly available."
            return IngestOutcome(IngestStatus.NO_DATA, error="No comments found for this video", debug=debug)

        aggregate = self._metrics.aggregate(
            self.annotate(comments),
            query_type=QueryType.VIDEO.value,
            handle=handle,
            video_url=video_url,
            video_stats=stats,
            videos=[video],
            total_videos=1,
            successful_videos=1,
            failed_videos=0,
            videos_analyzed=1,
            cursor=result.next_cursor,
            has_more=result.has_more,
            partial=result.partial,
        )
        return IngestOutcome(IngestStatus.SUCCESS, result=aggregate, debug=debug)

    async def _ingest_username(
        self, handle: str, latest_only: bool, budget: FetchBudget, deadline: Deadline
    ) -> IngestOutcome:
        limit = self._settings.max_user_videos
        listing = await self._paginator.collect(
            Endpoint.USER_VIDEOS,
            {"handle": handle, "amount": limit},
            FetchBudget(target_count=limit, per_request_delay_ms=self._settings.per_request_delay_ms),
            deadline=deadline,
        )
        videos = normalize_videos(listing.items, fallback_handle=handle)[:limit]
        logger.info("Resolved user videos", handle=handle, videos=len(videos))
        if not videos:
            return self._no_videos(listing, {"handle": handle}, "No videos found for this user")
        return await self._ingest_videos(
            [latest_video(videos)] if latest_only else videos,
            budget,
            deadline,
            resolution=listing,
            query_type=QueryType.USERNAME.value,
            handle=handle,
            total_videos=len(videos),
        )

    async def _ingest_keyword(
        self, keyword: str, latest_only: bool, budget: FetchBudget, deadline: Deadline
    ) -> IngestOutcome:
        limit = self._settings.keyword_max_videos
        search = await self._paginator.collect(
            Endpoint.KEYWORD_SEARCH,
            {"query": keyword, "count": self._settings.search_page_size},
            FetchBudget(
                target_count=limit,
                max_pages=1 if latest_only else self._settings.keyword_max_pages,
                per_request_delay_ms=self._settings.per_request_delay_ms,
            ),
            deadline=deadline,
        )
        videos = normalize_videos(search.items)[:limit]
        logger.info("Resolved keyword videos", keyword=keyword, videos=len(videos), pages=search.pages_fetched)
        if not videos:
            return self._no_videos(search, {"keyword": keyword}, "No videos found for this keyword")
        return await self._ingest_videos(
            [latest_video(videos)] if latest_only else videos,
            budget,
            deadline,
            resolution=search,
            query_type=QueryType.KEYWORD.value,
            keyword=keyword,
            total_videos=len(videos),
        )

    def _no_videos(self, resolution: PaginationResult, debug: Dict[str, Any], message: str) -> IngestOutcome:
        if resolution.failed and resolution.failure is not None:
            debug.update(apiError=resolution.failure.raw_body, status=resolution.failure.status)
            return IngestOutcome(
                IngestStatus.UPSTREAM_ERROR,
                error="Failed to fetch videos from upstream",
                debug=debug,
                upstream_status=resolution.failure.status,
            )
        if resolution.status is PaginationStatus.DEADLINE:
            debug.update(paginationStatus=resolution.status.value, message=DEADLINE_MESSAGE)
            return IngestOutcome(IngestStatus.NO_DATA, error="Ingestion deadline reached", debug=debug)
        debug["message"] = "The upstream returned successfully but no videos were found."
        return IngestOutcome(IngestStatus.NO_DATA, error=message, debug=debug)

    async def _ingest_videos(
        self,
        videos: Sequence[VideoRef],
        budget: FetchBudget,
        deadline: Deadline,
        *,
        resolution: PaginationResult,
        **context: Any,
    ) -> IngestOutcome:
        sweep = await self._sweep(videos, budget, deadline)
        debug: Dict[str, Any] = {
            key: value for key, value in context.items() if key in ("handle", "keyword")
        }
        debug.update(
            videosAttempted=sweep.attempted,
            successfulVideos=sweep.successful,
            failedVideos=sweep.failed,
        )

        comments = self._dedupe(sweep.comments)
        if not comments:
            if sweep.failed:
                debug["message"] = "All video comment fetches failed; the upstream may be rate limiting."
                return IngestOutcome(
                    IngestStatus.UPSTREAM_ERROR,
                    error="Failed to fetch comments from any videos",
                    debug=debug,
                )
            if sweep.partial:
                debug["message"] = DEADLINE_MESSAGE
                return IngestOutcome(IngestStatus.NO_DATA, error="Ingestion deadline reached", debug=debug)
            debug["message"] = "The resolved videos have no public comments."
            return IngestOutcome(IngestStatus.NO_DATA, error="No comments found for this query", debug=debug)

        aggregate = self._metrics.aggregate(
            self.annotate(comments),
            videos=list(videos),
            successful_videos=sweep.successful,
            failed_videos=sweep.failed,
            videos_analyzed=sweep.successful,
            cursor=None,
            has_more=False,
            partial=(
                sweep.partial
                or sweep.failed > 0
                or resolution.partial
                or sweep.attempted < len(videos)
            ),
            **context,
        )
        return IngestOutcome(IngestStatus.SUCCESS, result=aggregate, debug=debug)

    async def _sweep(self, videos: Sequence[VideoRef], budget: FetchBudget, deadline: Deadline) -> _VideoSweep:
        sweep = _VideoSweep()
        for index, video in enumerate(videos):
            if deadline.expired:
                logger.warning("Deadline reached; skipping remaining videos", remaining=len(videos) - index)
                sweep.partial = True
                break
            if index:
                await self._sleep(self._settings.inter_video_delay_ms / 1000)

            result = await self._collect_comments(video, budget, deadline)
            comments = normalize_comments(result.items, video_id=video.id, video_url=video.url)
            if result.status is PaginationStatus.DEADLINE and not comments:
                sweep.partial = True
                break
            if result.failed and not comments:
                sweep.failed += 1
                logger.warning(
                    "Failed to fetch comments from video",
                    video_url=video.url,
                    status=result.failure.status if result.failure else None,
                )
                continue

            sweep.successful += 1
            sweep.partial = sweep.partial or result.partial
            sweep.comments.extend(comments)
            logger.info("Collected video comments", video_url=video.url, comments=len(comments))

        logger.info(
            "Video sweep finished",
            successful=sweep.successful,
            failed=sweep.failed,
            comments=len(sweep.comments),
        )
        return sweep

    async def _collect_comments(
        self, video: VideoRef, budget: FetchBudget, deadline: Deadline
    ) -> PaginationResult:
        return await self._paginator.collect(
            Endpoint.VIDEO_COMMENTS,
            self._comment_params(video.url),
            budget,
            deadline=deadline,
        )

    def _comment_params(self, video_url: str) -> Dict[str, Any]:
        return {"url": video_url, "count": self._settings.comments_page_size}

    @staticmethod
    def _dedupe(comments: Sequence[RawComment]) -> List[RawComment]:
        """Drop repeats of the same (video, comment id), keeping first-seen order."""

        seen: set = set()
        unique: List[RawComment] = []
        for comment in comments:
            if comment.key in seen:
                continue
            seen.add(comment.key)
            unique.append(comment)
        return unique
