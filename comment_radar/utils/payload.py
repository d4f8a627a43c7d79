"""Normalisation adapter for upstream payload shapes.

The provider is inconsistent about field names across endpoints and versions,
so every lookup goes through an explicit priority-ordered list of keys.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from comment_radar.models.common import Author, Cursor, RawComment, VideoRef, VideoStats

ITEM_KEYS: Sequence[str] = ("comments", "data", "items", "aweme_list", "search_item_list")
CURSOR_KEYS: Sequence[str] = ("cursor", "next_cursor", "nextCursor")
HAS_MORE_KEYS: Sequence[str] = ("has_more", "hasMore")

COMMENT_ID_KEYS: Sequence[str] = ("cid", "id", "comment_id")
LIKE_KEYS: Sequence[str] = ("digg_count", "like_count", "likeCount")
CREATED_KEYS: Sequence[str] = ("create_time", "created_at", "createTime")
TEXT_KEYS: Sequence[str] = ("text", "comment_text", "content")

VIDEO_URL_TEMPLATE = "https://www.tiktok.com/@{handle}/video/{video_id}"


def first_present(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the value of the first key whose value is not ``None``."""

    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def extract_items(payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
    for key in ITEM_KEYS:
        value = payload.get(key)
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
    return []


def extract_cursor(payload: Mapping[str, Any]) -> Cursor:
    """Next-page cursor, or ``None`` when upstream signals no further pages."""

    value = first_present(payload, CURSOR_KEYS)
    if value in ("", 0, "0") or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        return value
    return None


def extract_has_more(payload: Mapping[str, Any]) -> bool:
    value = first_present(payload, HAS_MORE_KEYS)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def parse_timestamp(value: Any) -> Optional[int]:
    """Epoch seconds, or ``None`` for anything absent, non-numeric or non-positive."""

    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return seconds if seconds > 0 else None


def parse_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(count, 0)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _avatar_url(user: Mapping[str, Any]) -> Optional[str]:
    for key in ("avatar_thumb", "avatar_medium", "avatar_larger"):
        avatar = user.get(key)
        if isinstance(avatar, dict):
            urls = avatar.get("url_list") or []
            if urls:
                return _optional_str(urls[0])
        elif isinstance(avatar, str):
            return _optional_str(avatar)
    return _optional_str(user.get("avatar_url") or user.get("avatarUrl"))


def normalize_author(user: Any) -> Author:
    if not isinstance(user, dict):
        return Author()
    return Author(
        unique_handle=_optional_str(user.get("unique_id") or user.get("uniqueId")),
        display_name=_optional_str(user.get("nickname")),
        avatar_url=_avatar_url(user),
        user_id=_optional_str(user.get("uid") or user.get("id") or user.get("sec_uid")),
    )


def normalize_comment(
    raw: Mapping[str, Any],
    *,
    position: int = 0,
    video_id: Optional[str] = None,
    video_url: Optional[str] = None,
    platform: str = "tiktok",
) -> RawComment:
    """Build a :class:`RawComment` from one upstream comment object.

    Comments without an identifier get a positional one so they remain
    addressable within their video.
    """

    comment_id = _optional_str(first_present(raw, COMMENT_ID_KEYS))
    if comment_id is None:
        comment_id = f"{video_id or 'unknown'}-{position}"
    text = first_present(raw, TEXT_KEYS)
    return RawComment(
        id=comment_id,
        text=text if isinstance(text, str) else "",
        author=normalize_author(raw.get("user") or raw.get("author")),
        like_count=parse_count(first_present(raw, LIKE_KEYS)),
        created_at=parse_timestamp(first_present(raw, CREATED_KEYS)),
        platform=platform,
        video_id=video_id,
        video_url=video_url,
    )


def normalize_comments(
    items: Sequence[Mapping[str, Any]],
    *,
    video_id: Optional[str] = None,
    video_url: Optional[str] = None,
) -> List[RawComment]:
    return [
        normalize_comment(item, position=index, video_id=video_id, video_url=video_url)
        for index, item in enumerate(items)
    ]


def normalize_video_stats(item: Mapping[str, Any]) -> VideoStats:
    stats = item.get("statistics") or item.get("stats") or {}
    return VideoStats(
        likes=parse_count(stats.get("digg_count", stats.get("diggCount"))),
        shares=parse_count(stats.get("share_count", stats.get("shareCount"))),
        saves=parse_count(stats.get("collect_count", stats.get("collectCount"))),
        views=parse_count(stats.get("play_count", stats.get("playCount"))),
        comments=parse_count(stats.get("comment_count", stats.get("commentCount"))),
        created_at=parse_timestamp(item.get("create_time", item.get("createTime"))),
    )


def normalize_video(raw: Mapping[str, Any], fallback_handle: Optional[str] = None) -> Optional[VideoRef]:
    """Build a :class:`VideoRef` from a listing or search entry.

    Search results wrap the video object under ``aweme_info``; entries with no
    usable id are dropped.
    """

    item = raw.get("aweme_info") if isinstance(raw.get("aweme_info"), dict) else raw
    video_id = _optional_str(item.get("aweme_id") or item.get("id"))
    if video_id is None:
        return None
    author = item.get("author") if isinstance(item.get("author"), dict) else {}
    handle = _optional_str(author.get("unique_id") or author.get("uniqueId")) or fallback_handle
    description = item.get("desc")
    return VideoRef(
        id=video_id,
        url=VIDEO_URL_TEMPLATE.format(handle=handle or "unknown", video_id=video_id),
        author_handle=handle,
        description=description if isinstance(description, str) else "",
        created_at=parse_timestamp(item.get("create_time", item.get("createTime"))),
        stats=normalize_video_stats(item),
    )


def normalize_videos(items: Sequence[Mapping[str, Any]], fallback_handle: Optional[str] = None) -> List[VideoRef]:
    videos: List[VideoRef] = []
    seen: set[str] = set()
    for item in items:
        video = normalize_video(item, fallback_handle)
        if video is None or video.id in seen:
            continue
        seen.add(video.id)
        videos.append(video)
    return videos


def extract_video_info(payload: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Locate the video object in a video-info response."""

    item_info = payload.get("itemInfo")
    if isinstance(item_info, dict) and isinstance(item_info.get("itemStruct"), dict):
        return item_info["itemStruct"]
    detail = payload.get("aweme_detail")
    if isinstance(detail, dict):
        return detail
    return None
