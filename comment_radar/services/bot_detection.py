"""Heuristic bot scoring for comment batches."""
from __future__ import annotations

import re
from collections import Counter
from typing import Callable, List, NamedTuple, Optional, Sequence

from comment_radar.models.common import AnnotatedComment, Author, RawComment
from comment_radar.utils.text import fold_text, has_repeated_emoji, is_emoji_only

# Tunable: comments scoring at or above this are flagged as bots.
BOT_SCORE_THRESHOLD = 4

RAPID_FIRE_SECONDS = 2
DUPLICATE_MIN_OCCURRENCES = 3
EMOJI_BURST_MAX_LENGTH = 8

SPAM_PATTERNS = (
    r"follow.*back",
    r"check.*bio",
    r"free\s*gift",
    r"promo",
    r"giveaway",
    r"\bdm\s*me\b",
    r"click.*link",
    r"telegram",
    r"whatsapp",
)
SPAM_RE = re.compile("|".join(f"(?:{pattern})" for pattern in SPAM_PATTERNS), re.IGNORECASE)
DIGIT_RUN_RE = re.compile(r"\d{4,}")
GENERIC_HANDLE_RE = re.compile(r"[a-zA-Z0-9._]*")
DEFAULT_AVATAR_MARKERS = ("default", "avatar")


class _Context(NamedTuple):
    text_counts: Counter
    previous_created_at: Optional[int]


class Signal(NamedTuple):
    name: str
    points: int
    test: Callable[[RawComment, _Context], bool]


def _valid_int(value: object) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _sanitize(comment: RawComment) -> RawComment:
    """Coerce the fields of an unvalidated comment so scoring never raises.

    Absent or malformed fields fall back to the value that makes their signal
    contribute nothing, except where the signal is about absence itself.
    """

    text = getattr(comment, "text", None)
    author = getattr(comment, "author", None)
    like_count = _valid_int(getattr(comment, "like_count", None))
    created_at = _valid_int(getattr(comment, "created_at", None))
    clean = {
        "text": text if isinstance(text, str) else "",
        "author": author if isinstance(author, Author) else Author(),
        "like_count": like_count if like_count is not None and like_count >= 0 else 0,
        "created_at": created_at if created_at is not None and created_at > 0 else None,
    }
    if all(getattr(comment, key, None) == value for key, value in clean.items()):
        return comment
    return RawComment(
        id=str(getattr(comment, "id", None) or ""),
        platform=getattr(comment, "platform", None) or "tiktok",
        video_id=getattr(comment, "video_id", None),
        video_url=getattr(comment, "video_url", None),
        **clean,
    )


def _too_short(comment: RawComment, _: _Context) -> bool:
    return len(comment.text.strip()) <= 3


def _emoji_burst(comment: RawComment, _: _Context) -> bool:
    return len(comment.text) <= EMOJI_BURST_MAX_LENGTH and is_emoji_only(comment.text.strip())


def _spam_phrase(comment: RawComment, _: _Context) -> bool:
    return SPAM_RE.search(comment.text) is not None


def _duplicate_text(comment: RawComment, context: _Context) -> bool:
    key = fold_text(comment.text)
    return bool(key) and context.text_counts[key] >= DUPLICATE_MIN_OCCURRENCES


def _numeric_handle(comment: RawComment, _: _Context) -> bool:
    handle = comment.author.unique_handle
    return bool(handle) and DIGIT_RUN_RE.search(handle) is not None


def _generic_handle(comment: RawComment, _: _Context) -> bool:
    handle = comment.author.unique_handle
    return bool(handle) and len(handle) < 4 and GENERIC_HANDLE_RE.fullmatch(handle) is not None


def _default_avatar(comment: RawComment, _: _Context) -> bool:
    url = (comment.author.avatar_url or "").lower()
    return not url or any(marker in url for marker in DEFAULT_AVATAR_MARKERS)


def _rapid_fire(comment: RawComment, context: _Context) -> bool:
    previous = context.previous_created_at
    if comment.created_at is None or previous is None:
        return False
    return abs(comment.created_at - previous) < RAPID_FIRE_SECONDS


def _low_engagement(comment: RawComment, _: _Context) -> bool:
    return comment.like_count == 0 and len(comment.text) < 6


def _emoji_repeat(comment: RawComment, _: _Context) -> bool:
    return has_repeated_emoji(comment.text)


SIGNALS: Sequence[Signal] = (
    Signal("too_short", 2, _too_short),
    Signal("emoji_burst", 3, _emoji_burst),
    Signal("spam_phrase", 3, _spam_phrase),
    Signal("duplicate_text", 2, _duplicate_text),
    Signal("numeric_handle", 2, _numeric_handle),
    Signal("generic_handle", 1, _generic_handle),
    Signal("default_avatar", 1, _default_avatar),
    Signal("rapid_fire", 2, _rapid_fire),
    Signal("low_engagement", 1, _low_engagement),
    Signal("emoji_repeat", 2, _emoji_repeat),
)


class BotClassifier:
    """Score each comment in a batch against independent suspicion signals.

    Duplicate-text and rapid-fire signals look at the whole batch, so the
    result for one comment depends on its neighbours; given the same batch the
    output is always identical.
    """

    def __init__(self, threshold: int = BOT_SCORE_THRESHOLD) -> None:
        self.threshold = threshold

    def classify(self, comments: Sequence[RawComment]) -> List[AnnotatedComment]:
        comments = [_sanitize(comment) for comment in comments]
        text_counts = Counter(key for key in (fold_text(c.text) for c in comments) if key)
        annotated: List[AnnotatedComment] = []
        previous_created_at: Optional[int] = None
        for comment in comments:
            context = _Context(text_counts, previous_created_at)
            score, fired = self._score(comment, context)
            annotated.append(
                AnnotatedComment(
                    **comment.model_dump(include=set(RawComment.model_fields)),
                    is_bot=score >= self.threshold,
                    bot_score=score,
                    bot_signals=fired,
                )
            )
            previous_created_at = comment.created_at
        return annotated

    @staticmethod
    def _score(comment: RawComment, context: _Context) -> tuple[int, List[str]]:
        total = 0
        fired: List[str] = []
        for signal in SIGNALS:
            if signal.test(comment, context):
                total += signal.points
                fired.append(signal.name)
        return total, fired
