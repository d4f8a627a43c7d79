"""Utility functions for text processing."""
from __future__ import annotations

import re
from typing import List

WHITESPACE_RE = re.compile(r"\s+")
URL_RE = re.compile(r"https?://\S+")
WORD_RE = re.compile(r"[^\W\d_]{2,}", re.UNICODE)

# Pictographs, emoticons, transport and supplemental symbols, dingbats, arrows,
# misc technical glyphs and the handful of legacy BMP emoji.
EMOJI_CHARS = (
    "\U0001F000-\U0001FAFF"
    "\u2600-\u27BF"
    "\u2300-\u23FF"
    "\u2B00-\u2BFF"
    "\u2190-\u21FF"
    "\u3030\u303D\u3297\u3299"
    "\u00A9\u00AE\u203C\u2049\u2122\u2139"
)
# Variation selector-16 and zero-width joiner glue multi-codepoint emoji together.
EMOJI_JOINERS = "\uFE0F\u200D"

EMOJI_ONLY_RE = re.compile("^[" + EMOJI_CHARS + EMOJI_JOINERS + r"\s]+$")
REPEATED_EMOJI_RE = re.compile("([" + EMOJI_CHARS + "])\uFE0F?(?:\\1\uFE0F?){2,}")


def normalize_text(text: str) -> str:
    """Lowercase text, drop URLs and collapse whitespace."""

    text = text.strip()
    text = URL_RE.sub("", text)
    text = WHITESPACE_RE.sub(" ", text)
    return text.lower()


def fold_text(text: str | None) -> str:
    """Lowercase and trim, the key used to spot copy-pasted comments."""

    return (text or "").strip().lower()


def is_emoji_only(text: str) -> bool:
    return bool(text) and EMOJI_ONLY_RE.match(text) is not None


def has_repeated_emoji(text: str) -> bool:
    """True when one emoji appears at least three times in a row."""

    return REPEATED_EMOJI_RE.search(text) is not None


def tokenize(text: str) -> List[str]:
    """Split normalised text into alphabetic words of two or more letters."""

    return WORD_RE.findall(normalize_text(text))
