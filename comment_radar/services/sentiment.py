"""Lexical sentiment classification for English and Indonesian comments."""
from __future__ import annotations

import re
from typing import Iterable, List, Pattern, Sequence

from comment_radar.models.common import AnnotatedComment, Sentiment

POSITIVE_TERMS: Sequence[str] = (
    # English
    "love", "loved", "lovely", "great", "awesome", "amazing", "excellent", "good",
    "best", "perfect", "wonderful", "beautiful", "nice", "cool", "fire", "lit",
    "goat", "legend", "proud", "support", "respect", "thank you", "thanks",
    "brilliant", "fantastic", "slay",
    # Indonesian and slang
    "bagus", "mantap", "mantul", "keren", "hebat", "suka", "cinta", "sayang",
    "setuju", "dukung", "mendukung", "sukses", "semangat", "bangga", "terbaik",
    "luar biasa", "cakep", "cantik", "ganteng", "lucu", "gokil", "top",
    "terima kasih", "makasih", "salut", "amin", "aamiin", "berkah", "josss",
    "kece", "asik", "asyik", "seru", "menyala",
)

NEGATIVE_TERMS: Sequence[str] = (
    # English
    "hate", "bad", "terrible", "awful", "worst", "horrible", "poor",
    "disappointing", "disappointed", "trash", "cringe", "stupid", "idiot",
    "fake", "scam", "liar", "lies", "corrupt", "disgusting", "ugly", "boring",
    "shit", "fuck", "damn", "wtf",
    # Indonesian, slang and profanity
    "jelek", "benci", "buruk", "parah", "kecewa", "sampah", "bohong", "hoax",
    "hoaks", "payah", "bodoh", "goblok", "goblog", "tolol", "bego", "dungu",
    "anjing", "anjir", "anjay", "bangsat", "babi", "kampret", "tai", "taik",
    "brengsek", "bajingan", "sialan", "korupsi", "koruptor", "penipu", "tipu",
    "munafik", "malu", "memalukan", "muak", "najis", "males", "kacau", "gagal",
)


def _compile_lexicon(terms: Iterable[str]) -> Pattern[str]:
    """Match terms at the start of a word, so ``hates`` counts but ``politik`` never fires ``lit``."""

    alternation = "|".join(re.escape(term.lower()) for term in sorted(terms, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alternation})")


POSITIVE_RE = _compile_lexicon(POSITIVE_TERMS)
NEGATIVE_RE = _compile_lexicon(NEGATIVE_TERMS)


class SentimentClassifier:
    """Three-way lexical classifier.

    A text matching only positive terms is positive, only negative terms is
    negative, and anything else (both or neither) is neutral. There is no
    weighting and no negation handling.
    """

    def classify(self, text: str | None) -> Sentiment:
        lowered = (text or "").lower()
        has_positive = POSITIVE_RE.search(lowered) is not None
        has_negative = NEGATIVE_RE.search(lowered) is not None
        if has_positive and not has_negative:
            return "positive"
        if has_negative and not has_positive:
            return "negative"
        return "neutral"

    def annotate(self, comments: Sequence[AnnotatedComment]) -> List[AnnotatedComment]:
        return [
            comment.model_copy(update={"sentiment": self.classify(comment.text)})
            for comment in comments
        ]
