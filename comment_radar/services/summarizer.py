"""Generate narrative summaries for a comment set."""
from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional, Sequence

import backoff
from openai import APIConnectionError, AsyncOpenAI, OpenAIError

from comment_radar.config import Settings, get_settings
from comment_radar.logging import get_logger
from comment_radar.models.common import (
    AnnotatedComment,
    MainNarrative,
    NarrativeSummary,
    SecondaryNarrative,
    Sentiment,
)
from comment_radar.utils.openai_parser import (
    MAX_SECONDARY_NARRATIVES,
    OpenAIParseError,
    extract_json,
    parse_narrative_payload,
)
from comment_radar.utils.text import tokenize

logger = get_logger(__name__)

STOPWORDS = frozenset(
    {
        # English
        "the", "and", "for", "you", "this", "that", "with", "are", "was", "but", "not",
        "have", "has", "just", "his", "her", "they", "them", "she", "him", "what", "who",
        "all", "can", "your", "from", "about", "its", "will", "would", "there",
        "their", "our", "out", "one", "get", "like", "too", "very", "why", "how",
        # Indonesian
        "yang", "dan", "ini", "itu", "ada", "aja", "saja", "juga", "kalau", "kalo", "dari",
        "untuk", "buat", "dengan", "sama", "udah", "sudah", "tidak", "gak", "nggak", "ga",
        "ya", "yg", "di", "ke", "kok", "deh", "sih", "lagi", "bisa", "mau", "kita",
        "kami", "aku", "saya", "kamu", "dia", "mereka", "pak", "bu", "nya", "jadi", "karena",
        "tapi", "atau", "pada", "akan", "lebih", "banget", "bgt", "emang", "memang",
    }
)

NARRATIVE_PROMPT = """Analyze these {total} social media comments and identify the main narrative and secondary narratives being discussed.

Comments:
{sample}

Identify:
1. The PRIMARY narrative - what most people are talking about
2. Up to {max_secondary} secondary narratives - other significant discussion themes
3. The sentiment (positive, negative or neutral) and key terms for each narrative
4. The estimated percentage of comments for each narrative based on the sample

Return valid JSON only, shaped as:
{{"mainNarrative": {{"title": str, "description": str, "sentiment": str, "keywords": [str], "percentage": number}},
  "secondaryNarratives": [{{"topic": str, "sentiment": str, "keywords": [str], "commentCount": number, "percentage": number}}]}}
"""


class SummaryService:
    """Summarise narratives with a primary model, a fallback model, then a manual heuristic."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None) -> None:
        self._settings = settings or get_settings()
        if client is None and self._settings.openai_api_key:
            client = AsyncOpenAI(
                api_key=self._settings.openai_api_key,
                base_url=self._settings.openai_base_url,
            )
        self._client = client

    async def summarize_narratives(self, comments: Sequence[AnnotatedComment]) -> NarrativeSummary:
        if self._client is None:
            logger.info("No OpenAI client configured; using manual narrative summary")
            return self.manual_summary(comments)

        prompt = self._build_prompt(comments)
        models = (
            ("primary", self._settings.openai_model_primary),
            ("fallback", self._settings.openai_model_fallback),
        )
        for source, model in models:
            try:
                parsed = await self._complete(model, prompt)
            except (OpenAIError, OpenAIParseError) as exc:
                logger.warning("Narrative model failed", source=source, model=model, error=str(exc))
                continue
            return NarrativeSummary(**parsed, source=source)

        logger.warning("All narrative models failed; using manual narrative summary")
        return self.manual_summary(comments)

    @backoff.on_exception(backoff.expo, APIConnectionError, max_tries=3, factor=1)
    async def _complete(self, model: str, prompt: str) -> Dict[str, object]:
        response = await self._client.chat.completions.create(  # type: ignore[union-attr]
            model=model,
            messages=[
                {"role": "system", "content": "You analyse social media discussions and answer in JSON."},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
        )
        text = response.choices[0].message.content or ""
        return parse_narrative_payload(extract_json(text))

    def _build_prompt(self, comments: Sequence[AnnotatedComment]) -> str:
        sample = [c.text.strip() for c in comments[: self._settings.summary_sample_size] if c.text.strip()]
        return NARRATIVE_PROMPT.format(
            total=len(comments),
            sample="\n---\n".join(sample),
            max_secondary=MAX_SECONDARY_NARRATIVES,
        )

    def manual_summary(self, comments: Sequence[AnnotatedComment]) -> NarrativeSummary:
        """Deterministic summary from keyword frequency and sentiment labels."""

        total = len(comments)
        token_lists = [
            list(dict.fromkeys(t for t in tokenize(c.text) if len(t) >= 3 and t not in STOPWORDS))
            for c in comments
        ]
        frequency: Counter = Counter()
        for tokens in token_lists:
            frequency.update(tokens)
        top_terms = [term for term, _ in frequency.most_common(MAX_SECONDARY_NARRATIVES + 3)]

        overall = _dominant_sentiment([c.sentiment for c in comments])
        main_keywords = top_terms[:3]
        covered = sum(1 for tokens in token_lists if set(tokens) & set(main_keywords)) if main_keywords else 0
        if main_keywords:
            title = f"Discussion around {', '.join(main_keywords)}"
            description = (
                f"{covered} of {total} comments mention {', '.join(main_keywords)}; "
                f"overall tone is {overall}."
            )
        else:
            title = "No dominant topic"
            description = f"{total} comments without a recurring topic; overall tone is {overall}."

        secondary: List[SecondaryNarrative] = []
        for term in top_terms[3:]:
            matching = [c for c, tokens in zip(comments, token_lists) if term in tokens]
            secondary.append(
                SecondaryNarrative(
                    topic=term,
                    sentiment=_dominant_sentiment([c.sentiment for c in matching]),
                    keywords=[term],
                    comment_count=len(matching),
                    percentage=_percentage(len(matching), total),
                )
            )

        return NarrativeSummary(
            main_narrative=MainNarrative(
                title=title,
                description=description,
                sentiment=overall,
                keywords=main_keywords,
                percentage=_percentage(covered, total),
            ),
            secondary_narratives=secondary[:MAX_SECONDARY_NARRATIVES],
            source="manual",
        )


def _dominant_sentiment(labels: Sequence[Optional[str]]) -> Sentiment:
    counts = Counter(label or "neutral" for label in labels)
    if counts["positive"] > max(counts["negative"], counts["neutral"]):
        return "positive"
    if counts["negative"] > max(counts["positive"], counts["neutral"]):
        return "negative"
    return "neutral"


def _percentage(part: int, total: int) -> float:
    return round(100.0 * part / total, 1) if total else 0.0
