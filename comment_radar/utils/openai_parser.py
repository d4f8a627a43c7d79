"""Utilities for parsing OpenAI text outputs."""
from __future__ import annotations

import json
import re
from typing import Any, Dict

from pydantic import ValidationError

from comment_radar.models.common import MainNarrative, SecondaryNarrative

MAX_SECONDARY_NARRATIVES = 4

FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)


class OpenAIParseError(RuntimeError):
    """Raised when OpenAI response cannot be parsed."""


def extract_json(text: str) -> Any:
    """Pull a JSON document out of free-form model output.

    Tries, in order: the whole text, the first fenced code block, and the span
    between the first ``{`` and the last ``}``.
    """

    text = (text or "").strip()
    candidates = [text]
    fenced = FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise OpenAIParseError("No JSON object found in model response")


def parse_narrative_payload(payload: Any) -> Dict[str, Any]:
    """Validate narrative payload from OpenAI."""

    if not isinstance(payload, dict):
        raise OpenAIParseError("Narrative payload must be an object")
    try:
        main = MainNarrative.model_validate(payload["mainNarrative"])
        secondary = [
            SecondaryNarrative.model_validate(item)
            for item in list(payload.get("secondaryNarratives") or [])[:MAX_SECONDARY_NARRATIVES]
        ]
    except (KeyError, TypeError, ValidationError) as exc:
        raise OpenAIParseError("Invalid narrative payload") from exc

    return {"main_narrative": main, "secondary_narratives": secondary}
