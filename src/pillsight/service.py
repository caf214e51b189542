"""Search scoring utilities."""

from __future__ import annotations

import re
from typing import Protocol

from pillsight.models import MatchConfidence

_EMBEDDING_FIELDS = ("drug", "gpt4_form", "description", "category", "common_uses")


class _EmbeddableRecord(Protocol):
    drug: str
    gpt4_form: str
    description: str
    category: str | None
    common_uses: str | None


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def estimate_tokens(text: str) -> int:
    # Rough approximation for prompt size logging.
    words = len(re.findall(r"\w+", text))
    return max(1, int(words * 1.3))


def similarity_percent(similarity: float) -> float:
    return clamp(similarity * 100.0)


def text_percent(text_score: float) -> float:
    return clamp(text_score * 50.0)


def match_confidence(similarity_score: float) -> MatchConfidence:
    if similarity_score > 80:
        return MatchConfidence.HIGH
    if similarity_score > 60:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW


def embedding_text(record: _EmbeddableRecord) -> str:
    parts = [getattr(record, field) for field in _EMBEDDING_FIELDS]
    return " ".join(part for part in parts if part)
