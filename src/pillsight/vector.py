"""Deterministic medical-term embeddings used for semantic medication search.

The encoder is a feature-hashing scheme, not a trained model. Stored document
vectors were produced with exactly these constants, so the hash function,
iteration bounds and mixing factors below must not change.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from types import MappingProxyType

EMBEDDING_DIM = 384

# ECMAScript whitespace; differs from re's \s on U+001C-U+001F, U+0085 and U+FEFF.
_SPACE = "\t\n\v\f\r \u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
_NON_WORD = re.compile(f"[^A-Za-z0-9_{_SPACE}]")
_WHITESPACE = re.compile(f"[{_SPACE}]+")

MEDICAL_TERM_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        # symptoms and conditions
        "pain": 2.5,
        "fever": 2.5,
        "headache": 2.5,
        "nausea": 2.5,
        "inflammation": 2.5,
        "infection": 2.5,
        "allergy": 2.5,
        "cough": 2.5,
        "cold": 2.5,
        "flu": 2.5,
        # actions and effects
        "relief": 2.0,
        "reduce": 2.0,
        "treat": 2.0,
        "treatment": 2.0,
        "helps": 2.0,
        "healing": 2.0,
        "reduces": 2.0,
        "relieves": 2.0,
        "treating": 2.0,
        "fighting": 2.0,
        # medical vocabulary
        "medication": 1.8,
        "medicine": 1.8,
        "drug": 1.8,
        "tablet": 1.8,
        "capsule": 1.8,
        "oral": 1.8,
        "dose": 1.8,
        "dosage": 1.8,
        "prescription": 1.8,
        "otc": 1.8,
        # descriptive terms
        "severe": 1.5,
        "mild": 1.5,
        "chronic": 1.5,
        "acute": 1.5,
        "temporary": 1.5,
        "persistent": 1.5,
        "occasional": 1.5,
        "regular": 1.5,
        # branding
        "generic": 1.2,
        "brand": 1.2,
        "name": 1.2,
    }
)


class DimensionMismatchError(ValueError):
    """Raised when two vectors of different lengths are compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"vectors must have the same length: {left} != {right}")
        self.left = left
        self.right = right


def term_weight(token: str) -> float:
    return MEDICAL_TERM_WEIGHTS.get(token, 1.0)


def tokenize(text: str) -> list[str]:
    cleaned = _NON_WORD.sub("", text.lower())
    return [token for token in _WHITESPACE.split(cleaned) if token]


def hash_string(text: str) -> int:
    """32-bit rolling hash over UTF-16 code units (``h = h * 31 + c``).

    The result is a signed two's-complement 32-bit integer.
    """
    value = 0
    data = text.encode("utf-16-le", "surrogatepass")
    for offset in range(0, len(data), 2):
        unit = data[offset] | (data[offset + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value & 0x80000000:
        return value - 0x100000000
    return value


def _add_token_features(
    values: list[float], token: str, weight: float, position: int, dim: int
) -> None:
    hash1 = hash_string(token)
    hash2 = hash_string(token[::-1])
    hash3 = hash_string(token + "medical")
    decay = 1.5 / (position + 1)
    for j in range(min(len(token) * 3, dim // 3)):
        values[abs(hash1 + j) % dim] += math.cos(hash1 * j) * weight * decay
        values[abs(hash2 + j) % dim] += math.sin(hash2 * j) * weight * decay
        values[abs(hash3 + j) % dim] += math.tan(hash3 * j) * weight * decay


def _add_bigram_features(values: list[float], tokens: Sequence[str], dim: int) -> None:
    bigram_hash = hash_string(" ".join(tokens))
    bigram_weight = term_weight(tokens[0]) * term_weight(tokens[1])
    for j in range(12):
        values[abs(bigram_hash + j) % dim] += math.cos(bigram_hash * j) * bigram_weight * 0.8


def _add_trigram_features(values: list[float], tokens: Sequence[str], dim: int) -> None:
    trigram_hash = hash_string(" ".join(tokens))
    trigram_weight = term_weight(tokens[0]) * term_weight(tokens[1]) * term_weight(tokens[2])
    for j in range(8):
        values[abs(trigram_hash + j) % dim] += (
            math.sin(trigram_hash * j) * trigram_weight * 0.5
        )


def vector_norm(values: Sequence[float]) -> float:
    return math.sqrt(sum(value * value for value in values))


def normalize(values: list[float]) -> list[float]:
    norm = vector_norm(values)
    if norm == 0.0:
        return values
    return [value / norm for value in values]


def encode(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Map ``text`` to a unit-length vector of ``dim`` floats.

    Earlier tokens carry more weight (``1.5 / (i + 1)``), so word order
    changes the embedding. Text without tokens still receives the positional
    component and is never an error.
    """
    values = [0.0] * dim
    tokens = tokenize(text)

    for position, token in enumerate(tokens):
        _add_token_features(values, token, term_weight(token), position, dim)
        if position < len(tokens) - 1:
            _add_bigram_features(values, tokens[position : position + 2], dim)
        if position < len(tokens) - 2:
            _add_trigram_features(values, tokens[position : position + 3], dim)

    for index in range(dim):
        values[index] += math.sin(index / dim) * 0.15
        if index % 3 == 0:
            values[index] *= 1.2

    return normalize(values)


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine similarity raised to the power 0.8.

    The raw cosine is clamped to ``[0, 1]`` first, so opposed vectors score
    0.0 instead of producing NaN. A zero-magnitude vector also scores 0.0.
    NaN components propagate as a NaN result.
    """
    if len(left) != len(right):
        raise DimensionMismatchError(len(left), len(right))

    dot_product = sum(a * b for a, b in zip(left, right))
    magnitude = vector_norm(left) * vector_norm(right)
    if magnitude == 0.0:
        return 0.0
    similarity = dot_product / magnitude
    if math.isnan(similarity):
        return similarity
    return min(1.0, max(0.0, similarity)) ** 0.8
