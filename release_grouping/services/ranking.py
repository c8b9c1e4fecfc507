"""
Search relevance ranking.

Approximates Shopify's native relevance (keyword frequency, field importance
title > vendor > tags > productType, shorter fields rank higher) and layers a
music-specific adjustment on top: artist metafield matches are boosted and
compilations ("Various") are demoted.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from release_grouping.storefront.models import Record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldWeights:
    phrase: float
    all_tokens: float | None  # None: the field has no all-tokens tier
    some_tokens: float
    phrase_freq: float
    all_freq: float
    some_freq: float
    length_bonus: float


@dataclass(frozen=True)
class RelevanceWeights:
    title: FieldWeights = field(default_factory=lambda: FieldWeights(1000, 800, 400, 0.5, 0.3, 0.2, 200))
    vendor: FieldWeights = field(default_factory=lambda: FieldWeights(500, 300, 150, 0.3, 0.2, 0.1, 100))
    tags: FieldWeights = field(default_factory=lambda: FieldWeights(300, None, 150, 0.2, 0.0, 0.1, 50))
    product_type: FieldWeights = field(default_factory=lambda: FieldWeights(200, None, 100, 0.2, 0.0, 0.1, 30))

    artist_exact: float = 1500
    artist_phrase: float = 800
    artist_all_tokens: float = 600
    artist_some_tokens: float = 300
    compilation_penalty: float = 400
    missing_artist_penalty: float = 30
    length_scale: float = 200


def tokenize(search_terms: str) -> List[str]:
    return [w for w in re.split(r"\s+", (search_terms or "").lower().strip()) if w]


def keyword_frequency(text: str, tokens: Sequence[str]) -> int:
    """Total non-overlapping occurrences of every token in `text`."""
    if not text:
        return 0
    return sum(text.count(token) for token in tokens)


def field_length_score(text: str, scale: float, length_scale: float = 200) -> float:
    if not text:
        return 0.0
    return scale * max(0.0, 1 - len(text) / length_scale)


class RelevanceRanker:
    def __init__(self, weights: RelevanceWeights | None = None):
        self.weights = weights or RelevanceWeights()

    def _field_score(self, text: str, phrase: str, tokens: Sequence[str], w: FieldWeights) -> float:
        freq = keyword_frequency(text, tokens)
        if freq == 0:
            return 0.0

        score = 0.0
        if phrase in text:
            score += w.phrase * (1 + freq * w.phrase_freq)
        elif w.all_tokens is not None and all(t in text for t in tokens):
            score += w.all_tokens * (1 + freq * w.all_freq)
        elif w.all_tokens is not None or any(t in text for t in tokens):
            score += w.some_tokens * (1 + freq * w.some_freq)
        return score + field_length_score(text, w.length_bonus, self.weights.length_scale)

    def score(self, record: Record, search_terms: str) -> float:
        w = self.weights
        phrase = (search_terms or "").lower().strip()
        tokens = tokenize(search_terms)

        artist = (record.artist or "").lower().strip()
        title = (record.title or "").lower()
        vendor = (record.vendor or "").lower()
        tags = " ".join(t.lower() for t in record.tags)
        product_type = (record.product_type or "").lower()

        score = 0.0
        score += self._field_score(title, phrase, tokens, w.title)
        score += self._field_score(vendor, phrase, tokens, w.vendor)
        score += self._field_score(tags, phrase, tokens, w.tags)
        score += self._field_score(product_type, phrase, tokens, w.product_type)

        if artist:
            if artist == phrase:
                score += w.artist_exact
            elif phrase in artist:
                score += w.artist_phrase
            elif tokens and all(t in artist for t in tokens):
                score += w.artist_all_tokens
            elif any(t in artist for t in tokens):
                score += w.artist_some_tokens

            if artist == "various" or artist.startswith("various"):
                score -= w.compilation_penalty
        else:
            score -= w.missing_artist_penalty

        return score

    def rank(self, records: Iterable[Record], search_terms: str) -> List[Record]:
        """
        Order records by descending score; ties by case-insensitive title,
        then by input position so the order is total.
        """
        records = list(records)
        if not search_terms or not search_terms.strip() or not records:
            return records

        scored = [(self.score(r, search_terms), (r.title or "").lower(), i, r) for i, r in enumerate(records)]
        scored.sort(key=lambda x: (-x[0], x[1], x[2]))

        top = [(r.title, r.artist or "N/A", round(s)) for s, _, _, r in scored[:5]]
        logger.debug("Relevance scoring for %r - top 5: %s", search_terms, top)

        return [r for _, _, _, r in scored]
