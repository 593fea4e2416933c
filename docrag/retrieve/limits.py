"""
Tunable heuristics for how many chunks to fetch and keep per query.

Both policies are plain pydantic models so their knobs can live in
config.yaml. The only hard guarantees are that the request limit is at
least 1 and the retained budget never exceeds the candidates available.
"""
from __future__ import annotations

import logging
from typing import List, Sequence

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

COMPLEX_MARKERS = (
    "explain", "describe", "compare", "difference", "why", "how",
    "what are", "tell me about", "elaborate", "detail", "comprehensive",
    "multiple", "all", "various", "different", "several",
)


class QueryComplexityPolicy(BaseModel):
    """Number of candidates to request from the index."""

    base: int = 8
    min_limit: int = Field(default=5, ge=1)
    max_limit: int = Field(default=15, ge=1)
    markers: List[str] = Field(default_factory=lambda: list(COMPLEX_MARKERS))

    def is_complex(self, query: str) -> bool:
        q = query.lower()
        return any(m in q for m in self.markers)

    @staticmethod
    def is_multi_part(query: str) -> bool:
        return " and " in query or " or " in query or query.count("?") > 1

    def limit(self, query: str, explicit: int = 0) -> int:
        if explicit and explicit > 0:
            return int(explicit)
        words = len(query.split())
        n = self.base
        if words > 20:
            n += 3
        elif words > 10:
            n += 1
        elif words < 5:
            n -= 2
        if self.is_complex(query):
            n += 2
        if self.is_multi_part(query):
            n += 2
        n = max(self.min_limit, min(self.max_limit, n))
        logger.debug("query limit: words=%d -> %d", words, n)
        return max(1, n)


class ScoreDistributionPolicy(BaseModel):
    """Number of re-ranked chunks to keep, from the shape of the scores."""

    base: int = 7
    min_keep: int = Field(default=4, ge=1)
    max_keep: int = Field(default=12, ge=1)

    def budget(self, query: str, scores: Sequence[float], document_count: int) -> int:
        if not scores:
            return 0
        spread = max(scores) - sum(scores) / len(scores)
        n = self.base
        if spread > 0.2:
            n = 5
        elif spread > 0.15:
            n = 6
        elif spread < 0.08:
            n = 9

        if document_count == 1:
            n += 2
        elif document_count > 3:
            n = max(n - 1, 5)

        words = len(query.split())
        if words > 20:
            n += 2
        elif words < 5:
            n = max(n - 2, self.min_keep)

        n = max(self.min_keep, min(self.max_keep, n))
        return min(n, len(scores))


def adaptive_threshold(top_score: float, floor: float = 0.55, ratio: float = 0.85) -> float:
    return max(floor, ratio * top_score)
