from __future__ import annotations

import logging
from typing import List

from ..index.schema import HybridResult, SearchResult
from .keywords import PHRASE_BONUS, extract_keywords, keyword_score

logger = logging.getLogger(__name__)

DEFAULT_SEMANTIC_WEIGHT = 0.7
DEFAULT_KEYWORD_WEIGHT = 0.3


def hybrid_fuse(
    results: List[SearchResult],
    query: str,
    semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
    keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
) -> List[HybridResult]:
    """
    Weighted sum of semantic and keyword scores, best first.

    A full phrase match multiplies the keyword contribution by the phrase
    bonus, so a verbatim phrase outranks the same keywords scattered.
    """
    if semantic_weight + keyword_weight == 0:
        semantic_weight, keyword_weight = DEFAULT_SEMANTIC_WEIGHT, DEFAULT_KEYWORD_WEIGHT

    keywords = extract_keywords(query)
    fused: List[HybridResult] = []
    for r in results:
        kw, matched, phrase = keyword_score(r.text, keywords)
        kw_part = kw * keyword_weight * (PHRASE_BONUS if phrase else 1.0)
        fused.append(
            HybridResult(
                result=r,
                semantic_score=r.score,
                keyword_score=kw,
                combined_score=r.score * semantic_weight + kw_part,
                matched_keywords=matched,
                phrase_match=phrase,
            )
        )
    fused.sort(key=lambda h: h.combined_score, reverse=True)
    logger.debug("hybrid fuse: %d results, keywords=%s", len(fused), keywords)
    return fused
