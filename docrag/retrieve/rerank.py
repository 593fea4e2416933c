from __future__ import annotations

from typing import List, Tuple

from ..index.schema import HybridResult

SHORT_CHUNK_CHARS = 100
SHORT_CHUNK_PENALTY = 0.8
MAX_DECAY = 0.1


def positional_decay(rank: int, total: int) -> float:
    """Linear from 1.0 at rank 0 to 0.9 at the last rank."""
    if total <= 1:
        return 1.0
    return 1.0 - MAX_DECAY * rank / (total - 1)


def length_penalty(text: str) -> float:
    return SHORT_CHUNK_PENALTY if len(text or "") < SHORT_CHUNK_CHARS else 1.0


def rerank(results: List[HybridResult], top_k: int) -> List[Tuple[HybridResult, float]]:
    """
    Re-score fused results by rank position and chunk length.

    `results` must already be sorted best first. Returns at most `top_k`
    (result, final_score) pairs, best first.
    """
    n = len(results)
    scored = [
        (h, h.combined_score * positional_decay(i, n) * length_penalty(h.result.text))
        for i, h in enumerate(results)
    ]
    scored.sort(key=lambda x: x[1], reverse=True)
    return scored[: max(0, top_k)]
