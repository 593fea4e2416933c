from __future__ import annotations

import logging
from typing import List, Optional, Union

from ..index.schema import Chunk
from .fixed import FixedWindowStrategy, chunk_fixed
from .headers import HeaderAwareStrategy, chunk_with_headers
from .select import StructureReport, StructureScorer

logger = logging.getLogger(__name__)

Strategy = Union[FixedWindowStrategy, HeaderAwareStrategy]


def segment(text: str, strategy: Optional[Strategy] = None) -> List[Chunk]:
    """Split `text` with the given strategy (fixed window when omitted)."""
    if isinstance(strategy, HeaderAwareStrategy):
        return chunk_with_headers(text, strategy)
    if strategy is None or isinstance(strategy, FixedWindowStrategy):
        return chunk_fixed(text, strategy)
    raise TypeError(f"Unknown chunking strategy: {type(strategy).__name__}")


def select_strategy(
    title: str,
    text: str,
    scorer: Optional[StructureScorer] = None,
    fixed: Optional[FixedWindowStrategy] = None,
    headers: Optional[HeaderAwareStrategy] = None,
) -> tuple[Strategy, StructureReport]:
    scorer = scorer or StructureScorer()
    report = scorer.score(title, text)
    if report.use_headers:
        chosen: Strategy = headers or HeaderAwareStrategy()
    else:
        chosen = fixed or FixedWindowStrategy()
    logger.info(
        "Chunking strategy for %r: %s (score=%d)", title, chosen.name, report.score
    )
    return chosen, report
