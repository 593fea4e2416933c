"""
Structure scoring used to pick a chunking strategy for a document.

This is a best-effort heuristic, not a classifier: it only decides whether
a document has enough visible structure (headers, lists, code, short lines)
for section-aware chunking to beat a plain sliding window.
"""
from __future__ import annotations

import logging
from typing import List, Sequence

from pydantic import BaseModel, Field

from ..ingest.clean import normalize_lines
from .headers import LIST_RE, classify_lines

logger = logging.getLogger(__name__)

DOC_TITLE_WORDS = (
    "guide", "manual", "documentation", "docs", "readme", "reference",
    "handbook", "specification", "faq", "howto", "how-to", "tutorial",
)


class StructureReport(BaseModel):
    score: int = 0
    signals: List[str] = Field(default_factory=list)
    header_lines: int = 0
    total_lines: int = 0
    use_headers: bool = False


class StructureScorer(BaseModel):
    """Weights and cut-offs for each structural signal."""

    threshold: int = 5
    doc_title_weight: int = 2
    code_weight: int = 2
    code_min_lines: int = 5
    dense_header_ratio: float = 0.05
    dense_header_weight: int = 3
    some_header_ratio: float = 0.02
    some_header_weight: int = 1
    list_ratio: float = 0.15
    list_weight: int = 2
    short_line_len: float = 60.0
    short_line_weight: int = 1
    many_headers: int = 5
    many_headers_weight: int = 2

    def title_signal(self, title: str) -> bool:
        t = (title or "").lower()
        return any(w in t for w in DOC_TITLE_WORDS)

    @staticmethod
    def code_lines(raw_lines: Sequence[str]) -> int:
        n = 0
        for ln in raw_lines:
            if ln.lstrip().startswith("```") or (ln.startswith(("    ", "\t")) and ln.strip()):
                n += 1
        return n

    def score(self, title: str, text: str) -> StructureReport:
        raw_lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
        lines = normalize_lines(text or "")
        nonblank = [ln for ln in lines if ln]
        report = StructureReport(total_lines=len(nonblank))
        if not nonblank:
            return report

        def fire(name: str, weight: int):
            report.score += weight
            report.signals.append(name)

        if self.title_signal(title):
            fire("doc_title", self.doc_title_weight)

        code = self.code_lines(raw_lines)
        if code > self.code_min_lines:
            fire("code_blocks", self.code_weight)

        headers = sum(1 for kind, *_ in classify_lines(lines) if kind == "header")
        report.header_lines = headers
        ratio = headers / len(nonblank)
        if ratio > self.dense_header_ratio:
            fire("dense_headers", self.dense_header_weight)
        elif ratio > self.some_header_ratio:
            fire("some_headers", self.some_header_weight)

        items = sum(1 for ln in nonblank if LIST_RE.match(ln))
        if items / len(nonblank) > self.list_ratio:
            fire("lists", self.list_weight)

        avg = sum(len(ln) for ln in nonblank) / len(nonblank)
        if avg < self.short_line_len:
            fire("short_lines", self.short_line_weight)

        if headers > self.many_headers:
            fire("many_headers", self.many_headers_weight)

        report.use_headers = report.score >= self.threshold
        logger.debug(
            "structure score=%d signals=%s headers=%d/%d",
            report.score, report.signals, headers, len(nonblank),
        )
        return report
