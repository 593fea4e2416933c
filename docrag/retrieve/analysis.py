"""Diagnostics over a document scope: counts, per-document retrieval quality, health."""
from __future__ import annotations

import logging
import statistics
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from ..errors import DocumentValidationError, RAGError
from ..lifecycle.models import Document, DocumentStatus
from .engine import RetrievalEngine

logger = logging.getLogger(__name__)

MANY_CHUNKS_PER_DOC = 50
FEW_CHUNKS_PER_DOC = 5
LARGE_INDEX_CHUNKS = 10000


class DocumentQuality(BaseModel):
    document_id: Union[int, str]
    title: str
    total_chunks: int
    samples: int
    avg_chunk_length: int
    min_score: float
    max_score: float
    avg_score: float
    score_stdev: float
    rating: str


class SystemHealth(BaseModel):
    total_documents: int = 0
    ready_documents: int = 0
    pending_documents: int = 0
    processing_documents: int = 0
    failed_documents: int = 0
    total_chunks: int = 0
    avg_chunks_per_doc: float = 0.0
    indexed_points: Optional[int] = None
    recommended_actions: List[str] = Field(default_factory=list)


def document_stats(documents: Iterable[Document]) -> dict:
    docs = list(documents)
    ready = [d for d in docs if d.status == DocumentStatus.READY]
    return {
        "document_count": len(ready),
        "total_chunks": sum(d.chunk_count for d in ready),
        "total_documents": len(docs),
    }


def is_rag_available(documents: Iterable[Document]) -> bool:
    return any(d.status == DocumentStatus.READY for d in documents)


def rate(avg_score: float, stdev: float, avg_len: int) -> str:
    points = 0
    if avg_score > 0.72:
        points += 3
    elif avg_score > 0.65:
        points += 2
    elif avg_score > 0.55:
        points += 1

    if stdev < 0.10:
        points += 2
    elif stdev < 0.15:
        points += 1

    if 300 <= avg_len <= 700:
        points += 2
    elif 200 <= avg_len <= 900:
        points += 1

    if points >= 6:
        return "Excellent"
    if points >= 4:
        return "Good"
    if points >= 2:
        return "Fair"
    return "Poor"


def analyze_document_quality(
    engine: RetrievalEngine,
    document: Document,
    sample_queries: Optional[List[str]] = None,
    limit: int = 10,
) -> DocumentQuality:
    """
    Probe how well `document` answers sample queries.

    Without explicit queries the title, a generic question and the opening
    of the content are used. Queries whose search fails are skipped.
    """
    if document.status != DocumentStatus.READY:
        raise DocumentValidationError(
            f"Document {document.id} is not ready for analysis (status={document.status.value})"
        )
    queries = [q for q in (sample_queries or []) if q and q.strip()]
    if not queries:
        queries = [q for q in (document.title, "what is this about", document.content[:100]) if q]

    scores: List[float] = []
    total_len = 0
    for q in queries:
        try:
            results = engine.search_context(q, [document.id], limit)
        except RAGError as e:
            logger.warning("Sample query %r failed: %s", q, e)
            continue
        for r in results:
            scores.append(r.score)
            total_len += len(r.text)

    if not scores:
        raise DocumentValidationError(f"No scores collected for document {document.id}")

    avg = sum(scores) / len(scores)
    stdev = statistics.stdev(scores) if len(scores) > 1 else 0.0
    avg_len = total_len // len(scores)
    return DocumentQuality(
        document_id=document.id,
        title=document.title,
        total_chunks=document.chunk_count,
        samples=len(scores),
        avg_chunk_length=avg_len,
        min_score=min(scores),
        max_score=max(scores),
        avg_score=avg,
        score_stdev=stdev,
        rating=rate(avg, stdev, avg_len),
    )


def system_health(documents: Iterable[Document], indexed_points: Optional[int] = None) -> SystemHealth:
    h = SystemHealth(indexed_points=indexed_points)
    for d in documents:
        h.total_documents += 1
        if d.status == DocumentStatus.READY:
            h.ready_documents += 1
            h.total_chunks += d.chunk_count
        elif d.status == DocumentStatus.PROCESSING:
            h.processing_documents += 1
        elif d.status == DocumentStatus.FAILED:
            h.failed_documents += 1
        else:
            h.pending_documents += 1

    if h.ready_documents:
        h.avg_chunks_per_doc = h.total_chunks / h.ready_documents

    actions = h.recommended_actions
    if h.failed_documents:
        actions.append(f"Re-process {h.failed_documents} failed documents")
    if h.ready_documents and h.avg_chunks_per_doc > MANY_CHUNKS_PER_DOC:
        actions.append(
            "Documents have many chunks - consider reducing chunk size or splitting documents"
        )
    if h.ready_documents and h.avg_chunks_per_doc < FEW_CHUNKS_PER_DOC:
        actions.append(
            "Documents have few chunks - consider larger chunk size or merging documents"
        )
    if h.total_chunks > LARGE_INDEX_CHUNKS:
        actions.append(
            "Large number of chunks may slow searches - consider pruning less important documents"
        )
    if indexed_points is not None and indexed_points != h.total_chunks:
        actions.append(
            f"Index holds {indexed_points} points but ready documents report {h.total_chunks} chunks"
            " - re-process or delete stale documents"
        )
    if not actions:
        actions.append("System health looks good!")
    return h
