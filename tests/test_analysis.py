import pytest

from conftest import FakeEmbedders, StubIndex
from docrag.errors import DocumentValidationError
from docrag.index.schema import SearchResult
from docrag.lifecycle.models import Document, DocumentStatus
from docrag.retrieve.analysis import (
    analyze_document_quality,
    document_stats,
    is_rag_available,
    rate,
    system_health,
)
from docrag.retrieve.engine import RetrievalEngine


def _doc(id, status=DocumentStatus.READY, chunks=3):
    return Document(id=id, title=f"Doc {id}", content="Some content.", status=status, chunk_count=chunks)


@pytest.mark.parametrize(
    "avg,stdev,length,expected",
    [
        (0.80, 0.05, 500, "Excellent"),
        (0.70, 0.05, 100, "Good"),
        (0.60, 0.12, 250, "Fair"),
        (0.50, 0.30, 50, "Poor"),
    ],
)
def test_rating(avg, stdev, length, expected):
    assert rate(avg, stdev, length) == expected


def test_analyze_document_quality(settings, providers, embedder):
    results = [
        SearchResult(id="1", score=0.8, payload={"text": "x" * 400}),
        SearchResult(id="2", score=0.7, payload={"text": "y" * 400}),
    ]
    engine = RetrievalEngine(StubIndex(results), settings, providers, FakeEmbedders(embedder))
    q = analyze_document_quality(engine, _doc("a"))
    assert q.samples == 6
    assert q.avg_score == pytest.approx(0.75)
    assert q.min_score == 0.7 and q.max_score == 0.8
    assert q.avg_chunk_length == 400
    assert q.rating == "Excellent"
    assert [text for _, text, _ in embedder.calls] == ["Doc a", "what is this about", "Some content."]


def test_analysis_requires_ready_document(settings, providers, embedder):
    engine = RetrievalEngine(StubIndex([]), settings, providers, FakeEmbedders(embedder))
    with pytest.raises(DocumentValidationError):
        analyze_document_quality(engine, _doc("a", status=DocumentStatus.PENDING))
    with pytest.raises(DocumentValidationError):
        analyze_document_quality(engine, _doc("a"), sample_queries=["anything"])


def test_document_stats_and_availability():
    docs = [_doc("a"), _doc("b", chunks=4), _doc("c", status=DocumentStatus.FAILED)]
    assert document_stats(docs) == {"document_count": 2, "total_chunks": 7, "total_documents": 3}
    assert is_rag_available(docs)
    assert not is_rag_available([_doc("c", status=DocumentStatus.PENDING)])


def test_system_health_recommendations():
    docs = [
        _doc("a"),
        _doc("b"),
        _doc("c", status=DocumentStatus.FAILED),
        _doc("d", status=DocumentStatus.PENDING),
        _doc("e", status=DocumentStatus.PROCESSING),
    ]
    h = system_health(docs, indexed_points=6)
    assert (h.ready_documents, h.failed_documents, h.pending_documents, h.processing_documents) == (2, 1, 1, 1)
    assert h.avg_chunks_per_doc == 3.0
    assert "Re-process 1 failed documents" in h.recommended_actions
    assert any("few chunks" in a for a in h.recommended_actions)
    assert not any("Index holds" in a for a in h.recommended_actions)

    assert any("Index holds 9 points" in a for a in system_health(docs, indexed_points=9).recommended_actions)


def test_system_health_all_good():
    assert system_health([]).recommended_actions == ["System health looks good!"]
    healthy = system_health([_doc("a", chunks=10)], indexed_points=10)
    assert healthy.recommended_actions == ["System health looks good!"]
