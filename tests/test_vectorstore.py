import pytest

from docrag.errors import VectorIndexError
from docrag.index.base import normalize_distance, point_id, sanitize_payload
from docrag.index.chroma import ChromaIndex, to_where
from docrag.index.schema import IndexPoint, PointFilter


def _points(doc_id, n, dim=3):
    return [
        IndexPoint(
            id=point_id(doc_id, i),
            vector=[1.0, float(i + 1), 0.5][:dim],
            payload={"document_id": doc_id, "chunk_index": i, "text": f"{doc_id} chunk {i}"},
        )
        for i in range(n)
    ]


def test_upsert_and_query(tmp_path):
    idx = ChromaIndex(persist_dir=str(tmp_path / "chroma"))
    idx.ensure_collection("documents", 3)
    idx.ensure_collection("documents", 3)  # idempotent
    idx.upsert(_points("a", 2))
    idx.upsert(_points("a", 2))
    assert idx.count() == 2
    out = idx.search([1.0, 1.0, 0.5], limit=1)
    assert len(out) == 1
    assert out[0].payload["document_id"] == "a"
    assert out[0].text == "a chunk 0"


def test_dimension_mismatch_is_rejected(tmp_path):
    ChromaIndex(persist_dir=str(tmp_path / "chroma")).ensure_collection("documents", 3)
    reopened = ChromaIndex(persist_dir=str(tmp_path / "chroma"))
    with pytest.raises(VectorIndexError):
        reopened.ensure_collection("documents", 4)


def test_missing_collection_counts_zero(tmp_path):
    idx = ChromaIndex(persist_dir=str(tmp_path / "chroma"), collection="nothing-here")
    assert idx.count() == 0
    assert idx.delete_by_filter(PointFilter.for_document("a")) == 0


def test_point_id_is_deterministic():
    assert point_id("a", 0) == point_id("a", 0)
    assert point_id("a", 0) != point_id("a", 1)
    assert point_id(7, 0) == point_id("7", 0)


def test_sanitize_payload():
    out = sanitize_payload(
        {"a": None, "b": float("nan"), "c": b"x", "d": [1, 2], "e": True, "f": 2.5, "g": "bad\ud800"}
    )
    assert out == {"b": "nan", "c": "x", "d": "[1, 2]", "e": True, "f": 2.5, "g": "bad?"}


def test_to_where_shapes():
    assert to_where(None) is None
    assert to_where(PointFilter.for_document("a")) == {"document_id": {"$eq": "a"}}
    assert to_where(PointFilter.any_document(["a", "b"])) == {
        "$or": [{"document_id": {"$eq": "a"}}, {"document_id": {"$eq": "b"}}]
    }


def test_normalize_distance():
    assert normalize_distance("L2") == "euclid"
    assert normalize_distance(None) == "cosine"
    with pytest.raises(VectorIndexError):
        normalize_distance("manhattan")
