import pytest

from docrag.errors import VectorIndexError
from docrag.index.base import point_id
from docrag.index.chroma import ChromaIndex
from docrag.index.schema import IndexPoint, PointFilter


def _add(idx, doc_id, n):
    idx.upsert(
        [
            IndexPoint(
                id=point_id(doc_id, i),
                vector=[1.0, 0.1 * (i + 1), 0.0],
                payload={"document_id": doc_id, "chunk_index": i, "title": doc_id},
            )
            for i in range(n)
        ]
    )


def test_filters_and_delete(tmp_path):
    idx = ChromaIndex(persist_dir=str(tmp_path / "chroma"))
    idx.ensure_collection("documents", 3)
    _add(idx, "a.md", 3)
    _add(idx, "b.md", 2)
    _add(idx, "c.md", 1)

    # restrict search to a set of documents
    res = idx.search([1.0, 0.1, 0.0], limit=10, filter=PointFilter.any_document(["a.md", "c.md"]))
    assert {r.payload["document_id"] for r in res} == {"a.md", "c.md"}

    assert idx.count(PointFilter.for_document("a.md")) == 3
    assert idx.delete_by_filter(PointFilter.for_document("a.md")) == 3
    assert idx.count() == 3

    remaining = idx.search([1.0, 0.1, 0.0], limit=10)
    assert all(r.payload["document_id"] != "a.md" for r in remaining)


def test_empty_filter_never_deletes(tmp_path):
    idx = ChromaIndex(persist_dir=str(tmp_path / "chroma"))
    idx.ensure_collection("documents", 3)
    _add(idx, "a.md", 2)
    with pytest.raises(VectorIndexError):
        idx.delete_by_filter(PointFilter())
    with pytest.raises(VectorIndexError):
        idx.delete_by_filter(None)
    assert idx.count() == 2
