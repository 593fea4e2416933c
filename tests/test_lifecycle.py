import threading
import time

import pytest

from conftest import DIM, FakeEmbedders, HashEmbedder, MemoryIndex
from docrag.chunking.fixed import FixedWindowStrategy
from docrag.config import ChunkingSection, MappingSettings, TimeoutSection
from docrag.errors import DeadlineExceeded, DocumentValidationError, ProviderError
from docrag.index.schema import PointFilter
from docrag.lifecycle.locks import Deadline, KeyedLocks
from docrag.lifecycle.manager import DocumentLifecycleManager
from docrag.lifecycle.models import Document, DocumentStatus
from docrag.lifecycle.store import InMemoryDocumentStore, JsonDocumentStore

LONG = "Sentence number one is here. " * 30


class RecordingStore(InMemoryDocumentStore):
    def __init__(self):
        super().__init__()
        self.history = []

    def save(self, document):
        self.history.append((document.id, document.status))
        super().save(document)


class BlockingEmbedder(HashEmbedder):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()
        self.started = threading.Event()

    def embed(self, model, text, timeout=None):
        self.started.set()
        self.release.wait(5)
        return super().embed(model, text, timeout)


class SlowEmbedder(HashEmbedder):
    def embed(self, model, text, timeout=None):
        time.sleep(0.05)
        return super().embed(model, text, timeout)


class FailingEmbedder(HashEmbedder):
    def embed(self, model, text, timeout=None):
        raise ProviderError("backend down")


def _manager(settings, providers, embedder, index=None, store=None, timeouts=None):
    return DocumentLifecycleManager(
        index=index or MemoryIndex(),
        store=store or RecordingStore(),
        settings=settings,
        providers=providers,
        embedders=FakeEmbedders(embedder),
        chunking=ChunkingSection(auto=False, fixed=FixedWindowStrategy(chunk_size=200, overlap=20)),
        timeouts=timeouts,
        workers=2,
    )


def test_process_document_reaches_ready(settings, providers, embedder):
    mgr = _manager(settings, providers, embedder)
    doc = Document(id="guide.md", title="Guide", content=LONG)
    res = mgr.process_document(doc)

    assert res.ok and res.status == DocumentStatus.READY
    assert res.chunk_count == doc.chunk_count > 1
    assert res.strategy == "fixed"
    assert mgr.index.size == DIM
    assert mgr.index.count(PointFilter.for_document("guide.md")) == res.chunk_count
    assert mgr.store.history == [
        ("guide.md", DocumentStatus.PROCESSING),
        ("guide.md", DocumentStatus.READY),
    ]
    payload = next(iter(mgr.index.points.values()))[1]
    assert payload["document_id"] == "guide.md"
    assert payload["title"] == "Guide"
    assert payload["total_chunks"] == res.chunk_count
    assert 0.0 <= payload["position"] < 1.0
    assert all(timeout is not None and timeout <= 60 for _, _, timeout in embedder.calls)


def test_reprocessing_a_shorter_document_leaves_no_stale_points(settings, providers, embedder):
    mgr = _manager(settings, providers, embedder)
    doc = Document(id=1, title="notes", content=LONG)
    first = mgr.process_document(doc)
    assert first.chunk_count > 1

    doc.content = "Now it is just one short sentence."
    second = mgr.process_document(doc)
    assert second.ok and second.chunk_count == 1
    assert second.points_deleted == first.chunk_count
    assert mgr.index.count(PointFilter.for_document(1)) == 1


def test_missing_configuration_fails_document(providers, embedder):
    mgr = _manager(MappingSettings({}), providers, embedder)
    doc = Document(id="a", content=LONG)
    res = mgr.process_document(doc)
    assert res.status == DocumentStatus.FAILED
    assert res.error_type == "ConfigurationError"
    assert doc.error.startswith("ConfigurationError:")
    assert mgr.store.get("a").status == DocumentStatus.FAILED
    assert mgr.index.count() == 0
    assert embedder.calls == []


def test_dimension_mismatch_fails_document(settings, providers):
    mgr = _manager(settings, providers, HashEmbedder(dim=DIM // 2))
    res = mgr.process_document(Document(id="a", content=LONG))
    assert res.error_type == "ConfigurationError"
    assert "dim" in res.error


def test_provider_error_fails_document(settings, providers):
    mgr = _manager(settings, providers, FailingEmbedder())
    res = mgr.process_document(Document(id="a", content=LONG))
    assert not res.ok
    assert res.error == "ProviderError: backend down"


def test_index_size_conflict_fails_document(settings, providers, embedder):
    index = MemoryIndex()
    index.ensure_collection("documents", DIM + 1)
    mgr = _manager(settings, providers, embedder, index=index)
    res = mgr.process_document(Document(id="a", content=LONG))
    assert res.error_type == "VectorIndexError"


def test_empty_content_fails_document(settings, providers, embedder):
    mgr = _manager(settings, providers, embedder)
    res = mgr.process_document(Document(id="a", content="   \n  "))
    assert res.error_type == "DocumentValidationError"


def test_failed_document_can_be_retried(settings, providers, embedder):
    store = RecordingStore()
    doc = Document(id="a", content=LONG)
    failing = _manager(settings, providers, FailingEmbedder(), store=store)
    assert not failing.process_document(doc).ok
    ok = _manager(settings, providers, embedder, store=store)
    res = ok.process_document(doc)
    assert res.ok
    assert doc.error is None


class BrokenStore(InMemoryDocumentStore):
    def save(self, document):
        raise OSError("disk full")


def test_store_failure_fails_document_instead_of_raising(settings, providers, embedder):
    mgr = _manager(settings, providers, embedder, store=BrokenStore())
    doc = Document(id="a", content=LONG)
    res = mgr.process_document(doc)
    assert res.status == DocumentStatus.FAILED
    assert res.error_type == "OSError"
    assert doc.error == "OSError: disk full"
    assert embedder.calls == []
    assert mgr.index.count() == 0


def test_deadline_fails_slow_document(settings, providers):
    mgr = _manager(settings, providers, SlowEmbedder(), timeouts=TimeoutSection(ingest=0.01))
    res = mgr.process_document(Document(id="slow", content=LONG))
    assert res.status == DocumentStatus.FAILED
    assert res.error_type == "DeadlineExceeded"
    assert mgr.index.count() == 0


def test_submit_joins_inflight_run(settings, providers):
    emb = BlockingEmbedder()
    mgr = _manager(settings, providers, emb)
    doc = Document(id="a", content=LONG)
    try:
        first = mgr.submit(doc)
        assert emb.started.wait(5)
        assert mgr.submit(doc) is first
        emb.release.set()
        assert first.result(timeout=5).ok
        again = mgr.submit(doc)
        assert again is not first
        assert again.result(timeout=5).ok
    finally:
        emb.release.set()
        mgr.shutdown()


def test_delete_document_removes_points_and_record(settings, providers, embedder):
    mgr = _manager(settings, providers, embedder)
    a = Document(id="a", content=LONG)
    b = Document(id="b", content="Another document entirely.")
    mgr.process_document(a)
    mgr.process_document(b)
    assert mgr.delete_document(a) == a.chunk_count
    assert mgr.store.get("a") is None
    assert mgr.index.count(PointFilter.for_document("b")) == 1
    assert mgr.index.count(PointFilter.for_document("a")) == 0


def test_illegal_transition_raises():
    doc = Document(id="a")
    with pytest.raises(DocumentValidationError):
        doc.transition(DocumentStatus.READY)
    doc.transition(DocumentStatus.PROCESSING)
    doc.transition(DocumentStatus.FAILED, "x" * 5000)
    assert len(doc.error) == 2000


def test_size_is_derived_from_content():
    assert Document(id="a", content="héllo").size == 6
    assert Document(id="a", content="abc", size=99).size == 99


def test_keyed_locks_are_released():
    locks = KeyedLocks()
    with locks.hold("a"):
        assert len(locks) == 1
    assert len(locks) == 0


def test_deadline_bounds_timeouts():
    now = [0.0]
    d = Deadline(10, clock=lambda: now[0])
    assert d.bound(60) == 10
    now[0] = 8.0
    assert d.bound(1) == 1
    assert d.bound(None) == 2
    now[0] = 11.0
    with pytest.raises(DeadlineExceeded):
        d.check("embedding")


def test_json_store_persists(tmp_path):
    path = tmp_path / "docs.jsonl"
    store = JsonDocumentStore(path)
    store.save(Document(id="a", title="A", content="alpha"))
    store.save(Document(id=2, title="B", content="beta", status=DocumentStatus.READY))

    reopened = JsonDocumentStore(path)
    assert reopened.get("a").title == "A"
    assert reopened.get(2).status == DocumentStatus.READY
    assert reopened.ready_ids() == [2]
    assert reopened.delete("a")
    assert not reopened.delete("a")
    assert [d.id for d in JsonDocumentStore(path).list()] == [2]
