from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Mapping, Optional

from ..chunking.segmenter import Strategy, segment, select_strategy
from ..config import (
    ChunkingSection,
    ProviderConfig,
    SettingsSource,
    TimeoutSection,
    resolve_embedding_configuration,
)
from ..embed.factory import EmbedderCache
from ..errors import ConfigurationError, DocumentValidationError, RAGError
from ..index.base import VectorIndex, point_id
from ..index.schema import Chunk, IndexPoint, PointFilter
from .locks import Deadline, KeyedLocks
from .models import Document, DocumentStatus, ProcessingResult
from .store import DocumentStore

logger = logging.getLogger(__name__)


def build_payload(doc: Document, chunk: Chunk, total: int) -> dict:
    payload = {
        "document_id": doc.id,
        "chunk_index": chunk.index,
        "text": chunk.text,
        "title": doc.title,
        "char_count": len(chunk.text),
        "position": chunk.index / total if total else 0.0,
        "total_chunks": total,
    }
    if chunk.metadata.get("header"):
        payload["header"] = chunk.metadata["header"]
    return payload


class DocumentLifecycleManager:
    """
    Drives a document through pending -> processing -> ready|failed.

    Runs for the same document id are serialized; a run never raises, its
    outcome is recorded on the document and returned as a ProcessingResult.
    """

    def __init__(
        self,
        index: VectorIndex,
        store: DocumentStore,
        settings: SettingsSource,
        providers: Mapping[str, ProviderConfig],
        embedders: Optional[EmbedderCache] = None,
        chunking: Optional[ChunkingSection] = None,
        timeouts: Optional[TimeoutSection] = None,
        distance: str = "cosine",
        workers: int = 4,
    ):
        self.index = index
        self.store = store
        self.settings = settings
        self.providers = providers
        self.timeouts = timeouts or TimeoutSection()
        self.embedders = embedders or EmbedderCache(timeout=self.timeouts.embed)
        self.chunking = chunking or ChunkingSection()
        self.distance = distance
        self.locks = KeyedLocks()
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docrag-ingest")
        self._inflight: Dict[str, Future] = {}
        self._inflight_lock = threading.RLock()

    # ---- strategy ----
    def choose_strategy(self, doc: Document) -> Strategy:
        if not self.chunking.auto:
            return self.chunking.fixed
        strategy, _ = select_strategy(
            doc.title,
            doc.content,
            scorer=self.chunking.structure,
            fixed=self.chunking.fixed,
            headers=self.chunking.headers,
        )
        return strategy

    # ---- processing ----
    def process_document(self, document: Document) -> ProcessingResult:
        with self.locks.hold(document.id):
            return self._run(document)

    def _run(self, doc: Document) -> ProcessingResult:
        t0 = time.perf_counter()
        deadline = Deadline(self.timeouts.ingest)

        if doc.status == DocumentStatus.PROCESSING:
            # left over from an interrupted run; we hold the id lock so nothing else is running
            logger.warning("Document %s was already marked processing; restarting", doc.id)
        else:
            doc.transition(DocumentStatus.PROCESSING)

        deleted = 0
        strategy: Strategy = self.chunking.fixed
        try:
            self.store.save(doc)

            deadline.check("configuration")
            ecfg = resolve_embedding_configuration(self.settings, self.providers)
            embedder = self.embedders.get(ecfg.provider, ecfg.provider_config)

            deadline.check("collection setup")
            self.index.ensure_collection(self.index.collection, ecfg.vector_size, self.distance)

            deadline.check("chunking")
            if not doc.content or not doc.content.strip():
                raise DocumentValidationError(f"Document {doc.id} has no text content")
            strategy = self.choose_strategy(doc)
            chunks = segment(doc.content, strategy)
            if not chunks:
                raise DocumentValidationError(f"Document {doc.id} produced no chunks")
            doc.chunk_count = len(chunks)

            points: List[IndexPoint] = []
            total = len(chunks)
            for ch in chunks:
                timeout = deadline.bound(self.timeouts.embed)
                vec = embedder.embed(ecfg.model, ch.text, timeout=timeout)
                if len(vec) != ecfg.vector_size:
                    raise ConfigurationError(
                        f"Model {ecfg.model!r} returned {len(vec)}-dim vectors, "
                        f"configured size is {ecfg.vector_size}",
                        {"provider": ecfg.provider, "model": ecfg.model},
                    )
                points.append(
                    IndexPoint(
                        id=point_id(doc.id, ch.index),
                        vector=vec,
                        payload=build_payload(doc, ch, total),
                    )
                )

            deadline.check("indexing")
            deleted = self.index.delete_by_filter(PointFilter.for_document(doc.id))
            self.index.upsert(points)
        except Exception as e:
            if isinstance(e, RAGError):
                logger.warning("Document %s failed: %s", doc.id, e)
            else:
                logger.exception("Document %s failed unexpectedly", doc.id)
            doc.transition(DocumentStatus.FAILED, f"{type(e).__name__}: {e}")
            self._persist(doc)
            return ProcessingResult(
                document_id=doc.id,
                status=doc.status,
                chunk_count=doc.chunk_count,
                points_deleted=deleted,
                strategy=strategy.name,
                error=doc.error,
                error_type=type(e).__name__,
                elapsed_ms=int((time.perf_counter() - t0) * 1000),
            )

        doc.strategy = strategy.name
        doc.transition(DocumentStatus.READY)
        persist_error = self._persist(doc)
        elapsed = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "Document %s ready: %d chunks (%s), replaced %d points in %d ms",
            doc.id, doc.chunk_count, strategy.name, deleted, elapsed,
        )
        return ProcessingResult(
            document_id=doc.id,
            status=doc.status,
            chunk_count=doc.chunk_count,
            points_deleted=deleted,
            strategy=strategy.name,
            error=persist_error,
            elapsed_ms=elapsed,
        )

    def _persist(self, doc: Document) -> Optional[str]:
        """Save `doc`; a store failure is logged and returned instead of raised."""
        try:
            self.store.save(doc)
        except Exception as e:
            logger.exception("Could not record status %s for document %s", doc.status.value, doc.id)
            return f"{type(e).__name__}: {e}"
        return None

    # ---- background ----
    def submit(self, document: Document) -> "Future[ProcessingResult]":
        """Run processing in the background; a second submit for an in-flight id joins the first."""
        key = str(document.id)
        with self._inflight_lock:
            fut = self._inflight.get(key)
            if fut is not None and not fut.done():
                logger.debug("Document %s already in flight; joining", key)
                return fut
            fut = self._executor.submit(self.process_document, document)
            self._inflight[key] = fut
        fut.add_done_callback(lambda f, k=key: self._forget(k, f))
        return fut

    def _forget(self, key: str, fut: Future) -> None:
        with self._inflight_lock:
            if self._inflight.get(key) is fut:
                del self._inflight[key]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ---- delete ----
    def delete_document(self, document: Document) -> int:
        """Remove every indexed point of `document`, then its record."""
        with self.locks.hold(document.id):
            n = self.index.delete_by_filter(PointFilter.for_document(document.id))
            self.store.delete(document.id)
        logger.info("Deleted document %s (%d points)", document.id, n)
        return n
