from __future__ import annotations

import logging
import re
import time
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..config import (
    EmbeddingConfiguration,
    ProviderConfig,
    RetrievalSection,
    SettingsSource,
    TimeoutSection,
    resolve_embedding_configuration,
)
from ..embed.factory import EmbedderCache
from ..errors import ConfigurationError
from ..index.base import VectorIndex
from ..index.schema import PointFilter, SearchResult
from ..lifecycle.models import Document, DocumentStatus
from ..lifecycle.store import DocumentStore
from ..utils.log import Logger
from .fuse import hybrid_fuse
from .limits import adaptive_threshold
from .rerank import rerank

logger = logging.getLogger(__name__)

DIVIDER = "\n\n---\n\n"

PROMPT_TEMPLATE = """You are provided with relevant documentation to help answer the user's question accurately.

=== RELEVANT DOCUMENTATION ===
{context}
=== END OF DOCUMENTATION ===

User Question: {question}

Answer using only the documentation provided above. If the documentation does not contain enough information to answer the question, say so explicitly instead of guessing. Do not make up an answer."""

MODES = ("semantic", "hybrid")

GREETINGS = (
    "hello", "hi", "hey", "good morning", "good afternoon", "good evening",
    "how are you", "how do you do", "whats up", "what's up", "how's it going",
    "nice to meet you", "pleased to meet you",
    "thanks", "thank you", "yes", "no", "ok", "okay",
    "are you there", "are you here", "can you hear me",
    # Turkish
    "merhaba", "selam", "selamünaleyküm", "günaydın", "iyi günler",
    "iyi akşamlar", "iyi geceler", "nasılsın", "nasılsınız",
    "nasilsin", "nasilsiniz", "naber", "ne haber",
    "hoş geldin", "hoşgeldin", "hoş geldiniz", "hoşgeldiniz",
    "tanıştığımıza memnun oldum", "memnun oldum",
    "teşekkür", "teşekkürler", "sağol", "sagol",
    "evet", "hayır", "hayir", "tamam",
    "orada mısın", "orada misin", "buradasın", "buradasınız",
)
FILLER = (
    "good", "bad", "fine", "well", "nice", "great", "cool",
    "there", "again", "all", "everyone", "so", "very", "much", "a", "lot",
    "iyi", "kötü", "fena", "güzel", "hoş", "hos", "çok",
)
QUESTION_WORDS = (
    "what", "when", "where", "who", "why", "how", "which",
    "ne", "nerede", "kim", "neden", "nasıl", "nasil", "hangi",
)

DocRef = Union[Document, int, str]


class DocumentInfo(BaseModel):
    title: str
    score: float


class AugmentResult(BaseModel):
    prompt: str
    augmented: bool = False
    documents_used: List[DocumentInfo] = Field(default_factory=list)
    chunks: List[SearchResult] = Field(default_factory=list)
    reason: str = ""


class SmallTalkDetector(BaseModel):
    """Greetings and courtesies that need no document context."""

    phrases: List[str] = Field(default_factory=lambda: list(GREETINGS))
    filler: List[str] = Field(default_factory=lambda: list(FILLER))
    max_words: int = 4

    @staticmethod
    def _clean(query: str) -> str:
        q = re.sub(r"[?!.,;:]+", " ", (query or "").lower())
        return " ".join(q.split())

    def matches(self, query: str) -> bool:
        q = self._clean(query)
        if not q:
            return False
        if q in self.phrases:
            return True
        words = q.split()
        if len(words) > self.max_words or any(w in QUESTION_WORDS for w in words):
            return False
        # every word must be a greeting or filler word
        known = set(self.filler) | {w for p in self.phrases for w in p.split()}
        return all(w in known for w in words)


class RetrievalEngine:
    """
    Query-time half of the pipeline: embed, search, score, select, augment.

    Holds no per-call state. Anything that leaves nothing to add (no ready
    documents, small talk, nothing relevant, missing embedding settings)
    returns the query unchanged; backend outages raise.
    """

    def __init__(
        self,
        index: VectorIndex,
        settings: SettingsSource,
        providers: Mapping[str, ProviderConfig],
        embedders: Optional[EmbedderCache] = None,
        store: Optional[DocumentStore] = None,
        retrieval: Optional[RetrievalSection] = None,
        timeouts: Optional[TimeoutSection] = None,
        trace: Optional[Logger] = None,
    ):
        self.index = index
        self.settings = settings
        self.providers = providers
        self.timeouts = timeouts or TimeoutSection()
        self.embedders = embedders or EmbedderCache(timeout=self.timeouts.embed)
        self.store = store
        self.cfg = retrieval or RetrievalSection()
        self.small_talk = SmallTalkDetector()
        self.trace = trace

    # ---- helpers ----
    def ready_ids(self, scope: Iterable[DocRef]) -> List[Union[int, str]]:
        ids: List[Union[int, str]] = []
        for ref in scope or []:
            doc = ref if isinstance(ref, Document) else (self.store.get(ref) if self.store else None)
            if doc is not None and doc.status == DocumentStatus.READY and doc.id not in ids:
                ids.append(doc.id)
        return ids

    def _embed_query(self, query: str) -> Tuple[EmbeddingConfiguration, List[float]]:
        ecfg = resolve_embedding_configuration(self.settings, self.providers)
        embedder = self.embedders.get(ecfg.provider, ecfg.provider_config)
        vec = embedder.embed(ecfg.model, query, timeout=self.timeouts.embed)
        if len(vec) != ecfg.vector_size:
            raise ConfigurationError(
                f"Model {ecfg.model!r} returned {len(vec)}-dim vectors, "
                f"configured size is {ecfg.vector_size}"
            )
        return ecfg, vec

    def _passthrough(self, query: str, reason: str, **trace) -> AugmentResult:
        logger.info("Retrieval skipped (%s)", reason)
        self._trace(query=query, augmented=False, reason=reason, **trace)
        return AugmentResult(prompt=query, augmented=False, reason=reason)

    def _trace(self, **fields) -> None:
        if self.trace is not None:
            self.trace.write({"event": "retrieve", **fields})

    # ---- selection ----
    def _select_semantic(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        kept = [r for r in results if r.score >= self.cfg.min_relevance]
        if not kept:
            return []
        docs = {str(r.payload.get("document_id")) for r in kept}
        budget = self.cfg.distribution.budget(query, [r.score for r in kept], len(docs))
        return kept[:budget]

    def _select_hybrid(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        fused = hybrid_fuse(
            results, query, self.cfg.semantic_weight, self.cfg.keyword_weight
        )
        docs = {str(h.result.payload.get("document_id")) for h in fused}
        budget = self.cfg.distribution.budget(
            query, [h.combined_score for h in fused], len(docs)
        )
        ranked = rerank(fused, budget)
        if not ranked:
            return []
        cutoff = adaptive_threshold(ranked[0][1], self.cfg.adaptive_floor, self.cfg.adaptive_ratio)
        logger.debug("adaptive threshold %.3f (top %.3f)", cutoff, ranked[0][1])
        return [
            h.result.model_copy(update={"score": final})
            for h, final in ranked
            if final >= cutoff
        ]

    @staticmethod
    def build_prompt(query: str, chunks: List[SearchResult]) -> AugmentResult:
        used: List[DocumentInfo] = []
        seen = set()
        for r in chunks:
            if r.title not in seen:
                seen.add(r.title)
                used.append(DocumentInfo(title=r.title, score=r.score))
        context = DIVIDER.join(r.text for r in chunks)
        return AugmentResult(
            prompt=PROMPT_TEMPLATE.format(context=context, question=query),
            augmented=True,
            documents_used=used,
            chunks=list(chunks),
            reason="augmented",
        )

    # ---- entry points ----
    def retrieve(
        self,
        query: str,
        scope: Iterable[DocRef],
        limit: int = 0,
        mode: Optional[str] = None,
    ) -> AugmentResult:
        mode = (mode or self.cfg.mode).lower()
        if mode not in MODES:
            raise ValueError(f"Unknown retrieval mode: {mode!r} (expected one of {MODES})")
        t0 = time.perf_counter()

        q = (query or "").strip()
        if not q:
            return self._passthrough(query, "empty_query")
        if self.cfg.small_talk and self.small_talk.matches(q):
            return self._passthrough(query, "small_talk")
        ids = self.ready_ids(scope)
        if not ids:
            return self._passthrough(query, "no_ready_documents")

        requested = self.cfg.complexity.limit(q, limit)
        try:
            _, vec = self._embed_query(q)
        except ConfigurationError as e:
            logger.warning("Retrieval unavailable: %s", e)
            return self._passthrough(query, "not_configured")

        results = self.index.search(vec, requested, PointFilter.any_document(ids))
        for r in results:
            logger.debug("chunk score=%.3f title=%r", r.score, r.title)
        if not results:
            return self._passthrough(query, "no_results", mode=mode, requested=requested)

        if mode == "hybrid":
            chosen = self._select_hybrid(q, results)
        else:
            chosen = self._select_semantic(q, results)
        if not chosen:
            return self._passthrough(
                query, "below_threshold", mode=mode, requested=requested, candidates=len(results)
            )

        out = self.build_prompt(query, chosen)
        elapsed = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "Augmented query with %d chunks from %d documents (%s, %d ms)",
            len(chosen), len(out.documents_used), mode, elapsed,
        )
        self._trace(
            query=query,
            augmented=True,
            reason=out.reason,
            mode=mode,
            requested=requested,
            candidates=len(results),
            selected=[{"id": r.id, "score": round(r.score, 4)} for r in chosen],
            elapsed_ms=elapsed,
        )
        return out

    def search_context(
        self, query: str, document_ids: List[Union[int, str]], limit: int = 10
    ) -> List[SearchResult]:
        """Raw scoped similarity search with no thresholds or re-ranking."""
        if not document_ids:
            return []
        _, vec = self._embed_query(query)
        return self.index.search(vec, max(1, limit), PointFilter.any_document(list(document_ids)))
