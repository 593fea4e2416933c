# index/chroma.py
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

import chromadb
from chromadb.config import Settings

from ..errors import VectorIndexError
from .base import VectorIndex, normalize_distance, sanitize_payload
from .schema import FieldMatch, IndexPoint, PointFilter, SearchResult

logger = logging.getLogger(__name__)

_SPACES = {"cosine": "cosine", "dot": "ip", "euclid": "l2"}
BATCH = 1000


def _clause(m: FieldMatch) -> Dict[str, Any]:
    return {m.key: {"$eq": m.value}}


def to_where(f: Optional[PointFilter]) -> Optional[Dict[str, Any]]:
    """Translate a PointFilter into a Chroma `where` document."""
    if f is None or f.is_empty():
        return None
    clauses = [_clause(m) for m in f.must]
    if f.should:
        should = [_clause(m) for m in f.should]
        clauses.append(should[0] if len(should) == 1 else {"$or": should})
    # Chroma rejects $and/$or with fewer than two operands
    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


def distance_to_score(d: float, space: str) -> float:
    if space == "l2":
        return 1.0 / (1.0 + d)
    return 1.0 - d


class ChromaIndex(VectorIndex):
    """Vector index backed by an on-disk Chroma client."""

    def __init__(
        self,
        persist_dir: Optional[str] = None,
        collection: str = "documents",
        client: Any = None,
    ):
        super().__init__(collection)
        if client is None:
            settings = Settings(anonymized_telemetry=False, allow_reset=True)
            client = chromadb.PersistentClient(path=persist_dir or "index/chroma", settings=settings)
        self.client = client
        self._col = None
        self._space = "cosine"
        self._lock = threading.Lock()

    def _collection_names(self) -> List[str]:
        # older clients return Collection objects, newer ones plain names
        return [c if isinstance(c, str) else c.name for c in self.client.list_collections()]

    def ensure_collection(self, name: str, vector_size: int, distance: str = "cosine") -> None:
        space = _SPACES[normalize_distance(distance)]
        with self._lock:
            try:
                existed = name in self._collection_names()
                if existed:
                    col = self.client.get_collection(name=name, embedding_function=None)
                else:
                    # get_or_create: a concurrent creator may have won the race
                    col = self.client.get_or_create_collection(
                        name=name,
                        embedding_function=None,
                        metadata={"hnsw:space": space, "dimension": int(vector_size)},
                    )
            except Exception as e:
                raise VectorIndexError(f"Could not ensure collection {name!r}: {e}") from e

            meta = col.metadata or {}
            have = meta.get("dimension")
            if have is not None and int(have) != int(vector_size):
                raise VectorIndexError(
                    f"Collection {name!r} holds {have}-dim vectors, configured size is {vector_size}",
                    {"collection": name, "existing": have, "configured": vector_size},
                )
            self.collection = name
            self._col = col
            self._space = meta.get("hnsw:space", space)
            if not existed:
                logger.info("Created collection %s (dim=%d, space=%s)", name, vector_size, space)

    def _collection(self):
        if self._col is None or self._col.name != self.collection:
            try:
                self._col = self.client.get_collection(name=self.collection, embedding_function=None)
            except Exception as e:
                raise VectorIndexError(f"Collection {self.collection!r} is not available: {e}") from e
            self._space = (self._col.metadata or {}).get("hnsw:space", "cosine")
        return self._col

    def upsert(self, points: List[IndexPoint]) -> None:
        if not points:
            return
        col = self._collection()
        ids = [p.id for p in points]
        vectors = [p.vector for p in points]
        metas = [sanitize_payload(p.payload) for p in points]
        try:
            for i in range(0, len(points), BATCH):
                col.upsert(
                    ids=ids[i : i + BATCH],
                    embeddings=vectors[i : i + BATCH],
                    metadatas=metas[i : i + BATCH],
                )
        except Exception as e:
            raise VectorIndexError(f"Upsert into {self.collection!r} failed: {e}") from e
        logger.debug("Upserted %d points into %s", len(points), self.collection)

    def search(
        self, vector: List[float], limit: int, filter: Optional[PointFilter] = None
    ) -> List[SearchResult]:
        col = self._collection()
        try:
            res = col.query(
                query_embeddings=[vector],
                n_results=max(1, int(limit)),
                where=to_where(filter),
                include=["metadatas", "distances"],
            )
        except Exception as e:
            raise VectorIndexError(f"Search in {self.collection!r} failed: {e}") from e

        ids = (res.get("ids") or [[]])[0]
        dists = (res.get("distances") or [[]])[0]
        metas = (res.get("metadatas") or [[]])[0]
        out = [
            SearchResult(id=i, score=distance_to_score(d, self._space), payload=dict(m or {}))
            for i, d, m in zip(ids, dists, metas)
            if d is not None
        ]
        out.sort(key=lambda r: r.score, reverse=True)
        return out

    def _ids_where(self, filter: PointFilter) -> List[str]:
        res = self._collection().get(where=to_where(filter), include=[])
        return list(res.get("ids") or [])

    def _exists(self) -> bool:
        return self.collection in self._collection_names()

    def delete_by_filter(self, filter: PointFilter) -> int:
        filter = self._require_filter(filter)
        try:
            if not self._exists():
                return 0
            ids = self._ids_where(filter)
            if ids:
                self._collection().delete(ids=ids)
        except VectorIndexError:
            raise
        except Exception as e:
            raise VectorIndexError(f"Delete from {self.collection!r} failed: {e}") from e
        logger.debug("Deleted %d points from %s", len(ids), self.collection)
        return len(ids)

    def count(self, filter: Optional[PointFilter] = None) -> int:
        try:
            if not self._exists():
                return 0
            if filter is None or filter.is_empty():
                return int(self._collection().count())
            return len(self._ids_where(filter))
        except VectorIndexError:
            raise
        except Exception as e:
            raise VectorIndexError(f"Count on {self.collection!r} failed: {e}") from e
