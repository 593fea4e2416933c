# index/qdrant.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import requests

from ..errors import VectorIndexError
from .base import VectorIndex, normalize_distance, sanitize_payload
from .schema import FieldMatch, IndexPoint, PointFilter, SearchResult

logger = logging.getLogger(__name__)

_DISTANCES = {"cosine": "Cosine", "dot": "Dot", "euclid": "Euclid"}


def _condition(m: FieldMatch) -> Dict[str, Any]:
    # Qdrant keyword/integer/bool matches are exact; floats need a closed range
    if m.kind == "float":
        return {"key": m.key, "range": {"gte": m.value, "lte": m.value}}
    return {"key": m.key, "match": {"value": m.value}}


def to_filter(f: Optional[PointFilter]) -> Optional[Dict[str, Any]]:
    if f is None or f.is_empty():
        return None
    out: Dict[str, Any] = {}
    if f.must:
        out["must"] = [_condition(m) for m in f.must]
    if f.should:
        out["should"] = [_condition(m) for m in f.should]
    return out


class QdrantIndex(VectorIndex):
    """Vector index backed by a Qdrant server over its REST API."""

    def __init__(
        self,
        url: str = "http://localhost:6333",
        collection: str = "documents",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        super().__init__(collection)
        self.base = url.rstrip("/")
        self.headers = {"api-key": api_key} if api_key else {}
        connect = float(os.getenv("QDRANT_CONNECT_TIMEOUT", "10"))
        self.timeout = (min(connect, timeout), timeout)

    def _request(self, method: str, path: str, **kw) -> requests.Response:
        url = f"{self.base}{path}"
        try:
            return requests.request(method, url, headers=self.headers, timeout=self.timeout, **kw)
        except requests.RequestException as e:
            raise VectorIndexError(f"Qdrant unreachable at {url}: {e}") from e

    def _result(self, r: requests.Response, what: str) -> Any:
        if not r.ok:
            raise VectorIndexError(
                f"Qdrant {what} failed with HTTP {r.status_code}",
                {"collection": self.collection, "body": r.text[:500]},
            )
        try:
            return r.json().get("result")
        except (ValueError, AttributeError) as e:
            raise VectorIndexError(f"Qdrant {what} returned a malformed body: {e}") from e

    def ensure_collection(self, name: str, vector_size: int, distance: str = "cosine") -> None:
        dist = _DISTANCES[normalize_distance(distance)]
        r = self._request("GET", f"/collections/{name}")
        if r.status_code == 404:
            body = {"vectors": {"size": int(vector_size), "distance": dist}}
            created = self._request("PUT", f"/collections/{name}", json=body)
            # 409: another worker created it first
            if created.status_code != 409:
                self._result(created, "create collection")
                logger.info("Created collection %s (dim=%d, distance=%s)", name, vector_size, dist)
            self.collection = name
            return

        info = self._result(r, "get collection") or {}
        vectors = ((info.get("config") or {}).get("params") or {}).get("vectors") or {}
        have = vectors.get("size") if isinstance(vectors, dict) else None
        if have is not None and int(have) != int(vector_size):
            raise VectorIndexError(
                f"Collection {name!r} holds {have}-dim vectors, configured size is {vector_size}",
                {"collection": name, "existing": have, "configured": vector_size},
            )
        self.collection = name

    def upsert(self, points: List[IndexPoint]) -> None:
        if not points:
            return
        body = {
            "points": [
                {"id": p.id, "vector": p.vector, "payload": sanitize_payload(p.payload)}
                for p in points
            ]
        }
        r = self._request("PUT", f"/collections/{self.collection}/points?wait=true", json=body)
        self._result(r, "upsert")
        logger.debug("Upserted %d points into %s", len(points), self.collection)

    def search(
        self, vector: List[float], limit: int, filter: Optional[PointFilter] = None
    ) -> List[SearchResult]:
        body: Dict[str, Any] = {
            "vector": vector,
            "limit": max(1, int(limit)),
            "with_payload": True,
        }
        flt = to_filter(filter)
        if flt:
            body["filter"] = flt
        r = self._request("POST", f"/collections/{self.collection}/points/search", json=body)
        rows = self._result(r, "search") or []
        out = [
            SearchResult(id=str(row.get("id")), score=float(row.get("score", 0.0)), payload=row.get("payload") or {})
            for row in rows
        ]
        out.sort(key=lambda x: x.score, reverse=True)
        return out

    def delete_by_filter(self, filter: PointFilter) -> int:
        filter = self._require_filter(filter)
        n = self.count(filter)
        if n == 0:
            return 0
        body = {"filter": to_filter(filter)}
        r = self._request("POST", f"/collections/{self.collection}/points/delete?wait=true", json=body)
        self._result(r, "delete")
        logger.debug("Deleted %d points from %s", n, self.collection)
        return n

    def count(self, filter: Optional[PointFilter] = None) -> int:
        body: Dict[str, Any] = {"exact": True}
        flt = to_filter(filter)
        if flt:
            body["filter"] = flt
        r = self._request("POST", f"/collections/{self.collection}/points/count", json=body)
        if r.status_code == 404:
            return 0
        res = self._result(r, "count") or {}
        return int(res.get("count", 0))
