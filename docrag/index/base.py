from __future__ import annotations

import logging
import math
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from ..errors import VectorIndexError
from .schema import IndexPoint, PointFilter, SearchResult

logger = logging.getLogger(__name__)

# stable across processes and hosts
POINT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "docrag/index-point")

DISTANCES = ("cosine", "dot", "euclid")
_DISTANCE_ALIASES = {"ip": "dot", "inner_product": "dot", "l2": "euclid", "euclidean": "euclid"}


def normalize_distance(distance: Optional[str]) -> str:
    d = (distance or "cosine").strip().lower()
    d = _DISTANCE_ALIASES.get(d, d)
    if d not in DISTANCES:
        raise VectorIndexError(f"Unsupported distance metric: {distance!r}")
    return d


def point_id(document_id: Union[int, str], chunk_index: int) -> str:
    """Deterministic UUID for one (document, chunk) pair."""
    return str(uuid.uuid5(POINT_NAMESPACE, f"{document_id}:{chunk_index}"))


def _clean_str(key: str, s: str) -> str:
    clean = s.encode("utf-8", errors="replace").decode("utf-8")
    if clean != s:
        logger.debug("payload[%s]: replaced invalid characters", key)
    return clean


def sanitize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce payload values to scalar types every backend accepts.

    None values are dropped, strings are forced to valid UTF-8, bytes are
    decoded, and non-finite floats or other types are stringified.
    """
    try:
        out: Dict[str, Any] = {}
        for k, v in (payload or {}).items():
            key = _clean_str("<key>", str(k))
            if v is None:
                logger.debug("payload[%s]: dropping None", key)
                continue
            if isinstance(v, (bool, int)):
                out[key] = v
            elif isinstance(v, float):
                if math.isfinite(v):
                    out[key] = v
                else:
                    logger.warning("payload[%s]: non-finite float stored as text", key)
                    out[key] = str(v)
            elif isinstance(v, str):
                out[key] = _clean_str(key, v)
            elif isinstance(v, (bytes, bytearray)):
                out[key] = bytes(v).decode("utf-8", errors="replace")
            else:
                logger.warning(
                    "payload[%s]: unsupported %s stored as text", key, type(v).__name__
                )
                out[key] = _clean_str(key, str(v))
        return out
    except Exception as e:
        raise VectorIndexError(f"Could not sanitize payload: {e}") from e


class VectorIndex(ABC):
    """One logical collection of vectors with scalar payloads."""

    def __init__(self, collection: str = "documents"):
        self.collection = collection

    @abstractmethod
    def ensure_collection(self, name: str, vector_size: int, distance: str = "cosine") -> None:
        """Create `name` if absent; idempotent. Size mismatch raises VectorIndexError."""

    @abstractmethod
    def upsert(self, points: List[IndexPoint]) -> None:
        ...

    @abstractmethod
    def search(
        self, vector: List[float], limit: int, filter: Optional[PointFilter] = None
    ) -> List[SearchResult]:
        """Best matches first."""

    @abstractmethod
    def delete_by_filter(self, filter: PointFilter) -> int:
        ...

    @abstractmethod
    def count(self, filter: Optional[PointFilter] = None) -> int:
        ...

    @staticmethod
    def _require_filter(filter: Optional[PointFilter]) -> PointFilter:
        if filter is None or filter.is_empty():
            raise VectorIndexError("Refusing to delete with an empty filter")
        return filter
