import os

from ..config import IndexSection
from ..errors import ConfigurationError
from .base import VectorIndex
from .chroma import ChromaIndex
from .qdrant import QdrantIndex


def make_index(cfg: IndexSection, timeout: float = 30.0) -> VectorIndex:
    backend = (cfg.backend or "chroma").lower()
    if backend == "chroma":
        return ChromaIndex(persist_dir=cfg.persist_dir, collection=cfg.collection)
    if backend == "qdrant":
        api_key = os.getenv(cfg.api_key_env) if cfg.api_key_env else None
        return QdrantIndex(url=cfg.url, collection=cfg.collection, api_key=api_key, timeout=timeout)
    raise ConfigurationError(f"Unsupported index backend: {cfg.backend!r}")
