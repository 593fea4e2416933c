# embed/fastembed_local.py
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from fastembed import TextEmbedding

from ..errors import ProviderError
from .base import Embedder

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"


class FastEmbedEmbedder(Embedder):
    """
    In-process ONNX embeddings. Models are loaded lazily and cached per name;
    `timeout` is accepted for interface parity but local calls are not bounded.
    """

    name = "fastembed"

    def __init__(self, cache_dir: Optional[str] = None, **_: Any) -> None:
        self.cache_dir = cache_dir
        self._models: Dict[str, TextEmbedding] = {}
        self._lock = threading.Lock()

    def _model(self, name: str) -> TextEmbedding:
        with self._lock:
            if name not in self._models:
                logger.info("Loading fastembed model %s", name)
                try:
                    self._models[name] = TextEmbedding(model_name=name, cache_dir=self.cache_dir)
                except Exception as e:
                    raise ProviderError(f"Could not load fastembed model {name!r}: {e}") from e
            return self._models[name]

    def embed(self, model: str, text: str, timeout: Optional[float] = None) -> List[float]:
        m = self._model(model or DEFAULT_MODEL)
        try:
            rows = list(m.embed([text]))
        except Exception as e:
            raise ProviderError(f"fastembed failed: {e}") from e
        if not rows:
            raise ProviderError("fastembed returned no embedding rows", {"model": model})
        return [float(x) for x in rows[0]]

    def list_models(self) -> List[str]:
        return [d["model"] for d in TextEmbedding.list_supported_models()]
