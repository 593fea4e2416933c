# embed/ollama.py
from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional

import requests

from ..errors import ProviderError
from .base import Embedder

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA = "http://localhost:11434"


def _timeouts(read: Optional[float] = None) -> tuple[float, float]:
    """Return (connect_timeout, read_timeout) in seconds; env-overridable."""
    ct = float(os.getenv("OLLAMA_CONNECT_TIMEOUT", "10"))
    rt = float(os.getenv("OLLAMA_READ_TIMEOUT", "60"))
    if read is not None:
        rt = min(rt, read)
        ct = min(ct, read)
    return (ct, rt)


def _normalize_endpoint(ep: Optional[str]) -> str:
    """explicit endpoint > OLLAMA_HOST > default; ensure scheme; strip trailing slash."""
    cand = (ep or os.getenv("OLLAMA_HOST") or DEFAULT_OLLAMA).strip()
    if not re.match(r"^https?://", cand):
        cand = "http://" + cand
    return cand.rstrip("/")


def _first_vector(data: Any) -> Optional[List[float]]:
    # Common shapes:
    #  - {"embeddings": [[...], ...]}  (/api/embed)
    #  - {"embedding": [...]}          (legacy /api/embeddings)
    if not isinstance(data, dict):
        return None
    rows = data.get("embeddings")
    if isinstance(rows, list) and rows and isinstance(rows[0], list) and rows[0]:
        return [float(x) for x in rows[0]]
    vec = data.get("embedding")
    if isinstance(vec, list) and vec:
        return [float(x) for x in vec]
    return None


class OllamaEmbedder(Embedder):
    """
    Embeddings from a local Ollama server.

    Uses /api/embed and falls back to the legacy /api/embeddings route when the
    server is too old to know the new one (404).
    """

    name = "ollama"

    def __init__(self, endpoint: Optional[str] = None, **_: Any) -> None:
        self.base = _normalize_endpoint(endpoint)

    def _post(self, path: str, payload: Dict[str, Any], timeout) -> requests.Response:
        url = f"{self.base}{path}"
        try:
            return requests.post(url, json=payload, timeout=timeout)
        except requests.RequestException as e:
            raise ProviderError(f"Ollama unreachable at {url}: {e}") from e

    def embed(self, model: str, text: str, timeout: Optional[float] = None) -> List[float]:
        to = _timeouts(timeout)
        r = self._post("/api/embed", {"model": model, "input": text}, to)
        if r.status_code == 404:
            logger.debug("Ollama /api/embed not found; using legacy /api/embeddings")
            r = self._post("/api/embeddings", {"model": model, "prompt": text}, to)
        if not r.ok:
            raise ProviderError(
                f"Ollama embedding failed with HTTP {r.status_code}",
                {"model": model, "body": r.text[:500]},
            )
        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(f"Ollama returned a non-JSON body: {e}") from e
        vec = _first_vector(data)
        if vec is None:
            raise ProviderError("Ollama returned no embedding rows", {"model": model})
        return vec

    def list_models(self) -> List[str]:
        url = f"{self.base}/api/tags"
        try:
            r = requests.get(url, timeout=_timeouts())
        except requests.RequestException as e:
            raise ProviderError(f"Ollama unreachable at {url}: {e}") from e
        if not r.ok:
            raise ProviderError(f"Ollama model listing failed with HTTP {r.status_code}")
        try:
            models = r.json().get("models") or []
        except (ValueError, AttributeError) as e:
            raise ProviderError(f"Ollama returned a malformed model list: {e}") from e
        return [m.get("name") or m.get("model") for m in models if isinstance(m, dict)]
