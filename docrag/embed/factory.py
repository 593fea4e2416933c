import threading

from ..config import ProviderConfig
from ..errors import ConfigurationError
from .base import Embedder
from .fastembed_local import FastEmbedEmbedder
from .ollama import OllamaEmbedder, _normalize_endpoint
from .openai_compat import LiteLLMEmbedder, OpenAIEmbedder

BACKENDS = {
    "ollama": OllamaEmbedder,
    "openai": OpenAIEmbedder,
    "litellm": LiteLLMEmbedder,
    "fastembed": FastEmbedEmbedder,
}


def _is_local(endpoint: str) -> bool:
    return endpoint.startswith("http://localhost") or endpoint.startswith("http://127.0.0.1")


def make_embedder(pcfg: ProviderConfig, offline: bool = False, timeout: float = 60.0) -> Embedder:
    backend = (pcfg.type or "").lower()
    cls = BACKENDS.get(backend)
    if cls is None:
        raise ConfigurationError(f"Unsupported embedding backend: {pcfg.type!r}")

    # Offline guard: only allow localhost endpoints
    if offline:
        if backend == "openai" and not pcfg.base_url:
            raise ConfigurationError("Offline mode: the hosted OpenAI API is not allowed.")
        if backend == "ollama":
            endpoint = _normalize_endpoint(pcfg.base_url)
        else:
            endpoint = pcfg.base_url or ""
        if endpoint and not _is_local(endpoint):
            raise ConfigurationError(f"Offline mode: refusing non-local endpoint: {endpoint}")

    if backend == "ollama":
        return OllamaEmbedder(endpoint=pcfg.base_url, **pcfg.options)
    if backend == "fastembed":
        return FastEmbedEmbedder(**pcfg.options)
    return cls(
        api_key=pcfg.resolved_api_key(),
        base_url=pcfg.base_url,
        timeout=timeout,
        **pcfg.options,
    )


class EmbedderCache:
    """One embedder per provider name, rebuilt when that provider's config changes."""

    def __init__(self, offline: bool = False, timeout: float = 60.0):
        self.offline = offline
        self.timeout = timeout
        self._cache: dict = {}
        self._lock = threading.Lock()

    def get(self, name: str, pcfg: ProviderConfig) -> Embedder:
        key = (name, pcfg.model_dump_json())
        with self._lock:
            emb = self._cache.get(key)
            if emb is None:
                emb = make_embedder(pcfg, offline=self.offline, timeout=self.timeout)
                self._cache[key] = emb
            return emb
