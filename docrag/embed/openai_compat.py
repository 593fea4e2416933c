"""Embeddings from the OpenAI API or any OpenAI-compatible proxy (e.g. LiteLLM)."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import openai
from openai import OpenAI

from ..errors import ProviderError
from .base import Embedder

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class OpenAIEmbedder(Embedder):
    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        **_: Any,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        # proxies such as LiteLLM accept any key when auth is disabled
        self.client = OpenAI(
            api_key=api_key or "not-set",
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
        )

    def embed(self, model: str, text: str, timeout: Optional[float] = None) -> List[float]:
        client = self.client
        if timeout is not None:
            client = client.with_options(timeout=min(self.timeout, timeout))
        try:
            resp = client.embeddings.create(model=model, input=text)
        except openai.APIStatusError as e:
            raise ProviderError(
                f"Embedding request failed with HTTP {e.status_code}", {"model": model}
            ) from e
        except openai.OpenAIError as e:
            raise ProviderError(f"Embedding backend unreachable: {e}") from e

        if not resp.data:
            raise ProviderError("Embedding backend returned no rows", {"model": model})
        return [float(x) for x in resp.data[0].embedding]

    def list_models(self) -> List[str]:
        try:
            ids = [m.id for m in self.client.models.list()]
        except openai.OpenAIError as e:
            raise ProviderError(f"Model listing failed: {e}") from e
        embed_ids = [i for i in ids if "embed" in i.lower()]
        return embed_ids or ids


class LiteLLMEmbedder(OpenAIEmbedder):
    name = "litellm"
    DEFAULT_BASE_URL = "http://localhost:4000"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kw: Any):
        super().__init__(api_key=api_key, base_url=base_url or self.DEFAULT_BASE_URL, **kw)
