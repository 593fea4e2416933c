from abc import ABC, abstractmethod
from typing import List, Optional


class Embedder(ABC):
    """Text-to-vector backend. Implementations never retry."""

    name: str = "embedder"

    @abstractmethod
    def embed(self, model: str, text: str, timeout: Optional[float] = None) -> List[float]:
        """Return one embedding vector; raise ProviderError on any backend failure."""
        ...

    @abstractmethod
    def list_models(self) -> List[str]:
        ...
