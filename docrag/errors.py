from __future__ import annotations

from typing import Any, Dict, Optional


class RAGError(Exception):
    """Base class for every error raised by docrag."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(RAGError):
    """Embedding settings are missing or inconsistent. Not retryable."""


class ProviderError(RAGError):
    """Embedding backend unreachable, returned non-2xx, or an unusable body."""


class VectorIndexError(RAGError):
    """Vector index unreachable, or the requested operation is unsafe."""


class DocumentValidationError(RAGError):
    """Malformed document or chunk input."""


class DeadlineExceeded(RAGError):
    """A processing run went past its wall-clock budget."""
