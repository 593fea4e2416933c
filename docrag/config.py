from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError

from .chunking.fixed import FixedWindowStrategy
from .chunking.headers import HeaderAwareStrategy
from .chunking.select import StructureScorer
from .errors import ConfigurationError
from .retrieve.limits import QueryComplexityPolicy, ScoreDistributionPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config.yaml"

SETTING_PROVIDER = "embedding_provider"
SETTING_MODEL = "embedding_model"
SETTING_VECTOR_SIZE = "embedding_vector_size"


class ProviderConfig(BaseModel):
    type: str
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)

    def resolved_api_key(self) -> Optional[str]:
        if self.api_key_env and os.getenv(self.api_key_env):
            return os.getenv(self.api_key_env)
        return self.api_key


class AppSection(BaseModel):
    documents_path: str = "data/documents.jsonl"
    trace_log: Optional[str] = "logs/retrieve.log.jsonl"
    workers: int = Field(default=4, gt=0)
    offline: bool = False


class IndexSection(BaseModel):
    backend: str = "chroma"  # chroma | qdrant
    collection: str = "documents"
    distance: str = "cosine"
    persist_dir: str = "index/chroma"
    url: str = "http://localhost:6333"
    api_key_env: Optional[str] = None


class ChunkingSection(BaseModel):
    auto: bool = True
    fixed: FixedWindowStrategy = Field(default_factory=FixedWindowStrategy)
    headers: HeaderAwareStrategy = Field(default_factory=HeaderAwareStrategy)
    structure: StructureScorer = Field(default_factory=StructureScorer)


class RetrievalSection(BaseModel):
    mode: str = "hybrid"  # semantic | hybrid
    min_relevance: float = 0.62
    adaptive_floor: float = 0.55
    adaptive_ratio: float = 0.85
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    small_talk: bool = True
    complexity: QueryComplexityPolicy = Field(default_factory=QueryComplexityPolicy)
    distribution: ScoreDistributionPolicy = Field(default_factory=ScoreDistributionPolicy)


class TimeoutSection(BaseModel):
    embed: float = Field(default=60.0, gt=0)
    index: float = Field(default=30.0, gt=0)
    ingest: float = Field(default=600.0, gt=0)


class AppConfig(BaseModel):
    app: AppSection = Field(default_factory=AppSection)
    settings: Dict[str, Any] = Field(default_factory=dict)
    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    index: IndexSection = Field(default_factory=IndexSection)
    chunking: ChunkingSection = Field(default_factory=ChunkingSection)
    retrieval: RetrievalSection = Field(default_factory=RetrievalSection)
    timeouts: TimeoutSection = Field(default_factory=TimeoutSection)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Read YAML config (path > DOCRAG_CONFIG > config.yaml) and apply env overrides."""
    path = Path(path or os.getenv("DOCRAG_CONFIG") or DEFAULT_CONFIG)
    raw: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.warning("Config file %s not found; using defaults", path)
    try:
        cfg = AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    backend = os.getenv("DOCRAG_INDEX_BACKEND")
    if backend:
        cfg.index.backend = backend.strip().lower()
    return cfg


class SettingsSource(Protocol):
    """Where the three runtime embedding settings are read from."""

    def get(self, key: str) -> Optional[Any]:
        ...


class MappingSettings:
    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self.values = dict(values or {})

    def get(self, key: str) -> Optional[Any]:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value


class EmbeddingConfiguration(BaseModel):
    provider: str
    model: str
    vector_size: int
    provider_config: ProviderConfig


def resolve_embedding_configuration(
    settings: SettingsSource, providers: Mapping[str, ProviderConfig]
) -> EmbeddingConfiguration:
    """
    Build the active embedding configuration.

    Every value is required; anything absent, blank or malformed raises
    ConfigurationError, which callers must not retry.
    """
    provider = settings.get(SETTING_PROVIDER)
    if provider is None:
        # older deployments stored the provider under its id key
        provider = settings.get(SETTING_PROVIDER + "_id")
    if provider is None or not str(provider).strip():
        raise ConfigurationError("Embedding provider is not configured")
    provider = str(provider).strip()

    pcfg = providers.get(provider)
    if pcfg is None:
        raise ConfigurationError(
            f"Embedding provider {provider!r} is not defined", {"known": sorted(providers)}
        )

    model = settings.get(SETTING_MODEL)
    if not isinstance(model, str) or not model.strip():
        raise ConfigurationError("Embedding model is not configured")

    raw_size = settings.get(SETTING_VECTOR_SIZE)
    if raw_size is None or isinstance(raw_size, bool):
        raise ConfigurationError("Embedding vector size is not configured")
    try:
        size = int(str(raw_size).strip())
    except ValueError as e:
        raise ConfigurationError(f"Embedding vector size {raw_size!r} is not an integer") from e
    if size <= 0:
        raise ConfigurationError(f"Embedding vector size must be positive, got {size}")

    return EmbeddingConfiguration(
        provider=provider, model=model.strip(), vector_size=size, provider_config=pcfg
    )
