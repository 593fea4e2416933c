from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .config import AppConfig, MappingSettings, SettingsSource
from .embed.factory import EmbedderCache
from .index.base import VectorIndex
from .index.factory import make_index
from .lifecycle.manager import DocumentLifecycleManager
from .lifecycle.models import Document, ProcessingResult
from .lifecycle.store import DocumentStore, JsonDocumentStore
from .retrieve.engine import AugmentResult, DocRef, RetrievalEngine
from .utils.log import Logger

logger = logging.getLogger(__name__)


@dataclass
class Services:
    cfg: AppConfig
    settings: SettingsSource
    store: DocumentStore
    index: VectorIndex
    embedders: EmbedderCache
    manager: DocumentLifecycleManager
    engine: RetrievalEngine

    def close(self) -> None:
        self.manager.shutdown(wait=True)


def build_services(
    cfg: AppConfig,
    settings: Optional[SettingsSource] = None,
    store: Optional[DocumentStore] = None,
    index: Optional[VectorIndex] = None,
    embedders: Optional[EmbedderCache] = None,
) -> Services:
    """Wire index, embedders, lifecycle manager and retrieval engine from config."""
    settings = settings or MappingSettings(cfg.settings)
    store = store or JsonDocumentStore(cfg.app.documents_path)
    index = index or make_index(cfg.index, timeout=cfg.timeouts.index)
    embedders = embedders or EmbedderCache(offline=cfg.app.offline, timeout=cfg.timeouts.embed)
    trace = Logger(Path(cfg.app.trace_log)) if cfg.app.trace_log else None

    manager = DocumentLifecycleManager(
        index=index,
        store=store,
        settings=settings,
        providers=cfg.providers,
        embedders=embedders,
        chunking=cfg.chunking,
        timeouts=cfg.timeouts,
        distance=cfg.index.distance,
        workers=cfg.app.workers,
    )
    engine = RetrievalEngine(
        index=index,
        settings=settings,
        providers=cfg.providers,
        embedders=embedders,
        store=store,
        retrieval=cfg.retrieval,
        timeouts=cfg.timeouts,
        trace=trace,
    )
    logger.debug("Services ready (index=%s, collection=%s)", cfg.index.backend, index.collection)
    return Services(cfg, settings, store, index, embedders, manager, engine)


def process_document(services: Services, document: Document) -> ProcessingResult:
    return services.manager.process_document(document)


def delete_document(services: Services, document: Document) -> int:
    return services.manager.delete_document(document)


def retrieve(
    services: Services,
    query: str,
    scope: Iterable[DocRef],
    limit: int = 0,
    mode: Optional[str] = None,
) -> AugmentResult:
    return services.engine.retrieve(query, scope, limit=limit, mode=mode)
