from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union

from .models import Document, DocumentStatus

logger = logging.getLogger(__name__)

DocId = Union[int, str]


class DocumentStore(Protocol):
    """Persistence owned by the caller; the lifecycle only saves status changes."""

    def get(self, document_id: DocId) -> Optional[Document]:
        ...

    def save(self, document: Document) -> None:
        ...

    def delete(self, document_id: DocId) -> bool:
        ...

    def list(self, ids: Optional[Iterable[DocId]] = None) -> List[Document]:
        ...


class InMemoryDocumentStore:
    def __init__(self, documents: Optional[Iterable[Document]] = None):
        self._docs: Dict[str, Document] = {}
        self._lock = threading.Lock()
        for d in documents or []:
            self.save(d)

    @staticmethod
    def _key(document_id: DocId) -> str:
        return str(document_id)

    def get(self, document_id: DocId) -> Optional[Document]:
        with self._lock:
            d = self._docs.get(self._key(document_id))
            return d.model_copy(deep=True) if d else None

    def save(self, document: Document) -> None:
        with self._lock:
            self._docs[self._key(document.id)] = document.model_copy(deep=True)

    def delete(self, document_id: DocId) -> bool:
        with self._lock:
            return self._docs.pop(self._key(document_id), None) is not None

    def list(self, ids: Optional[Iterable[DocId]] = None) -> List[Document]:
        with self._lock:
            docs = list(self._docs.values())
        if ids is not None:
            wanted = {self._key(i) for i in ids}
            docs = [d for d in docs if self._key(d.id) in wanted]
        return [d.model_copy(deep=True) for d in docs]

    def ready_ids(self, ids: Optional[Iterable[DocId]] = None) -> List[DocId]:
        return [d.id for d in self.list(ids) if d.status == DocumentStatus.READY]


class JsonDocumentStore(InMemoryDocumentStore):
    """InMemoryDocumentStore persisted to a JSON-lines file after every write."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__()
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                for line in f:
                    if line.strip():
                        doc = Document.model_validate_json(line)
                        self._docs[self._key(doc.id)] = doc
            logger.debug("Loaded %d documents from %s", len(self._docs), self.path)

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as out:
            for d in self._docs.values():
                out.write(d.model_dump_json() + "\n")
        tmp.replace(self.path)

    def save(self, document: Document) -> None:
        with self._lock:
            self._docs[self._key(document.id)] = document.model_copy(deep=True)
            self._flush()

    def delete(self, document_id: DocId) -> bool:
        with self._lock:
            found = self._docs.pop(self._key(document_id), None) is not None
            if found:
                self._flush()
            return found
