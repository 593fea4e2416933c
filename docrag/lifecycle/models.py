from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, model_validator

from ..errors import DocumentValidationError

MAX_ERROR_CHARS = 2000


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    DocumentStatus.PENDING: {DocumentStatus.PROCESSING},
    DocumentStatus.READY: {DocumentStatus.PROCESSING},
    DocumentStatus.FAILED: {DocumentStatus.PROCESSING},
    DocumentStatus.PROCESSING: {DocumentStatus.READY, DocumentStatus.FAILED},
}


class Document(BaseModel):
    id: Union[int, str]
    title: str = ""
    content: str = ""
    size: int = 0
    chunk_count: int = 0
    status: DocumentStatus = DocumentStatus.PENDING
    metadata: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    strategy: Optional[str] = None

    @model_validator(mode="after")
    def _derive_size(self) -> "Document":
        if not self.size and self.content:
            self.size = len(self.content.encode("utf-8", errors="replace"))
        return self

    def transition(self, new: DocumentStatus, error: Optional[str] = None) -> None:
        if new not in ALLOWED_TRANSITIONS.get(self.status, set()):
            raise DocumentValidationError(
                f"Document {self.id}: illegal transition {self.status.value} -> {new.value}"
            )
        self.status = new
        if new == DocumentStatus.FAILED:
            self.error = (error or "unknown error")[:MAX_ERROR_CHARS]
        elif new == DocumentStatus.READY:
            self.error = None


class ProcessingResult(BaseModel):
    document_id: Union[int, str]
    status: DocumentStatus
    chunk_count: int = 0
    points_deleted: int = 0
    strategy: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == DocumentStatus.READY
