from __future__ import annotations

from typing import Any, Dict, List, Union

from pydantic import BaseModel, Field

FieldValue = Union[bool, int, float, str]


class Chunk(BaseModel):
    text: str
    index: int                 # ordinal within the document
    start: int                 # offsets into the normalized source text
    end: int
    metadata: Dict[str, Any] = Field(default_factory=dict)


class IndexPoint(BaseModel):
    id: str
    vector: List[float]
    payload: Dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    id: str
    score: float
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        t = self.payload.get("text")
        return t if isinstance(t, str) else ""

    @property
    def title(self) -> str:
        t = self.payload.get("title")
        return t if isinstance(t, str) else ""


class HybridResult(BaseModel):
    result: SearchResult
    semantic_score: float
    keyword_score: float
    combined_score: float
    matched_keywords: List[str] = Field(default_factory=list)
    phrase_match: bool = False


class FieldMatch(BaseModel):
    """Equality predicate on one payload key; typed by the value's kind."""

    key: str
    value: FieldValue

    @property
    def kind(self) -> str:
        # bool first: bool is a subclass of int
        if isinstance(self.value, bool):
            return "bool"
        if isinstance(self.value, int):
            return "int"
        if isinstance(self.value, float):
            return "float"
        return "str"


class PointFilter(BaseModel):
    """Conjunctive `must` and disjunctive `should` payload predicates."""

    must: List[FieldMatch] = Field(default_factory=list)
    should: List[FieldMatch] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.must and not self.should

    @classmethod
    def for_document(cls, document_id: FieldValue) -> "PointFilter":
        return cls(must=[FieldMatch(key="document_id", value=document_id)])

    @classmethod
    def any_document(cls, document_ids: List[FieldValue]) -> "PointFilter":
        return cls(should=[FieldMatch(key="document_id", value=d) for d in document_ids])
