"""Caller facing search models."""

from typing import Any

from pydantic import BaseModel, Field

from shared.models.errors import ErrorDetail


class SearchHit(BaseModel):
    """One retrieved chunk with its parent document.

    Attributes:
        chunk_id:          Identity of the chunk ("<document_id>_chunk_<index>").
        chunk_text:        Raw chunk content.
        chunk_index:       Zero-based position in the parent document.
        document_id:       Identity of the parent document.
        document_name:     Display name of the parent document.
        document_metadata: Metadata of the parent document.
        score:             Similarity score, higher is better.
        origin:            Retrieval path that produced the hit (index, brute_force, text, expansion).
        query_label:       Label of the sub-query that produced the hit (fan-out only).
    """

    chunk_id: str
    chunk_text: str
    chunk_index: int
    document_id: str
    document_name: str
    document_metadata: dict[str, Any] = Field(default_factory=dict)
    score: float
    origin: str
    query_label: str | None = None


class ContextResult(BaseModel):
    query: str
    context: str
    sources: list[SearchHit]
    total_documents: int
    confidence_score: float


class SubQuery(BaseModel):
    query: str
    label: str
    limit: int = 5


class FanOutResult(BaseModel):
    hits: list[SearchHit]
    failed: dict[str, ErrorDetail] = Field(default_factory=dict)
    labels_covered: list[str] = Field(default_factory=list)
