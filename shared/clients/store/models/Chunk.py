"""Chunk models: chunk nodes and scored retrieval candidates."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from shared.clients.store.models.Document import StoredDocument


def make_chunk_id(document_id: str, index: int) -> str:
    return f"{document_id}_chunk_{index}"


class StoredChunk(BaseModel):
    """A contiguous slice of a document with its embedding.

    Chunks are never edited in place. The whole set of a document is replaced or deleted.

    Attributes:
        id:          "<document_id>_chunk_<index>".
        document_id: Identity of the owning document.
        content:     Chunk text.
        index:       Zero-based position within the document.
        size:        Length of the content in characters.
        embedding:   Vector; all chunks of one collection share its dimension.
        metadata:    Document metadata plus chunkIndex, source, embeddingProvider, embeddingModel.
    """

    id: str
    document_id: str
    content: str
    index: int
    size: int = 0
    embedding: list[float] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChunkOrigin(str, Enum):
    INDEX = "index"
    BRUTE_FORCE = "brute_force"
    TEXT = "text"
    EXPANSION = "expansion"


class ScoredChunk(BaseModel):
    chunk: StoredChunk
    document: StoredDocument
    score: float
    origin: ChunkOrigin = ChunkOrigin.INDEX
