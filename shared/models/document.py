"""Document input and ingestion result models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DocumentInput(BaseModel):
    """A document handed to the cache for ingestion.

    Attributes:
        name:        Display name, usually a file path. The identity is derived from it.
        content:     Full text of the document.
        metadata:    Arbitrary caller metadata, copied onto the document and its chunks.
        source:      Ingestion channel that owns the document (e.g. "api_upload").
        document_id: Explicit identity. Defaults to the md5 of the name.
    """

    name: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    source: str = "api_upload"
    document_id: str | None = None


class IngestStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"


class IngestResult(BaseModel):
    document_id: str
    name: str
    status: IngestStatus
    chunk_count: int = 0
    content_hash: str
    duplicate_of: str | None = None
