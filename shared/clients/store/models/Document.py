"""StoredDocument model: a document node in the graph store."""

from typing import Any

from pydantic import BaseModel, Field


class StoredDocument(BaseModel):
    """A cached document. Its chunks hang off it via CONTAINS edges.

    Attributes:
        id:           Stable identity, md5 of the name unless given explicitly.
        name:         Display name (usually a file path).
        content_hash: SHA-256 hex digest of the full content. Used for change detection and dedup.
        content:      Full text of the document.
        size:         Length of the content in characters.
        uploaded_at:  ISO-8601 timestamp of the last write.
        source:       Ingestion channel owning the document. Reconcile only removes its own source.
        metadata:     Caller metadata. Persisted as a JSON string in the graph.
    """

    id: str
    name: str
    content_hash: str
    content: str = ""
    size: int = 0
    uploaded_at: str
    source: str = "api_upload"
    metadata: dict[str, Any] = Field(default_factory=dict)
