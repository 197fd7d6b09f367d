"""Incremental sync models."""

from typing import Any

from pydantic import BaseModel, Field

from shared.models.errors import ErrorDetail


class SourceDocument(BaseModel):
    name: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class SyncSummary(BaseModel):
    """Outcome of one reconcile run.

    Attributes:
        source:       Source scope that was reconciled.
        added:        Names of newly ingested documents.
        modified:     Names of documents whose chunks were replaced.
        removed:      Identities of stored documents that vanished from the source.
        unchanged:    Names of documents skipped because their hash matched.
        skipped:      Names of documents not stored because their content is already stored under another name.
        failed:       Per document errors, keyed by document name.
        total_chunks: Number of chunks written during the run.
        elapsed_ms:   Wall clock duration of the run.
    """

    source: str
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, ErrorDetail] = Field(default_factory=dict)
    total_chunks: int = 0
    elapsed_ms: int = 0
