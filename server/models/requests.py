from typing import Any

from pydantic import BaseModel, Field

from shared.models.search import SubQuery


class TextDocumentRequest(BaseModel):
    name: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    source: str = "text_input"


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(default=5, ge=1, le=100)
    provider: str | None = None
    expand: bool = False


class ContextSearchRequest(BaseModel):
    query: str
    limit: int = Field(default=5, ge=1, le=100)
    provider: str | None = None


class FanOutRequest(BaseModel):
    queries: list[SubQuery] = Field(min_length=1)
    provider: str | None = None


class SyncRequest(BaseModel):
    path: str | None = None
    source: str | None = None
