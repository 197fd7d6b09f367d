from pydantic import BaseModel, Field

from shared.clients.store.models.Stats import IndexInfo


class CacheStats(BaseModel):
    document_count: int
    chunk_count: int
    index: IndexInfo | None = None
    vector_index_available: bool = False
    embedding: dict = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """Reachability of the store and every configured embedding provider."""

    healthy: bool
    store: bool
    providers: dict[str, bool] = Field(default_factory=dict)
    detail: str | None = None
