from pydantic import BaseModel


class IndexInfo(BaseModel):
    """Vector index settings pinned to a collection on first initialisation.

    Attributes:
        name:       Name of the vector index.
        dimensions: Vector length every chunk embedding must have.
        provider:   Embedding provider the collection was built with.
        model:      Embedding model the collection was built with.
        similarity: Similarity function of the index.
    """

    name: str = "chunk_embeddings"
    dimensions: int
    provider: str
    model: str
    similarity: str = "cosine"


class StoreStats(BaseModel):
    document_count: int = 0
    chunk_count: int = 0
    index: IndexInfo | None = None
    vector_index_available: bool = False
