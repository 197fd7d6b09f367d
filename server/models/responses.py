from pydantic import BaseModel

from shared.models.search import SearchHit


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit]
    total: int


class RemoveResponse(BaseModel):
    document_id: str
    removed: bool


class ClearResponse(BaseModel):
    cleared: bool
