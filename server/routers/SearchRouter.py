from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import ContextSearchRequest, FanOutRequest, SearchRequest
from server.models.responses import SearchResponse
from shared.models.search import ContextResult, FanOutResult

router = APIRouter(prefix="/search", tags=["search"])


@router.post("")
async def search_documents(
    request: Request,
    body: SearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Execute a semantic search over the cached chunks.

    Args:
        request (Request): FastAPI request (provides app.state.cache_service).
        body (SearchRequest): JSON body with query, limit, provider hint and expansion flag.
        _ (None): Auth dependency result (unused).

    Returns:
        SearchResponse: Matching chunks with their documents, best first.
    """
    cache_service = request.app.state.cache_service
    hits = await cache_service.search(
        body.query,
        limit=body.limit,
        provider=body.provider,
        expand=body.expand,
        timeout=request.app.state.request_timeout,
    )
    return SearchResponse(query=body.query, results=hits, total=len(hits))


@router.post("/context")
async def search_with_context(
    request: Request,
    body: ContextSearchRequest,
    _: None = Depends(verify_api_key),
) -> ContextResult:
    """Search and return the hits joined into a single context block."""
    cache_service = request.app.state.cache_service
    return await cache_service.search_with_context(
        body.query,
        limit=body.limit,
        provider=body.provider,
        timeout=request.app.state.request_timeout,
    )


@router.post("/fanout")
async def search_fanout(
    request: Request,
    body: FanOutRequest,
    _: None = Depends(verify_api_key),
) -> FanOutResult:
    """Run several labelled sub-queries concurrently and merge their hits."""
    cache_service = request.app.state.cache_service
    return await cache_service.search_many(body.queries, provider=body.provider, timeout=request.app.state.request_timeout)
