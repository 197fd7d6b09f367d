import asyncio

from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import SyncRequest
from server.models.responses import ClearResponse
from shared.models.stats import CacheStats, HealthStatus
from shared.models.sync import SyncSummary

router = APIRouter(tags=["cache"])


@router.get("/health")
async def health(request: Request) -> HealthStatus:
    """Report reachability of the graph store and the embedding providers. No auth required."""
    cache_service = request.app.state.cache_service
    return await cache_service.health_check(timeout=request.app.state.request_timeout)


@router.get("/statistics")
async def statistics(
    request: Request,
    _: None = Depends(verify_api_key),
) -> CacheStats:
    cache_service = request.app.state.cache_service
    return await cache_service.stats(timeout=request.app.state.request_timeout)


@router.delete("/cache")
async def clear_cache(
    request: Request,
    _: None = Depends(verify_api_key),
) -> ClearResponse:
    """Delete every cached document and chunk, and drop the index pin."""
    cache_service = request.app.state.cache_service
    await cache_service.clear(timeout=request.app.state.request_timeout)
    return ClearResponse(cleared=True)


@router.post("/sync")
async def sync_directory(
    request: Request,
    body: SyncRequest,
    _: None = Depends(verify_api_key),
) -> SyncSummary:
    """Reconcile a folder into the cache.

    Args:
        request (Request): FastAPI request (provides app.state.sync_service and source_loader).
        body (SyncRequest): Folder path below SYNC_SOURCE_DIR (defaults to SYNC_SOURCE_DIR itself) and source name.
        _ (None): Auth dependency result (unused).

    Returns:
        SyncSummary: Added, modified, removed, unchanged, skipped and failed documents.

    Raises:
        ForbiddenPathError: If the folder lies outside SYNC_SOURCE_DIR (rendered as 403).
    """
    helper_config = request.app.state.helper_config
    loader = request.app.state.source_loader
    path = loader.resolve_path(body.path)
    source = body.source or f"sync:{body.path or helper_config.get_string_val('SYNC_SOURCE_DIR')}"
    documents = await asyncio.to_thread(loader.load_directory, path)
    return await request.app.state.sync_service.reconcile(documents, source=source, timeout=request.app.state.request_timeout)
