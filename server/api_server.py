"""FastAPI application entry point for the semantic document cache."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import CacheError, ErrorKind, StoreConnectivityError
from services.document_cache.CacheContext import CacheContext
from services.document_cache.DocumentCacheService import DocumentCacheService
from services.document_sync.SourceLoader import SourceLoader
from services.document_sync.SyncService import SyncService
from server.routers.CacheRouter import router as cache_router
from server.routers.DocumentRouter import router as document_router
from server.routers.SearchRouter import router as search_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.EMPTY_DOCUMENT: 400,
    ErrorKind.DIMENSION_MISMATCH: 400,
    ErrorKind.UNSUPPORTED_DOCUMENT: 400,
    ErrorKind.FORBIDDEN_PATH: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DOCUMENT_PARSING: 422,
    ErrorKind.UNKNOWN_MODEL: 502,
    ErrorKind.EMBEDDING_PROVIDER: 502,
    ErrorKind.PROVIDER_EXHAUSTED: 502,
    ErrorKind.TRANSIENT_PROVIDER: 502,
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.STORE_CONNECTIVITY: 503,
    ErrorKind.INDEX_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
}


def wire_app_state(app: FastAPI, helper_config: HelperConfig, context: CacheContext) -> None:
    """Attach the services built on a booted context to app.state."""
    app.state.helper_config = helper_config
    app.state.context = context
    app.state.cache_service = DocumentCacheService(context=context)
    app.state.sync_service = SyncService(context=context, cache_service=app.state.cache_service)
    app.state.source_loader = SourceLoader(helper_config=helper_config)
    app.state.request_timeout = helper_config.get_number_val("API_SERVER_REQUEST_TIMEOUT", default=120)
    app.state.max_upload_bytes = int(helper_config.get_number_val("API_SERVER_MAX_UPLOAD_MB", default=25) * 1024 * 1024)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    helper_config = HelperConfig(logger=logging)
    context = CacheContext.from_config(helper_config=helper_config)

    try:
        await context.boot()
        wire_app_state(app, helper_config, context)
        await check_connections(app.state.cache_service)

        # while the app is running...
        yield
    finally:
        # when the app shuts down (or failed to start), release the driver and HTTP clients
        logging.info("Shutting down, closing all clients...")
        await context.close()


app = FastAPI(
    title="semantic_document_cache",
    description=(
        "Semantic document cache and retrieval engine. Documents are chunked, embedded through "
        "interchangeable providers and stored in a graph store with a vector index. "
        "Queries are served via POST /search, POST /search/context and POST /search/fanout."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cache_router)
app.include_router(document_router)
app.include_router(search_router)


@app.exception_handler(CacheError)
async def handle_cache_error(request: Request, exc: CacheError) -> JSONResponse:
    """Render cache errors as {kind, message, hint}."""
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logging.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=exc.to_detail().model_dump(mode="json"))


async def check_connections(cache_service: DocumentCacheService) -> None:
    """Check connectivity to the store and the embedding providers on startup.

    Provider failures are non-fatal (a local inference server may come up later).
    Store failures are fatal, nothing can be served without it.

    Raises:
        StoreConnectivityError: If the graph store is not reachable.
    """
    health = await cache_service.health_check()
    if not health.store:
        raise StoreConnectivityError("Graph store is not reachable. Cannot serve requests.")
    if not any(health.providers.values()):
        logging.warning(
            "No embedding provider is reachable (%s). Ingestion and search will fail until one is.",
            health.detail or health.providers,
        )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting semantic_document_cache API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("API_SERVER_PORT", "8000")))
