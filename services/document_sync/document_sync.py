"""Sync runner entry point.

Reconciles a folder of documents (SYNC_SOURCE_DIR) into the document cache.
Run directly for a one-shot sync.

Usage:
    python -m services.document_sync.document_sync
"""

import asyncio

from services.document_cache.CacheContext import CacheContext
from services.document_cache.DocumentCacheService import DocumentCacheService
from services.document_sync.SourceLoader import SourceLoader
from services.document_sync.SyncService import SyncService
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.errors import CacheError


async def main() -> int:
    """Run the folder reconciliation.

    Returns:
        int: Process exit code. 0 if every document synced, 1 otherwise.
    """
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    try:
        source_dir = config.get_string_val("SYNC_SOURCE_DIR")
        source = config.get_string_val("SYNC_SOURCE_NAME", default=f"sync:{source_dir}")
        context = CacheContext.from_config(helper_config=config)
    except CacheError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        # store and embed clients are required, there is no point in syncing without them
        await context.boot()
        cache_service = DocumentCacheService(context=context)
        health = await cache_service.health_check()
        if not health.healthy:
            logger.error("Document cache is not healthy (store=%s, providers=%s). Aborting.", health.store, health.providers)
            return 1

        documents = SourceLoader(helper_config=config).load_directory(source_dir)
        summary = await SyncService(context=context, cache_service=cache_service).reconcile(documents, source=source)
        for name, detail in summary.failed.items():
            logger.error("  %s: [%s] %s", name, detail.kind.value, detail.message)
        return 0 if not summary.failed else 1
    except CacheError as e:
        logger.error("Sync aborted: %s", e)
        return 1
    finally:
        await context.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
