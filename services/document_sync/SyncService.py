"""Incremental synchronisation service.

Reconciles the cache with an authoritative set of source documents: new
documents are ingested, changed documents get their chunks replaced,
unchanged documents are skipped without embedding calls, and stored
documents that vanished from the source are removed.
"""

import asyncio
import time

from shared.models.document import DocumentInput, IngestStatus
from shared.models.errors import CacheError, EmptyDocumentError, OperationTimeoutError
from shared.models.sync import SourceDocument, SyncSummary
from services.document_cache.CacheContext import CacheContext
from services.document_cache.ContentChunker import compute_content_hash, compute_document_id
from services.document_cache.DocumentCacheService import DocumentCacheService

SYNC_CONCURRENCY = 4  # max parallel document syncs
UNCHANGED = "unchanged"


class SyncService:
    """Orchestrates incremental reconciliation of one source into the cache."""

    def __init__(self, context: CacheContext, cache_service: DocumentCacheService) -> None:
        self.logging = context.logging.child("sync")
        self._store = context.store
        self._cache_service = cache_service
        self.concurrency = int(context.helper_config.get_number_val("SYNC_CONCURRENCY", default=SYNC_CONCURRENCY))

    ##########################################
    ############### CORE SYNC ################
    ##########################################

    async def reconcile(
        self,
        source_documents: list[SourceDocument],
        source: str = "sync",
        timeout: float | None = None,
    ) -> SyncSummary:
        """Bring the cache in line with the given source documents.

        Only stored documents of the same source are considered for removal.
        A failing document is recorded in the summary and does not stop the run.

        Args:
            source_documents (list[SourceDocument]): Complete current content of the source.
            source (str): Name of the source scope, stored on every document.
            timeout (float | None): Upper bound for the whole run in seconds.

        Returns:
            SyncSummary: What was added, modified, removed, unchanged, skipped and failed.
        """
        if timeout is None:
            return await self._reconcile(source_documents, source)
        try:
            return await asyncio.wait_for(self._reconcile(source_documents, source), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"Sync of '{source}' did not finish within {timeout}s.") from exc

    async def _reconcile(self, source_documents: list[SourceDocument], source: str) -> SyncSummary:
        started = time.monotonic()
        summary = SyncSummary(source=source)
        self.logging.info("Reconciling %d document(s) from source '%s'...", len(source_documents), source)

        stored = await self._store.do_list_documents(source=source)

        sem = asyncio.Semaphore(max(1, self.concurrency))
        results = await asyncio.gather(
            *[self._sync_document(document, stored, source, sem) for document in source_documents],
            return_exceptions=True,
        )

        for document, result in zip(source_documents, results):
            if isinstance(result, CacheError):
                self.logging.error("Sync failed for document '%s': %s", document.name, result)
                summary.failed[document.name] = result.to_detail()
                continue
            if isinstance(result, BaseException):
                raise result
            status, chunk_count = result
            summary.total_chunks += chunk_count
            if status == IngestStatus.CREATED:
                summary.added.append(document.name)
            elif status == IngestStatus.UPDATED:
                summary.modified.append(document.name)
            elif status in (IngestStatus.UNCHANGED, UNCHANGED):
                summary.unchanged.append(document.name)
            else:
                summary.skipped.append(document.name)

        await self._remove_vanished(stored, source_documents, summary)

        summary.elapsed_ms = int((time.monotonic() - started) * 1000)
        self.logging.info(
            "Sync of '%s' complete in %d ms: %d added, %d modified, %d removed, %d unchanged, %d skipped, %d failed.",
            source,
            summary.elapsed_ms,
            len(summary.added),
            len(summary.modified),
            len(summary.removed),
            len(summary.unchanged),
            len(summary.skipped),
            len(summary.failed),
            color="green" if not summary.failed else "yellow",
        )
        return summary

    ##########################################
    ############ DOCUMENT SYNC ###############
    ##########################################

    async def _sync_document(
        self,
        document: SourceDocument,
        stored: dict[str, str],
        source: str,
        sem: asyncio.Semaphore,
    ) -> tuple[str, int]:
        """Sync a single document.

        Returns:
            tuple[str, int]: Ingest status (or "unchanged") and number of chunks written.

        Raises:
            CacheError: Propagated to gather() if the document is empty or embedding or storing fails.
                An empty document also loses its previously stored version.
        """
        async with sem:
            document_id = compute_document_id(document.name)
            if stored.get(document_id) == compute_content_hash(document.content):
                return UNCHANGED, 0

            try:
                result = await self._cache_service.ingest_document(
                    DocumentInput(name=document.name, content=document.content, metadata=document.metadata, source=source)
                )
            except EmptyDocumentError:
                if document_id in stored:
                    await self._cache_service.remove_document(document_id)
                    self.logging.warning("Document '%s' is now empty, removed its previous version.", document.name)
                raise
            return result.status, result.chunk_count

    async def _remove_vanished(self, stored: dict[str, str], source_documents: list[SourceDocument], summary: SyncSummary) -> None:
        """Delete stored documents of this source that are no longer present."""
        current_ids = {compute_document_id(document.name) for document in source_documents}
        for document_id in stored:
            if document_id in current_ids:
                continue
            try:
                if await self._cache_service.remove_document(document_id):
                    summary.removed.append(document_id)
            except CacheError as exc:
                self.logging.error("Removing vanished document '%s' failed: %s", document_id, exc)
                summary.failed[document_id] = exc.to_detail()
