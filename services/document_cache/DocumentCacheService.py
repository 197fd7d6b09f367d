"""Document cache service.

Caller facing operations of the cache: ingest, search, context search,
multi-query fan-out, stats, clear, removal and health. All operations accept
an optional timeout in seconds.
"""

import asyncio
import weakref
from datetime import datetime, timezone
from typing import Awaitable, TypeVar

from shared.clients.store.models.Chunk import ScoredChunk, StoredChunk, make_chunk_id
from shared.clients.store.models.Document import StoredDocument
from shared.clients.store.models.Stats import IndexInfo
from shared.models.document import DocumentInput, IngestResult, IngestStatus
from shared.models.errors import CacheError, ConfigurationError, DimensionMismatchError, OperationTimeoutError
from shared.models.search import ContextResult, FanOutResult, SearchHit, SubQuery
from shared.models.stats import CacheStats, HealthStatus
from services.document_cache.CacheContext import CacheContext
from services.document_cache.ContentChunker import compute_content_hash, compute_document_id

T = TypeVar("T")

CONTEXT_SEPARATOR = "\n\n---\n\n"


class DocumentCacheService:
    def __init__(self, context: CacheContext) -> None:
        self.logging = context.logging
        self._context = context
        self._store = context.store
        self._embed = context.embed_manager
        self._chunker = context.chunker
        self._retrieval = context.retrieval
        self.fanout_concurrency = int(context.helper_config.get_number_val("RETRIEVAL_FANOUT_CONCURRENCY", default=4))
        self._hash_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _with_timeout(self, awaitable: Awaitable[T], timeout: float | None, action: str) -> T:
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise OperationTimeoutError(f"Operation '{action}' did not finish within {timeout}s.") from exc

    def _hash_lock(self, content_hash: str) -> asyncio.Lock:
        lock = self._hash_locks.get(content_hash)
        if lock is None:
            lock = asyncio.Lock()
            self._hash_locks[content_hash] = lock
        return lock

    def _resolve_provider(self, provider: str | None) -> str | None:
        """Explicit provider first, otherwise the provider the cache is pinned to."""
        if provider:
            return provider
        index_info = self._store.get_index_info()
        return index_info.provider if index_info else None

    def _check_query_dimensions(self, vector: list[float]) -> None:
        index_info = self._store.get_index_info()
        if index_info and len(vector) != index_info.dimensions:
            raise DimensionMismatchError(
                f"Query vector has {len(vector)} dimensions, the cache is pinned to "
                f"{index_info.dimensions} ('{index_info.provider}/{index_info.model}')."
            )

    @staticmethod
    def _to_hit(candidate: ScoredChunk) -> SearchHit:
        return SearchHit(
            chunk_id=candidate.chunk.id,
            chunk_text=candidate.chunk.content,
            chunk_index=candidate.chunk.index,
            document_id=candidate.document.id,
            document_name=candidate.document.name,
            document_metadata=candidate.document.metadata,
            score=candidate.score,
            origin=candidate.origin.value,
        )

    ##########################################
    ################ INGEST ##################
    ##########################################

    async def ingest_document(self, document: DocumentInput, timeout: float | None = None) -> IngestResult:
        """Chunk, embed and store a document.

        Unchanged content is skipped without embedding calls. Content already stored
        under another identity is reported as a duplicate and not stored again. If the
        document was stored before with other content, that previous version is removed.

        Args:
            document (DocumentInput): Name, content, metadata and source of the document.
            timeout (float | None): Upper bound for the whole operation in seconds.

        Returns:
            IngestResult: Identity, status and chunk count.

        Raises:
            EmptyDocumentError: If the content is empty, before any embedding call.
            CacheError: For provider, store and timeout failures.
        """
        return await self._with_timeout(self._ingest(document), timeout, action="ingest")

    async def _ingest(self, document: DocumentInput) -> IngestResult:
        chunks = self._chunker.split(document.content, name=document.name)
        document_id = document.document_id or compute_document_id(document.name)
        content_hash = compute_content_hash(document.content)

        # lookups and the write for one content hash run under one lock
        async with self._hash_lock(content_hash):
            existing = await self._store.do_get_document(document_id)
            if existing and existing.content_hash == content_hash:
                self.logging.info("Document '%s' is unchanged, skipping.", document.name)
                return IngestResult(document_id=document_id, name=document.name, status=IngestStatus.UNCHANGED, content_hash=content_hash)

            duplicate = await self._store.do_find_document_by_hash(content_hash)
            if duplicate and duplicate.id != document_id:
                if existing:
                    await self._store.do_remove_document(document_id)
                    self.logging.info(
                        "Document '%s' now has the same content as '%s', removed its previous version.",
                        document.name, duplicate.name, color="yellow",
                    )
                else:
                    self.logging.info("Document '%s' has the same content as '%s', skipping.", document.name, duplicate.name)
                return IngestResult(
                    document_id=document_id,
                    name=document.name,
                    status=IngestStatus.DUPLICATE,
                    content_hash=content_hash,
                    duplicate_of=duplicate.id,
                )

            return await self._store_document(document, document_id, content_hash, chunks, updated=existing is not None)

    async def _store_document(
        self,
        document: DocumentInput,
        document_id: str,
        content_hash: str,
        chunks: list[str],
        updated: bool,
    ) -> IngestResult:
        client = self._embed.get_client(self._resolve_provider(None))
        provider = client.get_engine_name()
        vectors = await self._embed.do_embed(chunks, provider=provider)

        if self._store.get_index_info() is None:
            await self._store.do_initialize(
                IndexInfo(dimensions=len(vectors[0]), provider=provider, model=client.get_model_name())
            )

        stored = StoredDocument(
            id=document_id,
            name=document.name,
            content_hash=content_hash,
            content=document.content,
            size=len(document.content),
            uploaded_at=datetime.now(timezone.utc).isoformat(),
            source=document.source,
            metadata=document.metadata,
        )
        stored_chunks = [
            StoredChunk(
                id=make_chunk_id(document_id, index),
                document_id=document_id,
                content=text,
                index=index,
                size=len(text),
                embedding=vector,
                metadata={
                    **document.metadata,
                    "chunkIndex": index,
                    "source": document.source,
                    "embeddingProvider": provider,
                    "embeddingModel": client.get_model_name(),
                },
            )
            for index, (text, vector) in enumerate(zip(chunks, vectors))
        ]
        await self._store.do_replace_chunks(document_id, stored_chunks, document=stored)

        status = IngestStatus.UPDATED if updated else IngestStatus.CREATED
        self.logging.info(
            "Document '%s' %s with %d chunk(s) via '%s'.", document.name, status.value, len(stored_chunks), provider,
            color="green",
        )
        return IngestResult(
            document_id=document_id,
            name=document.name,
            status=status,
            chunk_count=len(stored_chunks),
            content_hash=content_hash,
        )

    async def remove_document(self, document_id: str, timeout: float | None = None) -> bool:
        """Delete a document and all of its chunks.

        Returns:
            bool: True if the document existed.
        """
        removed = await self._with_timeout(self._store.do_remove_document(document_id), timeout, action="remove")
        if removed:
            self.logging.info("Removed document '%s'.", document_id)
        return removed

    ##########################################
    ################ SEARCH ##################
    ##########################################

    async def search(
        self,
        query: str,
        limit: int = 5,
        provider: str | None = None,
        expand: bool = False,
        timeout: float | None = None,
    ) -> list[SearchHit]:
        """Similarity search over all cached chunks.

        Args:
            query (str): Search text.
            limit (int): Maximum number of hits.
            provider (str | None): Embedding provider hint; defaults to the pinned provider.
            expand (bool): Add sibling chunks of the best hits.
            timeout (float | None): Upper bound for the whole operation in seconds.

        Returns:
            list[SearchHit]: Best hits first. Empty for an empty store or blank query.
        """
        return await self._with_timeout(self._search(query, limit, provider, expand), timeout, action="search")

    async def _search(self, query: str, limit: int, provider: str | None, expand: bool) -> list[SearchHit]:
        if not query or not query.strip() or limit <= 0:
            return []
        vector = await self._embed.do_embed_query(query, provider=self._resolve_provider(provider))
        self._check_query_dimensions(vector)
        candidates = await self._retrieval.search(vector, query, limit, expand=expand)
        return [self._to_hit(candidate) for candidate in candidates]

    async def search_with_context(
        self,
        query: str,
        limit: int = 5,
        provider: str | None = None,
        timeout: float | None = None,
    ) -> ContextResult:
        """Search and assemble the hits into a prompt-ready context block.

        Returns:
            ContextResult: Joined context, sources, total document count and a 0-100 confidence.
        """
        return await self._with_timeout(self._search_with_context(query, limit, provider), timeout, action="search_with_context")

    async def _search_with_context(self, query: str, limit: int, provider: str | None) -> ContextResult:
        hits = await self._search(query, limit, provider, expand=False)
        stats = await self._store.do_stats()
        context = CONTEXT_SEPARATOR.join(
            f"[Source {position}: {hit.document_name}]\n{hit.chunk_text}" for position, hit in enumerate(hits, start=1)
        )
        confidence = 0.0
        if hits:
            average = sum(hit.score for hit in hits) / len(hits)
            confidence = min(max(average * 100.0, 0.0), 100.0)
        return ContextResult(
            query=query,
            context=context,
            sources=hits,
            total_documents=stats.document_count,
            confidence_score=confidence,
        )

    async def search_many(
        self,
        sub_queries: list[SubQuery],
        provider: str | None = None,
        timeout: float | None = None,
    ) -> FanOutResult:
        """Run several sub-queries concurrently and merge their hits.

        A failing sub-query contributes no hits and is reported in FanOutResult.failed.
        Hits are merged after all sub-queries settled, deduplicated by chunk id with
        the first occurrence (in sub-query order) winning and labelled with its sub-query.
        """
        return await self._with_timeout(self._search_many(sub_queries, provider), timeout, action="search_many")

    async def _search_many(self, sub_queries: list[SubQuery], provider: str | None) -> FanOutResult:
        sem = asyncio.Semaphore(max(1, self.fanout_concurrency))

        async def run(sub_query: SubQuery) -> list[SearchHit]:
            async with sem:
                return await self._search(sub_query.query, sub_query.limit, provider, expand=False)

        results = await asyncio.gather(*[run(sub_query) for sub_query in sub_queries], return_exceptions=True)

        merged = FanOutResult(hits=[])
        seen: set[str] = set()
        for sub_query, result in zip(sub_queries, results):
            if isinstance(result, CacheError):
                self.logging.warning("Sub-query '%s' failed: %s", sub_query.label, result)
                merged.failed[sub_query.label] = result.to_detail()
                continue
            if isinstance(result, BaseException):
                raise result
            for hit in result:
                if hit.chunk_id in seen:
                    continue
                seen.add(hit.chunk_id)
                merged.hits.append(hit.model_copy(update={"query_label": sub_query.label}))
            if result and sub_query.label not in merged.labels_covered:
                merged.labels_covered.append(sub_query.label)
        self.logging.info(
            "Fan-out over %d sub-queries: %d unique hit(s), %d failed.",
            len(sub_queries), len(merged.hits), len(merged.failed),
        )
        return merged

    ##########################################
    ############### MAINTENANCE ##############
    ##########################################

    async def stats(self, timeout: float | None = None) -> CacheStats:
        store_stats = await self._with_timeout(self._store.do_stats(), timeout, action="stats")
        return CacheStats(
            document_count=store_stats.document_count,
            chunk_count=store_stats.chunk_count,
            index=store_stats.index,
            vector_index_available=store_stats.vector_index_available,
            embedding=self._embed.get_stats(),
        )

    async def clear(self, timeout: float | None = None) -> None:
        """Delete all documents, chunks, the index pin and cached query embeddings."""
        await self._with_timeout(self._store.do_clear(), timeout, action="clear")
        self._embed.query_cache.clear()
        self.logging.info("Document cache cleared.", color="yellow")

    async def health_check(self, timeout: float | None = None) -> HealthStatus:
        return await self._with_timeout(self._health_check(), timeout, action="health_check")

    async def _health_check(self) -> HealthStatus:
        store_ok = await self._store.do_healthcheck()
        providers: dict[str, bool] = {}
        for client in self._embed.get_clients():
            providers[client.get_engine_name()] = await client.do_healthcheck()
        detail = None
        try:
            self._embed.get_client(self._resolve_provider(None))
        except ConfigurationError as exc:
            detail = exc.message
        healthy = store_ok and any(providers.values())
        return HealthStatus(healthy=healthy, store=store_ok, providers=providers, detail=detail)
