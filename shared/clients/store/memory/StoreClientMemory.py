"""In-process graph store.

Keeps Document and Chunk nodes in dictionaries; CONTAINS edges are implied by
chunk.document_id. Every write runs without awaiting, so concurrent tasks see
either the state before or after a write, never a mix.
"""

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.Chunk import ChunkOrigin, ScoredChunk, StoredChunk
from shared.clients.store.models.Document import StoredDocument
from shared.clients.store.models.Stats import IndexInfo, StoreStats
from shared.helper.HelperConfig import HelperConfig
from shared.helper.similarity import cosine_similarity
from shared.models.config import EnvConfig
from shared.models.errors import IndexUnavailableError, NotFoundError, StoreConnectivityError


class StoreClientMemory(StoreClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._vector_index_enabled = self.get_config_val("VECTOR_INDEX", default=True, val_type="bool")
        self._documents: dict[str, StoredDocument] = {}
        self._chunks: dict[str, dict[str, StoredChunk]] = {}
        self._booted = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="VECTOR_INDEX", val_type="bool", default=True),
        ]

    def _require_booted(self) -> None:
        if not self._booted:
            raise StoreConnectivityError("In-memory store is not booted.", hint="Call boot() before using the store.")

    def _scored(self, chunk: StoredChunk, score: float, origin: ChunkOrigin) -> ScoredChunk:
        return ScoredChunk(
            chunk=chunk.model_copy(deep=True),
            document=self._documents[chunk.document_id].model_copy(deep=True),
            score=score,
            origin=origin,
        )

    def _all_chunks(self) -> list[StoredChunk]:
        return [chunk for chunks in self._chunks.values() for chunk in sorted(chunks.values(), key=lambda c: c.index)]

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self) -> None:
        self._booted = True

    async def close(self) -> None:
        self._booted = False

    async def do_healthcheck(self) -> bool:
        return self._booted

    async def do_initialize(self, index_info: IndexInfo | None = None) -> IndexInfo | None:
        self._require_booted()
        if index_info is None:
            return self._index_info
        if self._index_info is not None:
            self.check_index_compatibility(self._index_info, index_info)
            return self._index_info
        self._index_info = index_info.model_copy()
        self.vector_index_available = self._vector_index_enabled
        if not self.vector_index_available:
            self.logging.warning("In-memory vector index disabled. Similarity search will use the brute-force scan.")
        self.logging.info(
            "Pinned cache to %d-dimensional vectors from '%s/%s'.",
            index_info.dimensions, index_info.provider, index_info.model,
        )
        return self._index_info

    ##########################################
    ################ READS ###################
    ##########################################

    async def do_get_document(self, document_id: str) -> StoredDocument | None:
        self._require_booted()
        document = self._documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def do_find_document_by_hash(self, content_hash: str) -> StoredDocument | None:
        self._require_booted()
        for document in self._documents.values():
            if document.content_hash == content_hash:
                return document.model_copy(deep=True)
        return None

    async def do_list_documents(self, source: str | None = None) -> dict[str, str]:
        self._require_booted()
        return {
            document.id: document.content_hash
            for document in self._documents.values()
            if source is None or document.source == source
        }

    async def do_stats(self) -> StoreStats:
        self._require_booted()
        return StoreStats(
            document_count=len(self._documents),
            chunk_count=sum(len(chunks) for chunks in self._chunks.values()),
            index=self._index_info,
            vector_index_available=self.vector_index_available,
        )

    ##########################################
    ################ WRITES ##################
    ##########################################

    async def do_upsert_document(self, document: StoredDocument) -> None:
        self._require_booted()
        self._documents[document.id] = document.model_copy(deep=True)
        self._chunks.setdefault(document.id, {})

    async def do_replace_chunks(self, document_id: str, chunks: list[StoredChunk], document: StoredDocument | None = None) -> None:
        self._require_booted()
        self.check_chunk_dimensions(chunks)
        if document is not None:
            self._documents[document.id] = document.model_copy(deep=True)
        if document_id not in self._documents:
            raise NotFoundError(f"Document '{document_id}' does not exist.", hint="Upsert the document before its chunks.")
        self._chunks[document_id] = {chunk.id: chunk.model_copy(deep=True) for chunk in chunks}

    async def do_remove_document(self, document_id: str) -> bool:
        self._require_booted()
        existed = self._documents.pop(document_id, None) is not None
        self._chunks.pop(document_id, None)
        return existed

    async def do_clear(self) -> None:
        self._require_booted()
        self._documents.clear()
        self._chunks.clear()
        self._index_info = None
        self.vector_index_available = False

    ##########################################
    ############### RETRIEVAL ################
    ##########################################

    async def do_vector_search(self, vector: list[float], k: int) -> list[ScoredChunk]:
        self._require_booted()
        if not self.vector_index_available:
            raise IndexUnavailableError("In-memory vector index is not available.")
        scored = [
            (cosine_similarity(vector, chunk.embedding), chunk)
            for chunk in self._all_chunks()
            if len(chunk.embedding) == len(vector)
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [self._scored(chunk, score, ChunkOrigin.INDEX) for score, chunk in scored[:k]]

    async def do_sample_chunks(self, limit: int) -> list[ScoredChunk]:
        self._require_booted()
        sample = [chunk for chunk in self._all_chunks() if chunk.embedding][:limit]
        return [self._scored(chunk, 0.0, ChunkOrigin.BRUTE_FORCE) for chunk in sample]

    async def do_text_search(self, terms: list[str], limit: int) -> list[ScoredChunk]:
        self._require_booted()
        lowered = [term.lower() for term in terms if term]
        if not lowered:
            return []
        matches = [
            chunk for chunk in self._all_chunks()
            if any(term in chunk.content.lower() for term in lowered)
        ][:limit]
        return [self._scored(chunk, 0.0, ChunkOrigin.TEXT) for chunk in matches]

    async def do_fetch_siblings(self, chunk_ids: list[str], per_chunk: int) -> dict[str, list[ScoredChunk]]:
        self._require_booted()
        siblings: dict[str, list[ScoredChunk]] = {}
        for chunk_id in chunk_ids:
            seed = next((chunks[chunk_id] for chunks in self._chunks.values() if chunk_id in chunks), None)
            if seed is None:
                siblings[chunk_id] = []
                continue
            others = [c for c in self._chunks[seed.document_id].values() if c.id != chunk_id]
            others.sort(key=lambda c: (abs(c.index - seed.index), c.index))
            siblings[chunk_id] = [self._scored(c, 0.0, ChunkOrigin.EXPANSION) for c in others[:per_chunk]]
        return siblings
