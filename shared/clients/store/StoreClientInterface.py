from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.clients.store.models.Chunk import ScoredChunk, StoredChunk
from shared.clients.store.models.Document import StoredDocument
from shared.clients.store.models.Stats import IndexInfo, StoreStats
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import DimensionMismatchError


class StoreClientInterface(ClientInterface):
    """Graph store holding Document and Chunk nodes linked by CONTAINS edges."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._index_info: IndexInfo | None = None
        self.vector_index_available = False

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def check_index_compatibility(self, existing: IndexInfo, requested: IndexInfo) -> None:
        """
        Verifies that a requested index matches the collection's pinned index.

        Raises:
            DimensionMismatchError: If the dimensions differ.
        """
        if existing.dimensions != requested.dimensions:
            raise DimensionMismatchError(
                f"The cache is pinned to {existing.dimensions}-dimensional vectors from "
                f"'{existing.provider}/{existing.model}', got {requested.dimensions} dimensions from "
                f"'{requested.provider}/{requested.model}'."
            )
        if (existing.provider, existing.model) != (requested.provider, requested.model):
            self.logging.warning(
                "Cache was built with '%s/%s' but '%s/%s' was requested. Dimensions match, keeping the pinned index.",
                existing.provider, existing.model, requested.provider, requested.model,
            )

    def check_chunk_dimensions(self, chunks: list[StoredChunk]) -> None:
        """
        Verifies that all chunk embeddings have the pinned dimension.

        Raises:
            DimensionMismatchError: If a chunk has a vector of another length.
        """
        if self._index_info is None:
            return
        for chunk in chunks:
            if len(chunk.embedding) != self._index_info.dimensions:
                raise DimensionMismatchError(
                    f"Chunk '{chunk.id}' has {len(chunk.embedding)} dimensions, "
                    f"the cache is pinned to {self._index_info.dimensions}."
                )

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_client_type(self) -> str:
        return "store"

    def get_index_info(self) -> IndexInfo | None:
        """
        Returns the pinned vector index settings, or None if the collection was never initialised with vectors.
        """
        return self._index_info

    ##########################################
    ################ SCHEMA ##################
    ##########################################

    @abstractmethod
    async def do_initialize(self, index_info: IndexInfo | None = None) -> IndexInfo | None:
        """Create constraints and the vector index. Idempotent.

        Without index_info only the constraints are ensured and an existing pin is loaded.
        With index_info the collection is pinned to it on first call; later calls must match.

        Args:
            index_info (IndexInfo | None): Requested vector index settings.

        Returns:
            IndexInfo | None: The pinned settings after the call.

        Raises:
            DimensionMismatchError: If index_info conflicts with the pinned dimensions.
            StoreConnectivityError: If the store can not be reached.
        """
        pass

    ##########################################
    ################ READS ###################
    ##########################################

    @abstractmethod
    async def do_get_document(self, document_id: str) -> StoredDocument | None:
        pass

    @abstractmethod
    async def do_find_document_by_hash(self, content_hash: str) -> StoredDocument | None:
        pass

    @abstractmethod
    async def do_list_documents(self, source: str | None = None) -> dict[str, str]:
        """List stored documents.

        Args:
            source (str | None): Only documents of this source. All documents if None.

        Returns:
            dict[str, str]: document id -> content hash.
        """
        pass

    @abstractmethod
    async def do_stats(self) -> StoreStats:
        pass

    ##########################################
    ################ WRITES ##################
    ##########################################

    @abstractmethod
    async def do_upsert_document(self, document: StoredDocument) -> None:
        """Create or update a document node by id. Its chunks are left untouched."""
        pass

    @abstractmethod
    async def do_replace_chunks(self, document_id: str, chunks: list[StoredChunk], document: StoredDocument | None = None) -> None:
        """Atomically replace all chunks of a document.

        Deletes the existing chunks, then creates the new chunks with their CONTAINS edges,
        in one write transaction. When document is given it is upserted in the same transaction.

        Args:
            document_id (str): Owning document.
            chunks (list[StoredChunk]): Complete new chunk set.
            document (StoredDocument | None): Document node to upsert alongside.

        Raises:
            DimensionMismatchError: If a chunk vector does not match the pinned dimension.
        """
        pass

    @abstractmethod
    async def do_remove_document(self, document_id: str) -> bool:
        """Delete a document and all of its chunks.

        Returns:
            bool: True if the document existed.
        """
        pass

    @abstractmethod
    async def do_clear(self) -> None:
        """Delete every document, chunk and the index pin."""
        pass

    ##########################################
    ############### RETRIEVAL ################
    ##########################################

    @abstractmethod
    async def do_vector_search(self, vector: list[float], k: int) -> list[ScoredChunk]:
        """Approximate nearest neighbour search over the vector index.

        Raises:
            IndexUnavailableError: If the vector index is missing or unusable.
        """
        pass

    @abstractmethod
    async def do_sample_chunks(self, limit: int) -> list[ScoredChunk]:
        """Return up to limit chunks that carry an embedding, score 0."""
        pass

    @abstractmethod
    async def do_text_search(self, terms: list[str], limit: int) -> list[ScoredChunk]:
        """Case-insensitive substring match of any term against chunk content, score 0."""
        pass

    @abstractmethod
    async def do_fetch_siblings(self, chunk_ids: list[str], per_chunk: int) -> dict[str, list[ScoredChunk]]:
        """Fetch other chunks of the same document for each seed chunk.

        Returns:
            dict[str, list[ScoredChunk]]: seed chunk id -> up to per_chunk siblings in chunk index order.
        """
        pass
