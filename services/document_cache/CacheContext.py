"""Explicit wiring of the document cache components.

One context is built per process (server lifespan or sync runner) and handed
to the services that need it; nothing is kept in module globals.
"""

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.helper.HelperConfig import HelperConfig
from services.document_cache.ContentChunker import ContentChunker
from services.document_cache.RetrievalService import RetrievalService


class CacheContext:
    def __init__(
        self,
        helper_config: HelperConfig,
        store: StoreClientInterface,
        embed_manager: EmbedClientManager,
        chunker: ContentChunker | None = None,
    ) -> None:
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.store = store
        self.embed_manager = embed_manager
        self.chunker = chunker or ContentChunker(helper_config=helper_config)
        self.retrieval = RetrievalService(helper_config=helper_config, store=store)

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "CacheContext":
        """Build a context with the store engine and embedding providers named in the environment."""
        return cls(
            helper_config=helper_config,
            store=StoreClientManager(helper_config=helper_config).get_client(),
            embed_manager=EmbedClientManager(helper_config=helper_config),
        )

    async def boot(self) -> None:
        """Acquire the store driver and HTTP clients and load the pinned index settings."""
        self.logging.info("Booting document cache clients...")
        await self.store.boot()
        await self.store.do_initialize()
        await self.embed_manager.boot()
        index_info = self.store.get_index_info()
        if index_info:
            self.logging.info(
                "Cache pinned to '%s/%s' (%d dimensions).",
                index_info.provider, index_info.model, index_info.dimensions,
            )
        self.logging.info("Document cache clients booted.", color="green")

    async def close(self) -> None:
        """Release all clients. Safe to call after a failed boot()."""
        try:
            await self.embed_manager.close()
        finally:
            await self.store.close()
        self.logging.info("Document cache clients closed.")
