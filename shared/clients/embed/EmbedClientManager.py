from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.QueryEmbeddingCache import QueryEmbeddingCache
from shared.models.errors import ConfigurationError

DEFAULT_ENGINES = ["ollama", "gemini", "openai"]  # priority order, local inference first


class EmbedClientManager:
    """
    Gateway over all configured embedding providers.

    Providers are scanned in priority order (EMBED_ENGINES, default ollama → gemini → openai).
    Providers whose configuration is incomplete are skipped. Query embeddings are served
    from a bounded LRU cache; write-path embeddings never are.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._missing_config: dict[str, str] = {}
        self.engines = self._get_engines_from_env()
        self.clients = self._initialize_clients()
        self.query_cache = QueryEmbeddingCache(
            max_size=helper_config.get_number_val("EMBED_QUERY_CACHE_SIZE", default=100)
        )
        self._selections: dict[str, int] = {}

    def _get_engines_from_env(self) -> list[str]:
        """
        Reads the provider priority list from ENV configuration.

        Returns:
            list[str]: Lowercase engine names in priority order.

        Raises:
            ConfigurationError: If the list is empty.
        """
        engines = self.helper_config.get_list_val("EMBED_ENGINES", default=DEFAULT_ENGINES)
        engines = [engine.strip().lower() for engine in engines]
        if not engines:
            raise ConfigurationError("No Embed engines specified in configuration.", hint="Set EMBED_ENGINES, e.g. [ollama,openai].")
        return engines

    def _initialize_clients(self) -> dict[str, EmbedClientInterface]:
        """
        Instantiates a client for every configured engine in the priority list.

        Returns:
            dict[str, EmbedClientInterface]: Configured clients keyed by engine name, in priority order.

        Raises:
            ConfigurationError: If an engine in the list is not supported.
        """
        clients: dict[str, EmbedClientInterface] = {}
        for engine in self.engines:
            className = f"EmbedClient{engine.capitalize()}"
            try:
                module = __import__(
                    f"shared.clients.embed.{engine}.{className}",
                    fromlist=[className],
                )
                client_class = getattr(module, className)
            except (ImportError, AttributeError) as e:
                raise ConfigurationError(f"Unsupported Embed engine specified: '{engine}'. Error: {e}")
            try:
                clients[engine] = client_class(helper_config=self.helper_config)
                self.logging.debug("Instantiated Embed client for engine: %s", engine)
            except ConfigurationError as e:
                self._missing_config[engine] = e.message
                self.logging.debug("Embed engine '%s' is not configured, skipping: %s", engine, e.message)
        return clients

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_clients(self) -> list[EmbedClientInterface]:
        """
        Returns all configured Embed clients in priority order.
        """
        return list(self.clients.values())

    def get_client(self, provider: str | None = None) -> EmbedClientInterface:
        """
        Selects the provider for a request.

        Args:
            provider (str | None): Preferred provider. Used when it is available, otherwise the priority list decides.

        Returns:
            EmbedClientInterface: The selected client.

        Raises:
            ConfigurationError: If no provider is available.
        """
        if provider:
            requested = provider.strip().lower()
            client = self.clients.get(requested)
            if client is not None and client.is_available():
                return self._select(client)
            self.logging.warning(
                "Requested embedding provider '%s' is not available. Falling back to priority order %s.",
                requested,
                self.engines,
            )
        for engine in self.engines:
            client = self.clients.get(engine)
            if client is not None and client.is_available():
                return self._select(client)
        missing = "; ".join(self._missing_config.values()) or "no engines listed"
        raise ConfigurationError(
            f"No embedding provider is available ({missing}).",
            hint="Configure at least one of EMBED_OLLAMA_BASE_URL, EMBED_GEMINI_API_KEY or EMBED_OPENAI_API_KEY.",
        )

    def _select(self, client: EmbedClientInterface) -> EmbedClientInterface:
        name = client.get_engine_name()
        self._selections[name] = self._selections.get(name, 0) + 1
        return client

    def get_stats(self) -> dict:
        return {
            "configured": list(self.clients.keys()),
            "selections": dict(self._selections),
            "requests": {name: client.request_count for name, client in self.clients.items()},
            "query_cache_size": len(self.query_cache),
            "query_cache_hits": self.query_cache.hits,
            "query_cache_misses": self.query_cache.misses,
        }

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str], provider: str | None = None) -> list[list[float]]:
        """Embed document chunks. Results are never cached.

        Args:
            texts (list[str]): Chunk texts, embedded sequentially in order.
            provider (str | None): Preferred provider.

        Returns:
            list[list[float]]: One vector per text.
        """
        client = self.get_client(provider)
        self.logging.debug("Embedding %d text(s) with '%s'.", len(texts), client.get_engine_name())
        return await client.do_embed(texts)

    async def do_embed_query(self, text: str, provider: str | None = None) -> list[float]:
        """Embed a search query, serving repeats from the query cache.

        Args:
            text (str): The query text.
            provider (str | None): Preferred provider.

        Returns:
            list[float]: The query vector.
        """
        client = self.get_client(provider)
        name = client.get_engine_name()
        cached = self.query_cache.get(name, text)
        if cached is not None:
            self.logging.debug("Query embedding cache hit for '%s' (%s).", text[:50], name, color="cyan")
            return cached
        vector = await client.do_embed_query(text)
        self.query_cache.put(name, text, vector)
        return vector

    async def boot(self) -> None:
        for client in self.clients.values():
            await client.boot()

    async def close(self) -> None:
        for client in self.clients.values():
            await client.close()
