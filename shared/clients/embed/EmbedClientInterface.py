from abc import abstractmethod

import httpx
from httpx._types import QueryParamTypes
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import (
    EmbeddingProviderError,
    OperationTimeoutError,
    ProviderExhaustedError,
    TransientProviderError,
    UnknownModelError,
)


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._client: httpx.AsyncClient | None = None

        # model and retry config
        self.embed_model = self.get_config_val("MODEL", default=self._get_default_model(), val_type="string")
        self.max_retries = int(helper_config.get_number_val("EMBED_MAX_RETRIES", default=3))
        self.retry_base_delay = float(helper_config.get_number_val("EMBED_RETRY_BASE_DELAY", default=1.0))
        self.retry_max_delay = float(helper_config.get_number_val("EMBED_RETRY_MAX_DELAY", default=10.0))

        # number of HTTP embedding requests sent, retries included
        self.request_count = 0

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    @abstractmethod
    def _get_default_model(self) -> str:
        """
        Returns the model used when <TYPE>_<ENGINE>_MODEL is not set. E.g. "nomic-embed-text"
        """
        pass

    def get_model_name(self) -> str:
        return self.embed_model

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the authentication header for the provider, if an API key is set.

        Returns:
            dict: A dictionary containing the auth data
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the base URL of the provider (e.g. "http://localhost:11434").
        """
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns the endpoint path for healthcheck requests (e.g. "/api/tags").
        """
        pass

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, text: str) -> dict:
        """Build the backend-specific request body for embedding a single text.

        Args:
            text (str): The text to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": "..."}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...]]}
        - Gemini embedContent: {"embedding": {"values": [...]}}
        - OpenAI-compatible: {"data": [{"embedding": [...], "index": 0}]}, sorted by index

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            EmbeddingProviderError: If the response format is invalid or embeddings are empty.
        """
        pass

    @abstractmethod
    def is_unknown_model_response(self, response: httpx.Response) -> bool:
        """
        Returns True if the provider rejected the request because the configured model does not exist.
        """
        pass

    def _get_unknown_model_hint(self) -> str:
        return f"Check that the model '{self.embed_model}' exists for provider '{self.get_engine_name()}' or set {self._get_config_key_name('MODEL')}."

    def is_available(self) -> bool:
        """
        Returns True if the provider is configured. Instantiation fails for unconfigured providers,
        so any constructed client with a base URL is considered available.
        """
        return bool(self._get_base_url())

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> bool:
        """Check if the provider is reachable.

        Returns:
            bool: True if the healthcheck endpoint answered with a 2xx status.
        """
        try:
            response = await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())
        except httpx.HTTPError as exc:
            self.logging.warning("Embed provider '%s' is not reachable: %s", self.get_engine_name(), exc)
            return False
        if not response.is_success:
            self.logging.warning(
                "Embed provider '%s' healthcheck failed with status %d.", self.get_engine_name(), response.status_code
            )
        return response.is_success

    async def do_fetch_embedding_vector_size(self) -> int:
        """
        Determine the output dimension of the configured embedding model by embedding a sample text.

        Returns:
            int: The number of dimensions produced by the embedding model.
        """
        vector = await self.do_embed_query("dimension check")
        return len(vector)

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed the given texts one request at a time, in order.

        The first text that fails after all retries aborts the whole call.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            ProviderExhaustedError: If a text could not be embedded within the retry budget.
            OperationTimeoutError: If every attempt for a text timed out.
            UnknownModelError: If the configured model does not exist.
            EmbeddingProviderError: If the provider rejected the request.
        """
        texts = [texts] if isinstance(texts, str) else texts
        vectors: list[list[float]] = []
        for text in texts:
            vectors.append(await self._embed_with_retry(text))
        return vectors

    async def do_embed_query(self, text: str) -> list[float]:
        return (await self.do_embed([text]))[0]

    async def _embed_with_retry(self, text: str) -> list[float]:
        """Embed one text, retrying transient failures with exponential backoff."""
        errors: list[TransientProviderError] = []
        vector: list[float] = []
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransientProviderError),
                stop=stop_after_attempt(max(1, self.max_retries)),
                wait=wait_exponential(multiplier=self.retry_base_delay, max=self.retry_max_delay),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    try:
                        vector = await self._do_embed_request(text)
                    except TransientProviderError as exc:
                        errors.append(exc)
                        raise
        except TransientProviderError as exc:
            if errors and all(error.timed_out for error in errors):
                raise OperationTimeoutError(
                    f"Embedding request to '{self.get_engine_name()}' timed out {len(errors)} time(s) after {self.timeout}s."
                ) from exc
            raise ProviderExhaustedError(
                f"Embedding provider '{self.get_engine_name()}' failed after {len(errors)} attempt(s): {exc.message}"
            ) from exc
        return vector

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logging.warning(
            "Embedding request to '%s' failed (attempt %d/%d): %s. Retrying...",
            self.get_engine_name(),
            retry_state.attempt_number,
            self.max_retries,
            exc,
        )

    async def _do_embed_request(self, text: str) -> list[float]:
        """Send a single embedding request and classify its failure modes."""
        self.request_count += 1
        try:
            response = await self.do_request(
                method="POST",
                endpoint=self.get_endpoint_embedding(),
                json=self.get_embed_payload(text),
            )
        except httpx.TimeoutException as exc:
            raise TransientProviderError(f"Request to '{self.get_engine_name()}' timed out.", timed_out=True) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"Could not reach '{self.get_engine_name()}': {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"Provider '{self.get_engine_name()}' answered with status {response.status_code}: {response.text[:200]}"
            )
        if self.is_unknown_model_response(response):
            raise UnknownModelError(
                f"Model '{self.embed_model}' is not available on provider '{self.get_engine_name()}'.",
                hint=self._get_unknown_model_hint(),
            )
        if not response.is_success:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingProviderError(
                f"Embedding request to '{self.get_engine_name()}' failed with status {response.status_code}."
            )
        embeddings = self.extract_embeddings_from_response(response.json())
        return embeddings[0]

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialise the HTTP client.

        Args:
            transport (httpx.AsyncBaseTransport | None): Optional transport, e.g. an httpx.MockTransport.
        """
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
    ) -> httpx.Response:
        """Send an HTTP request to the provider.

        Args:
            method: HTTP method (GET, POST, ...).
            json: JSON-serialisable body (sets Content-Type automatically).
            params: URL query parameters.
            endpoint: Path to append to the base URL (leading slash optional).
            additional_headers: Extra headers that override the defaults.

        Returns:
            The raw httpx.Response.

        Raises:
            EmbeddingProviderError: If the client is not initialised.
            httpx.HTTPError: If the request could not be sent.
        """
        if self._client is None:
            raise EmbeddingProviderError(
                f"HTTP client of '{self.get_engine_name()}' not initialised.", hint="Call boot() before making requests."
            )

        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""

        headers: dict = {}
        headers.update(self._get_auth_header())
        if additional_headers:
            headers.update(additional_headers)

        kwargs: dict = {
            "url": f"{self._get_base_url().rstrip('/')}{endpoint}",
            "headers": headers,
            "timeout": self.timeout,
            "params": params,
        }
        if json is not None:
            kwargs["json"] = json

        return await self._client.request(method, **kwargs)
