import httpx

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import EmbeddingProviderError, UnknownModelError


class EmbedClientOllama(EmbedClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    def _get_default_model(self) -> str:
        return "nomic-embed-text"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None, description="URL of the local inference server"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        # root on ollama
        return ""

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        # ollama uses /api/show for model details, with model name in body
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, text: str) -> dict:
        """Build the Ollama embedding request body.

        Returns:
            dict: {"model": "...", "input": "..."}
        """
        return {"model": self.embed_model, "input": text}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def _get_unknown_model_hint(self) -> str:
        return f"Run 'ollama pull {self.embed_model}' on the inference host or set {self._get_config_key_name('MODEL')}."

    def is_unknown_model_response(self, response: httpx.Response) -> bool:
        # ollama answers 404 {"error": "model \"x\" not found, try pulling it first"}
        return response.status_code == 404 and "not found" in response.text.lower()

    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        model_info: dict = model_info.get("model_info", {})
        for key, value in model_info.items():
            if key.endswith(".embedding_length"):
                return int(value)
        raise EmbeddingProviderError(f"Could not determine embedding vector size for model {self.embed_model}")

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from an Ollama /api/embed response.

        Raises:
            EmbeddingProviderError: If the response does not contain valid embeddings.
        """
        embeddings = response_data.get("embeddings")
        if not embeddings or not embeddings[0]:
            raise EmbeddingProviderError(
                "Ollama response does not contain valid embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        return embeddings

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> int:
        """Read the embedding dimension from /api/show instead of embedding a sample text."""
        response = await self.do_request(
            method="POST",
            json={"name": self.embed_model},
            endpoint=self.get_endpoint_model_details(),
        )
        if self.is_unknown_model_response(response):
            raise UnknownModelError(
                f"Model '{self.embed_model}' is not available on provider 'ollama'.",
                hint=self._get_unknown_model_hint(),
            )
        if not response.is_success:
            raise EmbeddingProviderError(
                f"Model details request to 'ollama' failed with status {response.status_code}."
            )
        return self.extract_vector_size_from_model_info(model_info=response.json())
