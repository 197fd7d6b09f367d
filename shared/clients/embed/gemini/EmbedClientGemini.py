import httpx

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import EmbeddingProviderError


class EmbedClientGemini(EmbedClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Gemini"

    def _get_default_model(self) -> str:
        return "text-embedding-004"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None, description="Gemini API key"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-goog-api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/v1beta/models/{self.embed_model}"

    def get_endpoint_embedding(self) -> str:
        return f"/v1beta/models/{self.embed_model}:embedContent"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, text: str) -> dict:
        return {
            "model": f"models/{self.embed_model}",
            "content": {"parts": [{"text": text}]},
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def is_unknown_model_response(self, response: httpx.Response) -> bool:
        return response.status_code == 404

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract the vector from a Gemini embedContent response: {"embedding": {"values": [...]}}"""
        values = (response_data.get("embedding") or {}).get("values")
        if not values:
            raise EmbeddingProviderError(
                "Gemini response does not contain valid embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        return [values]
