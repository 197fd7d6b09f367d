import json

import httpx
import pytest

from shared.clients.embed.gemini.EmbedClientGemini import EmbedClientGemini
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.models.errors import (
    ConfigurationError,
    EmbeddingProviderError,
    OperationTimeoutError,
    ProviderExhaustedError,
    UnknownModelError,
)
from tests.conftest import DIMENSIONS, fake_vector


@pytest.fixture
async def ollama(helper_config, fake_ollama):
    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(fake_ollama))
    yield client
    await client.close()


async def test_ollama_embeds_sequentially_in_order(ollama, fake_ollama):
    vectors = await ollama.do_embed(["hello world", "alpha", "graph vector"])
    assert fake_ollama.embed_calls == 3
    assert fake_ollama.inputs == ["hello world", "alpha", "graph vector"]
    assert vectors == [fake_vector("hello world"), fake_vector("alpha"), fake_vector("graph vector")]


async def test_ollama_payload_uses_configured_model(helper_config, env):
    env.setenv("EMBED_OLLAMA_MODEL", "mxbai-embed-large")
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"embeddings": [[0.1, 0.2]]})

    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    assert await client.do_embed_query("hello") == [0.1, 0.2]
    assert seen == [{"model": "mxbai-embed-large", "input": "hello"}]
    await client.close()


async def test_transient_errors_are_retried(ollama, fake_ollama):
    fake_ollama.scripted = [httpx.Response(503, text="busy"), httpx.Response(429, text="slow down")]
    assert await ollama.do_embed_query("hello") == fake_vector("hello")
    assert fake_ollama.embed_calls == 3


async def test_persistent_server_errors_exhaust_retries(ollama, fake_ollama):
    fake_ollama.scripted = [httpx.Response(500, text="boom") for _ in range(5)]
    with pytest.raises(ProviderExhaustedError):
        await ollama.do_embed(["hello", "world"])
    assert fake_ollama.embed_calls == 3


async def test_connection_errors_exhaust_retries(ollama, fake_ollama):
    fake_ollama.scripted = [httpx.ConnectError("refused")] * 3
    with pytest.raises(ProviderExhaustedError):
        await ollama.do_embed_query("hello")


async def test_all_timeouts_raise_operation_timeout(ollama, fake_ollama):
    fake_ollama.scripted = [httpx.ReadTimeout("slow")] * 3
    with pytest.raises(OperationTimeoutError):
        await ollama.do_embed_query("hello")
    assert fake_ollama.embed_calls == 3


async def test_unknown_model_fails_fast_with_pull_hint(ollama, fake_ollama):
    fake_ollama.scripted = [httpx.Response(404, json={"error": 'model "nomic-embed-text" not found, try pulling it first'})]
    with pytest.raises(UnknownModelError) as exc_info:
        await ollama.do_embed_query("hello")
    assert "ollama pull nomic-embed-text" in exc_info.value.hint
    assert fake_ollama.embed_calls == 1


async def test_rejected_request_is_not_retried(ollama, fake_ollama):
    fake_ollama.scripted = [httpx.Response(400, json={"error": "bad input"})]
    with pytest.raises(EmbeddingProviderError):
        await ollama.do_embed_query("hello")
    assert fake_ollama.embed_calls == 1


async def test_ollama_vector_size_from_model_details(ollama):
    assert await ollama.do_fetch_embedding_vector_size() == DIMENSIONS


async def test_healthcheck(ollama):
    assert await ollama.do_healthcheck() is True


async def test_healthcheck_unreachable(helper_config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused")

    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    assert await client.do_healthcheck() is False
    await client.close()


async def test_gemini_request_and_response(helper_config, env):
    env.setenv("EMBED_GEMINI_API_KEY", "g-key")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"embedding": {"values": [0.5, 0.25]}})

    client = EmbedClientGemini(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    assert await client.do_embed_query("hello") == [0.5, 0.25]
    request = seen[0]
    assert request.url.path == "/v1beta/models/text-embedding-004:embedContent"
    assert request.headers["x-goog-api-key"] == "g-key"
    assert json.loads(request.content)["content"] == {"parts": [{"text": "hello"}]}
    await client.close()


async def test_openai_orders_by_index(helper_config, env):
    env.setenv("EMBED_OPENAI_API_KEY", "sk-test")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(200, json={"data": [{"index": 1, "embedding": [2.0]}, {"index": 0, "embedding": [1.0]}]})

    client = EmbedClientOpenai(helper_config=helper_config)
    assert client.extract_embeddings_from_response(
        {"data": [{"index": 1, "embedding": [2.0]}, {"index": 0, "embedding": [1.0]}]}
    ) == [[1.0], [2.0]]
    await client.boot(transport=httpx.MockTransport(handler))
    assert await client.do_embed_query("hello") == [1.0]
    await client.close()


async def test_openai_unknown_model(helper_config, env):
    env.setenv("EMBED_OPENAI_API_KEY", "sk-test")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"code": "model_not_found", "message": "no such model"}})

    client = EmbedClientOpenai(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    with pytest.raises(UnknownModelError):
        await client.do_embed_query("hello")
    await client.close()


def test_missing_api_key_lists_the_key(helper_config):
    with pytest.raises(ConfigurationError) as exc_info:
        EmbedClientOpenai(helper_config=helper_config)
    assert "EMBED_OPENAI_API_KEY" in exc_info.value.message


async def test_request_before_boot_fails(helper_config):
    client = EmbedClientOllama(helper_config=helper_config)
    with pytest.raises(EmbeddingProviderError):
        await client.do_embed_query("hello")
